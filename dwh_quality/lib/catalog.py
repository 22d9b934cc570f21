"""Rule catalog and the default warehouse checks.

The default catalog covers the six CRM/ERP source tables. It is built the
same way for bronze and silver; the thresholds come from ``CheckSettings``
so a config file can move them without code changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from dwh_quality.lib import rules as r
from dwh_quality.lib.errors import ConfigurationError, DuplicateRuleError
from dwh_quality.lib.models import RuleLevel

logger = logging.getLogger(__name__)

__all__ = [
    "CheckSettings",
    "RuleCatalog",
    "TABLE_KEYS",
    "build_catalog",
    "default_catalog",
    "describe_catalog",
]

# Primary key used to identify rows in violations
TABLE_KEYS: Dict[str, List[str]] = {
    "crm_cust_info": ["cst_id"],
    "crm_prd_info": ["prd_id"],
    "crm_sales_details": ["sls_ord_num", "sls_prd_key"],
    "erp_cust_az12": ["cid"],
    "erp_loc_a101": ["cid"],
    "erp_px_cat_g1v2": ["id"],
}


@dataclass
class CheckSettings:
    """Tunable thresholds and catalog overrides."""

    min_birthdate: date = date(1924, 1, 1)
    min_order_date: date = date(1900, 1, 1)
    max_order_date: int = 20500101
    disabled: List[str] = field(default_factory=list)
    levels: Dict[str, RuleLevel] = field(default_factory=dict)
    # "table.column" -> allowed values
    allowed_values: Dict[str, List[Any]] = field(default_factory=dict)


class RuleCatalog:
    """Ordered collection of rules, unique by (name, table)."""

    def __init__(self, rules: Optional[Sequence[r.Rule]] = None) -> None:
        self._rules: Dict[Tuple[str, str], r.Rule] = {}
        for rule in rules or []:
            self.register(rule)

    def register(self, rule: r.Rule) -> r.Rule:
        """Add a rule.

        Raises:
            DuplicateRuleError: a rule with the same name and table exists
        """
        if rule.key in self._rules:
            raise DuplicateRuleError(rule.name, rule.table)
        self._rules[rule.key] = rule
        logger.debug("Registered %s rule %s on %s", rule.kind, rule.name, rule.table)
        return rule

    def unregister(self, name: str, table: Optional[str] = None) -> int:
        """Remove rules by name (optionally limited to a table).

        Returns:
            Number of rules removed
        """
        doomed = [
            key for key in self._rules if key[0] == name and (table is None or key[1] == table)
        ]
        for key in doomed:
            del self._rules[key]
        return len(doomed)

    def get(self, name: str, table: str) -> Optional[r.Rule]:
        return self._rules.get((name, table))

    @property
    def rules(self) -> List[r.Rule]:
        """Rules in registration order."""
        return list(self._rules.values())

    @property
    def required_tables(self) -> List[str]:
        """Tables the registered rules read, in first-use order."""
        seen: Dict[str, None] = {}
        for rule in self._rules.values():
            seen.setdefault(rule.table, None)
        return list(seen)

    def __iter__(self) -> Iterator[r.Rule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, key: object) -> bool:
        return key in self._rules


def default_catalog(settings: Optional[CheckSettings] = None) -> RuleCatalog:
    """Build the standard catalog for the CRM and ERP source tables."""
    s = settings or CheckSettings()
    catalog = RuleCatalog()

    cust = TABLE_KEYS["crm_cust_info"]
    catalog.register(r.not_null_key("crm_cust_info", cust))
    catalog.register(r.duplicate_key("crm_cust_info", cust, "cst_create_date"))
    for column in ("cst_firstname", "cst_lastname", "cst_gndr"):
        catalog.register(r.whitespace("crm_cust_info", column, key_columns=cust))

    prd = TABLE_KEYS["crm_prd_info"]
    catalog.register(r.not_null_key("crm_prd_info", prd))
    catalog.register(r.duplicate_key("crm_prd_info", prd, "prd_start_dt"))
    catalog.register(r.whitespace("crm_prd_info", "prd_nm", key_columns=prd))
    catalog.register(r.non_negative("crm_prd_info", "prd_cost", key_columns=prd))
    catalog.register(
        r.end_before_start("crm_prd_info", "prd_start_dt", "prd_end_dt", key_columns=prd)
    )
    catalog.register(
        r.inferred_end_date(
            "crm_prd_info", "prd_key", "prd_start_dt", "prd_end_dt", key_columns=prd
        )
    )

    sales = TABLE_KEYS["crm_sales_details"]
    catalog.register(
        r.order_date_format(
            "crm_sales_details", "sls_order_dt", key_columns=sales, max_value=s.max_order_date
        )
    )
    catalog.register(
        r.date_range(
            "crm_sales_details",
            "sls_order_dt",
            key_columns=sales,
            min_date=s.min_order_date,
            skip_unparseable=True,
        )
    )
    catalog.register(r.sales_consistency("crm_sales_details", key_columns=sales))

    catalog.register(
        r.date_range(
            "erp_cust_az12",
            "bdate",
            key_columns=TABLE_KEYS["erp_cust_az12"],
            min_date=s.min_birthdate,
        )
    )

    catalog.register(
        r.whitespace("erp_loc_a101", "cntry", key_columns=TABLE_KEYS["erp_loc_a101"])
    )

    for column in ("cat", "subcat", "maintenance"):
        catalog.register(
            r.whitespace("erp_px_cat_g1v2", column, key_columns=TABLE_KEYS["erp_px_cat_g1v2"])
        )

    return catalog


def build_catalog(settings: Optional[CheckSettings] = None) -> RuleCatalog:
    """Default catalog with config overrides applied.

    Allowed-value rules are appended after the defaults; disabled rules are
    dropped and level overrides applied last.

    Raises:
        ConfigurationError: an override names a rule or column that does not exist
        DuplicateRuleError: an allowed-values rule collides with another rule
    """
    s = settings or CheckSettings()
    catalog = default_catalog(s)

    for target, values in s.allowed_values.items():
        table, _, column = target.partition(".")
        if not column or table not in TABLE_KEYS:
            raise ConfigurationError(
                f"allowed_values key must be '<table>.<column>' for a known table, got '{target}'",
                field="checks.allowed_values",
                value=target,
            )
        catalog.register(
            r.allowed_values(table, column, values, key_columns=TABLE_KEYS[table])
        )

    known = {rule.name for rule in catalog}
    for name in list(s.disabled) + list(s.levels):
        if name not in known:
            raise ConfigurationError(
                f"Unknown rule '{name}'",
                field="checks",
                value=name,
                suggestion="Run with --list-rules to see rule names.",
            )

    for name in s.disabled:
        catalog.unregister(name)
        logger.info("Rule %s disabled by config", name)

    for rule in catalog:
        if rule.name in s.levels:
            rule.level = s.levels[rule.name]

    logger.info(
        "Catalog has %d rules over %d tables", len(catalog), len(catalog.required_tables)
    )
    return catalog


def describe_catalog(catalog: RuleCatalog) -> List[Mapping[str, str]]:
    """One row per rule for listings."""
    return [
        {
            "name": rule.name,
            "table": rule.table,
            "kind": rule.kind,
            "level": rule.level.value,
            "description": rule.description,
        }
        for rule in catalog
    ]
