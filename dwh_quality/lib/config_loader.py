"""YAML configuration loader for quality runs.

Example YAML (checks.yaml):
    source:
      type: database_mssql
      host: ${DWH_HOST}
      database: DataWarehouse
      schema: bronze

    as_of: 2025-01-15

    checks:
      min_birthdate: 1924-01-01
      disabled: [cst_gndr_whitespace]
      levels:
        prd_end_dt_inferred: warn
      allowed_values:
        crm_cust_info.cst_gndr: [Female, Male, n/a]

    report:
      format: json
      output: ./reports/bronze.json

Usage:
    from dwh_quality.lib.config_loader import load_config, load_snapshot
    config = load_config("./checks.yaml")
    snapshot = load_snapshot(config, tables=catalog.required_tables)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import yaml

from dwh_quality.lib.catalog import CheckSettings
from dwh_quality.lib.connections import DATABASE_SOURCE_TYPES, get_connection
from dwh_quality.lib.env import expand_options, unresolved_references
from dwh_quality.lib.errors import ConfigurationError
from dwh_quality.lib.models import RuleLevel
from dwh_quality.lib.report import REPORT_FORMATS
from dwh_quality.lib.snapshot import TableSnapshot
from dwh_quality.lib.values import coerce_date

logger = logging.getLogger(__name__)

__all__ = [
    "CheckConfig",
    "SourceConfig",
    "SOURCE_TYPES",
    "load_config",
    "load_snapshot",
    "parse_config",
]

SOURCE_TYPES = DATABASE_SOURCE_TYPES + ("csv",)


@dataclass
class SourceConfig:
    """Where the tables come from."""

    type: str = "csv"
    schema: Optional[str] = None
    path: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def connection_name(self) -> str:
        host = self.options.get("host") or self.options.get("path") or "local"
        return f"{self.type}:{host}/{self.options.get('database', '')}"


@dataclass
class CheckConfig:
    """Parsed configuration for one run."""

    source: SourceConfig = field(default_factory=SourceConfig)
    as_of: Optional[date] = None
    settings: CheckSettings = field(default_factory=CheckSettings)
    max_workers: int = 1
    report_format: str = "text"
    report_output: Optional[str] = None


def _resolve_path(path: str, config_dir: Path) -> str:
    """Resolve ./ and ../ paths against the config file's directory."""
    if not path or os.path.isabs(path):
        return path
    if path.startswith("./") or path.startswith("../"):
        return str(config_dir / path)
    return path


def _read_date(value: Any, field_name: str) -> Optional[date]:
    try:
        return coerce_date(value)
    except ValueError:
        raise ConfigurationError(
            f"{field_name} must be a date (YYYY-MM-DD)", field=field_name, value=value
        ) from None


def _parse_source(data: Dict[str, Any], config_dir: Path) -> SourceConfig:
    source_type = str(data.get("type", "csv")).lower()
    if source_type not in SOURCE_TYPES:
        raise ConfigurationError(
            f"Invalid source.type '{data.get('type')}'. Valid options: {', '.join(SOURCE_TYPES)}",
            field="source.type",
            value=data.get("type"),
        )

    options = {k: v for k, v in data.items() if k not in ("type", "schema", "path")}
    path = data.get("path")
    if path:
        path = _resolve_path(str(path), config_dir)
        options["path"] = path

    if source_type == "csv" and not path:
        raise ConfigurationError("source.path is required for csv sources", field="source.path")

    return SourceConfig(
        type=source_type,
        schema=data.get("schema"),
        path=path,
        options=options,
    )


def _parse_checks(data: Dict[str, Any]) -> CheckSettings:
    settings = CheckSettings()

    if "min_birthdate" in data:
        settings.min_birthdate = (
            _read_date(data["min_birthdate"], "checks.min_birthdate") or settings.min_birthdate
        )
    if "min_order_date" in data:
        settings.min_order_date = (
            _read_date(data["min_order_date"], "checks.min_order_date") or settings.min_order_date
        )
    if "max_order_date" in data:
        try:
            settings.max_order_date = int(data["max_order_date"])
        except (TypeError, ValueError):
            raise ConfigurationError(
                "checks.max_order_date must be a yyyymmdd integer",
                field="checks.max_order_date",
                value=data["max_order_date"],
            ) from None

    disabled = data.get("disabled") or []
    if not isinstance(disabled, list):
        raise ConfigurationError("checks.disabled must be a list", field="checks.disabled")
    settings.disabled = [str(name) for name in disabled]

    for name, level in (data.get("levels") or {}).items():
        try:
            settings.levels[str(name)] = RuleLevel(str(level).lower())
        except ValueError:
            raise ConfigurationError(
                f"Invalid level '{level}' for rule {name}. Valid options: error, warn",
                field=f"checks.levels.{name}",
                value=level,
            ) from None

    allowed = data.get("allowed_values") or {}
    if not isinstance(allowed, dict):
        raise ConfigurationError(
            "checks.allowed_values must map TABLE.COLUMN to a list",
            field="checks.allowed_values",
        )
    for target, values in allowed.items():
        if not isinstance(values, list):
            raise ConfigurationError(
                f"checks.allowed_values.{target} must be a list",
                field=f"checks.allowed_values.{target}",
                value=values,
            )
        settings.allowed_values[str(target)] = values

    return settings


def parse_config(
    data: Dict[str, Any],
    config_dir: Optional[Path] = None,
) -> CheckConfig:
    """Build a CheckConfig from an already-parsed mapping.

    Environment variables in string values are expanded first.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping")

    config_dir = config_dir or Path.cwd()
    data = expand_options(data)
    unresolved = unresolved_references(data.get("source") or {})
    if unresolved:
        logger.warning(
            "source settings reference unset environment variable(s): %s",
            ", ".join(unresolved),
        )

    engine = data.get("engine") or {}
    report = data.get("report") or {}

    report_format = str(report.get("format", "text")).lower()
    if report_format not in REPORT_FORMATS:
        raise ConfigurationError(
            f"Invalid report.format '{report_format}'. Valid options: {', '.join(REPORT_FORMATS)}",
            field="report.format",
            value=report_format,
        )

    try:
        max_workers = int(engine.get("max_workers", 1))
    except (TypeError, ValueError):
        raise ConfigurationError(
            "engine.max_workers must be an integer",
            field="engine.max_workers",
            value=engine.get("max_workers"),
        ) from None

    output = report.get("output")
    return CheckConfig(
        source=_parse_source(data.get("source") or {}, config_dir),
        as_of=_read_date(data.get("as_of"), "as_of"),
        settings=_parse_checks(data.get("checks") or {}),
        max_workers=max_workers,
        report_format=report_format,
        report_output=_resolve_path(str(output), config_dir) if output else None,
    )


def load_config(path: Union[str, Path]) -> CheckConfig:
    """Load a check configuration from a YAML file.

    Raises:
        ConfigurationError: missing file, bad YAML or invalid values
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}", field="config")

    try:
        with config_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    logger.debug("Loaded config from %s", config_path)
    return parse_config(data, config_path.resolve().parent)


def load_snapshot(
    config: CheckConfig,
    tables: Sequence[str],
    *,
    schema: Optional[str] = None,
) -> TableSnapshot:
    """Materialize the configured source into a snapshot.

    Args:
        config: Parsed configuration
        tables: Tables to read
        schema: Overrides ``source.schema`` (e.g. ``silver``)
    """
    source = config.source
    schema = schema or source.schema

    if source.type == "csv":
        directory = Path(source.path or ".")
        if schema and (directory / schema).is_dir():
            directory = directory / schema
        return TableSnapshot.from_csv_dir(directory, tables=list(tables))

    con = get_connection(source.connection_name, source.type, source.options)
    return TableSnapshot.from_backend(con, list(tables), schema=schema)
