"""Column contracts for the source tables.

Uses Pandera to check that a snapshot's tables carry the documented
columns before a run. Contracts do not constrain dtypes or nullability;
catching bad values is what the rules are for.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping

import pandas as pd
import pandera as pa
from pandera import Column, DataFrameSchema

logger = logging.getLogger(__name__)

__all__ = ["TABLE_COLUMNS", "check_contracts", "contract_for"]

TABLE_COLUMNS: Dict[str, List[str]] = {
    "crm_cust_info": [
        "cst_id",
        "cst_key",
        "cst_firstname",
        "cst_lastname",
        "cst_marital_status",
        "cst_gndr",
        "cst_create_date",
    ],
    "crm_prd_info": [
        "prd_id",
        "prd_key",
        "prd_nm",
        "prd_cost",
        "prd_line",
        "prd_start_dt",
        "prd_end_dt",
    ],
    "crm_sales_details": [
        "sls_ord_num",
        "sls_prd_key",
        "sls_cust_id",
        "sls_order_dt",
        "sls_ship_dt",
        "sls_due_dt",
        "sls_sales",
        "sls_quantity",
        "sls_price",
    ],
    "erp_cust_az12": ["cid", "bdate", "gen"],
    "erp_loc_a101": ["cid", "cntry"],
    "erp_px_cat_g1v2": ["id", "cat", "subcat", "maintenance"],
}


def contract_for(table: str) -> DataFrameSchema:
    """Schema requiring the table's documented columns, any dtype, nulls allowed."""
    return DataFrameSchema(
        {column: Column(nullable=True, required=True) for column in TABLE_COLUMNS[table]},
        name=table,
        strict=False,
    )


def check_contracts(snapshot: Mapping[str, pd.DataFrame]) -> Dict[str, List[str]]:
    """Validate every known table present in the snapshot.

    Returns:
        table -> list of issues; tables without issues are omitted. Known
        tables absent from the snapshot are reported as a single issue.
    """
    issues: Dict[str, List[str]] = {}

    for table in TABLE_COLUMNS:
        if table not in snapshot:
            issues[table] = ["table not present in snapshot"]
            continue
        try:
            contract_for(table).validate(snapshot[table], lazy=True)
        except pa.errors.SchemaErrors as e:
            found = []
            for case in e.failure_cases.to_dict("records"):
                found.append(f"{case.get('check')}: {case.get('failure_case')}")
            issues[table] = found
            logger.warning("Contract check failed for %s: %s", table, "; ".join(found))

    return issues
