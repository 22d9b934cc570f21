"""Pytest configuration and fixtures."""

from __future__ import annotations

import copy
import logging
from datetime import date
from typing import Any, Callable, Dict, List

import pandas as pd
import pytest

from dwh_quality.lib.connections import close_all_connections
from dwh_quality.lib.models import RuleContext
from dwh_quality.lib.snapshot import TableSnapshot

AS_OF = date(2025, 1, 15)

# One clean row set per source table; every default rule passes on it.
CLEAN_TABLES: Dict[str, List[Dict[str, Any]]] = {
    "crm_cust_info": [
        {
            "cst_id": 11000,
            "cst_key": "AW00011000",
            "cst_firstname": "Jon",
            "cst_lastname": "Yang",
            "cst_marital_status": "M",
            "cst_gndr": "M",
            "cst_create_date": "2025-01-01",
        },
        {
            "cst_id": 11001,
            "cst_key": "AW00011001",
            "cst_firstname": "Eugene",
            "cst_lastname": "Huang",
            "cst_marital_status": "S",
            "cst_gndr": "M",
            "cst_create_date": "2025-01-02",
        },
    ],
    "crm_prd_info": [
        {
            "prd_id": 210,
            "prd_key": "CO-RF-FR-R92B-58",
            "prd_nm": "HL Road Frame - Black- 58",
            "prd_cost": 100,
            "prd_line": "R",
            "prd_start_dt": "2003-07-01",
            "prd_end_dt": None,
        },
        {
            "prd_id": 212,
            "prd_key": "AC-HE-HL-U509-R",
            "prd_nm": "Sport-100 Helmet- Red",
            "prd_cost": 12,
            "prd_line": "S",
            "prd_start_dt": "2011-07-01",
            "prd_end_dt": "2012-06-30",
        },
        {
            "prd_id": 213,
            "prd_key": "AC-HE-HL-U509-R",
            "prd_nm": "Sport-100 Helmet- Red",
            "prd_cost": 14,
            "prd_line": "S",
            "prd_start_dt": "2012-07-01",
            "prd_end_dt": None,
        },
    ],
    "crm_sales_details": [
        {
            "sls_ord_num": "SO43697",
            "sls_prd_key": "BK-R93R-62",
            "sls_cust_id": 21768,
            "sls_order_dt": 20101229,
            "sls_ship_dt": 20110105,
            "sls_due_dt": 20110110,
            "sls_sales": 3578,
            "sls_quantity": 1,
            "sls_price": 3578,
        },
        {
            "sls_ord_num": "SO43698",
            "sls_prd_key": "BK-M82S-44",
            "sls_cust_id": 28389,
            "sls_order_dt": 20101229,
            "sls_ship_dt": 20110105,
            "sls_due_dt": 20110110,
            "sls_sales": 3400,
            "sls_quantity": 2,
            "sls_price": 1700,
        },
    ],
    "erp_cust_az12": [
        {"cid": "NASAW00011000", "bdate": "1971-10-06", "gen": "Male"},
        {"cid": "NASAW00011001", "bdate": "1976-05-10", "gen": "Male"},
    ],
    "erp_loc_a101": [
        {"cid": "AW-00011000", "cntry": "Australia"},
        {"cid": "AW-00011001", "cntry": "United States"},
    ],
    "erp_px_cat_g1v2": [
        {"id": "AC_BR", "cat": "Accessories", "subcat": "Bike Racks", "maintenance": "Yes"},
        {"id": "BI_RB", "cat": "Bikes", "subcat": "Road Bikes", "maintenance": "Yes"},
    ],
}


@pytest.fixture
def as_of() -> date:
    return AS_OF


@pytest.fixture
def context() -> RuleContext:
    return RuleContext(as_of=AS_OF)


@pytest.fixture
def clean_tables() -> Dict[str, List[Dict[str, Any]]]:
    """Deep copy of the clean row sets, safe to mutate per test."""
    return copy.deepcopy(CLEAN_TABLES)


@pytest.fixture
def make_snapshot(clean_tables) -> Callable[..., TableSnapshot]:
    """Build a snapshot from the clean tables with per-table overrides.

    Pass ``table=[rows]`` to replace a table, ``table=None`` to drop it.
    """

    def factory(**overrides: Any) -> TableSnapshot:
        tables = dict(clean_tables)
        for name, rows in overrides.items():
            if rows is None:
                tables.pop(name, None)
            else:
                tables[name] = rows
        return TableSnapshot.from_records(tables)

    return factory


@pytest.fixture
def clean_snapshot(make_snapshot) -> TableSnapshot:
    return make_snapshot()


@pytest.fixture
def csv_export_dir(tmp_path, clean_tables):
    """Clean tables written as ``<table>.csv`` files."""
    directory = tmp_path / "bronze"
    directory.mkdir()
    for name, rows in clean_tables.items():
        pd.DataFrame(rows).to_csv(directory / f"{name}.csv", index=False)
    return directory


@pytest.fixture(autouse=True)
def clean_connections():
    """Ensure connection registry is clean before and after each test."""
    close_all_connections()
    yield
    close_all_connections()


@pytest.fixture
def restore_root_logger():
    """Drop handlers added by setup_logging and restore the root level."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        if handler not in handlers:
            handler.close()
            root.removeHandler(handler)
    root.setLevel(level)
