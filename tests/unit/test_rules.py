"""Tests for dwh_quality.lib.rules module."""

from datetime import date, timedelta
from decimal import Decimal

import pandas as pd
import pytest

from dwh_quality.lib.models import Finding, RuleLevel
from dwh_quality.lib.rules import (
    RowRule,
    SetRule,
    allowed_values,
    date_range,
    duplicate_key,
    end_before_start,
    inferred_end_date,
    non_negative,
    not_null_key,
    order_date_format,
    sales_consistency,
    whitespace,
)

SALES_KEYS = ["sls_ord_num", "sls_prd_key"]


def _sales_line(quantity, price, sales):
    return {
        "sls_ord_num": "SO1",
        "sls_prd_key": "BK-1",
        "sls_sales": sales,
        "sls_quantity": quantity,
        "sls_price": price,
    }


# ============================================
# Rule base behaviour
# ============================================


class TestRuleBase:
    """Tests for Rule/RowRule/SetRule plumbing."""

    def test_key_is_name_and_table(self):
        rule = whitespace("crm_cust_info", "cst_firstname", key_columns=["cst_id"])
        assert rule.key == ("cst_firstname_whitespace", "crm_cust_info")
        assert rule.kind == "row"

    def test_missing_column_raises_key_error(self, context):
        rule = whitespace("crm_cust_info", "cst_firstname", key_columns=["cst_id"])
        df = pd.DataFrame({"cst_id": [1]})

        with pytest.raises(KeyError, match="cst_firstname"):
            rule.evaluate(df, context)

    def test_violation_carries_keys_and_row(self, context):
        rule = RowRule(
            "always",
            "t",
            lambda record, ctx: Finding("bad", expected=1, actual=record["v"]),
            key_columns=["id"],
            columns=["v"],
            level=RuleLevel.WARN,
        )
        df = pd.DataFrame({"id": ["a", "b"], "v": [5, 6]})

        violations = rule.evaluate(df, context)

        assert [v.row for v in violations] == [0, 1]
        assert violations[1].keys == {"id": "b"}
        assert violations[1].actual == 6
        assert violations[1].level == RuleLevel.WARN
        assert violations[1].rule == "always"
        assert violations[1].table == "t"

    def test_row_numbers_ignore_source_index(self, context):
        rule = RowRule("always", "t", lambda record, ctx: Finding("bad"), key_columns=["id"])
        df = pd.DataFrame({"id": ["a", "b"]}, index=[40, 7])

        assert [v.row for v in rule.evaluate(df, context)] == [0, 1]

    def test_set_rule_results_sorted_by_row(self, context):
        def check(df, ctx):
            yield 2, Finding("third")
            yield 0, Finding("first")

        rule = SetRule("set", "t", check)
        df = pd.DataFrame({"id": [1, 2, 3]})

        assert [v.description for v in rule.evaluate(df, context)] == ["first", "third"]

    def test_description_defaults_to_name(self):
        rule = SetRule("custom", "t", lambda df, ctx: [])
        assert rule.description == "custom"
        assert rule.kind == "set"


# ============================================
# Whitespace
# ============================================


class TestWhitespace:
    """Tests for the whitespace rule."""

    @pytest.fixture
    def rule(self):
        return whitespace("crm_cust_info", "cst_firstname", key_columns=["cst_id"])

    def test_trimmed_values_pass(self, rule, context):
        df = pd.DataFrame({"cst_id": [1, 2], "cst_firstname": ["Jon", "Mary Ann"]})
        assert rule.evaluate(df, context) == []

    @pytest.mark.parametrize("value", [" Jon", "Jon ", "\tJon", "Jon\n", "  Jon  "])
    def test_leading_or_trailing_whitespace_violates(self, rule, context, value):
        df = pd.DataFrame({"cst_id": [1], "cst_firstname": [value]})

        violations = rule.evaluate(df, context)

        assert len(violations) == 1
        assert violations[0].expected == "Jon"
        assert violations[0].actual == value

    def test_null_never_violates(self, rule, context):
        df = pd.DataFrame({"cst_id": [1, 2], "cst_firstname": [None, float("nan")]})
        assert rule.evaluate(df, context) == []

    def test_empty_string_passes(self, rule, context):
        df = pd.DataFrame({"cst_id": [1], "cst_firstname": [""]})
        assert rule.evaluate(df, context) == []


# ============================================
# Not-null keys
# ============================================


class TestNotNullKey:
    """Tests for the not_null_key rule."""

    def test_reports_null_key(self, context):
        rule = not_null_key("crm_cust_info", ["cst_id"])
        df = pd.DataFrame({"cst_id": [1, None, 3]}, dtype=object)

        violations = rule.evaluate(df, context)

        assert rule.name == "cst_id_not_null"
        assert [v.row for v in violations] == [1]

    def test_composite_key_names_null_columns(self, context):
        rule = not_null_key("crm_sales_details", SALES_KEYS)
        df = pd.DataFrame({"sls_ord_num": ["SO1", "SO2"], "sls_prd_key": ["BK-1", None]})

        violations = rule.evaluate(df, context)

        assert len(violations) == 1
        assert "sls_prd_key" in violations[0].description
        assert "sls_ord_num" not in violations[0].description


# ============================================
# Date bounds
# ============================================


class TestBirthdateRange:
    """Tests for date_range as used on erp_cust_az12.bdate."""

    @pytest.fixture
    def rule(self):
        return date_range("erp_cust_az12", "bdate", key_columns=["cid"], min_date=date(1924, 1, 1))

    def _evaluate(self, rule, context, value):
        df = pd.DataFrame({"cid": ["NAS1"], "bdate": [value]})
        return rule.evaluate(df, context)

    def test_below_floor_violates(self, rule, context):
        violations = self._evaluate(rule, context, date(1900, 1, 1))
        assert len(violations) == 1
        assert "before 1924-01-01" in violations[0].description

    def test_future_violates(self, rule, context):
        violations = self._evaluate(rule, context, context.as_of + timedelta(days=1))
        assert len(violations) == 1
        assert "after as-of date" in violations[0].description

    def test_within_bounds_passes(self, rule, context):
        assert self._evaluate(rule, context, date(1950, 1, 1)) == []

    def test_bounds_are_inclusive(self, rule, context):
        assert self._evaluate(rule, context, date(1924, 1, 1)) == []
        assert self._evaluate(rule, context, context.as_of) == []

    def test_string_dates_are_read(self, rule, context):
        assert len(self._evaluate(rule, context, "1900-01-01")) == 1

    def test_null_passes(self, rule, context):
        assert self._evaluate(rule, context, None) == []

    def test_unparseable_raises(self, rule, context):
        with pytest.raises(ValueError):
            self._evaluate(rule, context, "not a date")

    def test_skip_unparseable(self, context):
        rule = date_range(
            "crm_sales_details",
            "sls_order_dt",
            key_columns=SALES_KEYS,
            min_date=date(1900, 1, 1),
            skip_unparseable=True,
        )
        df = pd.DataFrame(
            {"sls_ord_num": ["SO1", "SO2"], "sls_prd_key": ["A", "B"], "sls_order_dt": [0, 20300101]}
        )

        violations = rule.evaluate(df, context)

        assert [v.row for v in violations] == [1]


class TestOrderDateFormat:
    """Tests for the yyyymmdd order date rule."""

    @pytest.fixture
    def rule(self):
        return order_date_format("crm_sales_details", "sls_order_dt", key_columns=SALES_KEYS)

    def _evaluate(self, rule, context, values):
        df = pd.DataFrame(
            {
                "sls_ord_num": [f"SO{i}" for i in range(len(values))],
                "sls_prd_key": ["BK-1"] * len(values),
                "sls_order_dt": values,
            },
            dtype=object,
        )
        return rule.evaluate(df, context)

    def test_valid_dates_pass(self, rule, context):
        assert self._evaluate(rule, context, [20101229, "20110101", 20500101]) == []

    @pytest.mark.parametrize(
        "value, problem",
        [
            (0, "zero or negative"),
            (-20101229, "zero or negative"),
            (5489, "has 4 digits"),
            (32154, "has 5 digits"),
            (20500102, "after 20500101"),
            (20101332, "not a calendar date"),
        ],
    )
    def test_bad_values_violate(self, rule, context, value, problem):
        violations = self._evaluate(rule, context, [value])

        assert len(violations) == 1
        assert problem in violations[0].description

    def test_non_numeric_violates(self, rule, context):
        violations = self._evaluate(rule, context, ["2010-12-29x"])
        assert len(violations) == 1
        assert "not a yyyymmdd integer" in violations[0].description

    def test_date_objects_and_nulls_pass(self, rule, context):
        assert self._evaluate(rule, context, [date(2010, 12, 29), None]) == []

    def test_configurable_maximum(self, context):
        rule = order_date_format(
            "crm_sales_details", "sls_order_dt", key_columns=SALES_KEYS, max_value=20251231
        )
        df = pd.DataFrame(
            {"sls_ord_num": ["SO1"], "sls_prd_key": ["BK-1"], "sls_order_dt": [20260101]}
        )
        assert len(rule.evaluate(df, context)) == 1


# ============================================
# Numeric and date-pair rules
# ============================================


class TestNonNegative:
    """Tests for the non_negative rule."""

    def _df(self, costs):
        return pd.DataFrame({"prd_id": list(range(len(costs))), "prd_cost": costs}, dtype=object)

    def test_null_and_negative_violate(self, context):
        rule = non_negative("crm_prd_info", "prd_cost", key_columns=["prd_id"])

        violations = rule.evaluate(self._df([0, None, -5, "12.5"]), context)

        assert [v.row for v in violations] == [1, 2]
        assert violations[1].actual == Decimal(-5)

    def test_allow_null(self, context):
        rule = non_negative("crm_prd_info", "prd_cost", key_columns=["prd_id"], allow_null=True)
        assert rule.evaluate(self._df([None, 3]), context) == []


class TestEndBeforeStart:
    """Tests for the end_before_start rule."""

    def test_end_before_start_violates(self, context):
        rule = end_before_start("crm_prd_info", "prd_start_dt", "prd_end_dt", key_columns=["prd_id"])
        df = pd.DataFrame(
            {
                "prd_id": [1, 2, 3, 4],
                "prd_start_dt": ["2012-07-01", "2012-07-01", "2012-07-01", None],
                "prd_end_dt": ["2007-12-28", "2012-07-01", None, "2000-01-01"],
            }
        )

        violations = rule.evaluate(df, context)

        assert rule.name == "prd_end_dt_before_start"
        assert [v.row for v in violations] == [0]
        assert violations[0].actual == date(2007, 12, 28)


# ============================================
# Sales consistency
# ============================================


class TestSalesConsistency:
    """Tests for the sales consistency rule."""

    @pytest.fixture
    def rule(self):
        return sales_consistency("crm_sales_details", key_columns=SALES_KEYS)

    def _evaluate(self, rule, context, quantity, price, sales):
        df = pd.DataFrame([_sales_line(quantity, price, sales)], dtype=object)
        return rule.evaluate(df, context)

    def test_consistent_line_passes(self, rule, context):
        assert self._evaluate(rule, context, 2, 10, 20) == []

    def test_mismatch_violates(self, rule, context):
        violations = self._evaluate(rule, context, 2, 10, 15)

        assert len(violations) == 1
        assert violations[0].details["calc_sales"] == Decimal(20)
        assert violations[0].details["calc_price"] == Decimal(10)
        assert violations[0].expected == Decimal(20)
        assert violations[0].actual == Decimal(15)

    def test_negative_price_uses_absolute_value(self, rule, context):
        assert self._evaluate(rule, context, 2, -10, 20) == []

    def test_zero_price_is_repaired(self, rule, context):
        violations = self._evaluate(rule, context, 2, 0, 20)

        assert len(violations) == 1
        assert violations[0].details["calc_price"] == Decimal(10)

    def test_null_price_is_repaired(self, rule, context):
        violations = self._evaluate(rule, context, 2, None, 20)

        assert len(violations) == 1
        assert violations[0].details["calc_sales"] is None
        assert violations[0].details["calc_price"] == Decimal(10)

    @pytest.mark.parametrize("sales", [0, -20])
    def test_non_positive_sales_always_violates(self, rule, context, sales):
        violations = self._evaluate(rule, context, 2, 10, sales)
        assert len(violations) == 1
        assert "not positive" in violations[0].description

    def test_null_sales_violates(self, rule, context):
        violations = self._evaluate(rule, context, 2, 10, None)
        assert len(violations) == 1
        assert violations[0].details["calc_sales"] == Decimal(20)

    def test_zero_quantity_cannot_repair_price(self, rule, context):
        violations = self._evaluate(rule, context, 0, 0, 20)

        assert len(violations) == 1
        assert violations[0].details["calc_price"] is None

    def test_null_quantity_violates(self, rule, context):
        violations = self._evaluate(rule, context, None, 10, 20)

        assert len(violations) == 1
        assert "sls_quantity is null" in violations[0].description
        assert violations[0].details["calc_sales"] is None

    def test_string_amounts(self, rule, context):
        assert self._evaluate(rule, context, "2", "10.50", "21.00") == []

    def test_non_numeric_raises(self, rule, context):
        with pytest.raises(ValueError):
            self._evaluate(rule, context, "two", 10, 20)


class TestAllowedValues:
    """Tests for the allowed_values rule."""

    def test_values_outside_set_violate(self, context):
        rule = allowed_values(
            "crm_cust_info", "cst_gndr", ["Female", "Male", "n/a"], key_columns=["cst_id"]
        )
        df = pd.DataFrame({"cst_id": [1, 2, 3, 4], "cst_gndr": ["Male", "F", None, "n/a"]})

        violations = rule.evaluate(df, context)

        assert rule.name == "cst_gndr_allowed_values"
        assert [v.row for v in violations] == [1]
        assert violations[0].actual == "F"


# ============================================
# Duplicate keys
# ============================================


class TestDuplicateKey:
    """Tests for the keep-latest duplicate rule."""

    @pytest.fixture
    def rule(self):
        return duplicate_key("crm_cust_info", ["cst_id"], "cst_create_date")

    def test_n_minus_one_violations(self, rule, context):
        df = pd.DataFrame(
            {
                "cst_id": [29466, 29466, 29466, 11000],
                "cst_create_date": ["2026-01-25", "2026-01-27", "2026-01-26", "2025-10-06"],
            }
        )

        violations = rule.evaluate(df, context)

        assert rule.name == "cst_id_duplicate"
        assert [v.row for v in violations] == [0, 2]
        assert all(v.details["survivor_row"] == 1 for v in violations)
        assert violations[0].details["rank"] == 3
        assert violations[1].details["rank"] == 2
        assert violations[0].details["survivor_cst_create_date"] == "2026-01-27"

    def test_tie_keeps_first_inserted(self, rule, context):
        df = pd.DataFrame(
            {"cst_id": [5, 5, 5], "cst_create_date": ["2025-01-01", "2025-01-01", "2025-01-01"]}
        )

        violations = rule.evaluate(df, context)

        assert [v.row for v in violations] == [1, 2]
        assert violations[0].details["survivor_row"] == 0

    def test_null_order_value_never_survives(self, rule, context):
        df = pd.DataFrame({"cst_id": [5, 5], "cst_create_date": [None, "2020-01-01"]})

        violations = rule.evaluate(df, context)

        assert [v.row for v in violations] == [0]
        assert violations[0].details["survivor_row"] == 1

    def test_unique_keys_pass(self, rule, context):
        df = pd.DataFrame({"cst_id": [1, 2, 3], "cst_create_date": ["2025-01-01"] * 3})
        assert rule.evaluate(df, context) == []

    def test_null_keys_ignored(self, rule, context):
        df = pd.DataFrame(
            {"cst_id": [None, None], "cst_create_date": ["2025-01-01", "2025-01-02"]},
            dtype=object,
        )
        assert rule.evaluate(df, context) == []

    def test_composite_key(self, context):
        rule = duplicate_key("crm_sales_details", SALES_KEYS, "sls_order_dt")
        df = pd.DataFrame(
            {
                "sls_ord_num": ["SO1", "SO1", "SO1"],
                "sls_prd_key": ["A", "B", "A"],
                "sls_order_dt": [20250101, 20250101, 20250102],
            }
        )

        violations = rule.evaluate(df, context)

        assert [v.row for v in violations] == [0]
        assert violations[0].keys == {"sls_ord_num": "SO1", "sls_prd_key": "A"}

    def test_unparseable_order_value_raises(self, rule, context):
        df = pd.DataFrame({"cst_id": [1, 1], "cst_create_date": ["garbage", "2025-01-01"]})
        with pytest.raises(ValueError):
            rule.evaluate(df, context)

    def test_empty_table(self, rule, context):
        df = pd.DataFrame({"cst_id": [], "cst_create_date": []}, dtype=object)
        assert rule.evaluate(df, context) == []


# ============================================
# End-date inference
# ============================================


class TestInferredEndDate:
    """Tests for the LEAD - 1 day end-date rule."""

    @pytest.fixture
    def rule(self):
        return inferred_end_date(
            "crm_prd_info", "prd_key", "prd_start_dt", "prd_end_dt", key_columns=["prd_id"]
        )

    def _df(self, rows):
        return pd.DataFrame(rows, columns=["prd_id", "prd_key", "prd_start_dt", "prd_end_dt"])

    def test_consistent_history_passes(self, rule, context):
        df = self._df(
            [
                (1, "AC-HE", "2021-01-01", "2021-05-31"),
                (2, "AC-HE", "2021-06-01", None),
            ]
        )
        assert rule.evaluate(df, context) == []

    def test_reports_stored_end_that_differs(self, rule, context):
        # Source data often stores the next start as the end date
        df = self._df(
            [
                (1, "AC-HE", "2021-01-01", "2021-06-01"),
                (2, "AC-HE", "2021-06-01", None),
            ]
        )

        violations = rule.evaluate(df, context)

        assert rule.name == "prd_end_dt_inferred"
        assert len(violations) == 1
        assert violations[0].row == 0
        assert violations[0].expected == date(2021, 5, 31)
        assert violations[0].actual == date(2021, 6, 1)
        assert violations[0].details["next_start"] == "2021-06-01"

    def test_last_version_must_be_open(self, rule, context):
        df = self._df(
            [
                (1, "AC-HE", "2021-01-01", "2021-05-31"),
                (2, "AC-HE", "2021-06-01", "2021-12-31"),
            ]
        )

        violations = rule.evaluate(df, context)

        assert [v.row for v in violations] == [1]
        assert violations[0].expected is None

    def test_groups_are_independent_and_unordered(self, rule, context):
        df = self._df(
            [
                (3, "B", "2022-01-01", None),
                (2, "A", "2021-06-01", None),
                (1, "A", "2021-01-01", "2021-05-31"),
            ]
        )
        assert rule.evaluate(df, context) == []

    def test_empty_table(self, rule, context):
        assert rule.evaluate(self._df([]), context) == []
