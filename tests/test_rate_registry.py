from datetime import date
from decimal import Decimal

import pytest

from models.rates import IncomeTaxRules, RateTable, SplitRate, TaxBracket
from processors import RateTableRegistry
from processors.errors import OverlappingPeriodError, RateNotFoundError
from conftest import flat_table


def test_lookup_by_effective_date():
    old = flat_table("A", date(2024, 1, 1), date(2024, 12, 31))
    new = flat_table("B", date(2025, 1, 1))
    registry = RateTableRegistry([new, old])

    assert registry.lookup(date(2024, 12, 31)).version == "A"
    assert registry.lookup(date(2025, 1, 1)).version == "B"
    assert registry.lookup(date(2031, 6, 1)).version == "B"
    assert [t.version for t in registry.tables()] == ["A", "B"]


def test_lookup_before_history_raises():
    registry = RateTableRegistry([flat_table("A", date(2024, 1, 1))])
    with pytest.raises(RateNotFoundError):
        registry.lookup(date(2023, 12, 31))


def test_gap_between_tables_raises():
    registry = RateTableRegistry([
        flat_table("A", date(2024, 1, 1), date(2024, 6, 30)),
        flat_table("B", date(2024, 8, 1)),
    ])
    with pytest.raises(RateNotFoundError):
        registry.lookup(date(2024, 7, 15))


def test_overlapping_registration_rejected():
    registry = RateTableRegistry([flat_table("A", date(2024, 1, 1), date(2024, 12, 31))])
    with pytest.raises(OverlappingPeriodError):
        registry.register(flat_table("B", date(2024, 12, 31)))
    # Registry is unchanged after the rejection
    assert [t.version for t in registry.tables()] == ["A"]


def test_open_ended_table_blocks_later_registration():
    registry = RateTableRegistry([flat_table("A", date(2024, 1, 1))])
    with pytest.raises(OverlappingPeriodError):
        registry.register(flat_table("B", date(2026, 1, 1)))


def test_duplicate_version_rejected():
    registry = RateTableRegistry([flat_table("A", date(2024, 1, 1), date(2024, 12, 31))])
    with pytest.raises(OverlappingPeriodError):
        registry.register(flat_table("A", date(2025, 1, 1)))


def test_get_by_version():
    registry = RateTableRegistry([flat_table("A", date(2024, 1, 1))])
    assert registry.get("A").version == "A"
    with pytest.raises(RateNotFoundError):
        registry.get("Z")


def test_brackets_must_increase():
    with pytest.raises(ValueError):
        IncomeTaxRules(brackets=(TaxBracket(100, Decimal('0.1')), TaxBracket(50, Decimal('0.2')),
                                 TaxBracket(None, Decimal('0.3'))))
    with pytest.raises(ValueError):
        IncomeTaxRules(brackets=(TaxBracket(100, Decimal('0.1')),))


def test_table_must_not_end_before_it_starts():
    with pytest.raises(ValueError):
        flat_table("A", date(2025, 1, 1), date(2024, 1, 1))


def test_configured_history(configured_registry):
    versions = [t.version for t in configured_registry.tables()]
    assert versions == ["ID-2024.1", "ID-2025.1"]

    table_2024 = configured_registry.lookup(date(2024, 7, 1))
    table_2025 = configured_registry.lookup(date(2025, 7, 1))
    assert table_2024.pension.salary_cap == 9559600
    assert table_2025.pension.salary_cap == 10042300
    assert table_2025.health_insurance.salary_cap == 12000000
    assert table_2025.income_tax.allowance_for("TK/0") == 54000000
    assert table_2025.withholding_rates["foreign_payee"].form_code == "26"


def test_from_dict_parses_rates_as_decimal():
    table = RateTable.from_dict({
        "version": "X",
        "effective_from": "2025-01-01",
        "income_tax": {"periods_per_year": 1, "brackets": [{"rate": "0.1"}]},
        "health_insurance": {"employee_rate": "0.01", "employer_rate": "0.04", "salary_cap": 12000000},
        "work_injury_rates": {"I": "0.0024", "II": "0.0054"},
        "death_benefit_rate": "0.003",
        "old_age_savings": {"employee_rate": "0.02", "employer_rate": "0.037"},
        "pension": {"employee_rate": "0.01", "employer_rate": "0.02"},
    })
    assert table.effective_to is None
    assert table.income_tax.brackets[0].upper_bound is None
    assert table.health_insurance.employer_rate == Decimal('0.04')
    assert dict(table.withholding_rates) == {}
    assert table.work_injury_rate_for(None) == Decimal('0.0024')
    assert table.work_injury_rate_for("II") == Decimal('0.0054')
    assert table.income_tax.withholding_method == "annualized"


def test_configured_tables_withhold_by_effective_rate(configured_registry):
    for table in configured_registry.tables():
        rules = table.income_tax
        assert rules.withholding_method == "effective_rate"
        assert sorted(rules.effective_rate_tables) == ["A", "B", "C"]
        assert rules.effective_rate_categories["K/1"] == "B"
        assert table.work_injury_rate_for("V") == Decimal('0.0174')


def _table_dict(**overrides):
    data = {
        "version": "X-2026",
        "effective_from": "2026-01-01",
        "income_tax": {"periods_per_year": 1, "brackets": [{"rate": "0.1"}]},
        "health_insurance": {"employee_rate": "0.01", "employer_rate": "0.04", "salary_cap": 12000000},
        "work_injury_rates": {"I": "0.0024"},
        "death_benefit_rate": "0.003",
        "old_age_savings": {"employee_rate": "0.02", "employer_rate": "0.037"},
        "pension": {"employee_rate": "0.01", "employer_rate": "0.02"},
    }
    data.update(overrides)
    return data


@pytest.mark.parametrize("section", [
    {"employee_rate": "0.01", "employer_rate": "0.04", "salary_cap": "12000000"},
    {"employee_rate": "0.01", "employer_rate": "0.04", "salary_cap": -1},
    {"employee_rate": "0.01", "employer_rate": "0.04", "salary_cap": 12000000.5},
    {"employee_rate": "0.01", "employer_rate": "0.04", "salary_floor": True},
    {"employee_rate": "0.01", "employer_rate": "0.04", "salary_cap": 1000, "salary_floor": 2000},
])
def test_malformed_salary_bounds_rejected(section):
    with pytest.raises(ValueError):
        RateTable.from_dict(_table_dict(health_insurance=section))


@pytest.mark.parametrize("brackets", [
    [{"upper_bound": "60000000", "rate": "0.05"}, {"rate": "0.15"}],
    [{"upper_bound": -5, "rate": "0.05"}, {"rate": "0.15"}],
])
def test_malformed_bracket_bounds_rejected(brackets):
    with pytest.raises(ValueError):
        RateTable.from_dict(_table_dict(income_tax={"periods_per_year": 1, "brackets": brackets}))


def test_rejected_table_never_reaches_the_registry():
    registry = RateTableRegistry([flat_table("A", date(2025, 1, 1), date(2025, 12, 31))])
    with pytest.raises(ValueError):
        registry.register(RateTable.from_dict(_table_dict(
            pension={"employee_rate": "0.01", "employer_rate": "0.02", "salary_cap": "10042300"})))
    assert [t.version for t in registry.tables()] == ["A"]
    # The window stays open for a corrected table
    registry.register(RateTable.from_dict(_table_dict()))
    assert registry.lookup(date(2026, 2, 1)).version == "X-2026"


def test_split_rate_bounds_checked_on_construction():
    with pytest.raises(ValueError):
        SplitRate(Decimal('0.01'), Decimal('0.02'), salary_cap="12000000")
    with pytest.raises(ValueError):
        TaxBracket("5000000", Decimal('0.05'))


def test_default_risk_class_must_have_a_rate():
    with pytest.raises(ValueError):
        RateTable.from_dict(_table_dict(default_risk_class="III"))


def test_effective_rate_method_needs_categories():
    with pytest.raises(ValueError):
        IncomeTaxRules(brackets=(TaxBracket(None, Decimal('0.1')),), withholding_method="effective_rate")
    with pytest.raises(ValueError):
        IncomeTaxRules(brackets=(TaxBracket(None, Decimal('0.1')),), withholding_method="monthly_guess")
    with pytest.raises(ValueError):
        IncomeTaxRules(
            brackets=(TaxBracket(None, Decimal('0.1')),),
            effective_rate_categories={"TK/0": "A"},
            effective_rate_tables={"B": (TaxBracket(None, Decimal('0.05')),)},
        )
