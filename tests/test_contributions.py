from datetime import date
from decimal import Decimal

import pytest

from models.rates import IncomeTaxRules, SplitRate, TaxBracket
from processors import contributions
from processors.errors import InvalidEarningsError
from conftest import flat_table

ANNUALIZED_RULES = IncomeTaxRules(
    brackets=(
        TaxBracket(60000000, Decimal('0.05')),
        TaxBracket(250000000, Decimal('0.15')),
        TaxBracket(500000000, Decimal('0.25')),
        TaxBracket(5000000000, Decimal('0.30')),
        TaxBracket(None, Decimal('0.35')),
    ),
    periods_per_year=12,
    non_taxable_allowances={"TK/0": 54000000, "K/3": 72000000},
)


def test_two_bracket_income_tax():
    table = flat_table()
    tax = contributions.income_tax(10000000, table)
    # 5,000,000 x 5% + 5,000,000 x 15%
    assert tax.employee_share == 1000000
    assert tax.employer_share == 0


def test_bracket_bound_is_inclusive():
    table = flat_table()
    assert contributions.income_tax(5000000, table).employee_share == 250000
    assert contributions.income_tax(5000001, table).employee_share == 250000


def test_health_insurance_clamped_to_cap():
    table = flat_table()
    share = contributions.health_insurance(15000000, table)
    assert share.employee_share == 120000
    assert share.employer_share == 480000


@pytest.mark.parametrize("program", [contributions.health_insurance, contributions.pension])
def test_cap_enforcement(program):
    table = flat_table()
    cap = {contributions.health_insurance: 12000000, contributions.pension: 10042300}[program]
    assert program(cap * 10, table) == program(cap, table)
    assert program(cap // 2, table) != program(cap, table)


def test_salary_floor_raises_small_positive_base():
    table = flat_table(health_insurance=SplitRate(Decimal('0.01'), Decimal('0.04'),
                                                  salary_cap=12000000, salary_floor=5000000))
    assert contributions.health_insurance(1000000, table).employee_share == 50000
    assert contributions.health_insurance(0, table).employee_share == 0


def test_income_tax_is_monotonic(configured_registry):
    table = configured_registry.lookup(date(2025, 1, 1))
    previous = -1
    for gross in range(0, 600000001, 7500000):
        share = contributions.income_tax(gross, table, "K/1").employee_share
        assert share >= previous
        previous = share


def test_annualized_income_tax_with_allowance():
    table = flat_table(income_tax=ANNUALIZED_RULES)
    # (10,000,000 x 12 - 54,000,000) = 66,000,000 annual taxable
    # 60,000,000 x 5% + 6,000,000 x 15% = 3,900,000 a year, 325,000 a month
    assert contributions.income_tax(10000000, table, "TK/0").employee_share == 325000
    # Below the allowance nothing is withheld
    assert contributions.income_tax(4000000, table, "K/3").employee_share == 0
    assert contributions.income_tax_rate(10000000, table, "TK/0") is None


@pytest.mark.parametrize("gross, status, rate, tax", [
    (10000000, "TK/0", Decimal('0.02'), 200000),
    (18250000, "K/1", Decimal('0.07'), 1277500),
    (8000000, "K/3", Decimal('0.01'), 80000),
    (4000000, "TK/0", Decimal('0'), 0),
])
def test_effective_rate_withholding(configured_registry, gross, status, rate, tax):
    table = configured_registry.lookup(date(2025, 3, 1))
    assert contributions.income_tax_rate(gross, table, status) == rate
    assert contributions.income_tax(gross, table, status).employee_share == tax


def test_effective_rate_bound_is_inclusive(configured_registry):
    table = configured_registry.lookup(date(2024, 3, 1))
    assert contributions.income_tax_rate(5400000, table, "TK/0") == Decimal('0')
    assert contributions.income_tax_rate(5400001, table, "TK/0") == Decimal('0.0025')
    assert contributions.income_tax(5400001, table, "TK/0").employee_share == 13500


def test_effective_rate_without_category_rejected(configured_registry):
    table = configured_registry.lookup(date(2025, 3, 1))
    with pytest.raises(InvalidEarningsError):
        contributions.income_tax(10000000, table, "K/I/0")


def test_default_tax_status_is_used(configured_registry):
    table = configured_registry.lookup(date(2025, 3, 1))
    assert contributions.income_tax(10000000, table) == contributions.income_tax(10000000, table, "TK/0")


def test_unknown_tax_status_rejected(configured_registry):
    table = configured_registry.lookup(date(2025, 3, 1))
    with pytest.raises(InvalidEarningsError):
        contributions.income_tax(10000000, table, "X/9")


def test_employer_only_programs():
    table = flat_table()
    injury = contributions.work_injury(10000000, table)
    death = contributions.death_benefit(10000000, table)
    assert injury.employee_share == 0 and injury.employer_share == 24000
    assert death.employee_share == 0 and death.employer_share == 30000


@pytest.mark.parametrize("risk_class, share", [
    (None, 24000),
    ("I", 24000),
    ("II", 54000),
    ("III", 89000),
    ("IV", 127000),
    ("V", 174000),
])
def test_work_injury_by_risk_class(configured_registry, risk_class, share):
    table = configured_registry.lookup(date(2025, 3, 1))
    assert contributions.work_injury(10000000, table, risk_class).employer_share == share


def test_unknown_risk_class_rejected():
    with pytest.raises(InvalidEarningsError):
        contributions.work_injury(10000000, flat_table(), "VI")


def test_old_age_savings_is_uncapped():
    table = flat_table()
    share = contributions.old_age_savings(50000000, table)
    assert share.employee_share == 1000000
    assert share.employer_share == 1850000


def test_rounding_is_half_up():
    table = flat_table()
    # 0.24% of 1,875 = 4.5
    assert contributions.work_injury(1875, table).employer_share == 5
    assert contributions.round_half_up(Decimal('2.5')) == 3
    assert contributions.round_half_up(Decimal('2.49')) == 2


@pytest.mark.parametrize("bad", [-1, None, "1000", float('nan'), float('inf'), Decimal('10.5'), True])
def test_invalid_amounts(bad):
    with pytest.raises(InvalidEarningsError):
        contributions.require_amount(bad)


def test_integral_decimal_and_float_accepted():
    assert contributions.require_amount(Decimal('1000')) == 1000
    assert contributions.require_amount(2500.0) == 2500


def test_progressive_tax_on_zero():
    rules = IncomeTaxRules(brackets=(TaxBracket(100, Decimal('0.1')), TaxBracket(None, Decimal('0.2'))))
    assert contributions.progressive_tax(0, rules) == 0


def test_withholding_tax_with_and_without_tax_id():
    table = flat_table()
    assert contributions.withholding_tax(25000000, 'technical_service', table) == 500000
    assert contributions.withholding_tax(4000000, 'rental', table, has_tax_id=False) == 160000
    assert contributions.withholding_tax(60000000, 'foreign_payee', table) == 12000000


def test_withholding_tax_unknown_income_type():
    with pytest.raises(InvalidEarningsError):
        contributions.withholding_tax(1000, 'lottery', flat_table())
