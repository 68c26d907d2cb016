"""Contribution calculators, one pure function per statutory program.

Each maps a taxable base (minor currency units) and a RateTable to a
Contribution of employee and employer shares. Shares are rounded half-up to
the minor unit. Nothing here reads clocks, storage or globals.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from models.payroll import Contribution
from models.rates import EFFECTIVE_RATE, IncomeTaxRules, RateTable, SplitRate
from .errors import InvalidEarningsError


def require_amount(value: Any, name: str = "amount") -> int:
    """Return value if it is a non-negative integral amount, else raise"""
    if value is None:
        raise InvalidEarningsError(f"{name} is missing")
    if isinstance(value, bool):
        raise InvalidEarningsError(f"{name} must be a monetary amount, got {value!r}")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, (Decimal, float)):
        dec = Decimal(str(value)) if isinstance(value, float) else value
        if not dec.is_finite() or dec != dec.to_integral_value():
            raise InvalidEarningsError(f"{name} must be a whole number of minor units, got {value!r}")
        amount = int(dec)
    else:
        raise InvalidEarningsError(f"{name} must be a monetary amount, got {type(value).__name__}")
    if amount < 0:
        raise InvalidEarningsError(f"{name} must not be negative, got {amount}")
    return amount


def round_half_up(amount: Decimal) -> int:
    return int(amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def _share(base: int, rate: Decimal) -> int:
    return round_half_up(Decimal(base) * rate)


def _capped_base(base: int, rates: SplitRate) -> int:
    effective = base
    if rates.salary_cap is not None:
        effective = min(effective, rates.salary_cap)
    if rates.salary_floor is not None and effective > 0:
        effective = max(effective, rates.salary_floor)
    return effective


def _split(base: int, rates: SplitRate) -> Contribution:
    return Contribution(
        employee_share=_share(base, rates.employee_rate),
        employer_share=_share(base, rates.employer_rate),
    )


def progressive_tax(taxable: int, rules: IncomeTaxRules) -> Decimal:
    """Marginal-bracket tax, unrounded. Bounds are 'up to and including'."""
    tax = Decimal('0')
    lower = 0
    for bracket in rules.brackets:
        if taxable <= lower:
            break
        top = taxable if bracket.upper_bound is None else min(taxable, bracket.upper_bound)
        tax += Decimal(top - lower) * bracket.rate
        if bracket.upper_bound is None:
            break
        lower = bracket.upper_bound
    return tax


def income_tax_rate(taxable_base: int, table: RateTable, tax_status: Optional[str] = None) -> Optional[Decimal]:
    """Flat rate for the period under effective-rate withholding (TER).

    The tax status picks the category and the period gross picks the row;
    bounds are 'up to and including'. Returns None when the table annualizes.
    """
    rules = table.income_tax
    if rules.withholding_method != EFFECTIVE_RATE:
        return None
    base = require_amount(taxable_base, "taxable income")
    rows = rules.effective_rates_for(tax_status)
    if rows is None:
        raise InvalidEarningsError(
            f"Tax status {tax_status!r} has no effective-rate category in rate table {table.version}")
    return next(row.rate for row in rows if row.upper_bound is None or base <= row.upper_bound)


def income_tax(taxable_base: int, table: RateTable, tax_status: Optional[str] = None) -> Contribution:
    """Employee income-tax withholding for one period (PPh 21).

    Under the annualized method the period amount is annualized by the
    table's periods_per_year, reduced by the non-taxable allowance for
    tax_status, taxed on the brackets and the result divided back to one
    period. Under the effective-rate method the period gross is multiplied by
    the single rate from income_tax_rate().
    """
    base = require_amount(taxable_base, "taxable income")
    rate = income_tax_rate(base, table, tax_status)
    if rate is not None:
        return Contribution(employee_share=_share(base, rate))

    rules = table.income_tax
    allowance = rules.allowance_for(tax_status)
    if allowance is None:
        raise InvalidEarningsError(f"Unknown tax status {tax_status!r} for rate table {table.version}")

    annual_taxable = max(0, base * rules.periods_per_year - allowance)
    annual_tax = progressive_tax(annual_taxable, rules)
    return Contribution(employee_share=round_half_up(annual_tax / rules.periods_per_year))


def health_insurance(taxable_base: int, table: RateTable) -> Contribution:
    base = require_amount(taxable_base, "health insurance base")
    return _split(_capped_base(base, table.health_insurance), table.health_insurance)


def pension(taxable_base: int, table: RateTable) -> Contribution:
    base = require_amount(taxable_base, "pension base")
    return _split(_capped_base(base, table.pension), table.pension)


def old_age_savings(taxable_base: int, table: RateTable) -> Contribution:
    base = require_amount(taxable_base, "old-age savings base")
    return _split(base, table.old_age_savings)


def work_injury(taxable_base: int, table: RateTable, risk_class: Optional[str] = None) -> Contribution:
    # Employer-only program, rated by the workplace risk class
    base = require_amount(taxable_base, "work injury base")
    rate = table.work_injury_rate_for(risk_class)
    if rate is None:
        raise InvalidEarningsError(f"Unknown work injury risk class {risk_class!r} for rate table {table.version}")
    return Contribution(employer_share=_share(base, rate))


def death_benefit(taxable_base: int, table: RateTable) -> Contribution:
    # Employer-only program
    base = require_amount(taxable_base, "death benefit base")
    return Contribution(employer_share=_share(base, table.death_benefit_rate))


def withholding_tax(gross_amount: int, income_type: str, table: RateTable, has_tax_id: bool = True) -> int:
    """Tax withheld from a non-employment payment (PPh 23 / PPh 26)"""
    amount = require_amount(gross_amount, "payment amount")
    entry = table.withholding_rates.get(income_type)
    if entry is None:
        raise InvalidEarningsError(f"No withholding rate for income type {income_type!r} in {table.version}")
    rate = entry.rate
    if not has_tax_id:
        rate = rate * (Decimal('1') + table.missing_tax_id_surcharge)
    return _share(amount, rate)
