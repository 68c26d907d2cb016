from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

ANNUALIZED = "annualized"
EFFECTIVE_RATE = "effective_rate"
WITHHOLDING_METHODS = (ANNUALIZED, EFFECTIVE_RATE)


def _rate(value: Any) -> Decimal:
    rate = Decimal(str(value))
    if not rate.is_finite() or rate < 0:
        raise ValueError(f"Invalid rate: {value!r}")
    return rate


def _bound(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative whole amount, got {value!r}")
    return value


def _date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _check_brackets(brackets: Tuple['TaxBracket', ...], label: str):
    if not brackets:
        raise ValueError(f"At least one {label} bracket is required")
    previous = 0
    for bracket in brackets[:-1]:
        if bracket.upper_bound is None or bracket.upper_bound <= previous:
            raise ValueError(f"{label.capitalize()} bracket bounds must be strictly increasing")
        previous = bracket.upper_bound
    if brackets[-1].upper_bound is not None:
        raise ValueError(f"The last {label} bracket must be unbounded")


@dataclass(frozen=True)
class TaxBracket:
    """One bracket; upper_bound None means unbounded"""
    upper_bound: Optional[int]
    rate: Decimal

    def __post_init__(self):
        _bound(self.upper_bound, "Bracket upper_bound")


@dataclass(frozen=True)
class IncomeTaxRules:
    """Progressive income-tax brackets plus the withholding convention.

    With the annualized method, periods_per_year tells how bracket bounds
    relate to a pay period: 1 applies the brackets to the period amount
    directly, 12 treats them as annual bounds (period income is annualized,
    taxed, then divided back).

    With the effective_rate method (TER), the tax status picks a category and
    the period gross picks one flat rate from that category's table. The
    progressive brackets still describe the annual computation.
    """
    brackets: Tuple[TaxBracket, ...]
    periods_per_year: int = 12
    non_taxable_allowances: Mapping[str, int] = field(default_factory=dict)
    default_status: str = "TK/0"
    withholding_method: str = ANNUALIZED
    effective_rate_categories: Mapping[str, str] = field(default_factory=dict)
    effective_rate_tables: Mapping[str, Tuple[TaxBracket, ...]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'brackets', tuple(self.brackets))
        object.__setattr__(self, 'non_taxable_allowances',
                           MappingProxyType(dict(self.non_taxable_allowances)))
        object.__setattr__(self, 'effective_rate_categories',
                           MappingProxyType(dict(self.effective_rate_categories)))
        object.__setattr__(self, 'effective_rate_tables', MappingProxyType(
            {category: tuple(rows) for category, rows in self.effective_rate_tables.items()}))
        if self.periods_per_year < 1:
            raise ValueError("periods_per_year must be positive")
        _check_brackets(self.brackets, "income-tax")
        for status, allowance in self.non_taxable_allowances.items():
            _bound(allowance, f"Allowance for {status}")

        if self.withholding_method not in WITHHOLDING_METHODS:
            raise ValueError(f"Unknown withholding method {self.withholding_method!r}")
        for category, rows in self.effective_rate_tables.items():
            _check_brackets(rows, f"effective-rate category {category}")
        for status, category in self.effective_rate_categories.items():
            if category not in self.effective_rate_tables:
                raise ValueError(f"Tax status {status} maps to undefined effective-rate category {category!r}")
        if self.withholding_method == EFFECTIVE_RATE:
            if not self.effective_rate_tables:
                raise ValueError("The effective_rate method needs at least one rate table")
            if self.default_status not in self.effective_rate_categories:
                raise ValueError(f"Default status {self.default_status} has no effective-rate category")

    def allowance_for(self, status: Optional[str]) -> Optional[int]:
        """Annual non-taxable allowance (PTKP) for a status code"""
        code = status or self.default_status
        if not self.non_taxable_allowances:
            return 0
        return self.non_taxable_allowances.get(code)

    def effective_rates_for(self, status: Optional[str]) -> Optional[Tuple[TaxBracket, ...]]:
        category = self.effective_rate_categories.get(status or self.default_status)
        if category is None:
            return None
        return self.effective_rate_tables[category]


@dataclass(frozen=True)
class SplitRate:
    employee_rate: Decimal
    employer_rate: Decimal
    salary_cap: Optional[int] = None
    salary_floor: Optional[int] = None

    def __post_init__(self):
        _bound(self.salary_cap, "salary_cap")
        _bound(self.salary_floor, "salary_floor")
        if (self.salary_cap is not None and self.salary_floor is not None
                and self.salary_floor > self.salary_cap):
            raise ValueError(f"salary_floor {self.salary_floor} exceeds salary_cap {self.salary_cap}")


@dataclass(frozen=True)
class WithholdingRate:
    """Withholding on non-employment income (PPh 23 / PPh 26)"""
    rate: Decimal
    form_code: str


@dataclass(frozen=True)
class RateTable:
    """Effective-dated snapshot of every program's rates, caps and brackets"""
    version: str
    effective_from: date
    effective_to: Optional[date]
    income_tax: IncomeTaxRules
    health_insurance: SplitRate
    work_injury_rates: Mapping[str, Decimal]
    death_benefit_rate: Decimal
    old_age_savings: SplitRate
    pension: SplitRate
    withholding_rates: Mapping[str, WithholdingRate] = field(default_factory=dict)
    missing_tax_id_surcharge: Decimal = Decimal('0')
    default_risk_class: str = "I"

    def __post_init__(self):
        object.__setattr__(self, 'withholding_rates',
                           MappingProxyType(dict(self.withholding_rates)))
        object.__setattr__(self, 'work_injury_rates',
                           MappingProxyType(dict(self.work_injury_rates)))
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError(f"Rate table {self.version} ends before it starts")
        if self.default_risk_class not in self.work_injury_rates:
            raise ValueError(f"Rate table {self.version} has no work injury rate for "
                             f"default risk class {self.default_risk_class!r}")

    def work_injury_rate_for(self, risk_class: Optional[str]) -> Optional[Decimal]:
        """JKK rate of a workplace risk class; None for an unknown class"""
        return self.work_injury_rates.get(risk_class or self.default_risk_class)

    def covers(self, as_of: date) -> bool:
        if as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of <= self.effective_to

    def overlaps(self, other: 'RateTable') -> bool:
        own_end = self.effective_to or date.max
        other_end = other.effective_to or date.max
        return self.effective_from <= other_end and other.effective_from <= own_end

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RateTable':
        def brackets(rows) -> Tuple[TaxBracket, ...]:
            return tuple(TaxBracket(upper_bound=b.get('upper_bound'), rate=_rate(b['rate'])) for b in rows)

        tax = data['income_tax']
        income_tax = IncomeTaxRules(
            brackets=brackets(tax['brackets']),
            periods_per_year=int(tax.get('periods_per_year', 12)),
            non_taxable_allowances=dict(tax.get('non_taxable_allowances', {})),
            default_status=tax.get('default_status', 'TK/0'),
            withholding_method=tax.get('withholding_method', ANNUALIZED),
            effective_rate_categories=dict(tax.get('effective_rate_categories', {})),
            effective_rate_tables={
                category: brackets(rows) for category, rows in tax.get('effective_rate_tables', {}).items()
            },
        )

        def split(section: Dict[str, Any]) -> SplitRate:
            return SplitRate(
                employee_rate=_rate(section.get('employee_rate', 0)),
                employer_rate=_rate(section.get('employer_rate', 0)),
                salary_cap=section.get('salary_cap'),
                salary_floor=section.get('salary_floor'),
            )

        return cls(
            version=data['version'],
            effective_from=_date(data['effective_from']),
            effective_to=_date(data.get('effective_to')),
            income_tax=income_tax,
            health_insurance=split(data['health_insurance']),
            work_injury_rates={
                str(risk_class): _rate(rate) for risk_class, rate in data['work_injury_rates'].items()
            },
            death_benefit_rate=_rate(data['death_benefit_rate']),
            old_age_savings=split(data['old_age_savings']),
            pension=split(data['pension']),
            withholding_rates={
                income_type: WithholdingRate(rate=_rate(w['rate']), form_code=str(w['form_code']))
                for income_type, w in data.get('withholding_rates', {}).items()
            },
            missing_tax_id_surcharge=_rate(data.get('missing_tax_id_surcharge', 0)),
            default_risk_class=str(data.get('default_risk_class', 'I')),
        )
