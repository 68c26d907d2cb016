import hashlib
import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional, Tuple, Union

from database.repository import PayrollRepository
from models.filing import canonical_json
from models.payroll import (
    DeductionRecord, EarningComponents, PayPeriod, RecordStatus, EDITABLE_STATUSES, MONEY_FIELDS, check_identifier
)
from models.rates import RateTable
from . import contributions
from .errors import InvalidEarningsError, RecordLockedError, RecordNotFoundError
from .locks import KeyedLocks
from .rate_registry import RateTableRegistry

logger = logging.getLogger(__name__)


def parse_earnings(data: Any) -> EarningComponents:
    """Earning components from a request body; missing or unknown fields are errors"""
    try:
        earnings = EarningComponents.from_dict(data)
    except (TypeError, ValueError) as e:
        raise InvalidEarningsError(str(e))
    return validate_earnings(earnings)


def validate_earnings(earnings: Optional[EarningComponents]) -> EarningComponents:
    """Return earnings with every amount checked and normalized to int"""
    if earnings is None:
        raise InvalidEarningsError("Earning components are missing")
    if not isinstance(earnings, EarningComponents):
        raise InvalidEarningsError(f"Expected EarningComponents, got {type(earnings).__name__}")
    amounts = {name: contributions.require_amount(getattr(earnings, name), name) for name in MONEY_FIELDS}
    for name in ('tax_status', 'risk_class'):
        value = getattr(earnings, name)
        if value is not None and not isinstance(value, str):
            raise InvalidEarningsError(f"{name} must be a string, got {value!r}")
    if not isinstance(earnings.department, str):
        raise InvalidEarningsError(f"department must be a string, got {earnings.department!r}")
    return replace(earnings, **amounts)


def record_checksum(company_id: str, employee_id: str, period: PayPeriod, earnings: EarningComponents,
                    shares: dict, rate_table_version: str, income_tax_rate: Optional[Decimal] = None) -> str:
    payload = {
        'company_id': company_id,
        'employee_id': employee_id,
        'period': str(period),
        'earnings': earnings.to_dict(),
        'shares': shares,
        'rate_table_version': rate_table_version,
        'income_tax_rate': str(income_tax_rate) if income_tax_rate is not None else None,
    }
    return hashlib.sha256(canonical_json(payload)).hexdigest()


def compute_record(company_id: str, employee_id: str, period: PayPeriod,
                   earnings: EarningComponents, table: RateTable) -> DeductionRecord:
    """Pure calculation of every program for one employee and period"""
    earnings = validate_earnings(earnings)
    gross = earnings.gross_income

    tax_rate = contributions.income_tax_rate(gross, table, earnings.tax_status)
    tax = contributions.income_tax(gross, table, earnings.tax_status)
    health = contributions.health_insurance(gross, table)
    injury = contributions.work_injury(gross, table, earnings.risk_class)
    death = contributions.death_benefit(gross, table)
    savings = contributions.old_age_savings(gross, table)
    pension = contributions.pension(gross, table)

    shares = {
        'income_tax': tax.employee_share,
        'health_insurance_employee': health.employee_share,
        'health_insurance_employer': health.employer_share,
        'work_injury_employer': injury.employer_share,
        'death_benefit_employer': death.employer_share,
        'old_age_savings_employee': savings.employee_share,
        'old_age_savings_employer': savings.employer_share,
        'pension_employee': pension.employee_share,
        'pension_employer': pension.employer_share,
    }

    return DeductionRecord(
        company_id=company_id,
        employee_id=employee_id,
        period=period,
        version=1,
        earnings=earnings,
        gross_income=gross,
        rate_table_version=table.version,
        checksum=record_checksum(company_id, employee_id, period, earnings, shares, table.version, tax_rate),
        status=RecordStatus.CALCULATED,
        income_tax_rate=tax_rate,
        **shares
    )


class PeriodCalculator:
    """Calculates and stores one employee's deduction record for one period"""

    def __init__(self, registry: RateTableRegistry, repository: PayrollRepository,
                 locks: Optional[KeyedLocks] = None, clock: Callable[[], datetime] = datetime.utcnow):
        self.registry = registry
        self.repo = repository
        self.locks = locks or KeyedLocks()
        self.clock = clock

    def calculate(self, company_id: str, employee_id: str, period: Union[str, PayPeriod],
                  earnings: EarningComponents, force: bool = False) -> DeductionRecord:
        for value, name in ((company_id, "company id"), (employee_id, "employee id")):
            try:
                check_identifier(value, name)
            except ValueError as e:
                raise InvalidEarningsError(str(e))
        period = PayPeriod.parse(period)
        table = self.registry.lookup(period.reference_date)
        computed = compute_record(company_id, employee_id, period, earnings, table)

        with self.locks.hold((company_id, employee_id, str(period))):
            existing = self.repo.get_current_record(company_id, employee_id, period)
            version = 1
            if existing is not None:
                if existing.status in EDITABLE_STATUSES:
                    version = existing.version
                elif force:
                    version = existing.version + 1
                    logger.warning("Forced recalculation of %s (status %s); keeping it for audit",
                                   existing.record_id, existing.status.value)
                else:
                    raise RecordLockedError(
                        f"Record {existing.record_id} is {existing.status.value}; pass force=True to create a new version"
                    )
            record = replace(computed, version=version, calculated_at=self.clock())
            saved = self.repo.save_record(record)

        logger.debug("Calculated %s with rate table %s", saved.record_id, table.version)
        return saved

    def recalculate(self, record_id: str) -> Tuple[DeductionRecord, bool]:
        """Reproduce a stored record from its inputs and its stamped rate table.

        Returns the reproduced record and whether its checksum matches the stored one.
        """
        stored = self.repo.get_record(record_id)
        if stored is None:
            raise RecordNotFoundError(f"No deduction record {record_id}")
        table = self.registry.get(stored.rate_table_version)
        reproduced = compute_record(stored.company_id, stored.employee_id, stored.period, stored.earnings, table)
        reproduced = replace(reproduced, version=stored.version, status=stored.status,
                             calculated_at=stored.calculated_at)
        return reproduced, reproduced.checksum == stored.checksum
