from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class RecordStatus(str, Enum):
    DRAFT = "draft"
    CALCULATED = "calculated"
    VALIDATED = "validated"
    SUBMITTED = "submitted"
    PAID = "paid"
    REJECTED = "rejected"


# Statuses in which a record may be replaced by a plain recalculation
EDITABLE_STATUSES = frozenset({RecordStatus.DRAFT, RecordStatus.CALCULATED})
# Statuses the batch runner skips unless forced
FROZEN_STATUSES = frozenset({RecordStatus.SUBMITTED, RecordStatus.PAID})

MONEY_FIELDS = (
    'basic_salary',
    'allowances',
    'overtime_pay',
    'bonus',
    'other_taxable_income',
    'other_deductions',
)
DESCRIPTIVE_FIELDS = ('department', 'tax_status', 'risk_class')

# program -> (employee share attribute, employer share attribute)
PROGRAM_SHARES: Dict[str, Tuple[Optional[str], Optional[str]]] = {
    'income_tax': ('income_tax', None),
    'health_insurance': ('health_insurance_employee', 'health_insurance_employer'),
    'work_injury': (None, 'work_injury_employer'),
    'death_benefit': (None, 'death_benefit_employer'),
    'old_age_savings': ('old_age_savings_employee', 'old_age_savings_employer'),
    'pension': ('pension_employee', 'pension_employer'),
}


@dataclass(frozen=True, order=True)
class PayPeriod:
    """A monthly pay period"""
    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"Invalid month: {self.month}")

    @classmethod
    def parse(cls, value: Union[str, 'PayPeriod']) -> 'PayPeriod':
        """Parse 'YYYY-MM'"""
        if isinstance(value, PayPeriod):
            return value
        try:
            year, month = str(value).split('-')
            return cls(int(year), int(month))
        except ValueError:
            raise ValueError(f"Invalid pay period: {value!r} (expected YYYY-MM)")

    @property
    def reference_date(self) -> date:
        return date(self.year, self.month, 1)

    def __str__(self):
        return f"{self.year}-{self.month:02d}"


@dataclass(frozen=True)
class EarningComponents:
    """Earnings for one employee in one period, in minor currency units.

    risk_class is the workplace risk class for work-injury insurance; None
    means the rate table's default class.
    """
    basic_salary: int = 0
    allowances: int = 0
    overtime_pay: int = 0
    bonus: int = 0
    other_taxable_income: int = 0
    other_deductions: int = 0
    department: str = ""
    tax_status: Optional[str] = None
    risk_class: Optional[str] = None

    @property
    def gross_income(self) -> int:
        return (self.basic_salary + self.allowances + self.overtime_pay
                + self.bonus + self.other_taxable_income)

    def to_dict(self) -> Dict[str, Any]:
        data = {name: getattr(self, name) for name in MONEY_FIELDS}
        data['department'] = self.department
        data['tax_status'] = self.tax_status
        data['risk_class'] = self.risk_class
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EarningComponents':
        """Strict parse: every money field is required and unknown keys are rejected"""
        if not isinstance(data, dict):
            raise ValueError(f"Earning components must be an object, got {type(data).__name__}")
        unknown = sorted(set(data) - set(MONEY_FIELDS) - set(DESCRIPTIVE_FIELDS))
        if unknown:
            raise ValueError(f"Unknown earning fields: {', '.join(unknown)}")
        missing = [name for name in MONEY_FIELDS if name not in data]
        if missing:
            raise ValueError(f"Missing earning fields: {', '.join(missing)}")
        return cls(**data)


@dataclass(frozen=True)
class Contribution:
    employee_share: int = 0
    employer_share: int = 0


@dataclass(frozen=True)
class DeductionRecord:
    """Statutory deductions for one employee, one period, one version.

    net_income is derived from the stored inputs and shares, never stored.
    calculated_at does not take part in equality so identical inputs compare equal.
    income_tax_rate is the flat rate applied under effective-rate withholding
    and None when the period tax was annualized.
    """
    company_id: str
    employee_id: str
    period: PayPeriod
    version: int
    earnings: EarningComponents
    gross_income: int
    income_tax: int
    health_insurance_employee: int
    health_insurance_employer: int
    work_injury_employer: int
    death_benefit_employer: int
    old_age_savings_employee: int
    old_age_savings_employer: int
    pension_employee: int
    pension_employer: int
    rate_table_version: str
    checksum: str
    status: RecordStatus = RecordStatus.CALCULATED
    income_tax_rate: Optional[Decimal] = None
    calculated_at: Optional[datetime] = field(default=None, compare=False)

    @property
    def record_id(self) -> str:
        return make_record_id(self.company_id, self.employee_id, self.period, self.version)

    @property
    def department(self) -> str:
        return self.earnings.department

    @property
    def other_deductions(self) -> int:
        return self.earnings.other_deductions

    @property
    def employee_total(self) -> int:
        return sum(getattr(self, emp) for emp, _ in PROGRAM_SHARES.values() if emp)

    @property
    def employer_total(self) -> int:
        return sum(getattr(self, er) for _, er in PROGRAM_SHARES.values() if er)

    @property
    def net_income(self) -> int:
        return self.gross_income - self.employee_total - self.other_deductions

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'record_id': self.record_id,
            'company_id': self.company_id,
            'employee_id': self.employee_id,
            'period': str(self.period),
            'version': self.version,
            'status': self.status.value,
            'earnings': self.earnings.to_dict(),
            'gross_income': self.gross_income,
            'net_income': self.net_income,
            'employee_total': self.employee_total,
            'employer_total': self.employer_total,
            'rate_table_version': self.rate_table_version,
            'income_tax_rate': str(self.income_tax_rate) if self.income_tax_rate is not None else None,
            'checksum': self.checksum,
            'calculated_at': self.calculated_at.isoformat() if self.calculated_at else None,
        }
        for emp, er in PROGRAM_SHARES.values():
            for attr in (emp, er):
                if attr:
                    data[attr] = getattr(self, attr)
        return data


def check_identifier(value: str, name: str) -> str:
    """Company and employee ids are record-id segments, so they cannot be empty or contain '/'"""
    if not isinstance(value, str) or not value or '/' in value:
        raise ValueError(f"Invalid {name}: {value!r} (must be non-empty and must not contain '/')")
    return value


def make_record_id(company_id: str, employee_id: str, period: PayPeriod, version: int) -> str:
    check_identifier(company_id, "company id")
    check_identifier(employee_id, "employee id")
    return f"{company_id}/{employee_id}/{period}/v{version}"


def parse_record_id(record_id: str) -> Tuple[str, str, PayPeriod, int]:
    try:
        company_id, employee_id, period, version = record_id.split('/')
        if not company_id or not employee_id or not version.startswith('v'):
            raise ValueError(record_id)
        return company_id, employee_id, PayPeriod.parse(period), int(version[1:])
    except ValueError:
        raise ValueError(f"Malformed record id: {record_id!r}")


@dataclass
class PeriodLedger:
    """Current deduction records for one company and period, ordered by employee"""
    company_id: str
    period: PayPeriod
    records: List[DeductionRecord] = field(default_factory=list)

    def __len__(self):
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def get(self, employee_id: str) -> Optional[DeductionRecord]:
        return next((r for r in self.records if r.employee_id == employee_id), None)


@dataclass
class EmployeeError:
    employee_id: str
    error_type: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {'employee_id': self.employee_id, 'error_type': self.error_type, 'message': self.message}


@dataclass
class BatchResult:
    """Outcome of a batch run: the ledger plus per-employee failures"""
    ledger: PeriodLedger
    processed: List[str] = field(default_factory=list)
    errors: List[EmployeeError] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'company_id': self.ledger.company_id,
            'period': str(self.ledger.period),
            'records': [r.to_dict() for r in self.ledger.records],
            'processed': list(self.processed),
            'errors': [e.to_dict() for e in self.errors],
            'skipped': list(self.skipped),
            'cancelled': self.cancelled,
        }
