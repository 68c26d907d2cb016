import threading
from datetime import date
from typing import Iterable, List, Optional, Tuple, Union

from api.payroll_source import PayrollSource
from database.repository import PayrollRepository
from models.filing import ArtifactType, FilingArtifact
from models.payroll import BatchResult, DeductionRecord, EarningComponents, PayPeriod, RecordStatus
from models.rates import RateTable
from .batch_runner import BatchRunner
from .filing_builder import FilingBuilder
from .locks import KeyedLocks
from .period_calculator import PeriodCalculator
from .rate_registry import RateTableRegistry
from .status_ledger import StatusLedger


class DeductionEngine:
    """Single entry point wiring the registry, store, source and processors"""

    def __init__(self, registry: RateTableRegistry, repository: PayrollRepository,
                 source: PayrollSource, max_workers: Optional[int] = None):
        self.registry = registry
        self.repo = repository
        self.source = source
        # Calculator, status ledger and filing builder share one mutex table
        locks = KeyedLocks()
        self.calculator = PeriodCalculator(registry, repository, locks)
        self.status_ledger = StatusLedger(repository, locks)
        self.batch_runner = BatchRunner(self.calculator, repository, source, max_workers)
        self.filing_builder = FilingBuilder(repository, registry, source, locks)

    # Rate tables
    def lookup(self, as_of: date) -> RateTable:
        return self.registry.lookup(as_of)

    def register(self, table: RateTable) -> RateTable:
        return self.registry.register(table)

    # Calculation
    def calculate(self, company_id: str, employee_id: str, period: Union[str, PayPeriod],
                  earnings: EarningComponents, force: bool = False) -> DeductionRecord:
        return self.calculator.calculate(company_id, employee_id, period, earnings, force=force)

    def recalculate(self, record_id: str) -> Tuple[DeductionRecord, bool]:
        return self.calculator.recalculate(record_id)

    def run_period(self, company_id: str, period: Union[str, PayPeriod], force: bool = False,
                   cancel_event: Optional[threading.Event] = None) -> BatchResult:
        return self.batch_runner.run_period(company_id, period, force=force, cancel_event=cancel_event)

    def rerun(self, company_id: str, period: Union[str, PayPeriod], employee_ids: Iterable[str],
              force: bool = False, cancel_event: Optional[threading.Event] = None) -> BatchResult:
        return self.batch_runner.rerun(company_id, period, employee_ids, force=force, cancel_event=cancel_event)

    # Filing
    def build_monthly_summary(self, company_id: str, period: Union[str, PayPeriod]) -> FilingArtifact:
        return self.filing_builder.build_monthly_summary(company_id, period)

    def build_annual_certificate(self, company_id: str, employee_id: str, year: int) -> FilingArtifact:
        return self.filing_builder.build_annual_certificate(company_id, employee_id, year)

    def build_annual_summary(self, company_id: str, year: int) -> FilingArtifact:
        return self.filing_builder.build_annual_summary(company_id, year)

    def build_withholding_register(self, company_id: str, period: Union[str, PayPeriod]) -> List[FilingArtifact]:
        return self.filing_builder.build_withholding_register(company_id, period)

    # Status
    def transition(self, record_id: str, new_status: Union[str, RecordStatus]) -> DeductionRecord:
        return self.status_ledger.transition(record_id, new_status)

    def transition_artifact(self, company_id: str, period_key: str, artifact_type: Union[str, ArtifactType],
                            subject_id: str, new_status: Union[str, RecordStatus]) -> RecordStatus:
        return self.status_ledger.transition_artifact(company_id, period_key, artifact_type, subject_id, new_status)

    def history(self, company_id: str, employee_id: str, period: Union[str, PayPeriod]) -> List[DeductionRecord]:
        return self.repo.get_history(company_id, employee_id, PayPeriod.parse(period))
