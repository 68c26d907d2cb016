import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable, List, Optional, Union

from api.payroll_source import PayrollSource
from database.repository import PayrollRepository
from models.payroll import BatchResult, EmployeeError, PayPeriod, FROZEN_STATUSES
from config.settings import BATCH_MAX_WORKERS
from .errors import InvalidEarningsError, PayrollEngineError
from .period_calculator import PeriodCalculator

logger = logging.getLogger(__name__)

_PROCESSED = 'processed'
_SKIPPED = 'skipped'
_CANCELLED = 'cancelled'


class BatchRunner:
    """Runs the period calculation for many employees on a bounded thread pool.

    A failing employee never aborts the batch: the failure is reported in
    BatchResult.errors next to the records that did succeed.
    """

    def __init__(self, calculator: PeriodCalculator, repository: PayrollRepository,
                 source: PayrollSource, max_workers: Optional[int] = None):
        self.calculator = calculator
        self.repo = repository
        self.source = source
        self.max_workers = max_workers or BATCH_MAX_WORKERS

    def run_period(self, company_id: str, period: Union[str, PayPeriod], force: bool = False,
                   cancel_event: Optional[threading.Event] = None) -> BatchResult:
        period = PayPeriod.parse(period)
        employee_ids = self.source.get_active_employees(company_id, period)
        return self._run(company_id, period, employee_ids, force, cancel_event)

    def rerun(self, company_id: str, period: Union[str, PayPeriod], employee_ids: Iterable[str],
              force: bool = False, cancel_event: Optional[threading.Event] = None) -> BatchResult:
        """Recalculate a subset of employees; everyone else is left untouched"""
        period = PayPeriod.parse(period)
        return self._run(company_id, period, list(employee_ids), force, cancel_event)

    def _run(self, company_id: str, period: PayPeriod, employee_ids: List[str], force: bool,
             cancel_event: Optional[threading.Event]) -> BatchResult:
        # Deduplicate while keeping the caller's order
        employee_ids = list(dict.fromkeys(employee_ids))
        logger.info("Batch %s %s: %d employees (force=%s, workers=%d)",
                    company_id, period, len(employee_ids), force, self.max_workers)

        processed: List[str] = []
        skipped: List[str] = []
        errors: List[EmployeeError] = []
        cancelled = False

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix='payroll-batch') as pool:
            futures = {
                pool.submit(self._process_employee, company_id, employee_id, period, force, cancel_event): employee_id
                for employee_id in employee_ids
            }
            for future in as_completed(futures):
                employee_id = futures[future]
                try:
                    outcome = future.result()
                except PayrollEngineError as e:
                    logger.warning("Employee %s failed: %s", employee_id, e)
                    errors.append(EmployeeError(employee_id, type(e).__name__, str(e)))
                    continue
                except Exception as e:
                    logger.exception("Unexpected failure for employee %s", employee_id)
                    errors.append(EmployeeError(employee_id, type(e).__name__, str(e)))
                    continue

                if outcome == _PROCESSED:
                    processed.append(employee_id)
                elif outcome == _SKIPPED:
                    skipped.append(employee_id)
                else:
                    cancelled = True

        order = {employee_id: i for i, employee_id in enumerate(employee_ids)}
        processed.sort(key=order.get)
        skipped.sort(key=order.get)
        errors.sort(key=lambda e: order[e.employee_id])

        ledger = self.repo.get_period_ledger(company_id, period)
        logger.info("Batch %s %s done: %d processed, %d skipped, %d errors%s",
                    company_id, period, len(processed), len(skipped), len(errors),
                    " (cancelled)" if cancelled else "")
        return BatchResult(ledger=ledger, processed=processed, errors=errors,
                           skipped=skipped, cancelled=cancelled)

    def _process_employee(self, company_id: str, employee_id: str, period: PayPeriod, force: bool,
                          cancel_event: Optional[threading.Event]) -> str:
        if cancel_event is not None and cancel_event.is_set():
            return _CANCELLED

        current = self.repo.get_current_record(company_id, employee_id, period)
        if current is not None and current.status in FROZEN_STATUSES and not force:
            logger.debug("Skipping %s: record is %s", employee_id, current.status.value)
            return _SKIPPED

        earnings = self.source.get_earning_components(company_id, employee_id, period)
        if earnings is None:
            raise InvalidEarningsError(f"No earning components for employee {employee_id} in {period}")

        self.calculator.calculate(company_id, employee_id, period, earnings, force=force)
        return _PROCESSED
