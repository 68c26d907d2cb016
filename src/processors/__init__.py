from .errors import (
    PayrollEngineError,
    InvalidEarningsError,
    RateNotFoundError,
    OverlappingPeriodError,
    RecordLockedError,
    IllegalTransitionError,
    RecordNotFoundError
)
from .rate_registry import RateTableRegistry
from .period_calculator import PeriodCalculator, compute_record, parse_earnings
from .batch_runner import BatchRunner
from .filing_builder import FilingBuilder
from .status_ledger import StatusLedger
from .engine import DeductionEngine
from .workbook_exporter import FilingWorkbookExporter
from .register_xml import WithholdingRegisterXML


__all__ = [
    'PayrollEngineError',
    'InvalidEarningsError',
    'RateNotFoundError',
    'OverlappingPeriodError',
    'RecordLockedError',
    'IllegalTransitionError',
    'RecordNotFoundError',
    'RateTableRegistry',
    'PeriodCalculator',
    'compute_record',
    'parse_earnings',
    'BatchRunner',
    'FilingBuilder',
    'StatusLedger',
    'DeductionEngine',
    'FilingWorkbookExporter',
    'WithholdingRegisterXML'
]
