"""Error taxonomy of the deduction engine.

None of these are retried inside the engine: every calculation is pure, so a
retry without changed input or configuration reproduces the same error.
"""


class PayrollEngineError(Exception):
    """Base class for engine errors"""


class InvalidEarningsError(PayrollEngineError, ValueError):
    """Non-numeric, negative or missing earnings input (caller-correctable)"""


class RateNotFoundError(PayrollEngineError, LookupError):
    """No rate table covers the requested date"""


class OverlappingPeriodError(PayrollEngineError):
    """A registered rate table would overlap an existing effective window"""


class RecordLockedError(PayrollEngineError):
    """The record is past the editable states and cannot be replaced"""


class IllegalTransitionError(PayrollEngineError):
    """A status move the lifecycle does not allow"""


class RecordNotFoundError(PayrollEngineError, LookupError):
    """No stored record (or no records at all) for the requested key"""
