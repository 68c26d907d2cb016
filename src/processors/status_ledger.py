import logging
from typing import Dict, FrozenSet, Optional, Union

from database.repository import PayrollRepository
from models.filing import ArtifactType
from models.payroll import DeductionRecord, RecordStatus, parse_record_id
from .errors import IllegalTransitionError, RecordLockedError, RecordNotFoundError
from .locks import KeyedLocks

logger = logging.getLogger(__name__)

# Forward-only lifecycle; rejection by the authority is the only way back
TRANSITIONS: Dict[RecordStatus, FrozenSet[RecordStatus]] = {
    RecordStatus.DRAFT: frozenset({RecordStatus.CALCULATED}),
    RecordStatus.CALCULATED: frozenset({RecordStatus.VALIDATED}),
    RecordStatus.VALIDATED: frozenset({RecordStatus.SUBMITTED}),
    RecordStatus.SUBMITTED: frozenset({RecordStatus.PAID, RecordStatus.REJECTED}),
    RecordStatus.PAID: frozenset(),
    RecordStatus.REJECTED: frozenset({RecordStatus.DRAFT}),
}


def coerce_status(value: Union[str, RecordStatus]) -> RecordStatus:
    try:
        return RecordStatus(value)
    except ValueError:
        raise IllegalTransitionError(f"Unknown status {value!r}")


def check_transition(current: RecordStatus, new: RecordStatus):
    if new not in TRANSITIONS[current]:
        raise IllegalTransitionError(f"Cannot move from {current.value} to {new.value}")


class StatusLedger:
    """Guards lifecycle moves of deduction records and cached filing artifacts"""

    def __init__(self, repository: PayrollRepository, locks: Optional[KeyedLocks] = None):
        self.repo = repository
        self.locks = locks or KeyedLocks()

    def transition(self, record_id: str, new_status: Union[str, RecordStatus]) -> DeductionRecord:
        target = coerce_status(new_status)
        try:
            company_id, employee_id, period, _ = parse_record_id(record_id)
        except ValueError:
            raise RecordNotFoundError(f"No deduction record {record_id}")

        with self.locks.hold((company_id, employee_id, str(period))):
            record = self.repo.get_record(record_id)
            if record is None:
                raise RecordNotFoundError(f"No deduction record {record_id}")
            if not self.repo.is_current(record_id):
                raise RecordLockedError(f"Record {record_id} was superseded by a newer version")
            check_transition(record.status, target)
            updated = self.repo.update_status(record_id, target)

        logger.info("Record %s: %s -> %s", record_id, record.status.value, target.value)
        return updated

    def transition_artifact(self, company_id: str, period_key: str, artifact_type: Union[str, ArtifactType],
                            subject_id: str, new_status: Union[str, RecordStatus]) -> RecordStatus:
        target = coerce_status(new_status)
        kind = ArtifactType(artifact_type).value
        with self.locks.hold(('artifact', company_id, period_key, kind, subject_id)):
            current = self.repo.get_artifact_status(company_id, period_key, kind, subject_id)
            if current is None:
                raise RecordNotFoundError(f"No {kind} artifact for {company_id} {period_key} {subject_id}".rstrip())
            check_transition(current, target)
            self.repo.update_artifact_status(company_id, period_key, kind, subject_id, target)

        logger.info("Artifact %s/%s/%s: %s -> %s", company_id, period_key, kind, current.value, target.value)
        return target
