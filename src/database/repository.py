from sqlalchemy import and_
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from datetime import datetime
import json
import threading
from .db import SessionLocal
from .models import DeductionRecordDB, RecordStatusEventDB, FilingArtifactDB
from models.payroll import (
    DeductionRecord, EarningComponents, PayPeriod, PeriodLedger, RecordStatus,
    FROZEN_STATUSES, MONEY_FIELDS, PROGRAM_SHARES,
)
from models.filing import ArtifactType, FilingArtifact, canonical_json

SHARE_COLUMNS = tuple(attr for pair in PROGRAM_SHARES.values() for attr in pair if attr)


class PayrollRepository:
    """Repository for deduction records and filing artifacts.

    Every call opens its own session under one lock, so reads return a
    consistent snapshot and callers only ever see detached value objects.
    """

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or SessionLocal
        self._lock = threading.RLock()

    # ========== Deduction Record Operations ==========

    def save_record(self, record: DeductionRecord) -> DeductionRecord:
        """Insert or replace a record version and make it the current one"""
        with self._lock, self._session_factory() as db:
            row = db.query(DeductionRecordDB).filter_by(id=record.record_id).first()
            previous_status = row.status if row else None
            if row is None:
                row = DeductionRecordDB(id=record.record_id)
                db.add(row)

            # Older versions stay for audit but stop being current
            db.query(DeductionRecordDB).filter(
                and_(
                    DeductionRecordDB.company_id == record.company_id,
                    DeductionRecordDB.employee_id == record.employee_id,
                    DeductionRecordDB.period == str(record.period),
                    DeductionRecordDB.id != record.record_id,
                )
            ).update({DeductionRecordDB.is_current: False}, synchronize_session=False)

            self._fill_row(row, record)
            if previous_status != record.status.value:
                db.add(RecordStatusEventDB(
                    record_id=record.record_id,
                    from_status=previous_status,
                    to_status=record.status.value,
                ))
            db.commit()
            return self._to_record(row)

    def update_status(self, record_id: str, status: RecordStatus) -> DeductionRecord:
        with self._lock, self._session_factory() as db:
            row = db.query(DeductionRecordDB).filter_by(id=record_id).one()
            db.add(RecordStatusEventDB(record_id=record_id, from_status=row.status, to_status=status.value))
            row.status = status.value
            db.commit()
            return self._to_record(row)

    def get_record(self, record_id: str) -> Optional[DeductionRecord]:
        with self._lock, self._session_factory() as db:
            row = db.query(DeductionRecordDB).filter_by(id=record_id).first()
            return self._to_record(row) if row else None

    def is_current(self, record_id: str) -> bool:
        with self._lock, self._session_factory() as db:
            row = db.query(DeductionRecordDB).filter_by(id=record_id).first()
            return bool(row and row.is_current)

    def get_current_record(self, company_id: str, employee_id: str, period: PayPeriod) -> Optional[DeductionRecord]:
        with self._lock, self._session_factory() as db:
            row = db.query(DeductionRecordDB).filter(
                and_(
                    DeductionRecordDB.company_id == company_id,
                    DeductionRecordDB.employee_id == employee_id,
                    DeductionRecordDB.period == str(period),
                    DeductionRecordDB.is_current.is_(True),
                )
            ).first()
            return self._to_record(row) if row else None

    def get_history(self, company_id: str, employee_id: str, period: PayPeriod) -> List[DeductionRecord]:
        """All versions, oldest first"""
        with self._lock, self._session_factory() as db:
            rows = db.query(DeductionRecordDB).filter(
                and_(
                    DeductionRecordDB.company_id == company_id,
                    DeductionRecordDB.employee_id == employee_id,
                    DeductionRecordDB.period == str(period),
                )
            ).order_by(DeductionRecordDB.version).all()
            return [self._to_record(r) for r in rows]

    def get_status_history(self, record_id: str) -> List[Tuple[Optional[str], str, datetime]]:
        with self._lock, self._session_factory() as db:
            events = db.query(RecordStatusEventDB).filter_by(record_id=record_id).order_by(RecordStatusEventDB.id).all()
            return [(e.from_status, e.to_status, e.changed_at) for e in events]

    def get_period_ledger(self, company_id: str, period: PayPeriod) -> PeriodLedger:
        """Snapshot of the current records for a company and period"""
        with self._lock, self._session_factory() as db:
            rows = db.query(DeductionRecordDB).filter(
                and_(
                    DeductionRecordDB.company_id == company_id,
                    DeductionRecordDB.period == str(period),
                    DeductionRecordDB.is_current.is_(True),
                )
            ).order_by(DeductionRecordDB.employee_id).all()
            return PeriodLedger(company_id=company_id, period=period, records=[self._to_record(r) for r in rows])

    def get_employee_year(self, company_id: str, employee_id: str, year: int) -> List[DeductionRecord]:
        """Current records of an employee at one company for a calendar year, in month order"""
        with self._lock, self._session_factory() as db:
            rows = db.query(DeductionRecordDB).filter(
                and_(
                    DeductionRecordDB.company_id == company_id,
                    DeductionRecordDB.employee_id == employee_id,
                    DeductionRecordDB.year == year,
                    DeductionRecordDB.is_current.is_(True),
                )
            ).order_by(DeductionRecordDB.month).all()
            return [self._to_record(r) for r in rows]

    def get_company_year(self, company_id: str, year: int) -> List[DeductionRecord]:
        """Current records of a company for a calendar year, by month then employee"""
        with self._lock, self._session_factory() as db:
            rows = db.query(DeductionRecordDB).filter(
                and_(
                    DeductionRecordDB.company_id == company_id,
                    DeductionRecordDB.year == year,
                    DeductionRecordDB.is_current.is_(True),
                )
            ).order_by(DeductionRecordDB.month, DeductionRecordDB.employee_id).all()
            return [self._to_record(r) for r in rows]

    # ========== Filing Artifact Operations ==========

    def save_artifact(self, artifact: FilingArtifact) -> FilingArtifact:
        """Cache an artifact, replacing the payload of an existing key.

        The stored status is left as it is; callers decide whether a frozen
        artifact may be rewritten.
        """
        company_id, period_key, artifact_type, subject_id = artifact.key
        with self._lock, self._session_factory() as db:
            row = db.query(FilingArtifactDB).filter_by(
                company_id=company_id, period_key=period_key,
                artifact_type=artifact_type, subject_id=subject_id,
            ).first()
            if row is None:
                row = FilingArtifactDB(
                    company_id=company_id, period_key=period_key,
                    artifact_type=artifact_type, subject_id=subject_id,
                    status=RecordStatus.CALCULATED.value,
                )
                db.add(row)
            row.payload_json = canonical_json(artifact.payload).decode('utf-8')
            row.checksum = artifact.checksum
            row.built_at = datetime.utcnow()
            db.commit()
        return artifact

    def get_artifact(self, company_id: str, period_key: str, artifact_type: str,
                     subject_id: str = "") -> Optional[FilingArtifact]:
        with self._lock, self._session_factory() as db:
            row = self._artifact_row(db, company_id, period_key, artifact_type, subject_id)
            if row is None:
                return None
            return FilingArtifact(
                company_id=row.company_id,
                period_key=row.period_key,
                artifact_type=ArtifactType(row.artifact_type),
                subject_id=row.subject_id,
                payload=json.loads(row.payload_json),
            )

    def get_artifact_status(self, company_id: str, period_key: str, artifact_type: str,
                            subject_id: str = "") -> Optional[RecordStatus]:
        with self._lock, self._session_factory() as db:
            row = self._artifact_row(db, company_id, period_key, artifact_type, subject_id)
            return RecordStatus(row.status) if row else None

    def get_artifact_statuses(self, company_id: str, period_key: str,
                              artifact_type: str) -> Dict[str, RecordStatus]:
        """Status of every cached artifact of one type for a company and period, by subject"""
        with self._lock, self._session_factory() as db:
            rows = db.query(FilingArtifactDB).filter_by(
                company_id=company_id, period_key=period_key, artifact_type=artifact_type,
            ).all()
            return {row.subject_id: RecordStatus(row.status) for row in rows}

    def delete_artifacts(self, company_id: str, period_key: str, artifact_type: str,
                         subject_ids: Iterable[str]) -> int:
        """Drop cached artifacts by subject; submitted and paid ones are kept"""
        subject_ids = list(subject_ids)
        if not subject_ids:
            return 0
        with self._lock, self._session_factory() as db:
            deleted = db.query(FilingArtifactDB).filter(
                and_(
                    FilingArtifactDB.company_id == company_id,
                    FilingArtifactDB.period_key == period_key,
                    FilingArtifactDB.artifact_type == artifact_type,
                    FilingArtifactDB.subject_id.in_(subject_ids),
                    FilingArtifactDB.status.notin_([s.value for s in FROZEN_STATUSES]),
                )
            ).delete(synchronize_session=False)
            db.commit()
            return deleted

    def update_artifact_status(self, company_id: str, period_key: str, artifact_type: str,
                               subject_id: str, status: RecordStatus):
        with self._lock, self._session_factory() as db:
            row = self._artifact_row(db, company_id, period_key, artifact_type, subject_id)
            row.status = status.value
            db.commit()

    # ========== Helper Methods ==========

    def _artifact_row(self, db, company_id, period_key, artifact_type, subject_id):
        return db.query(FilingArtifactDB).filter_by(
            company_id=company_id, period_key=period_key,
            artifact_type=artifact_type, subject_id=subject_id,
        ).first()

    def _fill_row(self, row: DeductionRecordDB, record: DeductionRecord):
        row.company_id = record.company_id
        row.employee_id = record.employee_id
        row.period = str(record.period)
        row.year = record.period.year
        row.month = record.period.month
        row.version = record.version
        row.is_current = True
        for name in MONEY_FIELDS:
            setattr(row, name, getattr(record.earnings, name))
        row.department = record.earnings.department
        row.tax_status = record.earnings.tax_status
        row.risk_class = record.earnings.risk_class
        row.gross_income = record.gross_income
        for name in SHARE_COLUMNS:
            setattr(row, name, getattr(record, name))
        row.status = record.status.value
        row.rate_table_version = record.rate_table_version
        row.income_tax_rate = str(record.income_tax_rate) if record.income_tax_rate is not None else None
        row.checksum = record.checksum
        row.calculated_at = record.calculated_at

    def _to_record(self, row: DeductionRecordDB) -> DeductionRecord:
        earnings = EarningComponents(
            department=row.department or "",
            tax_status=row.tax_status,
            risk_class=row.risk_class,
            **{name: getattr(row, name) for name in MONEY_FIELDS}
        )
        return DeductionRecord(
            company_id=row.company_id,
            employee_id=row.employee_id,
            period=PayPeriod(row.year, row.month),
            version=row.version,
            earnings=earnings,
            gross_income=row.gross_income,
            rate_table_version=row.rate_table_version,
            checksum=row.checksum,
            status=RecordStatus(row.status),
            income_tax_rate=Decimal(row.income_tax_rate) if row.income_tax_rate is not None else None,
            calculated_at=row.calculated_at,
            **{name: getattr(row, name) for name in SHARE_COLUMNS}
        )
