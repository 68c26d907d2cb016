from sqlalchemy import (
    BigInteger, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
from .db import Base


class DeductionRecordDB(Base):
    """One version of an employee's statutory deductions for a period"""
    __tablename__ = "deduction_records"
    __table_args__ = (
        UniqueConstraint('company_id', 'employee_id', 'period', 'version', name='uq_record_version'),
        Index('ix_record_ledger', 'company_id', 'period', 'is_current'),
    )

    id = Column(String, primary_key=True)  # company/employee/period/vN
    company_id = Column(String, nullable=False)
    employee_id = Column(String, nullable=False, index=True)
    period = Column(String(7), nullable=False)  # YYYY-MM
    year = Column(Integer, nullable=False, index=True)
    month = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    is_current = Column(Boolean, nullable=False, default=True)

    # Inputs
    basic_salary = Column(BigInteger, nullable=False, default=0)
    allowances = Column(BigInteger, nullable=False, default=0)
    overtime_pay = Column(BigInteger, nullable=False, default=0)
    bonus = Column(BigInteger, nullable=False, default=0)
    other_taxable_income = Column(BigInteger, nullable=False, default=0)
    other_deductions = Column(BigInteger, nullable=False, default=0)
    department = Column(String(100), default="")
    tax_status = Column(String(10))
    risk_class = Column(String(10))  # JKK class, NULL means the table default

    # Computed shares (net income is derived, not stored)
    gross_income = Column(BigInteger, nullable=False)
    income_tax = Column(BigInteger, nullable=False, default=0)
    health_insurance_employee = Column(BigInteger, nullable=False, default=0)
    health_insurance_employer = Column(BigInteger, nullable=False, default=0)
    work_injury_employer = Column(BigInteger, nullable=False, default=0)
    death_benefit_employer = Column(BigInteger, nullable=False, default=0)
    old_age_savings_employee = Column(BigInteger, nullable=False, default=0)
    old_age_savings_employer = Column(BigInteger, nullable=False, default=0)
    pension_employee = Column(BigInteger, nullable=False, default=0)
    pension_employer = Column(BigInteger, nullable=False, default=0)

    # Metadata
    status = Column(String(20), nullable=False, default='calculated')
    rate_table_version = Column(String(50), nullable=False)
    income_tax_rate = Column(String(12))  # TER applied, NULL when annualized
    checksum = Column(String(64), nullable=False)
    calculated_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    status_events = relationship("RecordStatusEventDB", back_populates="record",
                                 cascade="all, delete-orphan", order_by="RecordStatusEventDB.id")

    def __repr__(self):
        return f"<DeductionRecord(id={self.id}, status={self.status})>"


class RecordStatusEventDB(Base):
    """Status history of a deduction record"""
    __tablename__ = "record_status_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_id = Column(String, ForeignKey('deduction_records.id'), nullable=False, index=True)
    from_status = Column(String(20))
    to_status = Column(String(20), nullable=False)
    changed_at = Column(DateTime, default=datetime.utcnow)

    record = relationship("DeductionRecordDB", back_populates="status_events")

    def __repr__(self):
        return f"<RecordStatusEvent(record={self.record_id}, {self.from_status} -> {self.to_status})>"


class FilingArtifactDB(Base):
    """Cached filing artifact; always rebuildable from the ledgers"""
    __tablename__ = "filing_artifacts"
    __table_args__ = (
        UniqueConstraint('company_id', 'period_key', 'artifact_type', 'subject_id', name='uq_artifact_key'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(String, nullable=False, index=True)
    period_key = Column(String(7), nullable=False)  # YYYY-MM or YYYY
    artifact_type = Column(String(30), nullable=False)  # see models.filing.ArtifactType
    subject_id = Column(String, nullable=False, default="")

    payload_json = Column(Text, nullable=False)
    checksum = Column(String(64), nullable=False)

    # Lifecycle, kept beside the payload so rebuilds do not alter it
    status = Column(String(20), default='calculated')
    built_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<FilingArtifact(type={self.artifact_type}, company={self.company_id}, period={self.period_key})>"
