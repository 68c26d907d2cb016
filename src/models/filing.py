import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ArtifactType(str, Enum):
    MONTHLY_SUMMARY = "monthly_summary"
    ANNUAL_CERTIFICATE = "annual_certificate"
    ANNUAL_SUMMARY = "annual_summary"
    WITHHOLDING_SLIP = "withholding_slip"


def canonical_json(payload: Dict[str, Any]) -> bytes:
    """Stable serialization: sorted keys, fixed separators"""
    return json.dumps(payload, sort_keys=True, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


@dataclass(frozen=True)
class FilingArtifact:
    """Derived aggregate shaped for a tax or social-insurance filing"""
    company_id: str
    period_key: str
    artifact_type: ArtifactType
    subject_id: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self):
        return (self.company_id, self.period_key, self.artifact_type.value, self.subject_id)

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.to_json()).hexdigest()

    def to_json(self) -> bytes:
        return canonical_json({
            'company_id': self.company_id,
            'period_key': self.period_key,
            'artifact_type': self.artifact_type.value,
            'subject_id': self.subject_id,
            'payload': self.payload,
        })


@dataclass(frozen=True)
class WithholdingPayment:
    """A non-employment payment subject to withholding (bukti potong)"""
    payee_id: str
    payee_name: str
    income_type: str
    gross_amount: int
    tax_id: Optional[str] = None
    reference: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'payee_id': self.payee_id,
            'payee_name': self.payee_name,
            'income_type': self.income_type,
            'gross_amount': self.gross_amount,
            'tax_id': self.tax_id,
            'reference': self.reference,
        }
