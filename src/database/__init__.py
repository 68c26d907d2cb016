from .db import engine, SessionLocal, Base, init_db, make_session_factory
from .models import (
    DeductionRecordDB,
    RecordStatusEventDB,
    FilingArtifactDB
)
from .repository import PayrollRepository

__all__ = [
    'engine',
    'SessionLocal',
    'Base',
    'init_db',
    'make_session_factory',
    'DeductionRecordDB',
    'RecordStatusEventDB',
    'FilingArtifactDB',
    'PayrollRepository'
]
