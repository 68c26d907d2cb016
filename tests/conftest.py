from datetime import date
from decimal import Decimal

import pytest

from api.mock_payroll_source import MockPayrollSource
from database.db import make_session_factory
from database.repository import PayrollRepository
from models.rates import IncomeTaxRules, RateTable, SplitRate, TaxBracket, WithholdingRate
from processors import DeductionEngine, RateTableRegistry
from config.settings import RATE_TABLES_PATH

WORK_INJURY_RATES = {
    'I': Decimal('0.0024'),
    'II': Decimal('0.0054'),
    'III': Decimal('0.0089'),
    'IV': Decimal('0.0127'),
    'V': Decimal('0.0174'),
}


def flat_table(version="FLAT-2025", effective_from=date(2025, 1, 1), effective_to=None, **overrides):
    """Two-bracket table applied to the period amount directly (no annualization, no allowances)"""
    values = dict(
        version=version,
        effective_from=effective_from,
        effective_to=effective_to,
        income_tax=IncomeTaxRules(
            brackets=(TaxBracket(5000000, Decimal('0.05')), TaxBracket(None, Decimal('0.15'))),
            periods_per_year=1,
        ),
        health_insurance=SplitRate(Decimal('0.01'), Decimal('0.04'), salary_cap=12000000),
        work_injury_rates=WORK_INJURY_RATES,
        death_benefit_rate=Decimal('0.003'),
        old_age_savings=SplitRate(Decimal('0.02'), Decimal('0.037')),
        pension=SplitRate(Decimal('0.01'), Decimal('0.02'), salary_cap=10042300),
        withholding_rates={
            'technical_service': WithholdingRate(Decimal('0.02'), '23'),
            'rental': WithholdingRate(Decimal('0.02'), '23'),
            'foreign_payee': WithholdingRate(Decimal('0.20'), '26'),
        },
        missing_tax_id_surcharge=Decimal('1.0'),
    )
    values.update(overrides)
    return RateTable(**values)


@pytest.fixture
def table():
    return flat_table()


@pytest.fixture
def registry(table):
    return RateTableRegistry([table])


@pytest.fixture
def configured_registry():
    return RateTableRegistry.from_file(RATE_TABLES_PATH)


@pytest.fixture
def repository():
    return PayrollRepository(make_session_factory("sqlite://"))


@pytest.fixture
def source():
    return MockPayrollSource()


@pytest.fixture
def engine(configured_registry, repository, source):
    return DeductionEngine(configured_registry, repository, source, max_workers=4)
