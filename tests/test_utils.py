import pytest

from models.payroll import PayPeriod, make_record_id, parse_record_id
from utils.formatters import format_currency
from utils.validators import validate_npwp, validate_period


def test_format_currency():
    assert format_currency(1234567) == "Rp 1.234.567"
    assert format_currency(0, "IDR") == "IDR 0"


@pytest.mark.parametrize("tax_id, valid", [
    ("01.234.567.8-901.000", True),
    ("0123456789010000", True),
    ("12.345", False),
    ("", False),
    (None, False),
])
def test_validate_npwp(tax_id, valid):
    assert validate_npwp(tax_id) is valid


def test_validate_period():
    assert validate_period("2025-01")
    assert not validate_period("2025-13")
    assert not validate_period("25-01")


def test_record_id_round_trip():
    record_id = make_record_id("PT-TM", "EMP-001", PayPeriod(2025, 1), 3)
    assert record_id == "PT-TM/EMP-001/2025-01/v3"
    assert parse_record_id(record_id) == ("PT-TM", "EMP-001", PayPeriod(2025, 1), 3)


@pytest.mark.parametrize("company_id, employee_id", [("PT/TM", "EMP-001"), ("PT-TM", "EMP/001"), ("", "EMP-001")])
def test_record_id_rejects_separator_in_ids(company_id, employee_id):
    with pytest.raises(ValueError):
        make_record_id(company_id, employee_id, PayPeriod(2025, 1), 1)


@pytest.mark.parametrize("record_id", [
    "PT-TM/EMP-001/2025-01/3",
    "PT/TM/EMP-001/2025-01/v1",
    "PT-TM/EMP/001/2025-01/v1",
    "/EMP-001/2025-01/v1",
])
def test_parse_record_id_rejects_ambiguous_ids(record_id):
    with pytest.raises(ValueError):
        parse_record_id(record_id)
