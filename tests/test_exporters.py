import xml.etree.ElementTree as ET

import openpyxl
import pytest

from models.payroll import PayPeriod
from processors import FilingWorkbookExporter, WithholdingRegisterXML

PERIOD = PayPeriod(2025, 7)


def test_monthly_summary_workbook(engine, tmp_path):
    engine.run_period("PT-TM", PERIOD)
    artifact = engine.build_monthly_summary("PT-TM", PERIOD)

    filepath = FilingWorkbookExporter(tmp_path).export_monthly_summary(artifact)

    assert filepath.endswith("monthly_summary_PT-TM_2025-07.xlsx")
    ws = openpyxl.load_workbook(filepath).active
    values = [row for row in ws.iter_rows(values_only=True)]
    labels = [row[0] for row in values]
    assert "PPh 21" in labels
    assert "Engineering" in labels
    total_row = next(row for row in values if row[0] == "TOTAL")
    assert total_row[2] == artifact.payload['totals']['gross_income']


def test_annual_certificate_workbook(engine, tmp_path):
    for month in (1, 2):
        engine.run_period("PT-TM", PayPeriod(2025, month))
    artifact = engine.build_annual_certificate("PT-TM", "EMP-003", 2025)

    filepath = FilingWorkbookExporter(tmp_path).export_annual_certificate(artifact)

    assert filepath.endswith("1721A1_PT-TM_EMP-003_2025.xlsx")
    ws = openpyxl.load_workbook(filepath).active
    periods = [row[0] for row in ws.iter_rows(min_row=6, values_only=True)]
    assert periods[:2] == ["2025-01", "2025-02"]


def test_wrong_artifact_type_rejected(engine, tmp_path):
    engine.run_period("PT-TM", PERIOD)
    summary = engine.build_monthly_summary("PT-TM", PERIOD)
    with pytest.raises(ValueError):
        FilingWorkbookExporter(tmp_path).export_annual_certificate(summary)
    with pytest.raises(ValueError):
        WithholdingRegisterXML(tmp_path).render([summary], "PT-TM", "2025-07")


def test_withholding_register_xml(engine, tmp_path):
    slips = engine.build_withholding_register("PT-TM", PERIOD)

    filepath = WithholdingRegisterXML(tmp_path).generate(slips, "PT-TM", "2025-07")

    root = ET.parse(filepath).getroot()
    assert root.tag == "BuktiPotongRegister"
    numbers = [b.get('nomor') for b in root.iter('BuktiPotong')]
    assert numbers == ["BP23-2507-00001", "BP23-2507-00002", "BP26-2507-00001"]
    assert root.find('MasaPajak/Bulan').text == "7"
    assert root.find('Ringkasan/JumlahBuktiPotong').text == "3"
    assert int(root.find('Ringkasan/TotalPPh').text) == sum(s.payload['tax_total'] for s in slips)


def test_annual_summary_workbook(engine, tmp_path):
    for month in (1, 2):
        engine.run_period("PT-TM", PayPeriod(2025, month))
    artifact = engine.build_annual_summary("PT-TM", 2025)

    filepath = FilingWorkbookExporter(tmp_path).export_annual_summary(artifact)

    assert filepath.endswith("annual_summary_PT-TM_2025.xlsx")
    ws = openpyxl.load_workbook(filepath).active
    values = [row for row in ws.iter_rows(values_only=True)]
    labels = [row[0] for row in values]
    assert labels[4:6] == ["2025-01", "2025-02"]
    assert "EMP-003" in labels
    total_row = next(row for row in values if row[0] == "TOTAL")
    assert total_row[1] == 3
    assert total_row[2] == artifact.payload['totals']['gross_income']
    with pytest.raises(ValueError):
        FilingWorkbookExporter(tmp_path).export_monthly_summary(artifact)
