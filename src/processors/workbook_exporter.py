import openpyxl
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from pathlib import Path
from typing import Optional
from models.filing import ArtifactType, FilingArtifact
from config.settings import OUTPUT_DIR, COMPANY_NAME, CURRENCY_SYMBOL

PROGRAM_LABELS = {
    'income_tax': 'PPh 21',
    'health_insurance': 'BPJS Kesehatan',
    'work_injury': 'JKK (Kecelakaan Kerja)',
    'death_benefit': 'JKM (Kematian)',
    'old_age_savings': 'JHT (Hari Tua)',
    'pension': 'JP (Pensiun)',
}

MONEY_FORMAT = '#,##0'

bold_font = Font(bold=True)
header_font = Font(bold=True, size=14)
header_fill = PatternFill(start_color="B4C7E7", end_color="B4C7E7", fill_type="solid")
total_fill = PatternFill(start_color="FFFF99", end_color="FFFF99", fill_type="solid")
thin_border = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)


def _header_row(ws, row: int, headers):
    for col_idx, header in enumerate(headers, start=1):
        cell = ws.cell(row=row, column=col_idx)
        cell.value = header
        cell.font = bold_font
        cell.fill = header_fill
        cell.border = thin_border
        cell.alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)


def _data_row(ws, row: int, values, fill: Optional[PatternFill] = None, bold: bool = False):
    for col_idx, value in enumerate(values, start=1):
        cell = ws.cell(row=row, column=col_idx)
        cell.value = value
        cell.border = thin_border
        if isinstance(value, int):
            cell.number_format = MONEY_FORMAT
        if fill:
            cell.fill = fill
        if bold:
            cell.font = bold_font


class FilingWorkbookExporter:
    """Write monthly summaries, annual certificates and annual summaries to Excel"""

    def __init__(self, output_dir: Optional[Path] = None):
        self.output_dir = Path(output_dir) if output_dir else OUTPUT_DIR / "filings"
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def export_monthly_summary(self, artifact: FilingArtifact) -> str:
        if artifact.artifact_type != ArtifactType.MONTHLY_SUMMARY:
            raise ValueError(f"Expected a monthly summary, got {artifact.artifact_type.value}")
        payload = artifact.payload

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = f"{payload['period']} Summary"
        for col, width in zip('ABCDEFG', (28, 18, 18, 18, 18, 18, 18)):
            ws.column_dimensions[col].width = width

        # Title
        row = 1
        ws.merge_cells(f'A{row}:G{row}')
        ws[f'A{row}'] = f"MONTHLY WITHHOLDING REPORT - {COMPANY_NAME}"
        ws[f'A{row}'].font = header_font
        ws[f'A{row}'].alignment = Alignment(horizontal='center')
        row = 2
        ws[f'A{row}'] = f"Company: {payload['company_id']}   Period: {payload['period']}   Currency: {CURRENCY_SYMBOL}"

        # Programs
        row = 4
        _header_row(ws, row, ['Program', 'Employee', 'Employer', 'Total'])
        for program, amounts in payload['programs'].items():
            row += 1
            _data_row(ws, row, [PROGRAM_LABELS.get(program, program),
                                amounts['employee'], amounts['employer'], amounts['total']])

        # Departments
        row += 2
        _header_row(ws, row, ['Department', 'Headcount', 'Gross', 'PPh 21', 'Employee share',
                              'Employer share', 'Net'])
        for name, dept in payload['departments'].items():
            row += 1
            _data_row(ws, row, [name, dept['headcount'], dept['gross_income'], dept['income_tax'],
                                dept['employee_total'], dept['employer_total'], dept['net_income']])

        totals = payload['totals']
        row += 1
        _data_row(ws, row, ['TOTAL', totals['headcount'], totals['gross_income'], totals['income_tax'],
                            totals['employee_total'], totals['employer_total'], totals['net_income']],
                  fill=total_fill, bold=True)

        filename = f"monthly_summary_{payload['company_id']}_{payload['period']}.xlsx"
        filepath = self.output_dir / filename
        wb.save(filepath)
        return str(filepath)

    def export_annual_certificate(self, artifact: FilingArtifact) -> str:
        if artifact.artifact_type != ArtifactType.ANNUAL_CERTIFICATE:
            raise ValueError(f"Expected an annual certificate, got {artifact.artifact_type.value}")
        payload = artifact.payload

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = f"1721-A1 {payload['year']}"
        for col, width in zip('ABCDEF', (16, 18, 18, 18, 18, 18)):
            ws.column_dimensions[col].width = width

        row = 1
        ws[f'A{row}'] = f"BUKTI POTONG 1721-A1 - {payload['year']}"
        ws[f'A{row}'].font = header_font
        row = 2
        ws[f'A{row}'] = (f"Company: {payload['company_id']}   Employee: {payload['employee_id']}   "
                          f"Status: {payload['tax_status'] or '-'}")
        row = 3
        ws[f'A{row}'] = f"Masa: {payload['period_start']} - {payload['period_end']}"

        row = 5
        _header_row(ws, row, ['Period', 'Gross', 'PPh 21', 'Employee share', 'Net'])
        for month in payload['monthly']:
            row += 1
            _data_row(ws, row, [month['period'], month['gross_income'], month['income_tax'],
                                month['employee_total'], month['net_income']])

        totals = payload['totals']
        row += 1
        _data_row(ws, row, ['TOTAL', totals['gross_income'], totals['income_tax'],
                            totals['employee_total'], totals['net_income']], fill=total_fill, bold=True)

        row += 2
        _header_row(ws, row, ['Program', 'Employee', 'Employer', 'Total'])
        for program, amounts in payload['programs'].items():
            row += 1
            _data_row(ws, row, [PROGRAM_LABELS.get(program, program),
                                amounts['employee'], amounts['employer'], amounts['total']])

        filename = f"1721A1_{payload['company_id']}_{payload['employee_id']}_{payload['year']}.xlsx"
        filepath = self.output_dir / filename
        wb.save(filepath)
        return str(filepath)

    def export_annual_summary(self, artifact: FilingArtifact) -> str:
        if artifact.artifact_type != ArtifactType.ANNUAL_SUMMARY:
            raise ValueError(f"Expected an annual summary, got {artifact.artifact_type.value}")
        payload = artifact.payload

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = f"1721 {payload['year']}"
        for col, width in zip('ABCDEFG', (16, 14, 18, 18, 18, 18, 18)):
            ws.column_dimensions[col].width = width

        row = 1
        ws.merge_cells(f'A{row}:G{row}')
        ws[f'A{row}'] = f"ANNUAL WITHHOLDING REPORT 1721 - {COMPANY_NAME}"
        ws[f'A{row}'].font = header_font
        ws[f'A{row}'].alignment = Alignment(horizontal='center')
        row = 2
        ws[f'A{row}'] = f"Company: {payload['company_id']}   Year: {payload['year']}   Currency: {CURRENCY_SYMBOL}"

        row = 4
        _header_row(ws, row, ['Period', 'Headcount', 'Gross', 'PPh 21', 'Employee share', 'Employer share', 'Net'])
        for month in payload['monthly']:
            row += 1
            _data_row(ws, row, [month['period'], month['headcount'], month['gross_income'], month['income_tax'],
                                month['employee_total'], month['employer_total'], month['net_income']])

        totals = payload['totals']
        row += 1
        _data_row(ws, row, ['TOTAL', totals['headcount'], totals['gross_income'], totals['income_tax'],
                            totals['employee_total'], totals['employer_total'], totals['net_income']],
                  fill=total_fill, bold=True)

        # Per employee
        row += 2
        _header_row(ws, row, ['Employee', 'Months', 'Gross', 'PPh 21', 'Employee share', 'Employer share', 'Net'])
        for employee in payload['employees']:
            row += 1
            _data_row(ws, row, [employee['employee_id'], len(employee['months']), employee['gross_income'],
                                employee['income_tax'], employee['employee_total'], employee['employer_total'],
                                employee['net_income']])

        row += 2
        _header_row(ws, row, ['Program', 'Employee', 'Employer', 'Total'])
        for program, amounts in payload['programs'].items():
            row += 1
            _data_row(ws, row, [PROGRAM_LABELS.get(program, program),
                                amounts['employee'], amounts['employer'], amounts['total']])

        filename = f"annual_summary_{payload['company_id']}_{payload['year']}.xlsx"
        filepath = self.output_dir / filename
        wb.save(filepath)
        return str(filepath)
