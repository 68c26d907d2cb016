from typing import Dict, List, Optional, Tuple
from models.employee import Employee
from models.filing import WithholdingPayment
from models.payroll import EarningComponents, PayPeriod
from .payroll_source import PayrollSource


class MockPayrollSource(PayrollSource):
    """In-memory payroll source for demos and tests.

    Earnings can be set per period; employees without explicit earnings get
    their standing monthly earnings. A missing entry yields None.
    """

    # Sample employee data
    MOCK_EMPLOYEES = [
        Employee("EMP-001", "Budi Santoso", "PT-TM", department="Engineering", tax_id="12.345.678.9-012.000", tax_status="K/1"),
        Employee("EMP-002", "Siti Rahayu", "PT-TM", department="Finance", tax_id="23.456.789.0-123.000", tax_status="TK/0"),
        Employee("EMP-003", "Agus Wijaya", "PT-TM", department="Engineering", tax_id=None, tax_status="K/2"),
    ]

    MOCK_EARNINGS = {
        "EMP-001": EarningComponents(basic_salary=15000000, allowances=2500000, overtime_pay=750000,
                                     department="Engineering", tax_status="K/1"),
        "EMP-002": EarningComponents(basic_salary=9000000, allowances=1000000, other_deductions=250000,
                                     department="Finance", tax_status="TK/0"),
        "EMP-003": EarningComponents(basic_salary=7500000, allowances=500000, bonus=1000000,
                                     department="Engineering", tax_status="K/2"),
    }

    MOCK_PAYMENTS = [
        WithholdingPayment("VND-010", "CV Konsultan Teknik", "technical_service", 25000000,
                           tax_id="01.234.567.8-901.000", reference="INV-2025-0101"),
        WithholdingPayment("VND-020", "Ibu Dewi (sewa alat)", "rental", 4000000, reference="SEWA-07"),
        WithholdingPayment("VND-010", "CV Konsultan Teknik", "technical_service", 5000000,
                           tax_id="01.234.567.8-901.000", reference="INV-2025-0102"),
        WithholdingPayment("VND-900", "Global Licensing Ltd", "foreign_payee", 60000000, reference="ROY-Q1"),
    ]

    def __init__(self, employees: Optional[List[Employee]] = None,
                 earnings: Optional[Dict[str, EarningComponents]] = None,
                 payments: Optional[List[WithholdingPayment]] = None):
        self.employees = list(self.MOCK_EMPLOYEES if employees is None else employees)
        self.standing_earnings = dict(self.MOCK_EARNINGS if earnings is None else earnings)
        self.payments = list(self.MOCK_PAYMENTS if payments is None else payments)
        self._period_earnings: Dict[Tuple[str, str], Optional[EarningComponents]] = {}
        self._period_payments: Dict[Tuple[str, str], List[WithholdingPayment]] = {}

    def set_earnings(self, employee_id: str, period: PayPeriod, earnings: Optional[EarningComponents]):
        self._period_earnings[(employee_id, str(period))] = earnings

    def set_payments(self, company_id: str, period: PayPeriod, payments: List[WithholdingPayment]):
        self._period_payments[(company_id, str(period))] = list(payments)

    def get_active_employees(self, company_id: str, period: PayPeriod) -> List[str]:
        return [e.employee_id for e in self.employees if e.company_id == company_id]

    def get_earning_components(self, company_id: str, employee_id: str,
                               period: PayPeriod) -> Optional[EarningComponents]:
        key = (employee_id, str(period))
        if key in self._period_earnings:
            return self._period_earnings[key]
        return self.standing_earnings.get(employee_id)

    def get_withholding_payments(self, company_id: str, period: PayPeriod) -> List[WithholdingPayment]:
        key = (company_id, str(period))
        if key in self._period_payments:
            return list(self._period_payments[key])
        if any(e.company_id == company_id for e in self.employees):
            return list(self.payments)
        return []
