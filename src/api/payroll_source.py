from abc import ABC, abstractmethod
from typing import List, Optional
from models.payroll import EarningComponents, PayPeriod
from models.filing import WithholdingPayment


class PayrollSource(ABC):
    """External collaborator that supplies employees, earnings and payments"""

    @abstractmethod
    def get_active_employees(self, company_id: str, period: PayPeriod) -> List[str]:
        """Employee ids active in the company during the period"""

    @abstractmethod
    def get_earning_components(self, company_id: str, employee_id: str,
                               period: PayPeriod) -> Optional[EarningComponents]:
        """Earnings of one employee for the period, or None when missing"""

    def get_withholding_payments(self, company_id: str, period: PayPeriod) -> List[WithholdingPayment]:
        """Non-employment payments made by the company in the period"""
        return []
