from dataclasses import dataclass
from typing import Optional

@dataclass
class Employee:
    """Employee directory entry"""
    employee_id: str
    name: str
    company_id: str
    department: str = ""
    tax_id: Optional[str] = None
    tax_status: str = "TK/0"

    def __str__(self):
        return f"Employee({self.employee_id}, {self.name})"
