import re
from typing import Optional

def validate_npwp(tax_id: Optional[str]) -> bool:
    """Validate Indonesian tax id (NPWP) format, 15 or 16 digits"""
    if not tax_id:
        return False
    digits = re.sub(r'[.\-\s]', '', tax_id)
    return digits.isdigit() and len(digits) in (15, 16)

def validate_period(value: str) -> bool:
    """Validate YYYY-MM pay period format"""
    return bool(re.match(r'^\d{4}-(0[1-9]|1[0-2])$', value))
