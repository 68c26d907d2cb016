from decimal import Decimal
from typing import Union

def format_currency(amount: Union[int, Decimal], symbol: str = "Rp") -> str:
    """Format a minor-unit amount the Indonesian way (Rp 1.234.567)"""
    formatted = f"{int(amount):,}".replace(",", ".")
    return f"{symbol} {formatted}"
