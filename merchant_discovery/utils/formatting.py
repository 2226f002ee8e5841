"""Brazilian locale formatting used in reasoning prompts"""

from datetime import date


def format_currency(value: float) -> str:
    """Format as Brazilian Real: 1234.5 -> "R$ 1.234,50", -20 -> "-R$ 20,00" """
    formatted = f"{abs(value):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    sign = "-" if value < 0 else ""
    return f"{sign}R$ {formatted}"


def format_date(value: date) -> str:
    """Format as dd/mm/yyyy"""
    return value.strftime("%d/%m/%Y")
