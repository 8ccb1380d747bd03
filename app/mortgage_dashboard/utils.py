from __future__ import annotations


def format_currency(amount: int | float | None, symbol: str = "S$") -> str:
    """SGD display with thousands separators and no cents unless present, e.g. S$500,000."""
    if amount is None:
        return "-"
    amount = float(amount)
    sign = "-" if amount < 0 else ""
    amount = abs(amount)
    if amount.is_integer():
        return f"{sign}{symbol}{int(amount):,}"
    return f"{sign}{symbol}{amount:,.2f}".rstrip("0")
