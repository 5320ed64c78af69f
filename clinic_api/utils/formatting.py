"""Brazilian display formatting for currency and percentages."""


def format_currency(value: float | int | None) -> str:
    """Format as Brazilian Real: 1234.5 → ``R$ 1.234,50``."""
    amount = float(value or 0)
    sign = "-" if amount < 0 else ""
    formatted = f"{abs(amount):,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"{sign}R$ {formatted}"


def format_percentage(value: float | int | None, decimals: int = 0) -> str:
    """Format as a Brazilian percentage: 12.5 → ``12,5%``."""
    number = float(value or 0)
    return f"{number:.{decimals}f}".replace(".", ",") + "%"


def format_growth(value: float | int) -> str:
    """Signed whole-number growth: 100 → ``+100%``, -50 → ``-50%``."""
    rounded = round(value)
    sign = "+" if rounded >= 0 else ""
    return f"{sign}{rounded}%"
