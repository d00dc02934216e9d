CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "SGD": "S$",
    "AED": "د.إ",
    "MYR": "RM",
}

def currency_symbol(currency: str) -> str:
    """Symbol for a currency code, or the code itself when unknown."""
    return CURRENCY_SYMBOLS.get((currency or "").upper(), currency)

def format_price(amount: float, currency: str) -> str:
    """Format whole currency units for display: 2999 -> "$2,999", 29.5 -> "$29.50"."""
    if amount % 1 == 0:
        formatted = f"{int(amount):,}"
    else:
        formatted = f"{amount:,.2f}"
    return f"{currency_symbol(currency)}{formatted}"

def to_minor_units(amount: float) -> int:
    """Whole units to the gateway's smallest unit (cents/paise)."""
    return int(round(amount * 100))
