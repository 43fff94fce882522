from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
UNIT = Decimal("1")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value) -> Decimal:
    """Arrondi au centime, demi vers le haut (convention du registre comptable externe)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round_units(value) -> Decimal:
    """Arrondi à l'unité entière, demi vers le haut."""
    return to_decimal(value).quantize(UNIT, rounding=ROUND_HALF_UP)
