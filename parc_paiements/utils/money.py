from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")


def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Convertit str|int|float|Decimal en Decimal.
    - Retourne None si la valeur est vide, illisible ou non finie ("NaN", "Infinity").
    - Les float passent par str() pour éviter les artefacts binaires (0.1 -> 0.1000000000000000055...).
    """
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        parsed = value
    else:
        try:
            parsed = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    return parsed if parsed.is_finite() else None


def quantize_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Montant en centimes pour la passerelle (arrondi au centime le plus proche)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value: int) -> Decimal:
    return quantize_money(Decimal(int(value)) / 100)
