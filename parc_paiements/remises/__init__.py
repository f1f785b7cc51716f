"""
Module 'remises': catalogue des remises éligibles et calcul du montant final.
Logique pure, partagée par le backend (montant qui fait foi) et le client checkout (indication).
"""

from .catalogue import DiscountOption, DISCOUNT_IDS, eligible_discounts
from .calcul import NO_DISCOUNT, PriceQuote, final_amount, resolve_selection, quote_price

__all__ = [
    # catalogue
    "DiscountOption",
    "DISCOUNT_IDS",
    "eligible_discounts",
    # calcul
    "NO_DISCOUNT",
    "PriceQuote",
    "final_amount",
    "resolve_selection",
    "quote_price",
]
