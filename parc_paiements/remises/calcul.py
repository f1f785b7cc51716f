"""
Calcul du montant final (remise unique, montant libre "pay-what-you-wish").

Une seule fonction dérivée (quote_price) sert au client pour l'indication affichée
et au backend pour le montant qui fait foi.
"""
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict

from parc_paiements.models.items import PayableItem
from parc_paiements.errors import Phase, ValidationError
from parc_paiements.utils.money import quantize_money, to_decimal
from .catalogue import DISCOUNT_IDS, DiscountOption, eligible_discounts

NO_DISCOUNT = "none"


class PriceQuote(BaseModel):
    model_config = ConfigDict(frozen=True)

    original_amount: Decimal
    final_amount: Decimal
    discount: Optional[DiscountOption] = None
    requested_selection: str = NO_DISCOUNT

    @property
    def selection(self) -> str:
        return self.discount.id if self.discount else NO_DISCOUNT

    @property
    def discount_amount(self) -> Decimal:
        return self.original_amount - self.final_amount

    @property
    def fell_back(self) -> bool:
        """Vrai si la remise demandée n'est plus éligible et a été remplacée par "none"."""
        return self.requested_selection != NO_DISCOUNT and self.discount is None

    @property
    def is_free(self) -> bool:
        return self.final_amount <= 0


def normalize_selection(selection: Optional[str]) -> str:
    value = (selection or "").strip()
    return value or NO_DISCOUNT


def _find(selection: str, eligible: Iterable[DiscountOption]) -> Optional[DiscountOption]:
    for option in eligible or []:
        if option.id == selection:
            return option
    return None


def resolve_selection(selection: Optional[str], eligible: Iterable[DiscountOption]) -> str:
    """Retourne la sélection si elle fait partie des remises éligibles, sinon "none"."""
    selection = normalize_selection(selection)
    return selection if _find(selection, eligible) else NO_DISCOUNT


# module parc_paiements.remises.calcul
def final_amount(amount: Decimal, selection: Optional[str], eligible: Iterable[DiscountOption]) -> Decimal:
    """
    amount × (1 − p/100) pour la remise sélectionnée.
    - "none" ou une sélection absente des remises éligibles: montant inchangé.
    - p = 100 donne 0: à traiter comme gratuit par l'appelant, jamais envoyé à la passerelle.
    """
    option = _find(normalize_selection(selection), eligible)
    if option is None:
        return amount
    return amount * (Decimal(1) - Decimal(option.percentage) / Decimal(100))


def payable_base(item: PayableItem, custom_amount, phase: Phase = Phase.INTENT) -> Decimal:
    """
    Montant avant remise: prix de base, ou montant libre saisi pour les offres isPriceRandom.
    Le montant libre est obligatoire et doit être >= prix de base (et <= max_price si configuré).
    """
    if not item.is_price_random:
        return item.price
    custom = to_decimal(custom_amount)
    if custom is None:
        raise ValidationError("Veuillez indiquer le montant que vous souhaitez payer", phase=phase, code="custom_amount_required")
    if custom < item.price:
        raise ValidationError(
            f"Le montant doit être d'au moins {quantize_money(item.price)}",
            phase=phase,
            code="custom_amount_below_minimum",
        )
    if item.max_price is not None and custom > item.max_price:
        raise ValidationError(
            f"Le montant ne peut pas dépasser {quantize_money(item.max_price)}",
            phase=phase,
            code="custom_amount_above_maximum",
        )
    return custom


def quote_price(item: PayableItem, custom_amount, selection: Optional[str], now: datetime, phase: Phase = Phase.INTENT) -> PriceQuote:
    """
    Devis complet pour une offre à l'instant `now`.
    - Une remise inconnue est refusée (ValidationError).
    - Une remise connue mais plus éligible (ex: early-bird expirée) retombe silencieusement sur "none".
    """
    requested = normalize_selection(selection)
    if requested != NO_DISCOUNT and requested not in DISCOUNT_IDS:
        raise ValidationError("Remise non valide", phase=phase, code="unknown_discount")

    original = payable_base(item, custom_amount, phase=phase)
    eligible = eligible_discounts(item.discounts, now)
    resolved = resolve_selection(requested, eligible)
    return PriceQuote(
        original_amount=original,
        final_amount=final_amount(original, resolved, eligible),
        discount=_find(resolved, eligible),
        requested_selection=requested,
    )
