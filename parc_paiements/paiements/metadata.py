"""
Sérialisation/désérialisation des métadonnées Stripe d'un PaymentIntent.

Le PaymentIntent porte tout ce qu'il faut pour finaliser sans le navigateur:
offre liée, participant, montant saisi, remise appliquée (audit anti-manipulation).
Stripe n'accepte que des chaînes (500 caractères max par valeur).
"""
from decimal import Decimal
from typing import Any, Dict, Optional

from parc_paiements.models.items import ItemKind, ParticipantData
from parc_paiements.remises.calcul import NO_DISCOUNT, PriceQuote, final_amount
from parc_paiements.remises.catalogue import DiscountOption
from parc_paiements.utils.money import quantize_money, to_decimal

_MAX_VALUE_LEN = 500


def _s(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        value = quantize_money(value)
    return str(value)[:_MAX_VALUE_LEN]


# module parc_paiements.paiements.metadata
def make_metadata(
    *,
    kind: ItemKind,
    item_id: str,
    item_title: str,
    participant: ParticipantData,
    quote: PriceQuote,
    custom_amount: Optional[Decimal] = None,
) -> Dict[str, str]:
    """
    Construit les métadonnées du PaymentIntent.
    - item_kind/item_id: liaison vérifiée à la finalisation
    - customer_*: permet au webhook de créer l'inscription si le navigateur a disparu
    - discount_type/discount_percentage/original_price/final_price/discount_amount: audit
    """
    discount = quote.discount
    return {
        "item_kind": kind.value,
        "item_id": str(item_id),
        "item_title": _s(item_title),
        "customer_name": _s(participant.full_name),
        "customer_email": _s(participant.email),
        "customer_phone": _s(participant.phone),
        "customer_notes": _s(participant.notes),
        "custom_amount": _s(custom_amount),
        "discount_type": discount.id if discount else NO_DISCOUNT,
        "discount_label": _s(discount.label if discount else ""),
        "discount_percentage": str(discount.percentage if discount else 0),
        "original_price": _s(quote.original_amount),
        "final_price": _s(quote.final_amount),
        "discount_amount": _s(quote.discount_amount),
    }


def intent_metadata(intent: Dict[str, Any]) -> Dict[str, str]:
    meta = (intent or {}).get("metadata") if isinstance(intent, dict) else None
    return dict(meta or {})


def is_bound_to(intent: Dict[str, Any], kind: ItemKind, item_id: str) -> bool:
    """Vrai si le PaymentIntent a bien été créé pour cette offre (type + id)."""
    meta = intent_metadata(intent)
    return meta.get("item_kind") == kind.value and meta.get("item_id") == str(item_id)


def discount_selection(meta: Dict[str, str]) -> str:
    return meta.get("discount_type") or NO_DISCOUNT


def custom_amount(meta: Dict[str, str]) -> Optional[Decimal]:
    return to_decimal(meta.get("custom_amount"))


def quote_from_metadata(meta: Dict[str, str]) -> Optional[PriceQuote]:
    """
    Devis figé à la création de l'intent: montant avant remise (prix de base ou montant libre)
    et remise appliquée. La finalisation s'appuie dessus, jamais sur l'offre actuelle.
    - Retourne None si le montant d'origine ou le pourcentage est absent ou illisible.
    """
    original = to_decimal(meta.get("original_price"))
    if original is None or original <= 0:
        return None
    selection = discount_selection(meta)
    if selection == NO_DISCOUNT:
        return PriceQuote(original_amount=original, final_amount=original)
    try:
        percentage = int(meta.get("discount_percentage") or "")
    except ValueError:
        return None
    if not 0 < percentage <= 100:
        return None
    option = DiscountOption(
        id=selection,
        label=meta.get("discount_label") or selection,
        percentage=percentage,
        description="",
    )
    return PriceQuote(
        original_amount=original,
        final_amount=final_amount(original, selection, [option]),
        discount=option,
        requested_selection=selection,
    )


def participant_from_metadata(meta: Dict[str, str]) -> Optional[ParticipantData]:
    """
    Reconstitue le participant depuis les métadonnées (webhook de réconciliation).
    - Retourne None si nom ou email manquent.
    """
    name = (meta.get("customer_name") or "").strip()
    email = (meta.get("customer_email") or "").strip()
    if not name or not email:
        return None
    return ParticipantData(
        full_name=name,
        email=email,
        phone=meta.get("customer_phone") or None,
        notes=meta.get("customer_notes") or None,
    )


def extract_intent(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Extrait le PaymentIntent d'un event Stripe (webhook).
    - Attend event.data.object
    - Tolérant: retourne {} si la structure est inattendue.
    """
    if not isinstance(event, dict):
        return {}
    data_obj = (event.get("data") or {}).get("object") or {}
    return data_obj if isinstance(data_obj, dict) else {}
