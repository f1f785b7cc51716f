"""
Cas d'usage 'paiements': orchestre repository, remises, stripe_client, metadata.

Le backend est la seule autorité sur le montant: il recalcule à partir du prix de base
(ou du montant libre) et de la remise choisie, jamais à partir du total envoyé par le client.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from parc_paiements.config import PAYMENT_CURRENCY, STRIPE_PUBLIC_KEY
from parc_paiements.models.items import ItemKind, ParticipantData, PayableItem
from parc_paiements.remises.catalogue import eligible_discounts
from parc_paiements.remises.calcul import PriceQuote, normalize_selection, quote_price
from parc_paiements.utils.money import from_minor_units, quantize_money, to_decimal, to_minor_units

from . import repository
from . import stripe_client
from . import metadata as meta
from parc_paiements.errors import AlreadyFinalized, ItemNotFound, Phase, ValidationError

logger = logging.getLogger(__name__)

# Tolérance d'arrondi entre montant recalculé et montant débité (en centimes)
AMOUNT_TOLERANCE_CENTS = 1


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _load_item(kind: ItemKind, item_id: str, phase: Phase = Phase.INTENT) -> Tuple[PayableItem, Dict[str, Any]]:
    row = repository.get_item_row(kind, item_id)
    if not row:
        raise ItemNotFound("Offre introuvable", phase=phase)
    return repository.to_payable_item(kind, row), row


def _money(amount: Decimal) -> float:
    return float(quantize_money(amount))


def _discount_payload(quote: PriceQuote) -> Optional[Dict[str, Any]]:
    if quote.discount is None:
        return None
    return {
        "type": quote.discount.id,
        "label": quote.discount.label,
        "percentage": quote.discount.percentage,
        "amount": _money(quote.discount_amount),
    }


def _record_amount(record: Dict[str, Any]) -> Optional[Decimal]:
    return to_decimal(record.get("paid_amount") or record.get("deposit_paid"))


# module parc_paiements.paiements.service
def create_payment_intent(
    *,
    kind: ItemKind,
    item_id: str,
    participant: ParticipantData,
    selection: Optional[str] = None,
    custom_amount: Optional[Decimal] = None,
    base_amount: Optional[Decimal] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Phase 1: crée le PaymentIntent pour le montant recalculé par le backend.
    - Refuse les offres gratuites (chemin d'inscription gratuite) et un total nul (remise 100 %).
    - base_amount (envoyé par le client) n'est qu'indicatif: un écart est seulement journalisé.
    Retour: {clientSecret, paymentIntentId, amount, originalAmount, appliedDiscount, currency}
    """
    item, row = _load_item(kind, item_id)
    if item.is_free:
        raise ValidationError("Cette offre est gratuite, utilisez l'inscription gratuite", phase=Phase.INTENT, code="item_is_free")
    if kind == ItemKind.SPACE_RESERVATION and row.get("stripe_payment_intent_id"):
        raise ValidationError("Cette réservation est déjà payée", phase=Phase.INTENT, code="already_paid")
    if base_amount is not None and quantize_money(base_amount) != quantize_money(item.price):
        logger.warning("paiements.intent base_amount client=%s serveur=%s item=%s:%s", base_amount, item.price, kind.value, item_id)

    quote = quote_price(item, custom_amount, selection, now or _now())
    if quote.fell_back:
        logger.warning("paiements.intent remise %s non éligible, repli sur none item=%s:%s", quote.requested_selection, kind.value, item_id)

    amount_cents = to_minor_units(quote.final_amount)
    if amount_cents <= 0:
        raise ValidationError("Le montant à payer est nul: cette inscription est gratuite", phase=Phase.INTENT, code="zero_amount")

    metadata = meta.make_metadata(
        kind=kind,
        item_id=item.id,
        item_title=item.title,
        participant=participant,
        quote=quote,
        custom_amount=quote.original_amount if item.is_price_random else None,
    )
    intent = stripe_client.create_payment_intent(
        amount_cents=amount_cents,
        currency=PAYMENT_CURRENCY,
        metadata=metadata,
        description=f"Paiement {kind.value}: {item.title}",
        receipt_email=participant.email,
    )
    logger.info("paiements.intent created intent=%s item=%s:%s cents=%s discount=%s",
                intent.get("id"), kind.value, item_id, amount_cents, quote.selection)
    return {
        "clientSecret": intent.get("client_secret"),
        "paymentIntentId": intent.get("id"),
        "amount": _money(quote.final_amount),
        "originalAmount": _money(quote.original_amount),
        "appliedDiscount": _discount_payload(quote),
        "currency": PAYMENT_CURRENCY,
    }


def _log_client_divergence(
    data: Dict[str, str],
    quote: PriceQuote,
    charge_reference: str,
    selection: Optional[str],
    custom_amount: Optional[Decimal],
) -> None:
    """Les valeurs client de la finalisation sont indicatives: un écart avec l'intent est journalisé, jamais stocké."""
    if selection is not None and normalize_selection(selection) != quote.selection:
        logger.warning("paiements.finalize remise client=%s ignorée, remise de l'intent=%s intent=%s",
                       selection, quote.selection, charge_reference)
    stored_custom = meta.custom_amount(data)
    if custom_amount is not None and (stored_custom is None or quantize_money(custom_amount) != quantize_money(stored_custom)):
        logger.warning("paiements.finalize montant libre client=%s ignoré, montant de l'intent=%s intent=%s",
                       custom_amount, stored_custom, charge_reference)


def _already_finalized(kind: ItemKind, charge_reference: str) -> Optional[AlreadyFinalized]:
    record = repository.find_record_by_charge(kind, charge_reference)
    if not record:
        return None
    return AlreadyFinalized(record.get("id"), amount=_record_amount(record))


def finalize_payment(
    *,
    kind: ItemKind,
    item_id: str,
    charge_reference: str,
    participant: ParticipantData,
    selection: Optional[str] = None,
    custom_amount: Optional[Decimal] = None,
    base_amount: Optional[Decimal] = None,
    final_amount: Optional[Decimal] = None,
) -> Dict[str, Any]:
    """
    Phase 3: crée l'inscription (ou confirme la réservation) pour un paiement Stripe réussi.
    Idempotente sur charge_reference (= id du PaymentIntent):
    - Soulève AlreadyFinalized si une inscription existe déjà pour ce paiement.
    - Vérifie statut 'succeeded', devise, offre liée dans les métadonnées.
    - Recalcule le montant depuis le devis figé dans les métadonnées de l'intent
      (prix d'origine, montant libre, remise) et le compare au montant débité.
      Un changement de prix ou de remise après le paiement ne bloque donc pas la finalisation.
    - selection, custom_amount, base_amount et final_amount (client) ne sont jamais stockés:
      un écart est seulement journalisé.
    """
    existing = _already_finalized(kind, charge_reference)
    if existing:
        logger.info("paiements.finalize déjà finalisé intent=%s record=%s", charge_reference, existing.record_id)
        raise existing

    intent = stripe_client.retrieve_payment_intent(charge_reference, phase=Phase.FINALIZE)
    status = intent.get("status") or ""
    if status != "succeeded":
        logger.warning("paiements.finalize statut=%s intent=%s", status, charge_reference)
        raise ValidationError("Le paiement n'est pas confirmé", phase=Phase.FINALIZE, code="payment_not_succeeded")
    if (intent.get("currency") or "").lower() != PAYMENT_CURRENCY:
        logger.warning("paiements.finalize devise=%s intent=%s", intent.get("currency"), charge_reference)
        raise ValidationError("Devise du paiement invalide", phase=Phase.FINALIZE, code="currency_mismatch")
    if not meta.is_bound_to(intent, kind, item_id):
        logger.warning("paiements.finalize intent=%s non lié à %s:%s", charge_reference, kind.value, item_id)
        raise ValidationError("Le paiement ne correspond pas à cette offre", phase=Phase.FINALIZE, code="payment_item_mismatch")

    # L'offre actuelle ne sert qu'à vérifier son existence et à remplir l'inscription
    item, _ = _load_item(kind, item_id, phase=Phase.FINALIZE)
    if base_amount is not None and quantize_money(base_amount) != quantize_money(item.price):
        logger.warning("paiements.finalize base_amount client=%s serveur=%s item=%s:%s", base_amount, item.price, kind.value, item_id)
    data = meta.intent_metadata(intent)
    quote = meta.quote_from_metadata(data)
    if quote is None:
        logger.error("paiements.finalize métadonnées de montant illisibles intent=%s", charge_reference)
        raise ValidationError("Le paiement ne porte pas de montant vérifiable", phase=Phase.FINALIZE, code="payment_metadata_invalid")
    _log_client_divergence(data, quote, charge_reference, selection, custom_amount)

    charged_cents = int(intent.get("amount_received") or intent.get("amount") or 0)
    expected_cents = to_minor_units(quote.final_amount)
    if abs(charged_cents - expected_cents) > AMOUNT_TOLERANCE_CENTS:
        logger.error("paiements.finalize montant débité=%s attendu=%s intent=%s", charged_cents, expected_cents, charge_reference)
        raise ValidationError("Le montant payé ne correspond pas au montant attendu", phase=Phase.FINALIZE, code="amount_mismatch")
    if final_amount is not None and to_minor_units(final_amount) != expected_cents:
        logger.warning("paiements.finalize finalAmount client=%s ignoré, montant serveur=%s intent=%s",
                       final_amount, quote.final_amount, charge_reference)

    paid_amount = quantize_money(quote.final_amount)
    try:
        record = repository.insert_paid_record(
            kind=kind,
            item_id=item.id,
            participant=participant,
            quote=quote,
            charge_reference=charge_reference,
            paid_amount=paid_amount,
        )
    except repository.DuplicateChargeReference:
        existing = _already_finalized(kind, charge_reference)
        if existing:
            raise existing
        # La réservation porte déjà un autre paiement: à régler manuellement
        logger.error("paiements.finalize réservation %s déjà payée, intent orphelin=%s", item_id, charge_reference)
        raise ValidationError("Cette réservation est déjà payée, contactez le support", phase=Phase.FINALIZE, code="already_paid")

    logger.info("paiements.finalize ok intent=%s record=%s amount=%s", charge_reference, record.get("id"), paid_amount)
    return {
        "recordId": record.get("id"),
        "paymentIntentId": charge_reference,
        "amount": _money(paid_amount),
        "originalAmount": _money(quote.original_amount),
        "appliedDiscount": _discount_payload(quote),
        "status": "confirmed",
        "record": record,
    }


def reconcile_from_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Webhook Stripe: récupère les paiements orphelins (navigateur fermé avant la phase 3).
    - payment_intent.succeeded: finalisation idempotente à partir des métadonnées de l'intent
    - payment_intent.payment_failed: journalisé uniquement
    Retour: {"status": "ok"|"ignored"|"logged", ...}
    """
    event_type = (event or {}).get("type")
    intent = meta.extract_intent(event)
    intent_id = intent.get("id")

    if event_type == "payment_intent.payment_failed":
        logger.warning("paiements.webhook paiement échoué intent=%s", intent_id)
        return {"status": "logged"}
    if event_type != "payment_intent.succeeded":
        return {"status": "ignored"}

    data = meta.intent_metadata(intent)
    try:
        kind = ItemKind(data.get("item_kind"))
    except ValueError:
        logger.info("paiements.webhook intent=%s sans offre liée", intent_id)
        return {"status": "ignored"}
    participant = meta.participant_from_metadata(data)
    if participant is None or not intent_id or not data.get("item_id"):
        logger.warning("paiements.webhook métadonnées incomplètes intent=%s", intent_id)
        return {"status": "ignored"}

    try:
        result = finalize_payment(
            kind=kind,
            item_id=data["item_id"],
            charge_reference=intent_id,
            participant=participant,
            selection=meta.discount_selection(data),
            custom_amount=meta.custom_amount(data),
        )
    except AlreadyFinalized as e:
        return {"status": "ok", "created": False, "recordId": e.record_id}
    logger.info("paiements.webhook paiement orphelin récupéré intent=%s record=%s", intent_id, result.get("recordId"))
    return {"status": "ok", "created": True, "recordId": result.get("recordId")}


def register_free(*, kind: ItemKind, item_id: str, participant: ParticipantData) -> Dict[str, Any]:
    """
    Inscription gratuite: aucun intent, aucune passerelle, aucune référence de paiement.
    - Soulève ValidationError si l'offre est payante.
    """
    item, _ = _load_item(kind, item_id)
    if kind == ItemKind.SPACE_RESERVATION or not item.is_free:
        raise ValidationError("Cette offre est payante", phase=Phase.INTENT, code="item_not_free")
    record = repository.insert_free_registration(kind=kind, item_id=item.id, participant=participant)
    logger.info("paiements.free ok item=%s:%s record=%s", kind.value, item_id, record.get("id"))
    return {"recordId": record.get("id"), "amount": 0.0, "status": "confirmed", "record": record}


def payment_status(*, kind: ItemKind, item_id: str, payment_intent_id: str) -> Dict[str, Any]:
    """État d'un paiement côté Stripe et côté inscriptions (réconciliation)."""
    intent = stripe_client.retrieve_payment_intent(payment_intent_id, phase=Phase.FINALIZE)
    if not meta.is_bound_to(intent, kind, item_id):
        raise ValidationError("Le paiement ne correspond pas à cette offre", phase=Phase.FINALIZE, code="payment_item_mismatch")
    record = repository.find_record_by_charge(kind, payment_intent_id)
    return {
        "paymentIntentId": payment_intent_id,
        "status": intent.get("status"),
        "amount": _money(from_minor_units(intent.get("amount") or 0)),
        "currency": intent.get("currency"),
        "finalized": bool(record),
        "recordId": record.get("id") if record else None,
    }


def quote_for_item(
    *,
    kind: ItemKind,
    item_id: str,
    selection: Optional[str] = None,
    custom_amount: Optional[Decimal] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Remises éligibles + devis indicatif pour une offre.
    - Prix libre sans montant saisi: devis calculé sur le prix de base.
    """
    item, _ = _load_item(kind, item_id)
    now = now or _now()
    if item.is_price_random and custom_amount is None:
        custom_amount = item.price
    quote = quote_price(item, custom_amount, selection, now)
    return {
        "itemId": item.id,
        "isFree": item.is_free,
        "isPriceRandom": item.is_price_random,
        "eligibleDiscounts": [option.model_dump() for option in eligible_discounts(item.discounts, now)],
        "selectedDiscount": quote.selection,
        "originalAmount": _money(quote.original_amount),
        "finalAmount": _money(quote.final_amount),
        "appliedDiscount": _discount_payload(quote),
        "currency": PAYMENT_CURRENCY,
    }


def public_config() -> Dict[str, Any]:
    return {"publishableKey": STRIPE_PUBLIC_KEY, "currency": PAYMENT_CURRENCY}
