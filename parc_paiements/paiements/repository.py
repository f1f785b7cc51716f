"""
Accès aux données pour la feature 'paiements' (Supabase).

Tables lues: activities, events, space_reservations.
Tables écrites: activity_registrations, event_registrations (insert),
space_reservations (mise à jour de la réservation payée).
L'unicité de stripe_payment_intent_id (contrainte BD) garantit une seule inscription par paiement.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from postgrest.exceptions import APIError

# Importer le module (et non les fonctions) pour que les tests puissent patcher les clients
import parc_paiements.infra.supabase_client as supabase_client
from parc_paiements.models.items import DiscountConfig, ItemKind, ParticipantData, PayableItem
from parc_paiements.remises.calcul import PriceQuote
from parc_paiements.utils.money import quantize_money, to_decimal
from parc_paiements.errors import Phase, UpstreamError

logger = logging.getLogger(__name__)

ITEM_TABLES = {
    ItemKind.ACTIVITY: "activities",
    ItemKind.EVENT: "events",
    ItemKind.SPACE_RESERVATION: "space_reservations",
}

REGISTRATION_TABLES = {
    ItemKind.ACTIVITY: ("activity_registrations", "activity_id"),
    ItemKind.EVENT: ("event_registrations", "event_id"),
}

UNIQUE_VIOLATION = "23505"


class DuplicateChargeReference(Exception):
    """Une inscription existe déjà pour ce paiement (contrainte d'unicité ou réservation déjà payée)."""


def _first(res) -> Optional[Dict[str, Any]]:
    rows = getattr(res, "data", None) or []
    if isinstance(rows, list):
        return rows[0] if rows else None
    return rows or None


# module parc_paiements.paiements.repository
def get_item_row(kind: ItemKind, item_id: str) -> Optional[Dict[str, Any]]:
    """
    Lit la ligne brute de l'offre (activité, événement ou réservation d'espace).
    - Retourne None si absente.
    - Soulève UpstreamError si Supabase est injoignable.
    """
    try:
        res = (
            supabase_client.get_catalog_client()
            .table(ITEM_TABLES[kind])
            .select("*")
            .eq("id", str(item_id))
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("paiements.repository.get_item_row failed kind=%s id=%s", kind.value, item_id)
        raise UpstreamError("Impossible de charger l'offre, veuillez réessayer", phase=Phase.INTENT)


def to_payable_item(kind: ItemKind, row: Dict[str, Any]) -> PayableItem:
    """
    Normalise une ligne Supabase en PayableItem.
    - Réservation d'espace: le montant est total_cost, jamais gratuite ni à prix libre.
    """
    if kind == ItemKind.SPACE_RESERVATION:
        price = to_decimal(row.get("total_cost")) or Decimal("0")
        title = row.get("title") or row.get("space_name") or f"Réservation {row.get('id')}"
        is_free = False
        is_price_random = False
    else:
        price = to_decimal(row.get("price")) or Decimal("0")
        title = row.get("title") or ""
        is_free = bool(row.get("is_free"))
        is_price_random = bool(row.get("is_price_random"))

    return PayableItem(
        id=str(row.get("id")),
        kind=kind,
        title=title,
        price=price,
        is_free=is_free,
        is_price_random=is_price_random,
        max_price=to_decimal(row.get("max_price")),
        discounts=DiscountConfig(
            seniors=row.get("discount_seniors"),
            students=row.get("discount_students"),
            families=row.get("discount_families"),
            disability=row.get("discount_disability"),
            early_bird=row.get("discount_early_bird"),
            early_bird_deadline=row.get("discount_early_bird_deadline"),
        ),
    )


def find_record_by_charge(kind: ItemKind, charge_reference: str) -> Optional[Dict[str, Any]]:
    """
    Recherche l'inscription/réservation déjà créée pour ce paiement (clé d'idempotence).
    - Soulève UpstreamError si Supabase est injoignable.
    """
    table = REGISTRATION_TABLES[kind][0] if kind in REGISTRATION_TABLES else ITEM_TABLES[kind]
    try:
        res = (
            supabase_client.get_registrations_client()
            .table(table)
            .select("*")
            .eq("stripe_payment_intent_id", charge_reference)
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("paiements.repository.find_record_by_charge failed kind=%s intent=%s", kind.value, charge_reference)
        raise UpstreamError("Impossible de vérifier le paiement, veuillez réessayer", phase=Phase.FINALIZE)


def _audit_fields(quote: PriceQuote) -> Dict[str, Any]:
    discount = quote.discount
    return {
        "applied_discount_type": discount.id if discount else None,
        "applied_discount_percentage": discount.percentage if discount else 0,
        "original_amount": str(quantize_money(quote.original_amount)),
        "discount_amount": str(quantize_money(quote.discount_amount)),
    }


def insert_paid_record(
    *,
    kind: ItemKind,
    item_id: str,
    participant: ParticipantData,
    quote: PriceQuote,
    charge_reference: str,
    paid_amount: Decimal,
) -> Dict[str, Any]:
    """
    Crée l'inscription payée (activité/événement) ou confirme la réservation d'espace.
    - Soulève DuplicateChargeReference si le paiement est déjà rattaché à une inscription.
    - Soulève UpstreamError pour toute autre erreur Supabase.
    """
    if kind == ItemKind.SPACE_RESERVATION:
        return _confirm_space_reservation(item_id=item_id, participant=participant, quote=quote,
                                          charge_reference=charge_reference, paid_amount=paid_amount)

    table, fk = REGISTRATION_TABLES[kind]
    row = {
        fk: str(item_id),
        "participant_name": participant.full_name,
        "participant_email": participant.email,
        "participant_phone": participant.phone,
        "additional_notes": participant.notes,
        "status": "confirmed",
        "payment_status": "paid",
        "stripe_payment_intent_id": charge_reference,
        "paid_amount": str(quantize_money(paid_amount)),
    }
    row.update(_audit_fields(quote))
    try:
        res = supabase_client.get_registrations_client().table(table).insert(row).execute()
    except APIError as e:
        if getattr(e, "code", None) == UNIQUE_VIOLATION:
            raise DuplicateChargeReference(charge_reference)
        logger.exception("paiements.repository.insert_paid_record failed kind=%s id=%s", kind.value, item_id)
        raise UpstreamError("Impossible d'enregistrer l'inscription, veuillez réessayer", phase=Phase.FINALIZE)
    except Exception:
        logger.exception("paiements.repository.insert_paid_record failed kind=%s id=%s", kind.value, item_id)
        raise UpstreamError("Impossible d'enregistrer l'inscription, veuillez réessayer", phase=Phase.FINALIZE)
    return _first(res) or row


def _confirm_space_reservation(
    *,
    item_id: str,
    participant: ParticipantData,
    quote: PriceQuote,
    charge_reference: str,
    paid_amount: Decimal,
) -> Dict[str, Any]:
    # Ne met à jour que si la réservation n'est pas déjà rattachée à un paiement
    changes = {
        "status": "confirmed",
        "deposit_paid": str(quantize_money(paid_amount)),
        "stripe_payment_intent_id": charge_reference,
        "contact_name": participant.full_name,
        "contact_email": participant.email,
        "contact_phone": participant.phone,
    }
    changes.update(_audit_fields(quote))
    try:
        res = (
            supabase_client.get_registrations_client()
            .table(ITEM_TABLES[ItemKind.SPACE_RESERVATION])
            .update(changes)
            .eq("id", str(item_id))
            .is_("stripe_payment_intent_id", "null")
            .execute()
        )
    except APIError as e:
        if getattr(e, "code", None) == UNIQUE_VIOLATION:
            raise DuplicateChargeReference(charge_reference)
        logger.exception("paiements.repository._confirm_space_reservation failed id=%s", item_id)
        raise UpstreamError("Impossible de confirmer la réservation, veuillez réessayer", phase=Phase.FINALIZE)
    except Exception:
        logger.exception("paiements.repository._confirm_space_reservation failed id=%s", item_id)
        raise UpstreamError("Impossible de confirmer la réservation, veuillez réessayer", phase=Phase.FINALIZE)

    row = _first(res)
    if row is None:
        raise DuplicateChargeReference(charge_reference)
    return row


def insert_free_registration(*, kind: ItemKind, item_id: str, participant: ParticipantData) -> Dict[str, Any]:
    """
    Inscription gratuite (aucun paiement, aucune référence Stripe).
    - Soulève UpstreamError en cas d'échec Supabase.
    """
    table, fk = REGISTRATION_TABLES[kind]
    row = {
        fk: str(item_id),
        "participant_name": participant.full_name,
        "participant_email": participant.email,
        "participant_phone": participant.phone,
        "additional_notes": participant.notes,
        "status": "confirmed",
        "payment_status": "free",
        "paid_amount": "0.00",
    }
    try:
        res = supabase_client.get_registrations_client().table(table).insert(row).execute()
    except Exception:
        logger.exception("paiements.repository.insert_free_registration failed kind=%s id=%s", kind.value, item_id)
        raise UpstreamError("Impossible d'enregistrer l'inscription, veuillez réessayer")
    return _first(res) or row
