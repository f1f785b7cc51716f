"""
Module 'paiements' (feature-first): point d'entrée public côté backend.
Réunit metadata Stripe, client Stripe, repository BD, cas d'usage et routers HTTP.
"""

from .metadata import make_metadata, intent_metadata, is_bound_to, participant_from_metadata, extract_intent
from .stripe_client import require_stripe, create_payment_intent as stripe_create_intent, retrieve_payment_intent, parse_event
from .repository import (
    get_item_row,
    to_payable_item,
    find_record_by_charge,
    insert_paid_record,
    insert_free_registration,
    DuplicateChargeReference,
)
from .service import (
    create_payment_intent,
    finalize_payment,
    reconcile_from_event,
    register_free,
    payment_status,
    quote_for_item,
    public_config,
)

__all__ = [
    # metadata
    "make_metadata",
    "intent_metadata",
    "is_bound_to",
    "participant_from_metadata",
    "extract_intent",
    # stripe
    "require_stripe",
    "stripe_create_intent",
    "retrieve_payment_intent",
    "parse_event",
    # repository
    "get_item_row",
    "to_payable_item",
    "find_record_by_charge",
    "insert_paid_record",
    "insert_free_registration",
    "DuplicateChargeReference",
    # services
    "create_payment_intent",
    "finalize_payment",
    "reconcile_from_event",
    "register_free",
    "payment_status",
    "quote_for_item",
    "public_config",
]
