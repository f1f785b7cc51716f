"""
Module 'checkout': client du pipeline de paiement (rôle du formulaire navigateur).
Coordinateur d'état, adaptateurs par type d'offre, client HTTP backend, confirmation carte Stripe.
"""

from .state import (
    CheckoutDraft,
    TransactionRecord,
    Init,
    IntentRequested,
    IntentReady,
    ChargeConfirming,
    ChargeConfirmed,
    Finalizing,
    Completed,
    Failed,
    Cancelled,
)
from .adapters import ItemAdapter, ActivityAdapter, EventAdapter, SpaceReservationAdapter, get_adapter
from .backend_client import BackendClient
from .gateway import CardInput, StripeCardGateway
from .coordinator import TransactionCoordinator

__all__ = [
    # state
    "CheckoutDraft",
    "TransactionRecord",
    "Init",
    "IntentRequested",
    "IntentReady",
    "ChargeConfirming",
    "ChargeConfirmed",
    "Finalizing",
    "Completed",
    "Failed",
    "Cancelled",
    # adapters
    "ItemAdapter",
    "ActivityAdapter",
    "EventAdapter",
    "SpaceReservationAdapter",
    "get_adapter",
    # transport
    "BackendClient",
    "CardInput",
    "StripeCardGateway",
    # coordinator
    "TransactionCoordinator",
]
