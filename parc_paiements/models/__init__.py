# Façade des types partagés (métier + corps HTTP).
from .items import ItemKind, DiscountConfig, PayableItem, ParticipantData
from .payments import (
    SpaceContactData,
    IntentRequest,
    SpaceIntentRequest,
    FinalizeRequest,
    SpaceFinalizeRequest,
    FreeRegistrationRequest,
)

__all__ = [
    # Métier
    "ItemKind",
    "DiscountConfig",
    "PayableItem",
    "ParticipantData",
    # HTTP
    "SpaceContactData",
    "IntentRequest",
    "SpaceIntentRequest",
    "FinalizeRequest",
    "SpaceFinalizeRequest",
    "FreeRegistrationRequest",
]
