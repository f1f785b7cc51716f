"""
Types métier partagés: offres payables, configuration de remises, participant.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ItemKind(str, Enum):
    ACTIVITY = "activity"
    EVENT = "event"
    SPACE_RESERVATION = "space_reservation"


class DiscountConfig(BaseModel):
    """
    Pourcentages configurés par l'offre (0 ou absent = non proposé).
    L'early-bird est en plus limité par early_bird_deadline.
    """
    model_config = ConfigDict(populate_by_name=True)

    seniors: Optional[int] = Field(None, ge=0, le=100, alias="discountSeniors")
    students: Optional[int] = Field(None, ge=0, le=100, alias="discountStudents")
    families: Optional[int] = Field(None, ge=0, le=100, alias="discountFamilies")
    disability: Optional[int] = Field(None, ge=0, le=100, alias="discountDisability")
    early_bird: Optional[int] = Field(None, ge=0, le=100, alias="discountEarlyBird")
    early_bird_deadline: Optional[datetime] = Field(None, alias="discountEarlyBirdDeadline")


class PayableItem(BaseModel):
    """Offre payable (activité, événement, réservation d'espace), en lecture seule."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    kind: ItemKind
    title: str = ""
    price: Decimal = Decimal("0")
    is_free: bool = Field(False, alias="isFree")
    is_price_random: bool = Field(False, alias="isPriceRandom")
    max_price: Optional[Decimal] = Field(None, alias="maxPrice")
    discounts: DiscountConfig = Field(default_factory=DiscountConfig)


class ParticipantData(BaseModel):
    """Coordonnées du participant, transmises telles quelles aux deux appels backend."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    full_name: str = Field(..., min_length=2, alias="fullName")
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: Optional[str] = None
    notes: Optional[str] = Field(None, alias="additionalNotes")
