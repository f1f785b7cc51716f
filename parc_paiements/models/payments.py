"""
Corps de requêtes HTTP du pipeline (create-payment-intent / finalisation).

Deux formes de participant coexistent, comme dans les formulaires d'origine:
- activités et événements: "customerData" {fullName, email, phone, additionalNotes}
- réservations d'espace: "contactData" {contactName, contactEmail, contactPhone, notes}
"""
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .items import ParticipantData


class SpaceContactData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    contact_name: str = Field(..., min_length=2, alias="contactName")
    contact_email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", alias="contactEmail")
    contact_phone: Optional[str] = Field(None, alias="contactPhone")
    notes: Optional[str] = None

    def to_participant(self) -> ParticipantData:
        return ParticipantData(
            full_name=self.contact_name,
            email=self.contact_email,
            phone=self.contact_phone,
            notes=self.notes,
        )


class _AmountsMixin(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    base_amount: Optional[Decimal] = Field(None, alias="baseAmount")
    selected_discount: Optional[str] = Field(None, alias="selectedDiscount")
    custom_amount: Optional[Decimal] = Field(None, alias="customAmount")


class IntentRequest(_AmountsMixin):
    customer_data: ParticipantData = Field(..., alias="customerData")

    @property
    def participant(self) -> ParticipantData:
        return self.customer_data


class SpaceIntentRequest(_AmountsMixin):
    contact_data: SpaceContactData = Field(..., alias="contactData")

    @property
    def participant(self) -> ParticipantData:
        return self.contact_data.to_participant()


class FinalizeRequest(_AmountsMixin):
    payment_intent_id: str = Field(..., min_length=3, alias="paymentIntentId")
    final_amount: Optional[Decimal] = Field(None, alias="finalAmount")
    customer_data: ParticipantData = Field(..., alias="customerData")

    @property
    def participant(self) -> ParticipantData:
        return self.customer_data


class SpaceFinalizeRequest(_AmountsMixin):
    payment_intent_id: str = Field(..., min_length=3, alias="paymentIntentId")
    final_amount: Optional[Decimal] = Field(None, alias="finalAmount")
    contact_data: SpaceContactData = Field(..., alias="contactData")

    @property
    def participant(self) -> ParticipantData:
        return self.contact_data.to_participant()


class FreeRegistrationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_data: ParticipantData = Field(..., alias="customerData")
