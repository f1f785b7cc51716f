"""
États d'une transaction de paiement côté visiteur.

Un seul état courant, toujours l'une de ces valeurs immuables:

    Init -> IntentRequested -> IntentReady -> ChargeConfirming -> ChargeConfirmed -> Finalizing -> Completed
    Failed(phase, reason) depuis tout état non terminal
    Cancelled depuis Init ou IntentReady uniquement

Le brouillon (remise choisie, montant libre) n'existe que dans Init et IntentRequested:
une fois l'intent créé, seul le TransactionRecord circule, figé.
"""
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Optional

from parc_paiements.errors import PaymentError, Phase
from parc_paiements.remises.calcul import NO_DISCOUNT


@dataclass(frozen=True)
class CheckoutDraft:
    selection: str = NO_DISCOUNT
    custom_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class TransactionRecord:
    """Trace locale d'une tentative; jamais partagée entre transactions."""
    draft: CheckoutDraft
    payment_intent_id: str
    client_secret: str
    quoted_amount: Optional[Decimal] = None
    original_amount: Optional[Decimal] = None
    applied_discount: Optional[str] = None
    charge_reference: Optional[str] = None
    final_amount: Optional[Decimal] = None
    record_id: Optional[str] = None

    def with_charge(self, charge_reference: str) -> "TransactionRecord":
        return replace(self, charge_reference=charge_reference)

    def completed(self, record_id, final_amount: Optional[Decimal]) -> "TransactionRecord":
        return replace(self, record_id=record_id, final_amount=final_amount)


@dataclass(frozen=True)
class Init:
    draft: CheckoutDraft = field(default_factory=CheckoutDraft)


@dataclass(frozen=True)
class IntentRequested:
    draft: CheckoutDraft


@dataclass(frozen=True)
class IntentReady:
    record: TransactionRecord


@dataclass(frozen=True)
class ChargeConfirming:
    record: TransactionRecord


@dataclass(frozen=True)
class ChargeConfirmed:
    record: TransactionRecord


@dataclass(frozen=True)
class Finalizing:
    record: TransactionRecord


@dataclass(frozen=True)
class Completed:
    record: TransactionRecord
    already_finalized: bool = False


@dataclass(frozen=True)
class Failed:
    """
    Échec tagué par phase:
    - intent: rien n'a été débité, reprise depuis Init (draft conservé)
    - charge: rien n'a été débité, reprise depuis IntentReady (même intent)
    - finalize: le paiement a réussi, seule la finalisation est à relancer
    """
    phase: Phase
    reason: str
    error: Optional[PaymentError] = None
    draft: Optional[CheckoutDraft] = None
    record: Optional[TransactionRecord] = None

    @property
    def payment_taken(self) -> bool:
        return self.phase == Phase.FINALIZE


@dataclass(frozen=True)
class Cancelled:
    pass


TERMINAL_STATES = (Completed, Cancelled)
