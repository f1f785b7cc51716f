"""
Taxonomie des erreurs du pipeline de paiement (partagée backend / client checkout).

- Chaque erreur porte la phase où elle survient (intent, charge, finalize) pour que
  l'interface choisisse la bonne reprise: tout recommencer, ressaisir la carte,
  relancer seulement la finalisation, ou contacter le support.
- Le message est toujours lisible par le visiteur; aucun code interne de la passerelle.
"""
from enum import Enum
from typing import Optional


class Phase(str, Enum):
    INTENT = "intent"
    CHARGE = "charge"
    FINALIZE = "finalize"


class PaymentError(Exception):
    status_code = 500
    default_code = "payment_error"

    def __init__(self, message: str, phase: Optional[Phase] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.phase = phase
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "phase": self.phase.value if self.phase else None,
        }


class ValidationError(PaymentError):
    """Erreur corrigeable par le visiteur (montant, participant, carte manquante)."""
    status_code = 400
    default_code = "validation_error"


class ItemNotFound(ValidationError):
    status_code = 404
    default_code = "item_not_found"


class GatewayError(PaymentError):
    """Refus de carte ou incident réseau pendant la confirmation: aucun argent n'a bougé."""
    status_code = 402
    default_code = "gateway_error"


class UpstreamError(PaymentError):
    """Backend ou passerelle injoignable (timeout, 5xx)."""
    status_code = 502
    default_code = "upstream_error"


class AlreadyFinalized(PaymentError):
    """Pas une erreur: la finalisation a déjà eu lieu pour cette référence de paiement."""
    status_code = 409
    default_code = "already_finalized"

    def __init__(self, record_id, message: str = "Paiement déjà finalisé", amount=None):
        super().__init__(message, phase=Phase.FINALIZE)
        self.record_id = record_id
        self.amount = amount

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["recordId"] = self.record_id
        if self.amount is not None:
            data["amount"] = float(self.amount)
        return data
