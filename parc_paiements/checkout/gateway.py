"""
Confirmation de la carte auprès de Stripe (côté visiteur, clé publiable).

Équivalent de stripe.confirmCardPayment(clientSecret, {payment_method}) du navigateur:
c'est la seule étape qui débite réellement le visiteur.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import stripe

from parc_paiements.config import STRIPE_PUBLIC_KEY, STRIPE_TIMEOUT_SECONDS
from parc_paiements.errors import GatewayError, Phase, ValidationError
from parc_paiements.paiements.stripe_client import as_dict

logger = logging.getLogger(__name__)

# Messages visiteur par motif de refus (jamais le code brut de la passerelle)
_DECLINE_MESSAGES = {
    "insufficient_funds": "Fonds insuffisants sur la carte",
    "expired_card": "La carte a expiré",
    "incorrect_cvc": "Le code de sécurité de la carte est incorrect",
    "incorrect_number": "Le numéro de carte est incorrect",
    "processing_error": "Erreur lors du traitement de la carte, veuillez réessayer",
    "lost_card": "Carte refusée",
    "stolen_card": "Carte refusée",
}
_DEFAULT_DECLINE = "Carte refusée, essayez une autre carte"


@dataclass(frozen=True)
class CardInput:
    """Carte saisie par le visiteur, déjà tokenisée (PaymentMethod Stripe, ex: pm_card_visa en test)."""
    payment_method: str


def intent_id_from_secret(client_secret: str) -> str:
    """pi_123_secret_abc -> pi_123"""
    intent_id, sep, _ = (client_secret or "").partition("_secret_")
    if not sep or not intent_id.startswith("pi_"):
        raise ValidationError("Session de paiement invalide", phase=Phase.CHARGE, code="invalid_client_secret")
    return intent_id


def decline_message(error: stripe.CardError) -> str:
    # decline_code vit dans l'objet d'erreur Stripe (error.error), code sur l'exception
    reason = getattr(getattr(error, "error", None), "decline_code", None) or getattr(error, "code", None)
    return _DECLINE_MESSAGES.get(reason or "", _DEFAULT_DECLINE)


class StripeCardGateway:
    def __init__(self, publishable_key: Optional[str] = None, timeout: float = STRIPE_TIMEOUT_SECONDS):
        self.publishable_key = publishable_key or STRIPE_PUBLIC_KEY
        if stripe.default_http_client is None:
            stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    # module parc_paiements.checkout.gateway
    def confirm_charge(self, client_secret: str, card: Optional[CardInput]) -> str:
        """
        Confirme le PaymentIntent avec la carte du visiteur.
        Retour: la référence de paiement (id du PaymentIntent confirmé).
        - Soulève ValidationError si la carte manque.
        - Soulève GatewayError (phase charge) sur refus, incident réseau ou authentification requise:
          aucun argent n'a bougé, le visiteur peut réessayer depuis IntentReady.
        """
        if card is None or not card.payment_method:
            raise ValidationError("Veuillez saisir les informations de votre carte", phase=Phase.CHARGE, code="missing_card")
        intent_id = intent_id_from_secret(client_secret)
        try:
            intent = stripe.PaymentIntent.confirm(
                intent_id,
                client_secret=client_secret,
                payment_method=card.payment_method,
                api_key=self.publishable_key,
            )
        except stripe.CardError as e:
            logger.info("checkout.gateway refus intent=%s", intent_id)
            raise GatewayError(decline_message(e), phase=Phase.CHARGE, code="card_declined")
        except stripe.APIConnectionError:
            logger.warning("checkout.gateway réseau indisponible intent=%s", intent_id)
            raise GatewayError("Connexion au service de paiement impossible, veuillez réessayer", phase=Phase.CHARGE, code="gateway_unreachable")
        except stripe.StripeError:
            logger.exception("checkout.gateway confirmation échouée intent=%s", intent_id)
            raise GatewayError("Le paiement n'a pas pu être confirmé, veuillez réessayer", phase=Phase.CHARGE)

        data = as_dict(intent)
        status = data.get("status")
        if status == "requires_action":
            raise GatewayError("Votre banque demande une authentification supplémentaire", phase=Phase.CHARGE, code="requires_action")
        if status not in ("succeeded", "processing"):
            raise GatewayError(_DEFAULT_DECLINE, phase=Phase.CHARGE, code="card_declined")
        return data.get("id") or intent_id
