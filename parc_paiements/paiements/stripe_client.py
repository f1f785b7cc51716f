"""
Adaptateur Stripe (côté serveur): centralise les appels et la configuration Stripe.

Les erreurs du SDK sont traduites dans la taxonomie du pipeline; aucun code interne
de la passerelle n'est renvoyé au visiteur.
"""
import logging
from typing import Any, Dict, Optional

import stripe
from fastapi import Request

from parc_paiements.config import STRIPE_SECRET_KEY, STRIPE_TIMEOUT_SECONDS, STRIPE_WEBHOOK_SECRET
from parc_paiements.errors import Phase, UpstreamError, ValidationError

logger = logging.getLogger(__name__)

_http_client_ready = False


def as_dict(obj: Any) -> Dict[str, Any]:
    """Objet Stripe -> dict (les versions récentes du SDK ne dérivent plus de dict)."""
    if obj is None:
        return {}
    to_dict = getattr(obj, "to_dict", None) or getattr(obj, "to_dict_recursive", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


# module parc_paiements.paiements.stripe_client
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY si disponible.
    - Installe un client HTTP avec délai explicite (STRIPE_TIMEOUT_SECONDS).
    - En absence de clé, les appels Stripe échouent côté SDK (AuthenticationError -> UpstreamError).
    """
    global _http_client_ready
    if STRIPE_SECRET_KEY:
        stripe.api_key = STRIPE_SECRET_KEY
    if not _http_client_ready:
        stripe.default_http_client = stripe.RequestsClient(timeout=STRIPE_TIMEOUT_SECONDS)
        _http_client_ready = True
    return stripe


def create_payment_intent(
    *,
    amount_cents: int,
    currency: str,
    metadata: Dict[str, str],
    description: str,
    receipt_email: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Crée un PaymentIntent carte.
    - amount_cents: montant en plus petite unité de la devise
    - metadata: voir payments.metadata.make_metadata
    Retour: dict intent (ex: {"id": "pi_...", "client_secret": "pi_..._secret_...", "amount": 50000})
    - Soulève UpstreamError si Stripe est injoignable ou refuse la requête.
    """
    require_stripe()
    params: Dict[str, Any] = {
        "amount": amount_cents,
        "currency": currency,
        "metadata": metadata,
        "description": description,
        "payment_method_types": ["card"],
    }
    if receipt_email:
        params["receipt_email"] = receipt_email
    try:
        intent = stripe.PaymentIntent.create(**params)
    except stripe.StripeError:
        logger.exception("stripe_client.create_payment_intent failed item=%s:%s", metadata.get("item_kind"), metadata.get("item_id"))
        raise UpstreamError("Le service de paiement est indisponible, veuillez réessayer", phase=Phase.INTENT)
    return as_dict(intent)


def retrieve_payment_intent(intent_id: str, phase: Phase = Phase.FINALIZE) -> Dict[str, Any]:
    """
    Récupère un PaymentIntent par son identifiant.
    - Soulève ValidationError si l'identifiant est inconnu de Stripe.
    - Soulève UpstreamError pour toute autre erreur Stripe (réseau, 5xx, clé).
    """
    require_stripe()
    try:
        intent = stripe.PaymentIntent.retrieve(intent_id)
    except stripe.InvalidRequestError:
        logger.warning("stripe_client.retrieve_payment_intent unknown intent=%s", intent_id)
        raise ValidationError("Paiement introuvable", phase=phase, code="unknown_payment")
    except stripe.StripeError:
        logger.exception("stripe_client.retrieve_payment_intent failed intent=%s", intent_id)
        raise UpstreamError("Le service de paiement est indisponible, veuillez réessayer", phase=phase)
    return as_dict(intent)


async def parse_event(request: Request) -> Dict[str, Any]:
    """
    Parse et valide un événement Stripe signé (webhook).
    - Lit le body brut + en-tête Stripe-Signature
    - Valide la signature via Webhook.construct_event (STRIPE_WEBHOOK_SECRET)
    Retour: l'event sous forme de dict si la signature est valide.
    """
    require_stripe()
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature") or request.headers.get("Stripe-Signature")
    event = stripe.Webhook.construct_event(payload, sig_header, STRIPE_WEBHOOK_SECRET or "")
    return as_dict(event)


def ping() -> Dict[str, Any]:
    """Vérifie la clé secrète (utilisé par /health/stripe)."""
    require_stripe()
    if not STRIPE_SECRET_KEY:
        return {"ok": False, "configured": False, "error": "STRIPE_SECRET_KEY manquant"}
    try:
        stripe.Balance.retrieve()
        return {"ok": True, "configured": True}
    except stripe.StripeError as e:
        return {"ok": False, "configured": True, "error": type(e).__name__}
