import logging
from typing import Any, Dict, Optional, Type

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from parc_paiements.models.items import ItemKind
from parc_paiements.models.payments import (
    FinalizeRequest,
    FreeRegistrationRequest,
    IntentRequest,
    SpaceFinalizeRequest,
    SpaceIntentRequest,
)
from parc_paiements.utils.money import to_decimal
from parc_paiements.utils.rate_limit import optional_rate_limit

from . import service as payments_service
from . import stripe_client
from parc_paiements.errors import PaymentError, Phase, ValidationError

logger = logging.getLogger(__name__)

# Limites par IP: création d'intent et finalisation
INTENT_LIMIT = optional_rate_limit(times=10, seconds=60)
FINALIZE_LIMIT = optional_rate_limit(times=20, seconds=60)


def _unexpected(where: str) -> HTTPException:
    logger.exception("Erreur %s", where)
    return HTTPException(status_code=500, detail="Erreur interne, veuillez réessayer")


def _finalize_body(result: Dict[str, Any], record_key: str) -> Dict[str, Any]:
    body = {k: v for k, v in result.items() if k != "record"}
    body["success"] = True
    body[record_key] = result.get("record")
    return body


# module parc_paiements.paiements.views
def build_item_router(
    *,
    kind: ItemKind,
    prefix: str,
    finalize_path: str,
    record_key: str,
    intent_model: Type[BaseModel],
    finalize_model: Type[BaseModel],
    tag: str,
) -> APIRouter:
    """
    Router d'un type d'offre (activité, événement, réservation d'espace).
    Les trois types partagent les mêmes cas d'usage; seuls les chemins et la forme
    du participant diffèrent (customerData / contactData).
    """
    router = APIRouter(prefix=prefix, tags=[tag])

    @router.post("/{item_id}/create-payment-intent", dependencies=[Depends(INTENT_LIMIT)])
    def create_payment_intent(item_id: str, payload: intent_model):
        """
        Phase 1: crée le PaymentIntent Stripe pour le montant recalculé par le serveur.
        - Entrée JSON: participant, baseAmount (indicatif), selectedDiscount, customAmount (prix libre)
        - Retour: {clientSecret, paymentIntentId, amount, originalAmount, appliedDiscount, currency}
        - Erreurs: 400 validation, 404 offre inconnue, 502 Stripe/Supabase indisponible
        """
        try:
            result = payments_service.create_payment_intent(
                kind=kind,
                item_id=item_id,
                participant=payload.participant,
                selection=payload.selected_discount,
                custom_amount=payload.custom_amount,
                base_amount=payload.base_amount,
            )
            return JSONResponse(result)
        except (PaymentError, HTTPException):
            raise
        except Exception:
            raise _unexpected(f"create_payment_intent {kind.value}")

    @router.post(finalize_path, dependencies=[Depends(FINALIZE_LIMIT)])
    def finalize_payment(item_id: str, payload: finalize_model):
        """
        Phase 3: crée l'inscription (ou confirme la réservation) après un paiement réussi.
        - Idempotent sur paymentIntentId: une seconde requête répond 409 already_finalized + recordId
        - finalAmount envoyé par le client n'est jamais utilisé pour le montant enregistré
        """
        try:
            result = payments_service.finalize_payment(
                kind=kind,
                item_id=item_id,
                charge_reference=payload.payment_intent_id,
                participant=payload.participant,
                selection=payload.selected_discount,
                custom_amount=payload.custom_amount,
                base_amount=payload.base_amount,
                final_amount=payload.final_amount,
            )
            return JSONResponse(_finalize_body(result, record_key))
        except (PaymentError, HTTPException):
            raise
        except Exception:
            raise _unexpected(f"finalize_payment {kind.value}")

    @router.get("/{item_id}/payment-status/{payment_intent_id}")
    def payment_status(item_id: str, payment_intent_id: str):
        """État Stripe du paiement et existence de l'inscription (paiements orphelins)."""
        try:
            return payments_service.payment_status(kind=kind, item_id=item_id, payment_intent_id=payment_intent_id)
        except (PaymentError, HTTPException):
            raise
        except Exception:
            raise _unexpected(f"payment_status {kind.value}")

    @router.get("/{item_id}/discounts")
    def discounts(
        item_id: str,
        custom_amount: Optional[str] = Query(None, alias="customAmount"),
        selected_discount: Optional[str] = Query(None, alias="selectedDiscount"),
    ):
        custom = to_decimal(custom_amount)
        if custom_amount and custom is None:
            raise ValidationError("Montant invalide", phase=Phase.INTENT, code="invalid_amount")
        try:
            return payments_service.quote_for_item(
                kind=kind, item_id=item_id, selection=selected_discount, custom_amount=custom
            )
        except (PaymentError, HTTPException):
            raise
        except Exception:
            raise _unexpected(f"discounts {kind.value}")

    if kind != ItemKind.SPACE_RESERVATION:
        @router.post("/{item_id}/register-free", dependencies=[Depends(INTENT_LIMIT)])
        def register_free(item_id: str, payload: FreeRegistrationRequest):
            """Inscription à une offre gratuite: ni intent, ni Stripe, ni référence de paiement."""
            try:
                result = payments_service.register_free(kind=kind, item_id=item_id, participant=payload.customer_data)
                return JSONResponse(_finalize_body(result, record_key))
            except (PaymentError, HTTPException):
                raise
            except Exception:
                raise _unexpected(f"register_free {kind.value}")

    return router


activities_router = build_item_router(
    kind=ItemKind.ACTIVITY,
    prefix="/api/v1/activities",
    finalize_path="/{item_id}/complete-payment-registration",
    record_key="registration",
    intent_model=IntentRequest,
    finalize_model=FinalizeRequest,
    tag="Activités - paiement",
)

events_router = build_item_router(
    kind=ItemKind.EVENT,
    prefix="/api/v1/events",
    finalize_path="/{item_id}/confirm-payment",
    record_key="data",
    intent_model=IntentRequest,
    finalize_model=FinalizeRequest,
    tag="Événements - paiement",
)

space_reservations_router = build_item_router(
    kind=ItemKind.SPACE_RESERVATION,
    prefix="/api/v1/space-reservations",
    finalize_path="/{item_id}/payment-confirm",
    record_key="reservation",
    intent_model=SpaceIntentRequest,
    finalize_model=SpaceFinalizeRequest,
    tag="Réservations d'espaces - paiement",
)

router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])


@router.get("/config")
def payments_config():
    """Clé publiable Stripe et devise, pour le client checkout."""
    return payments_service.public_config()


@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request):
    """
    Webhook Stripe (PaymentIntent).
    - Signature: valide via stripe_client.parse_event (Stripe-Signature + STRIPE_WEBHOOK_SECRET)
    - payment_intent.succeeded: finalisation idempotente depuis les métadonnées (paiements orphelins)
    - payment_intent.payment_failed: journalisé
    - Erreurs: 400 si signature/payload invalide
    """
    try:
        event = await stripe_client.parse_event(request)
    except Exception:
        logger.exception("Erreur webhook_stripe: signature ou payload invalide")
        raise HTTPException(status_code=400, detail="Invalid Stripe webhook payload")
    try:
        return JSONResponse(payments_service.reconcile_from_event(event))
    except PaymentError as e:
        # Réponse non-2xx: Stripe relivrera l'événement
        logger.warning("payments.webhook échec %s type=%s", e.code, (event or {}).get("type"))
        raise
    except Exception:
        raise _unexpected("webhook_stripe")
