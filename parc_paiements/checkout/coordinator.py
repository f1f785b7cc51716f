"""
Coordinateur de transaction: pilote les trois phases d'un paiement pour une offre.

    1. create-payment-intent (backend)  -> IntentReady (client secret)
    2. confirmation carte (Stripe)      -> ChargeConfirmed (référence de paiement)
    3. finalisation (backend)           -> Completed (inscription / réservation)

Une seule soumission à la fois par transaction. Après ChargeConfirmed, un échec ne
relance jamais de débit: seule la finalisation (idempotente côté backend) est rejouée.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from parc_paiements.errors import AlreadyFinalized, PaymentError, Phase, UpstreamError, ValidationError
from parc_paiements.models.items import ParticipantData, PayableItem
from parc_paiements.remises.catalogue import DISCOUNT_IDS, DiscountOption, eligible_discounts
from parc_paiements.remises.calcul import (
    NO_DISCOUNT,
    PriceQuote,
    normalize_selection,
    quote_price,
    resolve_selection,
)
from parc_paiements.utils.money import to_decimal
from .adapters import ItemAdapter, get_adapter
from .backend_client import BackendClient
from .gateway import CardInput
from .state import (
    ChargeConfirmed,
    ChargeConfirming,
    Cancelled,
    CheckoutDraft,
    Completed,
    Failed,
    Finalizing,
    Init,
    IntentReady,
    IntentRequested,
    TransactionRecord,
)

logger = logging.getLogger(__name__)

PENDING_CONFIRMATION = (
    "Votre paiement a bien été reçu mais la confirmation de votre inscription est en attente. "
    "Réessayez la confirmation ou contactez le support; vous ne serez pas débité une seconde fois."
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionCoordinator:
    def __init__(
        self,
        item: PayableItem,
        participant: ParticipantData,
        *,
        backend: BackendClient,
        gateway,
        adapter: Optional[ItemAdapter] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        - item: offre payable (fournie par le catalogue)
        - backend: client HTTP du backend de paiement
        - gateway: objet exposant confirm_charge(client_secret, card) -> référence de paiement
        - clock: horloge injectée (éligibilité early-bird)
        - Soulève ValidationError pour une offre gratuite: elle passe par l'inscription gratuite.
        """
        if item.is_free:
            raise ValidationError("Cette offre est gratuite, aucun paiement n'est nécessaire", phase=Phase.INTENT, code="item_is_free")
        self.item = item
        self.participant = participant
        self.backend = backend
        self.gateway = gateway
        self.adapter = adapter or get_adapter(item.kind)
        self._clock = clock
        self._state = Init()
        self._lock = threading.Lock()

    @property
    def state(self):
        return self._state

    @property
    def needs_reconciliation(self) -> bool:
        """Paiement débité mais inscription non confirmée."""
        return isinstance(self._state, Failed) and self._state.phase == Phase.FINALIZE

    @property
    def status_message(self) -> Optional[str]:
        if self.needs_reconciliation:
            return PENDING_CONFIRMATION
        if isinstance(self._state, Failed):
            return self._state.reason
        return None

    def _set(self, state) -> None:
        logger.debug("checkout %s:%s %s -> %s", self.item.kind.value, self.item.id,
                     type(self._state).__name__, type(state).__name__)
        self._state = state

    def _fail(self, phase: Phase, error: PaymentError, *, draft=None, record=None) -> None:
        logger.info("checkout %s:%s échec phase=%s code=%s", self.item.kind.value, self.item.id, phase.value, error.code)
        self._set(Failed(phase=phase, reason=error.message, error=error, draft=draft, record=record))

    @contextmanager
    def _single_flight(self):
        if not self._lock.acquire(blocking=False):
            raise ValidationError("Un paiement est déjà en cours pour cette inscription", code="in_flight")
        try:
            yield
        finally:
            self._lock.release()

    def _require(self, *states):
        if not isinstance(self._state, states):
            raise ValidationError(
                "Action impossible à cette étape du paiement",
                code="invalid_state",
            )
        return self._state

    # Brouillon (Init uniquement)

    def _draft(self) -> CheckoutDraft:
        return self._require(Init).draft

    def eligible_discounts(self) -> List[DiscountOption]:
        return eligible_discounts(self.item.discounts, self._clock())

    def select_discount(self, discount_id: Optional[str]) -> CheckoutDraft:
        """
        Choisit une remise (ou "none").
        - Id inconnu: ValidationError.
        - Remise connue mais plus éligible (early-bird échue): repli silencieux sur "none".
        """
        with self._single_flight():
            draft = self._draft()
            selection = normalize_selection(discount_id)
            if selection != NO_DISCOUNT and selection not in DISCOUNT_IDS:
                raise ValidationError("Remise non valide", phase=Phase.INTENT, code="unknown_discount")
            resolved = resolve_selection(selection, self.eligible_discounts())
            if resolved != selection:
                logger.info("checkout remise %s non éligible, repli sur none", selection)
            draft = replace(draft, selection=resolved)
            self._set(Init(draft))
            return draft

    def set_custom_amount(self, amount) -> CheckoutDraft:
        """Montant libre (offres isPriceRandom); None efface la saisie."""
        with self._single_flight():
            draft = self._draft()
            value = to_decimal(amount)
            if amount not in (None, "") and value is None:
                raise ValidationError("Montant invalide", phase=Phase.INTENT, code="invalid_amount")
            draft = replace(draft, custom_amount=value)
            self._set(Init(draft))
            return draft

    def pending_amount(self) -> PriceQuote:
        """Montant indicatif pour l'affichage; le backend recalcule le montant débité."""
        state = self._state
        record = getattr(state, "record", None)
        draft = getattr(state, "draft", None) or (record.draft if record else None) or CheckoutDraft()
        return quote_price(self.item, draft.custom_amount, draft.selection, self._clock())

    # Phases

    def _request_intent(self):
        draft = self._draft()
        try:
            quote = quote_price(self.item, draft.custom_amount, draft.selection, self._clock())
            if quote.is_free:
                raise ValidationError("Le montant à payer est nul: cette inscription est gratuite", phase=Phase.INTENT, code="zero_amount")
        except ValidationError as e:
            self._fail(Phase.INTENT, e, draft=draft)
            return self._state

        draft = replace(draft, selection=quote.selection)
        self._set(IntentRequested(draft))
        request = self.adapter.build_intent_request(self.item, self.participant, draft)
        try:
            body = self.backend.post(request.path, request.payload, Phase.INTENT)
            result = self.adapter.parse_intent_response(body)
        except PaymentError as e:
            self._fail(Phase.INTENT, e, draft=draft)
            return self._state

        if result.amount is not None and quote.final_amount != result.amount:
            logger.info("checkout montant indicatif=%s, montant serveur=%s", quote.final_amount, result.amount)
        record = TransactionRecord(
            # La finalisation renvoie la remise retenue par le serveur, pas celle du brouillon
            draft=replace(draft, selection=result.applied_discount or NO_DISCOUNT),
            payment_intent_id=result.payment_intent_id,
            client_secret=result.client_secret,
            quoted_amount=result.amount,
            original_amount=result.original_amount,
            applied_discount=result.applied_discount,
        )
        self._set(IntentReady(record))
        return self._state

    def _confirm_charge(self, card: Optional[CardInput]):
        record = self._require(IntentReady).record
        self._set(ChargeConfirming(record))
        try:
            charge_reference = self.gateway.confirm_charge(record.client_secret, card)
        except PaymentError as e:
            self._fail(Phase.CHARGE, e, record=record)
            return self._state
        self._set(ChargeConfirmed(record.with_charge(charge_reference)))
        return self._state

    def _finalize(self):
        state = self._require(ChargeConfirmed, Failed)
        if isinstance(state, Failed) and state.phase != Phase.FINALIZE:
            raise ValidationError("Action impossible à cette étape du paiement", code="invalid_state")
        record = state.record
        self._set(Finalizing(record))
        request = self.adapter.build_finalize_request(self.item, self.participant, record)
        try:
            body = self.backend.post(request.path, request.payload, Phase.FINALIZE)
            result = self.adapter.parse_finalize_response(body)
        except AlreadyFinalized as e:
            self._set(Completed(record.completed(e.record_id, e.amount or record.quoted_amount), already_finalized=True))
            return self._state
        except PaymentError as e:
            self._fail(Phase.FINALIZE, e, record=record)
            return self._state
        except Exception:
            # Jamais de retour en arrière après débit: l'état reste réconciliable
            logger.exception("checkout finalisation inattendue intent=%s", record.charge_reference)
            self._fail(Phase.FINALIZE, UpstreamError("Erreur inattendue pendant la confirmation", phase=Phase.FINALIZE), record=record)
            raise
        self._set(Completed(record.completed(result.record_id, result.amount)))
        return self._state

    # module parc_paiements.checkout.coordinator
    def request_intent(self):
        """Init -> IntentRequested -> IntentReady, ou Failed(intent)."""
        with self._single_flight():
            return self._request_intent()

    def confirm_charge(self, card: Optional[CardInput]):
        """IntentReady -> ChargeConfirming -> ChargeConfirmed, ou Failed(charge)."""
        with self._single_flight():
            return self._confirm_charge(card)

    def finalize(self):
        """ChargeConfirmed (ou Failed(finalize)) -> Finalizing -> Completed, ou Failed(finalize)."""
        with self._single_flight():
            return self._finalize()

    def pay(self, card: Optional[CardInput]):
        """Enchaîne les phases restantes depuis Init ou IntentReady; s'arrête au premier échec."""
        with self._single_flight():
            if isinstance(self._state, Init):
                self._request_intent()
            if isinstance(self._state, IntentReady):
                self._confirm_charge(card)
            if isinstance(self._state, ChargeConfirmed):
                self._finalize()
            return self._state

    def retry(self):
        """
        Reprise selon la phase en échec:
        - intent: retour à Init (brouillon conservé)
        - charge: retour à IntentReady (même intent, nouvelle carte possible)
        - finalize: relance la finalisation seule, jamais le débit
        """
        with self._single_flight():
            state = self._require(Failed)
            if state.phase == Phase.INTENT:
                self._set(Init(state.draft or CheckoutDraft()))
            elif state.phase == Phase.CHARGE:
                self._set(IntentReady(state.record))
            else:
                return self._finalize()
            return self._state

    def cancel(self):
        """Annulation par le visiteur, possible seulement avant la confirmation de la carte."""
        with self._single_flight():
            self._require(Init, IntentReady)
            self._set(Cancelled())
            return self._state
