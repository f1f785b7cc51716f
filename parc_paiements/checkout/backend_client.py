"""
Client HTTP (httpx) vers le backend de paiement, utilisé par le coordinateur.

Traduit chaque réponse dans la taxonomie du pipeline:
- délai dépassé / réseau / 5xx -> UpstreamError
- 409 already_finalized -> AlreadyFinalized (succès idempotent)
- 402 -> GatewayError
- autres 4xx -> ValidationError (message lisible renvoyé par le backend)
"""
import logging
from typing import Any, Dict, Optional

import httpx

from parc_paiements.config import BACKEND_BASE_URL, BACKEND_TIMEOUT_SECONDS
from parc_paiements.errors import AlreadyFinalized, GatewayError, Phase, UpstreamError, ValidationError
from parc_paiements.utils.money import to_decimal

logger = logging.getLogger(__name__)


def _body(resp: httpx.Response) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _message(body: Dict[str, Any], default: str) -> str:
    message = body.get("error")
    if isinstance(message, str) and message:
        return message
    detail = body.get("detail")
    # 422 FastAPI: liste d'erreurs de champs -> message générique
    if isinstance(detail, str) and detail:
        return detail
    return default


class BackendClient:
    def __init__(
        self,
        base_url: str = BACKEND_BASE_URL,
        timeout: float = BACKEND_TIMEOUT_SECONDS,
        http: Optional[httpx.Client] = None,
    ):
        # http injectable: un TestClient FastAPI est un httpx.Client
        self._owns_http = http is None
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "BackendClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # module parc_paiements.checkout.backend_client
    def post(self, path: str, payload: Dict[str, Any], phase: Phase) -> Dict[str, Any]:
        """
        POST JSON et retourne le corps de réponse.
        - Soulève UpstreamError / AlreadyFinalized / GatewayError / ValidationError selon la réponse.
        """
        try:
            resp = self._http.post(path, json=payload)
        except httpx.TimeoutException:
            logger.warning("checkout.backend délai dépassé path=%s phase=%s", path, phase.value)
            raise UpstreamError("Le serveur ne répond pas, veuillez réessayer", phase=phase, code="timeout")
        except httpx.HTTPError:
            logger.warning("checkout.backend injoignable path=%s phase=%s", path, phase.value)
            raise UpstreamError("Le serveur est injoignable, veuillez réessayer", phase=phase, code="unreachable")
        return self._handle(resp, phase)

    def get(self, path: str, phase: Phase, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            resp = self._http.get(path, params=params)
        except httpx.TimeoutException:
            raise UpstreamError("Le serveur ne répond pas, veuillez réessayer", phase=phase, code="timeout")
        except httpx.HTTPError:
            raise UpstreamError("Le serveur est injoignable, veuillez réessayer", phase=phase, code="unreachable")
        return self._handle(resp, phase)

    def _handle(self, resp: httpx.Response, phase: Phase) -> Dict[str, Any]:
        body = _body(resp)
        status = resp.status_code
        if status < 400:
            return body
        code = body.get("code") if isinstance(body.get("code"), str) else None
        if status >= 500:
            logger.warning("checkout.backend %s phase=%s", status, phase.value)
            raise UpstreamError(_message(body, "Erreur du serveur, veuillez réessayer"), phase=phase, code=code)
        if status == 409 and code == "already_finalized":
            raise AlreadyFinalized(
                body.get("recordId"),
                message=_message(body, "Paiement déjà finalisé"),
                amount=to_decimal(body.get("amount")),
            )
        if status == 402:
            raise GatewayError(_message(body, "Paiement refusé"), phase=phase, code=code)
        if status == 429:
            raise ValidationError("Trop de tentatives, réessayez dans un instant", phase=phase, code="rate_limited")
        raise ValidationError(_message(body, "Données de paiement invalides"), phase=phase, code=code)
