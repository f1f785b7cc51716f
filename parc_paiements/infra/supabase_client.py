"""
Clients Supabase du pipeline de paiement.

Deux rôles seulement, car les visiteurs ne sont pas authentifiés:
- catalogue: clé anon, lecture des offres et de leurs remises (RLS actif)
- inscriptions: clé service-role, seul le backend écrit inscriptions et réservations payées
"""
from typing import Optional
from supabase import create_client, Client, ClientOptions
from parc_paiements.config import SUPABASE_URL, SUPABASE_ANON, SUPABASE_SERVICE_KEY, SUPABASE_TIMEOUT_SECONDS

_catalog_client: Optional[Client] = None
_registrations_client: Optional[Client] = None


def _options() -> ClientOptions:
    # Un aller-retour Supabase bloqué ne doit pas figer une finalisation
    return ClientOptions(postgrest_client_timeout=SUPABASE_TIMEOUT_SECONDS)


def get_catalog_client() -> Client:
    global _catalog_client
    if not SUPABASE_URL or not SUPABASE_ANON:
        raise RuntimeError("SUPABASE_URL/SUPABASE_ANON_KEY manquants pour lire les offres")
    if _catalog_client is None:
        _catalog_client = create_client(SUPABASE_URL, SUPABASE_ANON, options=_options())
    return _catalog_client


def get_registrations_client() -> Client:
    """Client service-role (bypass RLS): idempotence sur stripe_payment_intent_id, écritures des inscriptions."""
    global _registrations_client
    if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
        raise RuntimeError("SUPABASE_SERVICE_KEY manquant pour enregistrer les paiements")
    if _registrations_client is None:
        _registrations_client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY, options=_options())
    return _registrations_client
