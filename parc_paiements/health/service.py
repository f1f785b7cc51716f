from urllib.parse import urlparse
import socket
from parc_paiements.config import SUPABASE_URL, STRIPE_WEBHOOK_SECRET
import parc_paiements.infra.supabase_client as supabase_client
from parc_paiements.paiements import stripe_client
from parc_paiements.paiements.repository import ITEM_TABLES

HEALTH_TABLES = sorted(set(ITEM_TABLES.values()) | {"activity_registrations", "event_registrations"})

def _check_table(client, name: str):
    try:
        res = client.table(name).select("id").limit(1).execute()
        cnt = len(res.data or [])
        return {"ok": True, "rows": cnt}
    except Exception as e:
        return {"ok": False, "error": str(e)}

def health_supabase_info():
    effective_url = SUPABASE_URL
    parsed = urlparse(effective_url) if effective_url else None
    hostname = parsed.hostname if parsed else None
    dns_ok = None
    dns_error = None
    if hostname:
        try:
            socket.getaddrinfo(hostname, 443)
            dns_ok = True
        except OSError as e:
            dns_ok = False
            dns_error = str(e)

    info = {
        "supabase_url": effective_url,
        "hostname": hostname,
        "dns_ok": dns_ok,
        "dns_error": dns_error,
        "connect_ok": False,
        "error": None,
        "tables": {}
    }
    try:
        client = supabase_client.get_catalog_client()
        for t in HEALTH_TABLES:
            info["tables"][t] = _check_table(client, t)
        info["connect_ok"] = True
    except Exception as e:
        info["error"] = str(e)
    return info

def health_stripe_info():
    info = stripe_client.ping()
    info["webhook_secret"] = bool(STRIPE_WEBHOOK_SECRET)
    return info
