"""
Middlewares transverses de l'application.
- register_basic_middlewares: CORS, TrustedHost et confiance en X-Forwarded-*.
- register_security_middleware: en-têtes de sécurité et CSP (Stripe.js autorisé).
- register_no_cache_middleware: aucune mise en cache des réponses de paiement (client secret).
Notes:
- Pas de session ni de CSRF: les visiteurs ne sont pas authentifiés et le webhook Stripe est signé.
"""
from fastapi import Request, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware
from parc_paiements.config import SUPABASE_URL, COOKIE_SECURE, CORS_ORIGINS, ALLOWED_HOSTS

STRIPE_SCRIPT_SOURCES = ["https://js.stripe.com"]
STRIPE_CONNECT_SOURCES = ["https://api.stripe.com"]
STRIPE_FRAME_SOURCES = ["https://js.stripe.com", "https://hooks.stripe.com"]
SWAGGER_CDNS = ["https://cdn.jsdelivr.net"]

NO_CACHE_PREFIXES = ("/api/v1/activities", "/api/v1/events", "/api/v1/space-reservations", "/api/v1/payments")


def register_basic_middlewares(app: FastAPI) -> None:
    """
    Ajoute les middlewares « de base »:
    - CORSMiddleware: autorise les origines définies (formulaires de paiement).
    - TrustedHostMiddleware: limite les hôtes acceptés (défense host header).
    - ProxyHeadersMiddleware: IP réelle du visiteur derrière un proxy (clé de rate limiting).
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials="*" not in CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=ALLOWED_HOSTS + ["*"] if "*" in CORS_ORIGINS else ALLOWED_HOSTS,
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")


def build_csp() -> str:
    csp_connect = ["'self'"] + STRIPE_CONNECT_SOURCES
    if SUPABASE_URL:
        csp_connect.append(SUPABASE_URL.rstrip("/"))
    return (
        "default-src 'self'; "
        "base-uri 'self'; object-src 'none'; frame-ancestors 'none'; "
        "img-src 'self' data: https://fastapi.tiangolo.com; "
        f"style-src 'self' 'unsafe-inline' {' '.join(SWAGGER_CDNS)}; "
        f"script-src 'self' 'unsafe-inline' {' '.join(STRIPE_SCRIPT_SOURCES + SWAGGER_CDNS)}; "
        f"frame-src {' '.join(STRIPE_FRAME_SOURCES)}; "
        f"connect-src {' '.join(csp_connect)}"
    )


def register_security_middleware(app: FastAPI) -> None:
    csp = build_csp()

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=(), payment=(self)")
        if COOKIE_SECURE:
            response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
        response.headers["Content-Security-Policy"] = csp
        return response


def register_no_cache_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def no_cache_for_payments(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith(NO_CACHE_PREFIXES):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"
        return response
