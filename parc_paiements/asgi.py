"""
ASGI entrypoint: expose `app` for process managers / deployments.

- En production, un process manager (ex: uvicorn workers) importe `parc_paiements.asgi:app`.
- Toute la configuration FastAPI est centralisée dans parc_paiements.app_setup.factory.
"""
from parc_paiements.app_setup.factory import create_app

app = create_app()
