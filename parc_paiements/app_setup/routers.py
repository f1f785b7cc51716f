"""
Registre central des routers.
- API v1: paiements par type d'offre (activités, événements, réservations d'espaces)
- API v1: configuration et webhook Stripe
- Health
"""
from fastapi import FastAPI
from parc_paiements.paiements import views as payments_views
from parc_paiements.health.router import router as health_router


def register_routers(app: FastAPI) -> None:
    """
    Agrège tous les routers de l'application.
    L'ordre n'a pas d'impact sauf conflits de chemins (évités par préfixes).
    """
    # API v1
    app.include_router(payments_views.activities_router)
    app.include_router(payments_views.events_router)
    app.include_router(payments_views.space_reservations_router)
    app.include_router(payments_views.router)
    # Health & monitoring
    app.include_router(health_router)
