"""
Registre central des routers.
- API v1: purchases
- Health: health_router
"""
from fastapi import FastAPI
from backend.purchases import views as purchases_views
from backend.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    """Agrège tous les routers de l'application."""
    app.include_router(purchases_views.router)
    app.include_router(health_router)
