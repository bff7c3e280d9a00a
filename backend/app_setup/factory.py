"""
Factory d'application pour les entrypoints (backend.asgi, python -m backend).
"""
from fastapi import FastAPI
from .lifespan import lifespan
from .middlewares import register_basic_middlewares
from .exceptions import register_exception_handlers
from .routers import register_routers

def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares de base (CORS)
      - gestionnaires d'exceptions (PurchaseError -> JSON)
      - routers (purchases, health)
    """
    app = FastAPI(title="Checkout API", lifespan=lifespan)
    register_basic_middlewares(app)
    register_exception_handlers(app)
    register_routers(app)
    return app
