"""
Gestionnaires d'exceptions utilisés par la factory.
- PurchaseError: statut HTTP porté par la classe, corps JSON {detail, code, ...}.
- HTTPException: réponse JSON FastAPI standard.
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from backend.purchases.errors import PurchaseError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    """
    Enregistre les handlers PurchaseError et HTTPException.
    - Les erreurs 5xx du workflow (orphelins, réservation incohérente) sont loguées
      avec leurs identifiants pour la réconciliation.
    """
    @app.exception_handler(PurchaseError)
    async def purchase_error_handler(request: Request, exc: PurchaseError):
        body = exc.to_dict()
        if exc.status_code >= 500:
            logger.error("purchases.error path=%s %s", request.url.path, body)
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
