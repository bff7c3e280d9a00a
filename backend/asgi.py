"""
ASGI entrypoint: expose `app` pour les process managers / déploiements.

- En production, un process manager (ex: gunicorn/uvicorn-workers) importe `backend.asgi:app`.
- Toute la configuration FastAPI est centralisée dans backend.app_setup.factory.
"""

from backend.app import app

if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run(
        "backend.asgi:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )
