from typing import Dict, Any
from fastapi import Request, Response, HTTPException
import os
import time

def _client_key(req: Request) -> str:
    # Clé: IP + chemin (pas de session côté API d'achat)
    ip = req.client.host if req.client else "local"
    return f"ip:{ip}:{req.url.path}"

def optional_rate_limit(times: int, seconds: int):
    """
    Dépendance FastAPI de rate limiting.
    - LOCAL_RATE_LIMIT_FALLBACK=1: fenêtre glissante en mémoire (app.state)
    - app.state.rate_limit_enabled is False: pas de limite
    - sinon fastapi-limiter (Redis initialisé par le lifespan)
    """
    async def _dep(request: Request, response: Response):
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            now = time.time()
            key = _client_key(request)
            store = getattr(request.app.state, "_rl_store", {})
            hits = [t for t in store.get(key, []) if now - t < seconds]
            if len(hits) >= times:
                raise HTTPException(status_code=429, detail="Too Many Requests")
            hits.append(now)
            store[key] = hits
            request.app.state._rl_store = store
            return

        if getattr(request.app.state, "rate_limit_enabled", None) is False:
            return

        from fastapi_limiter import FastAPILimiter
        if getattr(FastAPILimiter, "redis", None) is None:
            # Limiter non initialisé (ex: Redis indisponible au démarrage)
            return
        from fastapi_limiter.depends import RateLimiter

        async def _identifier(req: Request) -> str:
            return _client_key(req)
        return await RateLimiter(times=times, seconds=seconds, identifier=_identifier)(request, response)
    return _dep

def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    from fastapi_limiter import FastAPILimiter
    ready = getattr(FastAPILimiter, "redis", None) is not None
    return {
        "enabled": (bool(enabled) if enabled is not None else None),
        "ready": ready,
        "backend": "redis" if ready else None,
    }
