"""Application factory wiring settings, storage, identity and the HTTP API together."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from .config import Settings, load_settings
from .database import open_store
from .engine import RehearsalEngine
from .security import IdentityService, TokenIssuer, generate_secret
from .service import create_app

logger = logging.getLogger("rehearsal_planner.application")


def build_engine(settings: Settings) -> RehearsalEngine:
    store = open_store(settings.database_path)
    store.initialize()
    return RehearsalEngine(store)


def build_identity(engine: RehearsalEngine, settings: Settings) -> IdentityService:
    secret = settings.secret_key
    if not secret:
        logger.warning(
            "REHEARSAL_SECRET_KEY is not set; using an ephemeral secret. Issued tokens will"
            " stop working when the service restarts."
        )
        secret = generate_secret()
    return IdentityService(engine, TokenIssuer(secret, ttl=settings.token_ttl))


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    """Create the ASGI application from ``settings`` (or the environment)."""

    resolved = settings or load_settings()
    engine = build_engine(resolved)
    identity = build_identity(engine, resolved)
    logger.info("Serving planner document from %s", resolved.database_path)
    return create_app(engine=engine, identity=identity, trusted_proxies=resolved.trusted_proxies)


__all__ = ["build_engine", "build_identity", "create_application"]
