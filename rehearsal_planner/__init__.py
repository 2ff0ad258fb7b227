"""Rehearsal planner: propose dates, collect votes, pick the winning option."""

from __future__ import annotations

from typing import Any

from .database import open_store, resolve_database_path
from .engine import DateSpec, ProfilePatch, RehearsalEngine, RehearsalPatch, UserPatch


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application built from settings."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "DateSpec",
    "ProfilePatch",
    "RehearsalEngine",
    "RehearsalPatch",
    "UserPatch",
    "create_app",
    "open_store",
    "resolve_database_path",
]
