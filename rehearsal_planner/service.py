"""HTTP API for scheduling rehearsals, voting on dates and managing members."""

from __future__ import annotations

import logging
from typing import Callable, Dict, List

from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .engine import RehearsalEngine
from .errors import AuthorizationError, PlannerError
from .schemas import (
    AuthResponse,
    CredentialsRequest,
    ProfileUpdateRequest,
    RehearsalCreateRequest,
    RehearsalResponse,
    RehearsalUpdateRequest,
    SelectDateRequest,
    SetupStatusResponse,
    UserCreateRequest,
    UserResponse,
    UserUpdateRequest,
    VoteRequest,
    rehearsal_to_response,
    user_to_response,
)
from .security import BearerAuth, IdentityService, Principal

logger = logging.getLogger("rehearsal_planner.service")

_STATUS_BY_KIND: Dict[str, int] = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "auth_error": status.HTTP_401_UNAUTHORIZED,
    "authorization_error": status.HTTP_403_FORBIDDEN,
    "invalid_operation": status.HTTP_400_BAD_REQUEST,
}


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg", "Invalid value"))
    return f"{location}: {message}" if location else message


def register_api_routes(
    app: FastAPI,
    engine: RehearsalEngine,
    identity: IdentityService,
) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    current_principal = BearerAuth(identity)

    def requires(action: str) -> Callable[..., Principal]:
        def dependency(principal: Principal = Depends(current_principal)) -> Principal:
            identity.require(principal, action)
            return principal

        return dependency

    router = APIRouter(prefix="/api")

    @router.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    @router.get("/auth/status", response_model=SetupStatusResponse)
    def setup_status() -> SetupStatusResponse:
        return SetupStatusResponse(setup_complete=engine.setup_status())

    @router.post("/auth/setup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
    def setup(payload: CredentialsRequest) -> AuthResponse:
        user = engine.setup(payload.username, payload.password)
        logger.info("Initial administrator %s created", user.username)
        token = identity.issue_token(Principal.from_user(user))
        return AuthResponse(token=token, user=user_to_response(user))

    @router.post("/auth/login", response_model=AuthResponse)
    def login(payload: CredentialsRequest, request: Request) -> AuthResponse:
        try:
            principal = identity.authenticate(payload.username, payload.password)
        except PlannerError:
            logger.warning(
                "Failed login for %s from %s",
                payload.username,
                request.client.host if request.client else "unknown",
            )
            raise
        user = engine.get_user(principal.id)
        return AuthResponse(token=identity.issue_token(principal), user=user_to_response(user))

    @router.get("/auth/me", response_model=UserResponse)
    def read_current_user(principal: Principal = Depends(current_principal)) -> UserResponse:
        return user_to_response(engine.get_user(principal.id))

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    @router.get("/users", response_model=List[UserResponse])
    def list_users(_: Principal = Depends(requires("list_users"))) -> List[UserResponse]:
        return [user_to_response(user) for user in engine.list_users()]

    @router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    def create_user(
        payload: UserCreateRequest,
        principal: Principal = Depends(requires("create_user")),
    ) -> UserResponse:
        user = engine.create_user(payload.username, payload.password, payload.role)
        logger.info("User %s (%s) created by %s", user.id, user.role.value, principal.id)
        return user_to_response(user)

    @router.put("/users/{user_id}", response_model=UserResponse)
    def update_user(
        user_id: str,
        payload: UserUpdateRequest,
        principal: Principal = Depends(requires("update_user")),
    ) -> UserResponse:
        user = engine.update_user(user_id, payload.to_patch())
        logger.info("User %s updated by %s", user.id, principal.id)
        return user_to_response(user)

    @router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_user(
        user_id: str,
        principal: Principal = Depends(requires("delete_user")),
    ) -> Response:
        engine.delete_user(user_id, principal.id)
        logger.info("User %s deleted by %s", user_id, principal.id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.put("/profile", response_model=UserResponse)
    def update_profile(
        payload: ProfileUpdateRequest,
        principal: Principal = Depends(requires("update_profile")),
    ) -> UserResponse:
        user = engine.update_profile(principal.id, payload.to_patch())
        logger.info("User %s updated their profile", user.id)
        return user_to_response(user)

    # ------------------------------------------------------------------
    # Rehearsals
    # ------------------------------------------------------------------
    @router.get("/rehearsals", response_model=List[RehearsalResponse])
    def list_rehearsals() -> List[RehearsalResponse]:
        return [rehearsal_to_response(rehearsal) for rehearsal in engine.list_rehearsals()]

    @router.get("/rehearsals/{rehearsal_id}", response_model=RehearsalResponse)
    def read_rehearsal(rehearsal_id: str) -> RehearsalResponse:
        return rehearsal_to_response(engine.get_rehearsal(rehearsal_id))

    @router.post("/rehearsals", response_model=RehearsalResponse, status_code=status.HTTP_201_CREATED)
    def create_rehearsal(
        payload: RehearsalCreateRequest,
        principal: Principal = Depends(requires("create_rehearsal")),
    ) -> RehearsalResponse:
        rehearsal = engine.create_rehearsal(
            payload.title,
            payload.description,
            [item.to_spec() for item in payload.dates],
        )
        logger.info(
            "Rehearsal %s created by %s with %d date option(s)",
            rehearsal.id,
            principal.id,
            len(rehearsal.dates),
        )
        return rehearsal_to_response(rehearsal)

    @router.put("/rehearsals/{rehearsal_id}", response_model=RehearsalResponse)
    def update_rehearsal(
        rehearsal_id: str,
        payload: RehearsalUpdateRequest,
        principal: Principal = Depends(requires("update_rehearsal")),
    ) -> RehearsalResponse:
        rehearsal = engine.update_rehearsal(rehearsal_id, payload.to_patch())
        logger.info("Rehearsal %s updated by %s", rehearsal.id, principal.id)
        return rehearsal_to_response(rehearsal)

    @router.delete("/rehearsals/{rehearsal_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_rehearsal(
        rehearsal_id: str,
        principal: Principal = Depends(requires("delete_rehearsal")),
    ) -> Response:
        engine.delete_rehearsal(rehearsal_id)
        logger.info("Rehearsal %s deleted by %s", rehearsal_id, principal.id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.post("/rehearsals/{rehearsal_id}/select-date", response_model=RehearsalResponse)
    def select_date(
        rehearsal_id: str,
        payload: SelectDateRequest,
        principal: Principal = Depends(requires("select_date")),
    ) -> RehearsalResponse:
        rehearsal = engine.select_date(rehearsal_id, payload.date_id)
        logger.info(
            "Rehearsal %s selection set to %s by %s",
            rehearsal.id,
            rehearsal.selected_date_id,
            principal.id,
        )
        return rehearsal_to_response(rehearsal)

    @router.post("/rehearsals/{rehearsal_id}/dates/{date_id}/vote", response_model=RehearsalResponse)
    def vote(
        rehearsal_id: str,
        date_id: str,
        payload: VoteRequest,
        principal: Principal = Depends(requires("vote")),
    ) -> RehearsalResponse:
        if payload.user_id and payload.user_id != principal.id:
            raise AuthorizationError("Cannot vote on behalf of another user")
        rehearsal = engine.record_vote(
            rehearsal_id,
            date_id,
            principal.id,
            payload.user_name or "",
            payload.comment,
        )
        logger.info("User %s voted for date %s of rehearsal %s", principal.id, date_id, rehearsal_id)
        return rehearsal_to_response(rehearsal)

    app.include_router(router)


def create_app(
    *,
    engine: RehearsalEngine,
    identity: IdentityService,
    trusted_proxies: List[str] | str = "*",
) -> FastAPI:
    """Instantiate the FastAPI application for the rehearsal planner."""

    app = FastAPI(
        title="Rehearsal Planner API",
        version="1.0.0",
        description="Propose rehearsal dates, collect votes and pick the winning option.",
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=trusted_proxies)
    app.state.engine = engine
    app.state.identity = identity

    register_api_routes(app, engine, identity)

    @app.exception_handler(PlannerError)
    async def handle_planner_error(_: Request, exc: PlannerError) -> JSONResponse:
        status_code = _STATUS_BY_KIND.get(exc.kind, status.HTTP_400_BAD_REQUEST)
        headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
        return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": _describe_validation_error(exc), "kind": "validation_error"},
        )

    return app


__all__ = ["create_app", "register_api_routes"]
