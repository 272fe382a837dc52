# researchcollab/transport/http_app.py
"""
HTTP application for research collaboration.

Security layers:
1. Public: health, role catalog, call listings, Discord sign-in
2. Session: writes and application listings (signed session token)
3. Protected: /metrics (metrics token when configured)
4. No information leakage in production
"""
from __future__ import annotations

import hmac
import secrets
from contextlib import asynccontextmanager
from typing import Any, Optional, Type, TypeVar

from fastapi import FastAPI, HTTPException, Request, Depends, Query
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError as PydanticValidationError

from researchcollab.config import settings
from researchcollab.core.credit_roles import RoleCategory, list_roles
from researchcollab.core.errors import CollabError, NotFoundError, ValidationError
from researchcollab.core.models import (
    CloseCallRequest,
    CreateCallRequest,
    SubmitApplicationRequest,
    UpdateApplicationStatusRequest,
    UpdateCallRequest,
)
from researchcollab.infra.logging_config import setup_logging, get_logger
from researchcollab.infra.metrics import get_metrics_collector
from researchcollab.infra.schema_validator import validate_schema_version
from researchcollab.transport.container import ServiceContainer, build_container
from researchcollab.transport.middleware import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
    SecurityHeadersMiddleware,
)
from researchcollab.transport.security import (
    check_configured_tokens,
    require_metrics_auth,
    require_user,
    sanitize_error_message,
)

# Initialize logging first
setup_logging(
    level=settings.log_level,
    use_json=settings.is_production
)

logger = get_logger(__name__)

OAUTH_STATE_MAX_AGE = 600

ModelT = TypeVar("ModelT", bound=BaseModel)


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_container(request: Request) -> ServiceContainer:
    """Get service container from app state"""
    return request.app.state.container


async def _json_body(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _parse(model: Type[ModelT], payload: dict) -> ModelT:
    """Shape-check a payload; field errors become a 400 with the first message."""
    try:
        return model(**payload)
    except PydanticValidationError as exc:
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid request")
        raise ValidationError(f"{location}: {message}" if location else message)


def _written(message: str, data: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, "data": data})


def _cookie_secure() -> bool:
    return settings.is_production or settings.is_staging


# ============================================================================
# APP FACTORY
# ============================================================================

def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI app.

    With no container the lifespan connects to Postgres and wires the
    services from settings; an injected container is used as-is.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_container = container is None
        logger.info(
            "Starting research collaboration service",
            extra={"env": settings.app_env, "log_level": settings.log_level},
        )

        if owns_container:
            missing = settings.validate_required_for_production()
            if settings.is_production and missing:
                raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

            check_configured_tokens()

            services = await build_container(settings)
            try:
                await validate_schema_version(services.db, settings.expected_schema_version)
            except Exception:
                await services.aclose()
                raise
            app.state.container = services
        else:
            app.state.container = container

        logger.info("Application started successfully")

        yield

        logger.info("Shutting down application")
        if owns_container:
            await app.state.container.aclose()
        else:
            await app.state.container.dispatcher.drain()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Research Collaboration API",
        version="1.0.0",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )
    if container is not None:
        app.state.container = container

    # ========================================================================
    # MIDDLEWARE (order matters - last added = first executed)
    # ========================================================================

    app.add_middleware(SecurityHeadersMiddleware)

    if settings.is_production or settings.is_staging:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH"],
            allow_headers=["Content-Type", "Authorization"],
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware, enabled=settings.enable_request_logging)
    app.add_middleware(RequestIDMiddleware)

    # ========================================================================
    # EXCEPTION HANDLERS
    # ========================================================================

    @app.exception_handler(CollabError)
    async def collab_error_handler(request: Request, exc: CollabError):
        if exc.status_code >= 500:
            logger.error(
                f"{exc.__class__.__name__}: {exc.detail}",
                extra={"request_id": getattr(request.state, "request_id", "unknown")},
            )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", "unknown")
        logger.error(
            f"Unhandled exception: {exc}",
            exc_info=True,
            extra={"request_id": request_id},
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": sanitize_error_message(exc, settings.is_production),
                "request_id": request_id,
            },
        )

    # ========================================================================
    # HEALTH ENDPOINTS
    # ========================================================================

    @app.get("/health")
    async def health():
        """Liveness check"""
        return {"ok": True, "service": "researchcollab"}

    @app.get("/ready")
    async def ready(services: ServiceContainer = Depends(get_container)):
        """Readiness check: database reachable"""
        if not await services.ready():
            return JSONResponse(status_code=503, content={"ready": False})
        return {"ready": True, "pending_notifications": services.dispatcher.pending}

    @app.get("/metrics", dependencies=[Depends(require_metrics_auth)])
    async def metrics():
        if not settings.enable_metrics:
            raise NotFoundError("Not found")
        return get_metrics_collector().get_metrics()

    # ========================================================================
    # DISCORD SIGN-IN
    # ========================================================================

    @app.get("/auth/discord")
    async def discord_login(services: ServiceContainer = Depends(get_container)):
        """Redirect to Discord with a fresh state value (also kept in a cookie)"""
        state = secrets.token_urlsafe(16)
        response = RedirectResponse(services.oauth.authorize_url(state), status_code=302)
        response.set_cookie(
            settings.oauth_state_cookie_name,
            state,
            max_age=OAUTH_STATE_MAX_AGE,
            httponly=True,
            secure=_cookie_secure(),
            samesite="lax",
        )
        return response

    @app.get("/auth/discord/callback")
    async def discord_callback(
        request: Request,
        code: Optional[str] = None,
        state: Optional[str] = None,
        services: ServiceContainer = Depends(get_container),
    ):
        if not code:
            raise ValidationError("No code provided")

        expected_state = request.cookies.get(settings.oauth_state_cookie_name)
        if not state or not expected_state or not hmac.compare_digest(state, expected_state):
            logger.warning("Discord callback rejected: state mismatch")
            raise ValidationError("Invalid OAuth state")

        profile = await services.oauth.resolve(code)
        user = await services.users.upsert_discord_user(profile)
        logger.info("User signed in with Discord", extra={"user_id": user.id})

        response = RedirectResponse(f"{settings.public_base_url.rstrip('/')}/dashboard", status_code=302)
        response.set_cookie(
            settings.session_cookie_name,
            services.signer.issue(user.id),
            max_age=services.signer.ttl_seconds,
            httponly=True,
            secure=_cookie_secure(),
            samesite="lax",
        )
        response.delete_cookie(settings.oauth_state_cookie_name)
        return response

    @app.post("/auth/logout")
    async def logout():
        response = JSONResponse(content={"message": "Signed out"})
        response.delete_cookie(settings.session_cookie_name)
        return response

    @app.get("/api/me")
    async def me(
        user_id: str = Depends(require_user),
        services: ServiceContainer = Depends(get_container),
    ):
        user = await services.users.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user.to_dict()

    # ========================================================================
    # CREDIT ROLES
    # ========================================================================

    @app.get("/api/roles")
    async def roles(category: Optional[str] = None):
        if category is not None:
            try:
                category = RoleCategory(category).value
            except ValueError:
                raise ValidationError(f"Unknown role category '{category}'")
        return [role.to_dict() for role in list_roles(category)]

    # ========================================================================
    # RESEARCH CALLS
    # ========================================================================

    @app.post("/api/calls")
    async def create_call(
        request: Request,
        user_id: str = Depends(require_user),
        services: ServiceContainer = Depends(get_container),
    ):
        body = _parse(CreateCallRequest, await _json_body(request))
        call = await services.lifecycle.create_call(
            title=body.title,
            summary=body.summary,
            keywords=body.keywords,
            credit_roles=body.credit_roles,
            lead_author_id=user_id,
            abstract=body.abstract,
            timeline=body.timeline,
        )
        return _written("Research call created successfully", call.to_dict(), status_code=201)

    @app.get("/api/calls")
    async def list_calls(
        author_id: Optional[str] = Query(default=None, alias="authorId"),
        status: Optional[str] = None,
        services: ServiceContainer = Depends(get_container),
    ):
        calls = await services.queries.list_calls(author_id=author_id, status=status)
        return [call.to_dict() for call in calls]

    @app.get("/api/calls/{slug}")
    async def get_call(slug: str, services: ServiceContainer = Depends(get_container)):
        listing = await services.queries.get_call_by_slug(slug)
        return listing.to_dict()

    @app.patch("/api/calls/{call_id}")
    async def update_call(
        call_id: str,
        request: Request,
        user_id: str = Depends(require_user),
        services: ServiceContainer = Depends(get_container),
    ):
        body = _parse(UpdateCallRequest, await _json_body(request))
        call = await services.lifecycle.update_call(call_id, actor_id=user_id, changes=body.changes())
        return _written("Research call updated successfully", call.to_dict())

    @app.post("/api/calls/{call_id}/close")
    async def close_call(
        call_id: str,
        request: Request,
        user_id: str = Depends(require_user),
        services: ServiceContainer = Depends(get_container),
    ):
        payload = await _json_body(request) if await request.body() else {}
        body = _parse(CloseCallRequest, payload)
        call = await services.lifecycle.close_call(
            call_id, actor_id=user_id, publication_url=body.publication_url
        )
        return _written("Research call closed successfully", call.to_dict())

    # ========================================================================
    # APPLICATIONS
    # ========================================================================

    @app.post("/api/applications")
    async def submit_application(
        request: Request,
        user_id: str = Depends(require_user),
        services: ServiceContainer = Depends(get_container),
    ):
        payload = await _json_body(request)
        # camelCase from the web client
        if "callId" in payload and "call_id" not in payload:
            payload["call_id"] = payload.pop("callId")
        if "orcidId" in payload and "orcid_id" not in payload:
            payload["orcid_id"] = payload.pop("orcidId")

        body = _parse(SubmitApplicationRequest, payload)
        application = await services.lifecycle.submit_application(
            call_id=body.call_id,
            user_id=user_id,
            roles=body.roles,
            motivation=body.motivation,
            orcid_id=body.orcid_id,
        )
        return _written("Application submitted successfully", application.to_dict(), status_code=201)

    @app.get("/api/applications")
    async def list_applications(
        call_id: Optional[str] = Query(default=None, alias="callId"),
        applicant_id: Optional[str] = Query(default=None, alias="userId"),
        status: Optional[str] = None,
        user_id: str = Depends(require_user),
        services: ServiceContainer = Depends(get_container),
    ):
        listings = await services.queries.list_applications(
            viewer_id=user_id,
            call_id=call_id,
            user_id=applicant_id,
            status=status,
        )
        return [listing.to_dict() for listing in listings]

    @app.patch("/api/applications")
    async def update_application_status(
        request: Request,
        user_id: str = Depends(require_user),
        services: ServiceContainer = Depends(get_container),
    ):
        body = _parse(UpdateApplicationStatusRequest, await _json_body(request))
        detail = await services.lifecycle.set_application_status(body.id, body.status, actor_id=user_id)
        return _written("Application status updated successfully", detail.to_dict())

    # ========================================================================
    # CATCH-ALL (404 for undefined routes)
    # ========================================================================

    @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    async def catch_all(path: str):
        raise HTTPException(status_code=404, detail="Not found")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "researchcollab.transport.http_app:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
    )
