"""Jokes API - REST endpoints

Every endpoint resolves the actor, runs one tool inside call_with_retry (one
transaction per request) and turns the tool's dict into the JSON envelope.
"""

from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .actor import Actor
from .config import get_settings
from .database import call_with_retry
from .dependencies import get_engine, require_active_actor
from .logging_config import get_logger
from .responses import GENERIC_FAILURE_MESSAGE, envelope, is_error, to_response
from .schemas import (
    CategoryCreate,
    CategoryUpdate,
    ForgotPasswordRequest,
    JokeCreate,
    JokeUpdate,
    LoginRequest,
    PasswordUpdate,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
    RoleAssignment,
    StatusChange,
    UserCreate,
    UserUpdate,
    VoteRequest,
)
from .tools import auth, categories, jokes, users, votes

logger = get_logger(__name__)
settings = get_settings()

app = FastAPI(title="Jokes API", version="1.0.0")
router = APIRouter(prefix="/api/v1")


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.debug("Request", extra={
        "method": request.method,
        "path": request.url.path,
    })
    response = await call_next(request)
    logger.debug("Response", extra={
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
    })
    return response

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(None, str(exc.detail), success=False),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Pydantic errors -> 422 with per-field messages."""
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "body"
        message = err.get("msg", "Invalid input").removeprefix("Value error, ")
        errors.setdefault(field, []).append(message)
    return JSONResponse(
        status_code=422,
        content=envelope({"errors": errors}, "The given data was invalid.", success=False),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled error on %s %s: %s", request.method, request.url.path, exc,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content=envelope(None, GENERIC_FAILURE_MESSAGE, success=False))


def _run(engine, func, *args, success_status: int = 200, **kwargs) -> JSONResponse:
    """call_with_retry + envelope. Failures are logged with their code."""
    result = call_with_retry(engine, func, *args, **kwargs)
    if is_error(result):
        logger.info(
            "%s failed", func.__name__,
            extra={"code": result.get("code"), "message": result.get("message")},
        )
    return to_response(result, success_status)


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/health")
async def health_check(engine=Depends(get_engine)):
    """Health check endpoint."""
    def _ping(cursor):
        cursor.execute("SELECT 1")
        return {"status": "healthy", "service": "jokes-api"}

    result = call_with_retry(engine, _ping)
    if is_error(result):
        return JSONResponse(status_code=503, content={"status": "unhealthy", "service": "jokes-api"})
    return result


# ============================================================================
# AUTH
# ============================================================================

@router.post("/register")
async def register_endpoint(body: RegisterRequest, engine=Depends(get_engine)):
    return _run(engine, auth.register, name=body.name, email=body.email, password=body.password,
                success_status=201)


@router.post("/login")
async def login_endpoint(body: LoginRequest, engine=Depends(get_engine)):
    return _run(engine, auth.login, email=body.email, password=body.password)


@router.post("/password/forgot")
async def forgot_password_endpoint(body: ForgotPasswordRequest, engine=Depends(get_engine)):
    return _run(engine, auth.forgot_password, email=body.email)


@router.post("/password/reset")
async def reset_password_endpoint(body: ResetPasswordRequest, engine=Depends(get_engine)):
    return _run(engine, auth.reset_password, email=body.email, token=body.token, password=body.password)


@router.post("/logout")
async def logout_endpoint(actor: Actor = Depends(require_active_actor), engine=Depends(get_engine)):
    return _run(engine, auth.logout, actor)


@router.get("/profile")
async def profile_endpoint(actor: Actor = Depends(require_active_actor), engine=Depends(get_engine)):
    return _run(engine, auth.profile, actor)


@router.post("/auth/logout-role/{role}")
async def logout_by_role_endpoint(
    role: str,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, auth.logout_by_role, actor, role=role)


# ============================================================================
# OWN PROFILE
# ============================================================================

@router.get("/me")
async def get_me_endpoint(actor: Actor = Depends(require_active_actor), engine=Depends(get_engine)):
    return _run(engine, users.get_profile, actor)


@router.put("/me")
async def update_me_endpoint(
    body: ProfileUpdate,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, users.update_profile, actor, **body.model_dump(exclude_unset=True))


@router.put("/me/password")
async def update_password_endpoint(
    body: PasswordUpdate,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, users.update_password, actor,
                current_password=body.current_password, password=body.password)


@router.delete("/me")
async def delete_me_endpoint(actor: Actor = Depends(require_active_actor), engine=Depends(get_engine)):
    return _run(engine, users.delete_profile, actor)


# ============================================================================
# USERS
# ============================================================================

@router.get("/users")
async def list_users_endpoint(
    q: Optional[str] = Query(None, max_length=255),
    status: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, users.list_users, actor, q=q, status=status, role=role, page=page)


@router.post("/users")
async def create_user_endpoint(
    body: UserCreate,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, users.create_user, actor, success_status=201, **body.model_dump())


@router.get("/users/trash")
async def list_deleted_users_endpoint(
    page: int = Query(1, ge=1),
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, users.list_deleted_users, actor, page=page)


@router.get("/users/{user_id}")
async def get_user_endpoint(user_id: int, actor: Actor = Depends(require_active_actor), engine=Depends(get_engine)):
    return _run(engine, users.get_user, actor, user_id=user_id)


@router.put("/users/{user_id}")
async def update_user_endpoint(
    user_id: int,
    body: UserUpdate,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, users.update_user, actor, user_id=user_id, **body.model_dump(exclude_unset=True))


@router.delete("/users/{user_id}")
async def delete_user_endpoint(user_id: int, actor: Actor = Depends(require_active_actor), engine=Depends(get_engine)):
    return _run(engine, users.delete_user, actor, user_id)


@router.post("/users/{user_id}/restore")
async def restore_user_endpoint(user_id: int, actor: Actor = Depends(require_active_actor), engine=Depends(get_engine)):
    return _run(engine, users.restore_user, actor, user_id)


@router.delete("/users/{user_id}/force")
async def force_delete_user_endpoint(
    user_id: int,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, users.force_delete_user, actor, user_id)


@router.put("/users/{user_id}/roles")
async def assign_roles_endpoint(
    user_id: int,
    body: RoleAssignment,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, users.assign_roles, actor, user_id=user_id, roles=body.roles)


@router.put("/users/{user_id}/status")
async def change_status_endpoint(
    user_id: int,
    body: StatusChange,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, users.change_status, actor, user_id=user_id, status=body.status)


@router.delete("/users/{user_id}/votes")
async def clear_user_votes_endpoint(
    user_id: int,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, votes.clear_user_votes, actor, user_id=user_id)


# ============================================================================
# JOKES
# ============================================================================

@router.get("/jokes/random")
async def random_joke_endpoint(engine=Depends(get_engine)):
    """Public: no token required."""
    return _run(engine, jokes.random_joke)


@router.get("/jokes/trash")
async def list_deleted_jokes_endpoint(
    page: int = Query(1, ge=1),
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, jokes.list_deleted_jokes, actor, page=page)


@router.get("/jokes")
async def list_jokes_endpoint(
    q: Optional[str] = Query(None, max_length=255),
    category_id: Optional[int] = Query(None, ge=1),
    user_id: Optional[int] = Query(None, ge=1),
    page: int = Query(1, ge=1),
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, jokes.list_jokes, actor, q=q, category_id=category_id, user_id=user_id, page=page)


@router.post("/jokes")
async def create_joke_endpoint(
    body: JokeCreate,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, jokes.create_joke, actor, success_status=201, **body.model_dump())


@router.get("/jokes/{joke_id}")
async def get_joke_endpoint(joke_id: int, actor: Actor = Depends(require_active_actor), engine=Depends(get_engine)):
    return _run(engine, jokes.get_joke, actor, joke_id=joke_id)


@router.put("/jokes/{joke_id}")
async def update_joke_endpoint(
    joke_id: int,
    body: JokeUpdate,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, jokes.update_joke, actor, joke_id=joke_id, **body.model_dump(exclude_unset=True))


@router.delete("/jokes/{joke_id}")
async def delete_joke_endpoint(joke_id: int, actor: Actor = Depends(require_active_actor), engine=Depends(get_engine)):
    return _run(engine, jokes.delete_joke, actor, joke_id)


@router.post("/jokes/{joke_id}/restore")
async def restore_joke_endpoint(joke_id: int, actor: Actor = Depends(require_active_actor), engine=Depends(get_engine)):
    return _run(engine, jokes.restore_joke, actor, joke_id)


@router.delete("/jokes/{joke_id}/force")
async def force_delete_joke_endpoint(
    joke_id: int,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, jokes.force_delete_joke, actor, joke_id)


@router.post("/jokes/{joke_id}/vote")
async def vote_endpoint(
    joke_id: int,
    body: VoteRequest,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    """201 for a new vote, 200 when an existing vote changes."""
    result = call_with_retry(engine, votes.cast_vote, actor, joke_id=joke_id, rating=body.rating)
    if is_error(result):
        return to_response(result)
    return to_response(result, 201 if result.get("created") else 200)


@router.delete("/jokes/{joke_id}/vote")
async def remove_vote_endpoint(
    joke_id: int,
    user_id: Optional[int] = Query(None, ge=1),
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    """Staff and above may pass user_id to remove another user's vote."""
    return _run(engine, votes.remove_vote, actor, joke_id=joke_id, user_id=user_id)


# ============================================================================
# CATEGORIES
# ============================================================================

@router.get("/categories/trash")
async def list_deleted_categories_endpoint(
    page: int = Query(1, ge=1),
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, categories.list_deleted_categories, actor, page=page)


@router.get("/categories")
async def list_categories_endpoint(
    q: Optional[str] = Query(None, max_length=255),
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, categories.list_categories, actor, q=q)


@router.post("/categories")
async def create_category_endpoint(
    body: CategoryCreate,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, categories.create_category, actor, success_status=201,
                name=body.name, description=body.description)


@router.get("/categories/{category_id}")
async def get_category_endpoint(
    category_id: int,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, categories.get_category, actor, category_id=category_id)


@router.put("/categories/{category_id}")
async def update_category_endpoint(
    category_id: int,
    body: CategoryUpdate,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, categories.update_category, actor, category_id=category_id,
                **body.model_dump(exclude_unset=True))


@router.delete("/categories/{category_id}")
async def delete_category_endpoint(
    category_id: int,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, categories.delete_category, actor, category_id)


@router.post("/categories/{category_id}/restore")
async def restore_category_endpoint(
    category_id: int,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, categories.restore_category, actor, category_id)


@router.delete("/categories/{category_id}/force")
async def force_delete_category_endpoint(
    category_id: int,
    actor: Actor = Depends(require_active_actor),
    engine=Depends(get_engine),
):
    return _run(engine, categories.force_delete_category, actor, category_id)


# ============================================================================
# VOTES
# ============================================================================

@router.delete("/votes")
async def clear_all_votes_endpoint(actor: Actor = Depends(require_active_actor), engine=Depends(get_engine)):
    return _run(engine, votes.clear_all_votes, actor)


app.include_router(router)
