from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .apostila_service import ApostilaService
from .apostilas import ApostilaStore
from .auth_service import AuthService, extract_bearer_token
from .configuration import get_settings
from .database import Database
from .errors import (
    ApostilaAlreadyExistsError,
    ApostilaNotFoundError,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    InvalidInputError,
    InvalidTokenError,
    PdfRenderError,
    UserNotFoundError,
)
from .middleware import RateLimiter, RequestContextMiddleware, client_ip
from .models import (
    AddApostilaInput,
    Apostila,
    ChangePasswordInput,
    EditedApostilaHTML,
    EditedApostilaInput,
    LoginInput,
    MessageResponse,
    RegisterInput,
    RenderPDFInput,
    Token,
    User,
)
from .pdf_renderer import PdfRenderer
from .tokens import RevokedTokenStore, TokenClaims, TokenManager
from .user_service import UserService
from .users import UserStore
from .utils import pdf_filename

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


settings = get_settings()
configure_logging(settings.logging.level)

database = Database(Path(settings.database.path))
logger.info("Connected to database at %s", database.db_path)

user_store = UserStore(database)
apostila_store = ApostilaStore(database)
token_manager = TokenManager(
    settings.auth.jwt_secret,
    algorithm=settings.auth.jwt_algorithm,
    leeway=timedelta(seconds=settings.auth.leeway_seconds),
)
auth_service = AuthService(
    user_store,
    token_manager,
    RevokedTokenStore(database),
    token_duration=timedelta(minutes=settings.auth.token_ttl_minutes),
)
user_service = UserService(user_store)
rate_limiter = RateLimiter(requests_per_minute=settings.rate_limit.requests_per_minute)
pdf_renderer = PdfRenderer.from_settings(settings.pdf)

app = FastAPI(title="Apostilab API", version="0.1.0")

app.add_middleware(
    RequestContextMiddleware,
    timeout_seconds=settings.server.request_timeout_seconds,
    trusted_proxies=list(settings.server.trusted_proxies),
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.server.cors_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Accept", "Authorization", "Content-Type", "X-CSRF-Token"],
    expose_headers=["Link"],
    max_age=300,
)


@app.exception_handler(RequestValidationError)
async def invalid_input_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Undecodable or mistyped bodies are reported like any other bad input.
    logger.info("Invalid input on %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"detail": "Invalid input"})


router = APIRouter(prefix="/v1")


def get_auth_service() -> AuthService:
    return auth_service


def get_user_service() -> UserService:
    return user_service


def get_pdf_renderer() -> PdfRenderer:
    return pdf_renderer


def get_apostila_service(renderer: PdfRenderer = Depends(get_pdf_renderer)) -> ApostilaService:
    return ApostilaService(apostila_store, renderer)


def enforce_rate_limit(request: Request) -> None:
    identifier = f"{client_ip(request, settings.server.trusted_proxies)}:{request.url.path}"
    if not rate_limiter.is_allowed(identifier):
        logger.warning("Rate limit exceeded for %s", identifier)
        raise HTTPException(status_code=429, detail="rate limit exceeded")


def get_bearer_token(authorization: Optional[str] = Header(None)) -> str:
    try:
        return extract_bearer_token(authorization)
    except InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def get_current_claims(
    token: str = Depends(get_bearer_token),
    auth: AuthService = Depends(get_auth_service),
) -> TokenClaims:
    try:
        return auth.authenticate(token)
    except InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def get_current_user_id(claims: TokenClaims = Depends(get_current_claims)) -> int:
    return claims.user_id


def get_optional_claims(
    authorization: Optional[str] = Header(None),
    auth: AuthService = Depends(get_auth_service),
) -> Optional[TokenClaims]:
    if not authorization:
        return None
    try:
        return auth.authenticate(extract_bearer_token(authorization))
    except InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def _pdf_response(pdf: bytes, filename: str) -> Response:
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/health")
def healthcheck() -> dict:
    return {"status": "ok"}


# Authentication


@router.post("/auth/register", response_model=Token, dependencies=[Depends(enforce_rate_limit)])
def register(payload: RegisterInput, auth: AuthService = Depends(get_auth_service)) -> Token:
    try:
        return auth.register(payload)
    except (InvalidInputError, EmailAlreadyRegisteredError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/auth/login", response_model=Token, dependencies=[Depends(enforce_rate_limit)])
def login(payload: LoginInput, auth: AuthService = Depends(get_auth_service)) -> Token:
    try:
        return auth.login(payload)
    except InvalidCredentialsError as exc:
        raise HTTPException(status_code=401, detail="unauthorized") from exc


@router.post("/auth/logout", status_code=204)
def logout(
    authorization: Optional[str] = Header(None),
    auth: AuthService = Depends(get_auth_service),
) -> Response:
    token = None
    if authorization:
        try:
            token = extract_bearer_token(authorization)
        except InvalidTokenError:
            token = None
    auth.logout(token)
    return Response(status_code=204)


# Current user


@router.get("/me", response_model=User)
def fetch_user_data(
    user_id: int = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
) -> User:
    try:
        return users.get_user(user_id)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=401, detail="unauthorized") from exc


@router.patch("/me/password", status_code=204)
def change_password(
    payload: ChangePasswordInput,
    user_id: int = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
) -> Response:
    try:
        users.change_password(user_id, payload)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UserNotFoundError as exc:
        raise HTTPException(status_code=401, detail="unauthorized") from exc
    return Response(status_code=204)


@router.delete("/me", status_code=204)
def delete_account(
    user_id: int = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service),
) -> Response:
    try:
        users.delete_account(user_id)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=401, detail="unauthorized") from exc
    return Response(status_code=204)


# Apostilas
# Fixed paths are registered before /apostilas/{apostila_id} so they win the match.


@router.post("/apostilas", response_model=Apostila)
def add_apostila(
    payload: AddApostilaInput,
    user_id: int = Depends(get_current_user_id),
    service: ApostilaService = Depends(get_apostila_service),
) -> Apostila:
    try:
        return service.add(payload, user_id)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ApostilaAlreadyExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except UserNotFoundError as exc:
        raise HTTPException(status_code=401, detail="unauthorized") from exc


@router.get("/apostilas", response_model=List[Apostila])
def list_apostilas(
    user_id: int = Depends(get_current_user_id),
    service: ApostilaService = Depends(get_apostila_service),
) -> List[Apostila]:
    return service.list(user_id)


@router.get("/apostilas/edited", response_model=EditedApostilaHTML)
def get_edited_apostila_html(
    id: Optional[str] = Query(None),
    user_id: int = Depends(get_current_user_id),
    service: ApostilaService = Depends(get_apostila_service),
) -> EditedApostilaHTML:
    if not id:
        raise HTTPException(status_code=400, detail="id query parameter is required")
    try:
        return service.get_edited_html(id, user_id)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ApostilaNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.put("/apostilas/edited", response_model=MessageResponse)
def edit_apostila(
    payload: EditedApostilaInput,
    user_id: int = Depends(get_current_user_id),
    service: ApostilaService = Depends(get_apostila_service),
) -> MessageResponse:
    try:
        service.edit(payload, user_id)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ApostilaNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return MessageResponse(message="apostila updated successfully")


@router.post("/apostilas/render-pdf", dependencies=[Depends(enforce_rate_limit)])
def render_apostila_pdf(
    payload: RenderPDFInput,
    service: ApostilaService = Depends(get_apostila_service),
) -> Response:
    try:
        pdf = service.render_pdf(payload)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PdfRenderError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return _pdf_response(pdf, pdf_filename(payload.data.filename))


@router.get("/apostilas/{apostila_id}", response_model=Apostila, dependencies=[Depends(get_optional_claims)])
def get_apostila(
    apostila_id: str,
    service: ApostilaService = Depends(get_apostila_service),
) -> Apostila:
    try:
        return service.get_by_id(apostila_id)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ApostilaNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/apostilas/{apostila_id}", response_model=MessageResponse)
def delete_apostila(
    apostila_id: str,
    user_id: int = Depends(get_current_user_id),
    service: ApostilaService = Depends(get_apostila_service),
) -> MessageResponse:
    try:
        service.delete(apostila_id, user_id)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ApostilaNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return MessageResponse(message="apostila deleted successfully")


@router.post("/apostilas/{apostila_id}/export", dependencies=[Depends(enforce_rate_limit)])
def export_apostila_pdf(
    apostila_id: str,
    user_id: int = Depends(get_current_user_id),
    service: ApostilaService = Depends(get_apostila_service),
) -> Response:
    try:
        export = service.export_pdf(apostila_id, user_id)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ApostilaNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PdfRenderError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    response = _pdf_response(export.pdf, pdf_filename(f"apostila-{apostila_id}"))
    if export.download_url:
        response.headers["X-Download-URL"] = export.download_url
    return response


@router.get("/apostilas/{apostila_id}/pdf")
def get_apostila_pdf(
    apostila_id: str,
    user_id: int = Depends(get_current_user_id),
    service: ApostilaService = Depends(get_apostila_service),
) -> Response:
    try:
        pdf = service.get_pdf(apostila_id, user_id)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ApostilaNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _pdf_response(pdf, pdf_filename(f"apostila-{apostila_id}"))


app.include_router(router)


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    uvicorn.run(app, host=settings.server.host, port=settings.server.port, log_level=settings.logging.level.lower())
