from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi import status as http_status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from school_admin.auth.schemas import LoginResponse, LoginWithCodeRequest, RefreshRequest, TokenResponse
from school_admin.auth.services import INVALID_LOGIN_MESSAGE, login_with_code, refresh_access_token
from school_admin.core.exceptions import ServiceError
from school_admin.db.session import get_db

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _client_info(request: Request):
    ip_address = request.client.host if request.client else None
    return ip_address, request.headers.get("user-agent")


@router.post(
    "/login-with-code",
    response_model=LoginResponse,
    status_code=http_status.HTTP_200_OK,
)
async def login(
    payload: LoginWithCodeRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    ip_address, user_agent = _client_info(request)
    try:
        return await login_with_code(db, payload, ip_address=ip_address, user_agent=user_agent)
    except ServiceError as e:
        if e.status_code == http_status.HTTP_500_INTERNAL_SERVER_ERROR:
            raise HTTPException(status_code=e.status_code, detail="Internal server error")
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/custom-login",
    response_model=LoginResponse,
    status_code=http_status.HTTP_200_OK,
)
async def custom_login(
    payload: LoginWithCodeRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """Same as /login-with-code; kept for clients that still post here."""
    return await login(payload, request, db)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    payload: RefreshRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    try:
        return await refresh_access_token(db, payload.refresh_token)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/login-oauth")
async def login_oauth(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    try:
        payload = LoginWithCodeRequest(
            phone_number=form_data.username.strip(),
            login_code=form_data.password,
        )
    except ValidationError:
        raise HTTPException(status_code=http_status.HTTP_401_UNAUTHORIZED, detail=INVALID_LOGIN_MESSAGE)
    ip_address, user_agent = _client_info(request)
    try:
        result = await login_with_code(db, payload, ip_address=ip_address, user_agent=user_agent)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {
        "access_token": result.access_token,
        "token_type": "bearer",
    }
