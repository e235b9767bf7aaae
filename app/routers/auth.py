"""
Authentication endpoints – password accounts with email OTP verification.

Handlers only translate HTTP to AuthService calls and AuthResult back
to JSON; every rule lives in the service.
"""

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from app.dependencies import (
    AuthServiceDep,
    CurrentUser,
    clear_session_cookie,
    set_session_cookie,
)
from app.errors import ErrorCode, get_http_status
from app.models import (
    AuthResult,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    ResendCodeRequest,
    VerifyCodeRequest,
)
from app.rate_limit import DEFAULT, client_ip, limiter

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _to_response(result: AuthResult) -> JSONResponse:
    """Render an AuthResult, setting the session cookie when a token was issued."""
    if result.ok:
        body: dict = {"success": True, "message": result.message}
        if result.user is not None:
            body["user"] = result.user.model_dump()
        if result.dev_otp is not None:
            body["dev_otp"] = result.dev_otp
        response = JSONResponse(body)
        if result.token:
            set_session_cookie(response, result.token)
        return response

    error = result.error or ErrorCode.INTERNAL_ERROR
    body = {
        "success": False,
        "error": error.value,
        "message": result.message,
        **result.details,
    }
    headers = {}
    if "retry_after_seconds" in result.details:
        headers["Retry-After"] = str(result.details["retry_after_seconds"])
    return JSONResponse(body, status_code=get_http_status(error), headers=headers)


@router.post(
    "/register",
    operation_id="register",
    summary="Create an account and email a verification code",
)
async def register(request: Request, body: RegisterRequest, service: AuthServiceDep) -> JSONResponse:
    result = await service.register(
        body.email, body.name, body.password, body.captcha_token, client_ip(request)
    )
    return _to_response(result)


@router.post(
    "/verify-otp",
    operation_id="verifyOtp",
    summary="Confirm the email with its code and receive a session cookie",
)
async def verify_otp(request: Request, body: VerifyCodeRequest, service: AuthServiceDep) -> JSONResponse:
    result = await service.verify_code(body.email, body.code, client_ip(request))
    return _to_response(result)


@router.post(
    "/resend-otp",
    operation_id="resendOtp",
    summary="Email a fresh verification code",
)
async def resend_otp(request: Request, body: ResendCodeRequest, service: AuthServiceDep) -> JSONResponse:
    result = await service.resend_code(body.email, client_ip(request))
    return _to_response(result)


@router.post(
    "/login",
    operation_id="login",
    summary="Log in with email and password and receive a session cookie",
)
async def login(request: Request, body: LoginRequest, service: AuthServiceDep) -> JSONResponse:
    result = await service.login(
        body.email, body.password, body.captcha_token, client_ip(request)
    )
    return _to_response(result)


@router.post(
    "/logout",
    response_model=MessageResponse,
    operation_id="logout",
    summary="Clear the session cookie",
)
@limiter.limit(DEFAULT)
async def logout(request: Request, response: Response) -> MessageResponse:
    clear_session_cookie(response)
    return MessageResponse(message="Logged out successfully")


@router.get(
    "/me",
    response_model=MeResponse,
    operation_id="getMe",
    summary="Get the signed-in account, if any",
)
@limiter.limit(DEFAULT)
async def get_me(request: Request, current_user: CurrentUser) -> MeResponse:
    return MeResponse(user=current_user)
