"""
Authentication router: registration, two step login and 2FA management.
"""

import os
import random
from fastapi import APIRouter, Depends, Request
from api.utils import api_response, client_ip
from api.anti_abuse import register_failed_ip
from api.rate_limiter import limiter
from common.log_handler import log
from database import users as user_store
from database.models import Users
from twofactor.errors import PrincipalNotFound, SecretNotProvisioned
from twofactor.notifier import get_notifier
from twofactor.service import TwoFactorService
from twofactor.tracker import track_latency
from .schemas import (
    AuthResponse,
    CodeRequest,
    EnrollmentData,
    GenerateSecretRequest,
    LoginRequest,
    RegisterRequest,
    ResendCodeRequest,
    TwoFactorLoginRequest,
    TwoFactorResponse,
    TwoFactorStatus,
)
from .jwt_utils import CHALLENGE_EXPIRE_MINUTES, create_access_token, get_current_user, verify_challenge_token
from .service import AuthOrchestrator, LoginState

router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
)

DEV = os.getenv("DEV", "FALSE").upper() == "TRUE"
LOGIN_LIMIT = "10/minute" if not DEV else "60/minute"
CODE_LIMIT = "5/minute" if not DEV else "30/minute"

system_rng = random.SystemRandom()
notifier = get_notifier()


def get_two_factor_service() -> TwoFactorService:
    return TwoFactorService(rng=system_rng, notifier=notifier)


def get_auth_orchestrator(two_factor: TwoFactorService = Depends(get_two_factor_service)) -> AuthOrchestrator:
    return AuthOrchestrator(two_factor)


def _token_response(user: Users, message: str):
    access_token, expires_in = create_access_token(username=user.username, roles=user.roles)
    return api_response(
        message=message,
        data={
            "access_token": access_token,
            "token_type": "bearer",
            "expires_in": expires_in,
            "username": user.username,
            "roles": user.roles,
            "requires_two_factor": False
        }
    )


@router.post("/register", response_model=AuthResponse)
@limiter.limit(LOGIN_LIMIT)
async def register(request: Request, body: RegisterRequest, auth: AuthOrchestrator = Depends(get_auth_orchestrator)):
    """
    Create an account and log it in right away (2FA starts disabled).

    Responses:
        200: Account created, returns access token
        400: Username or email already exists
    """
    try:
        user = await auth.register(body.username, body.email, body.password)
    except ValueError as e:
        return api_response(message=str(e), success=False, status_code=400)
    return _token_response(user, "Registration successful")


@router.post("/login", response_model=AuthResponse)
@track_latency("login")
@limiter.limit(LOGIN_LIMIT)
async def login(request: Request, credentials: LoginRequest, auth: AuthOrchestrator = Depends(get_auth_orchestrator)):
    """
    First login step, checks username and password.

    If the user enabled 2FA no token is returned. Instead the response tells the
    client to ask for a code, which is either generated by the user's
    authenticator app or was just sent to them.

    Responses:
        200: Token issued, or second factor required
        401: Invalid username or password
    """
    result = await auth.authenticate_with_password(credentials.username, credentials.password)

    if result.state is LoginState.UNAUTHENTICATED:
        log.warning(f"Login attempt with invalid credentials for '{credentials.username}' from {client_ip(request)}")
        await register_failed_ip(client_ip(request))
        return api_response(message="Invalid username or password", success=False, status_code=401)

    if result.state is LoginState.AWAITING_2FA:
        if result.user.two_factor_secret:
            message = "Please enter the 6-digit code from your authenticator app."
        else:
            message = "Please enter the 6-digit code sent to your registered method."
        return api_response(
            message=message,
            data={
                "username": result.user.username,
                "requires_two_factor": True,
                "challenge_token": result.challenge,
                "challenge_expires_in": CHALLENGE_EXPIRE_MINUTES * 60
            }
        )

    log.info(f"User '{credentials.username}' logged in from {client_ip(request)}")
    return _token_response(result.user, "Authentication successful")


@router.post("/verify-2fa", response_model=AuthResponse)
@track_latency("verify_2fa")
@limiter.limit(CODE_LIMIT)
async def verify_two_factor(request: Request, body: TwoFactorLoginRequest, auth: AuthOrchestrator = Depends(get_auth_orchestrator)):
    """
    Second login step, exchanges the challenge token from /login and a valid
    2FA code for an access token.

    Responses:
        200: Authentication successful, returns access token
        401: Missing or expired challenge, or the code is invalid, expired or already used
    """
    result = await auth.complete_two_factor(body.challenge_token, body.code)
    if not result.authenticated:
        username = result.user.username if result.user else None
        log.warning(f"2FA login failed for '{username}' from {client_ip(request)}: {result.reason}")
        await register_failed_ip(client_ip(request))
        return api_response(
            message="Invalid or expired 2FA code",
            data={"reason": result.reason},
            success=False,
            status_code=401
        )

    log.info(f"User '{result.user.username}' completed 2FA login from {client_ip(request)}")
    return _token_response(result.user, "Authentication successful")


@router.post("/resend-2fa", response_model=TwoFactorResponse)
@limiter.limit(CODE_LIMIT)
async def resend_two_factor(request: Request, body: ResendCodeRequest, auth: AuthOrchestrator = Depends(get_auth_orchestrator)):
    """
    Send a new legacy code, the previous one stops working.

    Needs the challenge token from /login. The code itself is only part of the
    response on development servers.
    """
    username = verify_challenge_token(body.challenge_token)
    if username is None:
        await register_failed_ip(client_ip(request))
        return api_response(message="Login first", data={"reason": "invalid_challenge"}, success=False, status_code=401)

    user = await user_store.get_user_by_username(username)
    if user is None or not user.two_factor_enabled:
        return api_response(message="User not found or 2FA not enabled", success=False, status_code=400)
    if user.two_factor_secret:
        return api_response(message="Use the code from your authenticator app", success=False, status_code=400)

    code = await auth.two_factor.issue_legacy_code(user.id)
    log.info(f"2FA code resent for '{username}' from {client_ip(request)}")
    data = {"code": code} if DEV else None
    return api_response(message="2FA code resent successfully", data=data)


@router.get("/2fa/status", response_model=TwoFactorResponse)
async def two_factor_status(user: Users = Depends(get_current_user), two_factor: TwoFactorService = Depends(get_two_factor_service)):
    status = await two_factor.status(user.id)
    return api_response(data=TwoFactorStatus(**status).model_dump())


@router.post("/2fa/generate", response_model=TwoFactorResponse)
async def generate_secret(body: GenerateSecretRequest = GenerateSecretRequest(), user: Users = Depends(get_current_user), two_factor: TwoFactorService = Depends(get_two_factor_service)):
    """
    Generate a new shared secret for an authenticator app.

    Scan the returned URI as QR code (or type in the secret), then confirm with
    a code through /2fa/enable. A secret in use can only be replaced after
    disabling 2FA, the same goes for switching from SMS codes to an app.
    """
    if user.two_factor_enabled:
        return api_response(message="2FA is already enabled, disable it first", success=False, status_code=400)
    enrollment = await two_factor.provision_secret(user.id, body.method)
    return api_response(
        message="2FA secret generated successfully. Scan the QR code with your authenticator app or manually enter the secret key.",
        data=EnrollmentData(
            secret=enrollment.secret,
            method=enrollment.method,
            uri=enrollment.uri,
            totp_uri=enrollment.totp_uri,
            hotp_uri=enrollment.hotp_uri,
        ).model_dump()
    )


@router.post("/2fa/enable", response_model=TwoFactorResponse)
@limiter.limit(CODE_LIMIT)
async def enable_two_factor(request: Request, body: CodeRequest, user: Users = Depends(get_current_user), two_factor: TwoFactorService = Depends(get_two_factor_service)):
    """
    Enable 2FA with the authenticator app secret generated before.

    Responses:
        200: 2FA enabled
        400: No secret generated yet, or the code does not match
    """
    try:
        result = await two_factor.confirm_enrollment(user.id, body.code)
    except SecretNotProvisioned:
        return api_response(
            message="2FA secret not generated. Please generate a secret first.",
            data={"action": "generate_secret"},
            success=False,
            status_code=400
        )

    if not result.authenticated:
        await register_failed_ip(client_ip(request))
        return api_response(
            message="Invalid verification code. Make sure the time on your device is synchronized.",
            data={"reason": result.reason},
            success=False,
            status_code=400
        )
    return api_response(message="2FA enabled successfully", data={"two_factor_enabled": True, "method": result.method})


@router.post("/2fa/enable-sms", response_model=TwoFactorResponse)
async def enable_sms_two_factor(user: Users = Depends(get_current_user), two_factor: TwoFactorService = Depends(get_two_factor_service)):
    """Enable 2FA with codes sent on every login instead of an authenticator app."""
    if user.two_factor_secret:
        return api_response(
            message="An authenticator app secret is set up, disable 2FA first to switch to SMS codes",
            success=False,
            status_code=400
        )
    if not await two_factor.set_enabled(user.id, True):
        raise PrincipalNotFound(f"User {user.id} not found")
    return api_response(message="2FA enabled successfully", data={"two_factor_enabled": True, "method": "legacy"})


@router.post("/2fa/disable", response_model=TwoFactorResponse)
@limiter.limit(CODE_LIMIT)
async def disable_two_factor(request: Request, body: CodeRequest, user: Users = Depends(get_current_user), two_factor: TwoFactorService = Depends(get_two_factor_service)):
    """
    Disable 2FA. Requires a current code, removes the secret and any pending code.

    Responses:
        200: 2FA disabled
        400: 2FA not enabled or invalid code
    """
    if not user.two_factor_enabled:
        return api_response(message="2FA is not enabled for this user", success=False, status_code=400)

    result = await two_factor.verify_code(user.id, body.code)
    if not result.authenticated:
        await register_failed_ip(client_ip(request))
        return api_response(message="Invalid verification code.", data={"reason": result.reason}, success=False, status_code=400)

    await two_factor.set_enabled(user.id, False)
    return api_response(message="2FA disabled successfully", data={"two_factor_enabled": False})
