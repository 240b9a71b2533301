"""
Login flow: password first, then the second factor if the user enabled it.
"""

import enum
from dataclasses import dataclass
from typing import List, Optional

from common.log_handler import log
from database import users as user_store
from database.models import Users
from twofactor.errors import PrincipalNotFound
from twofactor.service import TwoFactorService
from twofactor.tracker import logins_total
from .jwt_utils import create_challenge_token, verify_challenge_token
from .password_utils import hash_password, verify_password


class LoginState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AWAITING_2FA = "awaiting_2fa"
    AUTHENTICATED = "authenticated"


@dataclass
class LoginResult:
    state: LoginState
    user: Optional[Users] = None
    reason: Optional[str] = None
    challenge: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.state is LoginState.AUTHENTICATED


class AuthOrchestrator:
    def __init__(self, two_factor: TwoFactorService):
        self.two_factor = two_factor

    async def register(self, username: str, email: str, password: str, roles: List[str] = None) -> Users:
        """
        Create a new user account, 2FA starts out disabled.

        Raises:
            ValueError: Username or email already exists
        """
        if await user_store.username_or_email_taken(username, email):
            raise ValueError("Username or email already exists")
        user = await user_store.create_user(username, email, hash_password(password), roles or ["voter"])
        log.info(f"Registered user '{username}'")
        return user

    async def authenticate_with_password(self, username: str, password: str) -> LoginResult:
        """
        Check username and password.

        Returns:
            AUTHENTICATED when 2FA is off, AWAITING_2FA when a code is still
            needed (a legacy code is sent out if the user has no authenticator
            app set up), UNAUTHENTICATED otherwise
        """
        user = await user_store.get_user_by_username(username)
        if user is None or not user.is_active:
            logins_total.labels(status="failure").inc()
            return LoginResult(LoginState.UNAUTHENTICATED, reason="invalid_credentials")
        if not verify_password(password, user.password_hash):
            logins_total.labels(status="failure").inc()
            return LoginResult(LoginState.UNAUTHENTICATED, reason="invalid_credentials")

        if user.two_factor_enabled:
            if not user.two_factor_secret:
                await self.two_factor.issue_legacy_code(user.id)
            logins_total.labels(status="awaiting_2fa").inc()
            log.info(f"Password accepted for '{username}', waiting for second factor")
            challenge, _ = create_challenge_token(user.username)
            return LoginResult(LoginState.AWAITING_2FA, user=user, challenge=challenge)

        await user_store.update_last_login(user.id)
        logins_total.labels(status="success").inc()
        return LoginResult(LoginState.AUTHENTICATED, user=user)

    async def complete_two_factor(self, challenge: Optional[str], code: str) -> LoginResult:
        """
        Second factor step. Only accepted with the challenge token handed out
        by a successful password step.
        """
        username = verify_challenge_token(challenge)
        if username is None:
            return LoginResult(LoginState.UNAUTHENTICATED, reason="invalid_challenge")

        user = await user_store.get_user_by_username(username)
        if user is None or not user.is_active:
            return LoginResult(LoginState.UNAUTHENTICATED, reason=PrincipalNotFound.reason)

        result = await self.two_factor.verify_code(user.id, code)
        if not result.authenticated:
            return LoginResult(LoginState.AWAITING_2FA, user=user, reason=result.reason, challenge=challenge)

        await user_store.update_last_login(user.id)
        logins_total.labels(status="success").inc()
        return LoginResult(LoginState.AUTHENTICATED, user=user)
