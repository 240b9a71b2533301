"""
Lifecycle of a user's second factor: provisioning secrets, issuing legacy
codes, verifying submitted codes and switching 2FA on and off.
"""

import enum
import os
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from common.clock import as_naive_utc, utcnow
from common.log_handler import log
from database import users as user_store
from . import legacy_codes
from .errors import (
    CodeAlreadyUsed,
    CodeMismatch,
    MalformedCodeInput,
    PrincipalNotFound,
    SecretNotProvisioned,
    TwoFactorError,
    TwoFactorNotEnabled,
)
from .methods import HOTP, TOTP, HotpMethod, LegacyMethod, TotpMethod, method_name, select_method
from .provisioning import build_hotp_uri, build_totp_uri, generate_secret
from .tracker import codes_issued_total, verifications_total
from .validator import is_well_formed, match_hotp, validate_totp

ISSUER = os.getenv("TWOFA_ISSUER", "ElectionApp")


class VerificationStatus(enum.Enum):
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


@dataclass
class VerificationResult:
    status: VerificationStatus
    reason: Optional[str] = None
    method: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.status is VerificationStatus.AUTHENTICATED

    @classmethod
    def accepted(cls, method: str) -> "VerificationResult":
        return cls(VerificationStatus.AUTHENTICATED, method=method)

    @classmethod
    def rejected(cls, reason: str, method: str = None) -> "VerificationResult":
        return cls(VerificationStatus.REJECTED, reason=reason, method=method)


@dataclass
class Enrollment:
    secret: str
    method: str
    uri: str
    totp_uri: str
    hotp_uri: str


class TwoFactorService:
    def __init__(self, rng: random.Random, notifier, clock: Callable[[], datetime] = utcnow, issuer: str = ISSUER):
        self.rng = rng
        self.notifier = notifier
        self.clock = clock
        self.issuer = issuer

    async def _load(self, user_id: int):
        user = await user_store.get_user_by_id(user_id)
        if user is None:
            raise PrincipalNotFound(f"User {user_id} not found")
        return user

    async def provision_secret(self, user_id: int, method: str = TOTP) -> Enrollment:
        """
        Generate and store a new shared secret for an authenticator app.

        The secret replaces any previous one right away. 2FA itself is only
        switched on by confirm_enrollment.

        Args:
            user_id: Id of the user
            method: "totp" (time based) or "hotp" (counter based)

        Returns:
            The secret with the otpauth:// URIs to show as QR code
        """
        if method not in (TOTP, HOTP):
            raise ValueError(f"Unknown OTP method '{method}'")
        user = await self._load(user_id)

        secret = generate_secret(self.rng)
        await user_store.store_secret(user.id, secret, method)
        log.info(f"Provisioned new {method.upper()} secret for user '{user.username}'")

        totp_uri = build_totp_uri(user.email, secret, self.issuer)
        hotp_uri = build_hotp_uri(user.email, secret, self.issuer)
        return Enrollment(
            secret=secret,
            method=method,
            uri=totp_uri if method == TOTP else hotp_uri,
            totp_uri=totp_uri,
            hotp_uri=hotp_uri,
        )

    async def issue_legacy_code(self, user_id: int) -> str:
        """
        Issue a fresh 6-digit code, store it and send it to the user.

        A failed delivery is logged but the stored code stays valid, the user
        can ask for it to be resent.

        Raises:
            PrincipalNotFound: Unknown user
            PersistenceFailure: The code could not be stored (nothing is sent)
        """
        user = await self._load(user_id)
        code = legacy_codes.generate_code(self.rng)
        expiry = legacy_codes.expiry_from(as_naive_utc(self.clock()))

        await user_store.store_legacy_code(user.id, code, expiry)
        codes_issued_total.inc()

        try:
            delivered = await self.notifier.dispatch(user, code)
        except Exception as e:
            log.exception(f"Notifier raised while sending 2FA code to user '{user.username}': {e}")
            delivered = False
        if not delivered:
            log.error(f"2FA code for user '{user.username}' was stored but could not be delivered")
        return code

    async def verify_code(self, user_id: int, code: str, now: datetime = None) -> VerificationResult:
        """
        Check a submitted second factor and consume it if it is single-use.

        Args:
            user_id: Id of the user
            code: Submitted 6-digit code
            now: Reference time, defaults to the service clock

        Returns:
            AUTHENTICATED or REJECTED with the reason slug

        Raises:
            PersistenceFailure: Consuming the code could not be written
        """
        now = as_naive_utc(now or self.clock())
        user = await user_store.get_user_by_id(user_id)
        if user is None:
            return self._rejected(PrincipalNotFound.reason)
        if not user.two_factor_enabled:
            log.info(f"2FA verification for user '{user.username}' refused, 2FA is not enabled")
            return self._rejected(TwoFactorNotEnabled.reason)
        method = select_method(user)
        if not is_well_formed(code):
            return self._rejected(MalformedCodeInput.reason, method_name(method))

        if isinstance(method, TotpMethod):
            result = self._verify_totp(method, code, now)
        elif isinstance(method, HotpMethod):
            result = await self._verify_hotp(user.id, method, code)
        else:
            result = await self._verify_legacy(user.id, method, code, now)

        verifications_total.labels(method=result.method, status=result.status.value).inc()
        if result.authenticated:
            log.info(f"2FA verification succeeded for user '{user.username}' using {result.method}")
        else:
            log.warning(f"2FA verification failed for user '{user.username}' using {result.method}: {result.reason}")
        return result

    def _rejected(self, reason: str, method: str = None) -> VerificationResult:
        verifications_total.labels(method=method or "none", status=VerificationStatus.REJECTED.value).inc()
        return VerificationResult.rejected(reason, method)

    def _verify_totp(self, method: TotpMethod, code: str, now: datetime) -> VerificationResult:
        if validate_totp(method.secret, code, now):
            return VerificationResult.accepted(TOTP)
        return VerificationResult.rejected(CodeMismatch.reason, TOTP)

    async def _verify_hotp(self, user_id: int, method: HotpMethod, code: str) -> VerificationResult:
        matched = match_hotp(method.secret, code, method.counter)
        if matched is None:
            return VerificationResult.rejected(CodeMismatch.reason, HOTP)
        if not await user_store.advance_hotp_counter(user_id, method.counter, matched + 1):
            # someone else advanced the counter between our read and write
            return VerificationResult.rejected(CodeAlreadyUsed.reason, HOTP)
        return VerificationResult.accepted(HOTP)

    async def _verify_legacy(self, user_id: int, method: LegacyMethod, code: str, now: datetime) -> VerificationResult:
        try:
            legacy_codes.check(method, code, now)
        except TwoFactorError as e:
            return VerificationResult.rejected(e.reason, "legacy")
        if not await user_store.consume_legacy_code(user_id, code, now):
            return VerificationResult.rejected(CodeAlreadyUsed.reason, "legacy")
        return VerificationResult.accepted("legacy")

    async def confirm_enrollment(self, user_id: int, code: str, now: datetime = None) -> VerificationResult:
        """Enable 2FA once the user proved their app produces codes for the stored secret."""
        now = as_naive_utc(now or self.clock())
        user = await self._load(user_id)
        if not user.two_factor_secret:
            raise SecretNotProvisioned("Generate a secret first")

        method = select_method(user)
        if isinstance(method, HotpMethod):
            result = await self._verify_hotp(user.id, method, code)
        else:
            result = self._verify_totp(method, code, now)
        if not result.authenticated:
            log.warning(f"Invalid enrollment code provided by user '{user.username}'")
            return result

        await user_store.set_two_factor_enabled(user.id, True)
        log.info(f"2FA ({result.method}) enabled for user '{user.username}'")
        return result

    async def set_enabled(self, user_id: int, enabled: bool) -> bool:
        """
        Switch 2FA on or off. Switching off wipes the secret and any pending code.

        Returns:
            False if the user does not exist
        """
        if enabled:
            changed = await user_store.set_two_factor_enabled(user_id, True)
        else:
            changed = await user_store.clear_two_factor(user_id)
        if changed:
            log.info(f"2FA {'enabled' if enabled else 'disabled'} for user {user_id}")
        return changed

    async def status(self, user_id: int) -> dict:
        user = await self._load(user_id)
        now = as_naive_utc(self.clock())
        legacy = LegacyMethod(user.legacy_code, user.legacy_code_expiry, bool(user.legacy_code_used))
        return {
            "two_factor_enabled": user.two_factor_enabled,
            "has_secret": bool(user.two_factor_secret),
            "method": method_name(select_method(user)) if user.two_factor_enabled else None,
            "has_active_code": legacy_codes.evaluate(legacy, now) is legacy_codes.LegacyCodeState.PENDING,
        }
