"""
The ways a user can prove the second factor.

The method is picked once from the stored user record, everything downstream
dispatches on the variant instead of checking which columns happen to be set.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

TOTP = "totp"
HOTP = "hotp"


@dataclass(frozen=True)
class TotpMethod:
    secret: str


@dataclass(frozen=True)
class HotpMethod:
    secret: str
    counter: int


@dataclass(frozen=True)
class LegacyMethod:
    code: Optional[str]
    expiry: Optional[datetime]
    used: bool


VerificationMethod = Union[TotpMethod, HotpMethod, LegacyMethod]


def select_method(user) -> VerificationMethod:
    """A provisioned secret always wins over the legacy code."""
    if user.two_factor_secret:
        if user.two_factor_method == HOTP:
            return HotpMethod(secret=user.two_factor_secret, counter=user.hotp_counter or 0)
        return TotpMethod(secret=user.two_factor_secret)
    return LegacyMethod(
        code=user.legacy_code,
        expiry=user.legacy_code_expiry,
        used=bool(user.legacy_code_used),
    )


def method_name(method: VerificationMethod) -> str:
    if isinstance(method, TotpMethod):
        return TOTP
    if isinstance(method, HotpMethod):
        return HOTP
    return "legacy"
