"""
Short numeric codes sent out of band (SMS / email) for users without an
authenticator app, and the rules deciding whether such a code is still usable.

A code goes NONE -> PENDING -> CONSUMED or EXPIRED. Issuing a new code while
one is pending overwrites it, which retires the old one.
"""

import enum
import hmac
import os
import random
from datetime import datetime, timedelta

from common.clock import as_naive_utc
from .errors import CodeAlreadyUsed, CodeExpired, CodeMismatch, CodeNotIssued, MalformedCodeInput
from .methods import LegacyMethod
from .validator import is_well_formed

CODE_VALIDITY = timedelta(minutes=int(os.getenv("TWOFA_CODE_VALIDITY_MINUTES", "5")))


class LegacyCodeState(enum.Enum):
    NONE = "none"
    PENDING = "pending"
    CONSUMED = "consumed"
    EXPIRED = "expired"


def generate_code(rng: random.Random) -> str:
    return str(rng.randint(100000, 999999)).zfill(6)


def expiry_from(issued_at: datetime) -> datetime:
    return issued_at + CODE_VALIDITY


def evaluate(method: LegacyMethod, now: datetime) -> LegacyCodeState:
    if not method.code or method.expiry is None:
        return LegacyCodeState.NONE
    if as_naive_utc(now) > as_naive_utc(method.expiry):
        return LegacyCodeState.EXPIRED
    if method.used:
        return LegacyCodeState.CONSUMED
    return LegacyCodeState.PENDING


def check(method: LegacyMethod, code: str, now: datetime) -> None:
    """
    Raise the reason a submitted code cannot be accepted, if there is one.

    The code stays valid up to and including its expiry instant.

    Raises:
        MalformedCodeInput: Submitted code is not 6 digits
        CodeNotIssued: No code (or no expiry) stored for the user
        CodeExpired: ``now`` is past the expiry
        CodeAlreadyUsed: The code was consumed before
        CodeMismatch: The code is pending but different
    """
    if not is_well_formed(code):
        raise MalformedCodeInput("Code must be exactly 6 digits")

    state = evaluate(method, now)
    if state is LegacyCodeState.NONE:
        raise CodeNotIssued("No verification code has been issued")
    if state is LegacyCodeState.EXPIRED:
        raise CodeExpired(f"Code expired at {method.expiry.isoformat()}")
    if state is LegacyCodeState.CONSUMED:
        raise CodeAlreadyUsed("Code has already been used")
    if not hmac.compare_digest(method.code, code):
        raise CodeMismatch("Code does not match")


def verify(method: LegacyMethod, code: str, now: datetime) -> bool:
    try:
        check(method, code, now)
    except (MalformedCodeInput, CodeNotIssued, CodeExpired, CodeAlreadyUsed, CodeMismatch):
        return False
    return True
