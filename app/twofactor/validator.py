"""
Validation of codes produced by authenticator apps.

Both checks here are read-only: they never touch the database, so they can be
called concurrently and repeatedly. Persisting the HOTP counter after a match
is the caller's job.
"""

import os
from datetime import datetime
from typing import Optional, Union

import pyotp

from common.log_handler import log
from . import base32
from .errors import InvalidSecretFormat
from .otp import DIGITS, TIME_STEP, as_utc, totp

TOTP_VALID_WINDOW = 2  # +/- 60 seconds of clock skew
HOTP_LOOK_AHEAD = int(os.getenv("TWOFA_HOTP_LOOK_AHEAD", "10"))


def is_well_formed(code: str) -> bool:
    return isinstance(code, str) and len(code) == DIGITS and code.isascii() and code.isdigit()


def _usable_secret(secret: str) -> Optional[str]:
    if not secret:
        log.warning("OTP validation attempted without a secret")
        return None
    try:
        key = base32.decode(secret)
    except InvalidSecretFormat as e:
        log.warning(f"OTP validation attempted with a malformed secret: {e}")
        return None
    if not key:
        log.warning("OTP validation attempted with an empty key")
        return None
    return base32.encode(key)


def validate_totp(secret: str, code: str, now: Union[datetime, int, float],
                  valid_window: int = TOTP_VALID_WINDOW) -> bool:
    """
    Verify a TOTP code against a Base32 secret.

    Args:
        secret: Base32-encoded shared secret
        code: 6-digit code from the authenticator app
        now: Reference time
        valid_window: Number of 30 second steps checked before/after ``now``

    Returns:
        True if the code matches any step inside the window, False otherwise
        (including malformed input)
    """
    if not is_well_formed(code):
        log.debug("TOTP validation rejected a malformed code")
        return False
    key = _usable_secret(secret)
    if key is None:
        return False

    try:
        return pyotp.TOTP(key, digits=DIGITS, interval=TIME_STEP).verify(code, for_time=as_utc(now), valid_window=valid_window)
    except ValueError:
        # window reaches before the epoch
        return False


def match_hotp(secret: str, code: str, counter: int, look_ahead: int = HOTP_LOOK_AHEAD) -> Optional[int]:
    """
    Look for a HOTP code at or ahead of the stored counter.

    Args:
        secret: Base32-encoded shared secret
        code: 6-digit code from the authenticator app
        counter: Next unused counter of the user
        look_ahead: How many counters to try starting at ``counter``

    Returns:
        The counter that produced ``code`` or None. Counters behind the stored
        one are never tried, so a code can only be accepted once.
    """
    if not is_well_formed(code):
        log.debug("HOTP validation rejected a malformed code")
        return None
    key = _usable_secret(secret)
    if key is None:
        return None

    generator = pyotp.HOTP(key, digits=DIGITS)
    for candidate in range(counter, counter + look_ahead):
        if generator.verify(code, candidate):
            return candidate
    return None


def generate_current(secret: str, now: Union[datetime, int, float]) -> str:
    """Current TOTP value for a secret. Only for enrollment diagnostics, never send this to clients."""
    return totp(secret, now)
