"""
HMAC-based one-time passwords (RFC 4226) and their time-based variant (RFC 6238).
"""

from datetime import datetime, timezone
from typing import Union

import pyotp

from . import base32

DIGITS = 6
TIME_STEP = 30
_MAX_COUNTER = 2 ** 64

Secret = Union[str, bytes]


def _base32_secret(secret: Secret) -> str:
    # pyotp only takes Base32 text
    if isinstance(secret, (bytes, bytearray)):
        return base32.encode(secret)
    return base32.normalize(secret)


def hotp(secret: Secret, counter: int) -> str:
    """
    Compute the HOTP value for a key and a counter.

    Args:
        secret: Raw key bytes or Base32 text
        counter: Moving factor, 0 <= counter < 2**64

    Returns:
        Zero-padded 6-digit code
    """
    if counter < 0 or counter >= _MAX_COUNTER:
        raise ValueError(f"Counter out of range: {counter}")
    return pyotp.HOTP(_base32_secret(secret), digits=DIGITS).at(counter)


def as_utc(at: Union[datetime, int, float]) -> datetime:
    """Timezone aware UTC datetime, naive datetimes are stored as UTC throughout the app."""
    if isinstance(at, datetime):
        if at.tzinfo is None:
            return at.replace(tzinfo=timezone.utc)
        return at.astimezone(timezone.utc)
    return datetime.fromtimestamp(at, timezone.utc)


def unix_seconds(at: Union[datetime, int, float]) -> float:
    return as_utc(at).timestamp()


def time_counter(at: Union[datetime, int, float]) -> int:
    return int(unix_seconds(at) // TIME_STEP)


def totp(secret: Secret, at: Union[datetime, int, float]) -> str:
    """TOTP value for the 30 second step containing ``at``."""
    # aware datetimes keep pyotp on calendar.timegm instead of the local timezone
    return pyotp.TOTP(_base32_secret(secret), digits=DIGITS, interval=TIME_STEP).at(as_utc(at))
