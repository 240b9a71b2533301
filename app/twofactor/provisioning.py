"""
Shared secret generation and otpauth:// enrollment URIs.
"""

import random
from urllib.parse import quote

from .base32 import ALPHABET
from .otp import DIGITS, TIME_STEP

SECRET_LENGTH = 32


def generate_secret(rng: random.Random, length: int = SECRET_LENGTH) -> str:
    """
    Generate a new random Base32 secret.

    Args:
        rng: Random source, pass a ``random.SystemRandom`` outside of tests
        length: Number of Base32 characters (32 chars = 160 bits)

    Returns:
        Base32 secret without padding
    """
    return "".join(rng.choice(ALPHABET) for _ in range(length))


def _label(account: str, issuer: str) -> str:
    return quote(f"{issuer}:{account}", safe="")


def build_totp_uri(account: str, secret: str, issuer: str) -> str:
    """
    Generate an otpauth:// URI for QR code generation.

    This URI can be converted to a QR code that users can scan
    with TOTP apps.
    """
    return (
        f"otpauth://totp/{_label(account, issuer)}?secret={secret}&issuer={quote(issuer, safe='')}"
        f"&algorithm=SHA1&digits={DIGITS}&period={TIME_STEP}"
    )


def build_hotp_uri(account: str, secret: str, issuer: str, counter: int = 0) -> str:
    return (
        f"otpauth://hotp/{_label(account, issuer)}?secret={secret}&issuer={quote(issuer, safe='')}"
        f"&algorithm=SHA1&digits={DIGITS}&counter={counter}"
    )
