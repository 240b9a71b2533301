"""
Base32 (RFC 4648) codec for shared secrets.

Secrets are handed to authenticator apps as Base32 text and have to be turned
back into raw key bytes before they can be fed into HMAC.
"""

import base64
import binascii

from .errors import InvalidSecretFormat

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"

# characters left over after whole 8-character chunks, mapped to how many of
# them carry complete bytes (1, 3 and 6 leave a partial byte at the end)
_USABLE_TAIL = {0: 0, 1: 0, 2: 2, 3: 2, 4: 4, 5: 5, 6: 5, 7: 7}


def decode(secret: str) -> bytes:
    """
    Decode a Base32 secret into bytes.

    Trailing ``=`` padding is stripped and the input is uppercased. The text is
    consumed in chunks of 8 characters (40 bits); bits of a trailing partial
    chunk that do not fill a whole byte are dropped.

    Args:
        secret: Base32 text

    Returns:
        The decoded key bytes

    Raises:
        InvalidSecretFormat: If a character is outside the Base32 alphabet
    """
    if not isinstance(secret, str):
        raise InvalidSecretFormat("Secret must be a string")

    text = secret.rstrip("=").upper()
    for position, char in enumerate(text):
        if char not in ALPHABET:
            raise InvalidSecretFormat(f"Invalid Base32 character at position {position}")

    whole = len(text) - len(text) % 8
    text = text[:whole + _USABLE_TAIL[len(text) % 8]]
    try:
        return base64.b32decode(text + "=" * (-len(text) % 8))
    except binascii.Error as e:
        raise InvalidSecretFormat(f"Invalid Base32 secret: {e}") from e


def encode(data: bytes, padding: bool = True) -> str:
    """
    Encode bytes as Base32 text.

    Args:
        data: Raw bytes to encode
        padding: Append ``=`` so the output length is a multiple of 8

    Returns:
        Base32 string using only the RFC 4648 alphabet (and ``=``)
    """
    text = base64.b32encode(bytes(data)).decode("ascii")
    return text if padding else text.rstrip("=")


def normalize(secret: str) -> str:
    """Canonical padded form of a secret, the form ``pyotp`` accepts for every length."""
    return encode(decode(secret))


def is_valid(secret: str) -> bool:
    try:
        return len(decode(secret)) > 0
    except InvalidSecretFormat:
        return False
