# mailcore/decoder.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Gmail sends every message body and attachment as base64 text. Normally it
# uses the URL-safe alphabet ("-" and "_"), but older or malformed content
# sometimes uses the standard one ("+" and "/").
#
# decode_email_content() tries URL-safe first, then standard, and raises
# DecodeError only when BOTH reject the input.
# ============================================================================

import base64
import binascii
import re


# Alphabet checks. b64decode() happily maps "+" and "-" to the same value
# once altchars are in play, so we check the alphabet ourselves to know
# which encoding we actually decoded.
_URLSAFE_RE = re.compile(r'^[A-Za-z0-9_-]*={0,2}$')
_STANDARD_RE = re.compile(r'^[A-Za-z0-9+/]*={0,2}$')

# MIME-style base64 wraps lines; the breaks carry no data.
_WHITESPACE_RE = re.compile(r"\s+")


class DecodeError(ValueError):
    """Neither base64 alphabet could decode the input."""


def _decode_with(data: str, pattern: re.Pattern, altchars: bytes | None) -> bytes:
    if not pattern.match(data):
        raise binascii.Error("invalid characters for this alphabet")

    # Gmail doesn't always pad; restore it so the length is a multiple of 4.
    padded = data + '=' * (-len(data) % 4)
    return base64.b64decode(padded, altchars=altchars, validate=True)


def decode_email_content(data: str | bytes) -> bytes:
    """
    Decode a base64url (or standard base64) string into raw bytes.

    Args:
        data: The encoded text from a Gmail body or attachment.

    Returns:
        The decoded bytes. Empty input decodes to b''.

    Raises:
        DecodeError: If the text is valid in neither alphabet.
    """
    if isinstance(data, bytes):
        data = data.decode('ascii', errors='replace')
    data = _WHITESPACE_RE.sub("", data)

    try:
        return _decode_with(data, _URLSAFE_RE, b'-_')
    except (binascii.Error, ValueError) as urlsafe_error:
        try:
            return _decode_with(data, _STANDARD_RE, None)
        except (binascii.Error, ValueError) as standard_error:
            raise DecodeError(
                f"not valid base64url ({urlsafe_error}) or base64 ({standard_error})"
            ) from standard_error


def decode_email_text(data: str | bytes) -> str:
    """Decode base64 content and return it as UTF-8 text (bad bytes replaced)."""
    return decode_email_content(data).decode('utf-8', errors='replace')


def encode_email_content(raw: bytes) -> str:
    """Encode bytes the way the Gmail API expects them (base64url, padded)."""
    return base64.urlsafe_b64encode(raw).decode('ascii')
