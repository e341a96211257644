"""
Lightweight plain-text extraction from raw MIME messages.

This is the original body extractor, kept as the ``legacy`` parser. It does
not try to be a MIME implementation: it splits headers from body on the first
blank line, scans multipart bodies for the first text/plain part and undoes
the transfer encodings and charsets mail clients actually send us
(quoted-printable, base64, 8bit, UTF-8, ISO-2022-JP, and any other charset
Python has a codec for).

Every decode step falls back to the undecoded text on failure, so a broken
message still produces something readable in the chat channel.

The raw message is scanned as UTF-8 with ``surrogateescape``: bytes that are
not UTF-8 survive the scan and are decoded with the part's own charset.
Anything still undecodable comes out as U+FFFD.
"""

import base64
import binascii
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_CHARSET = 'utf-8'

_BLANK_LINE_RE = re.compile(r'\r?\n\r?\n')
_BOUNDARY_RE = re.compile(r'boundary="?([^"\s;]+)"?', re.IGNORECASE)
_TEXT_PLAIN_RE = re.compile(r'Content-Type:\s*text/plain', re.IGNORECASE)
_TRANSFER_ENCODING_RE = re.compile(r'Content-Transfer-Encoding:\s*"?([\w-]+)', re.IGNORECASE)
_CHARSET_RE = re.compile(r'charset\s*=\s*"?([\w.:-]+)"?', re.IGNORECASE)

_SOFT_LINE_BREAK_RE = re.compile(r'=\r?\n')
_QP_ESCAPE_RE = re.compile(rb'=([0-9A-Fa-f]{2})')
_WHITESPACE_RE = re.compile(r'\s')

# JIS X 0208 runs: ESC $ B (or the older ESC $ @) up to the switch back to
# ASCII / JIS-Roman, or the end of the text
_ISO2022JP_SEGMENT_RE = re.compile(r'\x1b\$[B@].*?(?:\x1b\([BJ]|$)', re.DOTALL)
_ISO2022JP_RESET_RE = re.compile(r'\x1b\([BJ]')

_ISO2022JP_NAMES = ('iso-2022-jp', 'iso2022-jp', 'iso2022_jp', 'csiso2022jp')


def decode_raw(raw: bytes) -> str:
    """
    Turn the raw message bytes into text for scanning.

    Non-UTF-8 bytes become lone surrogates so that ``get_message_body`` can
    recover them for the charset a part declares.
    """
    return raw.decode(DEFAULT_CHARSET, errors='surrogateescape')


def _to_bytes(text: str) -> bytes:
    return text.encode(DEFAULT_CHARSET, errors='surrogateescape')


def _scrub(text: str) -> str:
    """Replace bytes no charset could decode with U+FFFD."""
    return _to_bytes(text).decode(DEFAULT_CHARSET, errors='replace')


def get_message_body(raw: str) -> str:
    """
    Extract the human-readable body from a raw MIME message.

    Args:
        raw: The whole message, headers included, as text

    Returns:
        str: The decoded body. The input is returned unchanged when it has
        no header/body separator.

    Example:
        >>> get_message_body("Subject: hi\\r\\n\\r\\nHello\\r\\n")
        'Hello'
    """
    sections = _BLANK_LINE_RE.split(raw, maxsplit=1)
    if len(sections) < 2:
        return _scrub(raw)

    header, body = sections

    text = _find_text_part(header, body)
    if text is not None:
        return _scrub(text.strip())

    # Single-part message (or a multipart one without any text/plain part)
    return _scrub(_decode_part(header, body.strip()))


def _find_text_part(header: str, body: str) -> Optional[str]:
    """Return the decoded first text/plain part of a multipart body."""
    match = _BOUNDARY_RE.search(header)
    if not match:
        return None

    delimiter = f"--{match.group(1)}"
    for part in body.split(delimiter):
        sections = _BLANK_LINE_RE.split(part.lstrip('\r\n'), maxsplit=1)
        if len(sections) < 2:
            continue

        part_header, content = sections

        # multipart/alternative nested inside multipart/mixed
        nested = _find_text_part(part_header, content)
        if nested is not None:
            return nested

        if _TEXT_PLAIN_RE.search(part_header):
            return _decode_part(part_header, content)

    return None


def _decode_part(header: str, content: str) -> str:
    """Undo the transfer encoding and charset declared in ``header``."""
    encoding_match = _TRANSFER_ENCODING_RE.search(header)
    encoding = encoding_match.group(1).lower() if encoding_match else '7bit'

    charset_match = _CHARSET_RE.search(header)
    charset = charset_match.group(1).lower() if charset_match else DEFAULT_CHARSET

    if encoding == 'quoted-printable':
        data = decode_quoted_printable(content)
    elif encoding == 'base64':
        data = decode_base64(content)
        if data is None:
            return content
    elif charset in _ISO2022JP_NAMES:
        # 7bit ISO-2022-JP escape sequences are plain ASCII on the wire
        return decode_iso2022jp(content)
    else:
        # 7bit/8bit: recover the original bytes from the raw scan
        data = _to_bytes(content)

    return _decode_charset(data, charset, fallback=content)


def _decode_charset(data: bytes, charset: str, fallback: str) -> str:
    try:
        return data.decode(charset)
    except LookupError:
        logger.warning(f"Unknown charset '{charset}', keeping undecoded text")
        return fallback
    except UnicodeDecodeError as e:
        logger.warning(f"Failed to decode body as {charset}: {e}")
        return fallback


def decode_quoted_printable(text: str) -> bytes:
    """
    Decode a quoted-printable body.

    Soft line breaks (``=`` at end of line) are removed and ``=XX`` escapes
    become the corresponding byte. The caller applies the charset.
    """
    joined = _to_bytes(_SOFT_LINE_BREAK_RE.sub('', text))
    return _QP_ESCAPE_RE.sub(lambda m: bytes([int(m.group(1), 16)]), joined)


def decode_base64(text: str) -> Optional[bytes]:
    """
    Decode a base64 body, ignoring line breaks and spaces.

    Returns:
        The decoded bytes, or None if the text is not valid base64
    """
    cleaned = _WHITESPACE_RE.sub('', text)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        logger.error(f"Base64 decode error: {e}")
        return None


def decode_iso2022jp(text: str) -> str:
    """
    Decode the ISO-2022-JP escape sequences in ``text``.

    Each ``ESC $ B ... ESC ( B`` run is decoded on its own; a run that fails
    to decode is left as it was. Leftover switches back to ASCII are removed.
    """
    def _decode_segment(match):
        segment = match.group(0)
        try:
            return segment.encode('ascii').decode('iso2022_jp')
        except UnicodeError as e:
            logger.warning(f"ISO-2022-JP decode error: {e}")
            return segment

    decoded = _ISO2022JP_SEGMENT_RE.sub(_decode_segment, text)
    return _ISO2022JP_RESET_RE.sub('', decoded)
