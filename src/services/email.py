"""
Email parsing utilities based on the standard library MIME parser.

This is the default body extractor. It walks the full MIME tree, so nested
multiparts, any charset Python knows and RFC 2047 encoded headers are handled.
"""

import logging
from email import policy
from email.parser import BytesParser
from email.message import EmailMessage
from email.utils import parseaddr
from typing import Dict, Any, Tuple

logger = logging.getLogger(__name__)

_HEADER_NAMES = ('From', 'To', 'Subject', 'Date', 'Message-ID', 'Reply-To', 'Cc')


def _parse(email_content: bytes) -> EmailMessage:
    return BytesParser(policy=policy.default).parsebytes(email_content)


def _decode_text_part(part: EmailMessage) -> str:
    try:
        # get_content() handles quoted-printable, base64 and the declared charset
        return part.get_content()
    except Exception as e:
        logger.warning(f"Failed to decode {part.get_content_type()} part with get_content(): {e}")
        # Fallback: manual decode with get_payload(decode=True)
        payload = part.get_payload(decode=True)
        if payload:
            return payload.decode('utf-8', errors='ignore')
        return ''


def extract_email_body(email_content: bytes) -> Dict[str, Any]:
    """
    Parse raw email (MIME format) and extract body and attachment metadata.

    Args:
        email_content: Raw email bytes from S3

    Returns:
        Dictionary with text_body, html_body, and attachments
        (each a dict with filename, content_type and size)

    Example:
        >>> email_bytes = b"From: sender@example.com\\r\\n\\r\\nHello World"
        >>> result = extract_email_body(email_bytes)
        >>> print(result['text_body'])
        "Hello World"
    """
    msg = _parse(email_content)

    result = {
        'text_body': '',
        'html_body': '',
        'attachments': []
    }

    if not msg.is_multipart():
        content_type = msg.get_content_type()
        if content_type == "text/plain":
            result['text_body'] = _decode_text_part(msg)
        elif content_type == "text/html":
            result['html_body'] = _decode_text_part(msg)
        else:
            logger.warning(
                f"Unknown content type for non-multipart email: {content_type}. "
                f"Email body will be empty."
            )
        return result

    for part in msg.walk():
        if part.is_multipart():
            continue

        content_type = part.get_content_type()
        content_disposition = str(part.get("Content-Disposition", ""))
        filename = part.get_filename()

        # Inline images in HTML mail carry a filename too
        if filename and (
            "attachment" in content_disposition
            or "inline" in content_disposition
            or content_type.startswith(('image/', 'application/'))
        ):
            payload = part.get_payload(decode=True) or b''
            result['attachments'].append({
                'filename': filename,
                'content_type': content_type,
                'size': len(payload),
            })
        elif content_type == "text/plain" and not result['text_body']:
            result['text_body'] = _decode_text_part(part)
        elif content_type == "text/html" and not result['html_body']:
            result['html_body'] = _decode_text_part(part)

    return result


def parse_email_headers(email_content: bytes) -> Dict[str, str]:
    """
    Parse the common headers of a raw email.

    Encoded words (``=?ISO-2022-JP?B?...?=``) are decoded.

    Args:
        email_content: Raw email bytes

    Returns:
        dict: From, To, Subject, Date, Message-ID, Reply-To and Cc;
        headers that are missing or empty are left out

    Raises:
        ValueError: If email content is empty
    """
    if not email_content:
        raise ValueError("Email content cannot be empty")

    msg = _parse(email_content)

    headers = {}
    for name in _HEADER_NAMES:
        try:
            value = msg.get(name, '')
        except Exception as e:
            # policy.default raises on some malformed address headers
            logger.warning(f"Failed to parse {name} header: {e}")
            value = ''
        if value:
            headers[name] = str(value)

    logger.info(f"Parsed email headers: {list(headers.keys())}")
    return headers


def parse_sender(value: str) -> Tuple[str, str]:
    """
    Split a From header into display name and address.

    Example:
        >>> parse_sender('"Taro Yamada" <taro@example.com>')
        ('Taro Yamada', 'taro@example.com')
    """
    name, address = parseaddr(value or '')
    return name.strip(), address.strip()
