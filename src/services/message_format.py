"""
Chat message formatting for relayed emails.

Two payload shapes are supported:

- ``text``: a single ``content`` string listing sender, recipients, subject
  and body. Works with any Discord-compatible webhook.
- ``embed``: a richer message with the sender's avatar, the subject as the
  embed title and the body as its description.

Discord rejects payloads whose fields exceed its size limits, so every text
field is truncated to the documented maximum and the embed description is
shortened to keep the whole embed within its total character limit.
"""

import hashlib
import logging
from typing import Dict, Any, List

from domain.models import EmailMetadata, EmailContent, DEFAULT_SUBJECT, DEFAULT_BODY

logger = logging.getLogger(__name__)

# Discord webhook limits
MAX_CONTENT_LENGTH = 2000
MAX_USERNAME_LENGTH = 80
MAX_TITLE_LENGTH = 256
MAX_DESCRIPTION_LENGTH = 4096
MAX_AUTHOR_NAME_LENGTH = 256
MAX_FIELD_VALUE_LENGTH = 1024
MAX_EMBED_TOTAL_LENGTH = 6000

EMBED_COLOR = 0x5865F2
GRAVATAR_URL = "https://www.gravatar.com/avatar/{digest}?d=identicon"
ELLIPSIS = "…"


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit - len(ELLIPSIS)] + ELLIPSIS


def avatar_url(address: str) -> str:
    """
    Gravatar image for an email address.

    Senders without a Gravatar get a generated identicon, so every sender
    has a stable, distinct picture.
    """
    normalized = (address or '').strip().lower()
    digest = hashlib.sha256(normalized.encode('utf-8')).hexdigest()
    return GRAVATAR_URL.format(digest=digest)


def build_text_payload(metadata: EmailMetadata, body: str) -> Dict[str, Any]:
    """
    Build a plain ``content`` message.

    Args:
        metadata: Email metadata (sender, recipients, subject)
        body: Extracted body text (may be empty)

    Returns:
        dict: Webhook JSON payload
    """
    content = (
        f"送信元:{metadata.from_address}\n"
        f"宛先:{metadata.to_display}\n"
        f"件名:{metadata.subject_or_default}\n"
        f"\n"
        f"{body or DEFAULT_BODY}"
    )
    if len(content) > MAX_CONTENT_LENGTH:
        logger.info(f"Message content truncated from {len(content)} to {MAX_CONTENT_LENGTH} characters")
    return {"content": truncate(content, MAX_CONTENT_LENGTH)}


def _embed_fields(metadata: EmailMetadata, content: EmailContent) -> List[Dict[str, Any]]:
    fields = [{
        "name": "宛先",
        "value": truncate(metadata.to_display or "-", MAX_FIELD_VALUE_LENGTH),
        "inline": True,
    }]
    names = content.attachment_names
    if names:
        fields.append({
            "name": f"添付ファイル ({len(names)})",
            "value": truncate("\n".join(names), MAX_FIELD_VALUE_LENGTH),
            "inline": False,
        })
    return fields


def _embed_length(embed: Dict[str, Any]) -> int:
    """Characters Discord counts against the per-embed total."""
    total = len(embed.get("title", "")) + len(embed.get("description", ""))
    total += len(embed.get("author", {}).get("name", ""))
    for field in embed.get("fields", []):
        total += len(field["name"]) + len(field["value"])
    return total


def build_embed_payload(metadata: EmailMetadata, content: EmailContent) -> Dict[str, Any]:
    """
    Build an embed message with the sender's avatar.

    The description gets whatever is left of the embed's total character
    budget once the title, author and fields are in place.

    Args:
        metadata: Email metadata (sender, recipients, subject, timestamp)
        content: Parsed email content

    Returns:
        dict: Webhook JSON payload
    """
    sender = metadata.sender_name or metadata.from_address
    icon = avatar_url(metadata.from_address)

    if metadata.sender_name:
        author_name = f"{metadata.sender_name} <{metadata.from_address}>"
    else:
        author_name = metadata.from_address

    embed = {
        "title": truncate(metadata.subject_or_default, MAX_TITLE_LENGTH),
        "color": EMBED_COLOR,
        "author": {
            "name": truncate(author_name, MAX_AUTHOR_NAME_LENGTH),
            "icon_url": icon,
        },
        "fields": _embed_fields(metadata, content),
    }

    description = content.body_for_message.strip() or DEFAULT_BODY
    limit = min(MAX_DESCRIPTION_LENGTH, MAX_EMBED_TOTAL_LENGTH - _embed_length(embed))
    if len(description) > limit:
        logger.info(f"Embed description truncated from {len(description)} to {limit} characters")
    embed["description"] = truncate(description, limit)

    if metadata.timestamp:
        embed["timestamp"] = metadata.timestamp

    return {
        "username": truncate(sender, MAX_USERNAME_LENGTH),
        "avatar_url": icon,
        "embeds": [embed],
    }
