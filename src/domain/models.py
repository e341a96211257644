"""
Data models for the email relay domain.

These type-safe data structures define clear contracts between components.
"""

from dataclasses import dataclass, field
from typing import List, Optional

# Fallback texts used whenever a payload field would otherwise be empty
DEFAULT_SUBJECT = "件名なし"
DEFAULT_BODY = "本文なし"


@dataclass
class Attachment:
    """
    Email attachment metadata.

    Attributes:
        filename: Original filename
        content_type: MIME type (e.g., "image/png", "application/pdf")
        size: Size in bytes
    """
    filename: str
    content_type: str
    size: int

    @property
    def is_image(self) -> bool:
        """Check if attachment is an image."""
        return self.content_type.lower().startswith('image/')


@dataclass
class EmailMetadata:
    """
    Structured email metadata extracted from SES notification.

    Attributes:
        message_id: Unique SQS message identifier
        from_address: Envelope sender address
        to_addresses: Envelope recipient addresses
        subject: Email subject line (may be empty)
        timestamp: ISO 8601 timestamp when email was received
        bucket_name: S3 bucket containing the raw email
        object_key: S3 object key for the raw email
        sender_name: Display name from the From header, if any
    """
    message_id: str
    from_address: str
    to_addresses: List[str]
    subject: str
    timestamp: str
    bucket_name: str
    object_key: str
    sender_name: str = ''

    @property
    def to_display(self) -> str:
        """Recipients joined for display."""
        return ", ".join(self.to_addresses)

    @property
    def subject_or_default(self) -> str:
        return self.subject or DEFAULT_SUBJECT


@dataclass
class EmailContent:
    """
    Parsed email content.

    Attributes:
        text_body: Plain text body (empty string if not present)
        html_body: HTML body (empty string if not present)
        attachments: List of Attachment objects
    """
    text_body: str
    html_body: str
    attachments: List[Attachment] = field(default_factory=list)

    @property
    def body_for_message(self) -> str:
        """
        Get best available body content for the chat message.

        Priority: text_body > html_body > empty string
        """
        return self.text_body or self.html_body or ""

    @property
    def has_content(self) -> bool:
        """Check if email has any body content."""
        return bool(self.text_body or self.html_body)

    @property
    def attachment_names(self) -> List[str]:
        return [a.filename for a in self.attachments if a.filename]


@dataclass
class RelayResult:
    """
    Result of relaying one email.

    Attributes:
        success: Whether the email was parsed and a payload was built
        message_id: SQS message identifier
        metadata: Email metadata (if parsing succeeded)
        webhook_delivered: Whether the webhook accepted the message
        forwarded: Whether the raw email was forwarded
        error_message: Error description (if processing failed)
    """
    success: bool
    message_id: str
    metadata: Optional[EmailMetadata] = None
    webhook_delivered: bool = False
    forwarded: bool = False
    error_message: Optional[str] = None

    @property
    def should_delete_message(self) -> bool:
        """Always True - delete all messages to prevent infinite retries."""
        return True

    def __repr__(self) -> str:
        """Human-readable representation for logging."""
        if self.success:
            return (
                f"RelayResult(success=True, message_id={self.message_id}, "
                f"webhook_delivered={self.webhook_delivered}, forwarded={self.forwarded})"
            )
        else:
            return f"RelayResult(success=False, message_id={self.message_id}, error={self.error_message})"
