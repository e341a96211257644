"""
Email relay pipeline - core business logic.

This module handles the end-to-end relay of SES email notifications:
1. Parse SES notification from SQS record
2. Fetch the raw email from S3
3. Extract a readable body (library or legacy parser)
4. Post a chat message to the webhook
5. Forward the raw email, if configured

All errors are caught and returned as RelayResult with success=False.
No exceptions propagate out of the public methods.
"""

import json
import logging
import os
from typing import Dict, Any

from .models import EmailMetadata, EmailContent, RelayResult, Attachment
from services import email as email_service
from services import mime_text
from services import message_format
from services import forwarding
from services import s3 as s3_service
from integrations import discord_webhook

logger = logging.getLogger(__name__)

BODY_PARSERS = ('library', 'legacy')
MESSAGE_FORMATS = ('text', 'embed')


def _read_choice(name: str, choices: tuple) -> str:
    value = os.environ.get(name, choices[0]).strip().lower()
    if value not in choices:
        logger.warning(f"Unknown {name}='{value}', using '{choices[0]}' (expected one of {choices})")
        return choices[0]
    return value


BODY_PARSER = _read_choice('BODY_PARSER', BODY_PARSERS)
MESSAGE_FORMAT = _read_choice('MESSAGE_FORMAT', MESSAGE_FORMATS)


class EmailRelay:
    """
    Relays inbound emails to a chat webhook.

    Processes SES email notifications, posts a formatted message to the
    webhook and optionally forwards the original email. Returns RelayResult
    for explicit success/failure handling.
    """

    def __init__(self, body_parser: str = None, message_format: str = None):
        """
        Initialize email relay.

        Args:
            body_parser: 'library' or 'legacy' (default: BODY_PARSER env)
            message_format: 'text' or 'embed' (default: MESSAGE_FORMAT env)
        """
        self.body_parser = body_parser or BODY_PARSER
        self.message_format = message_format or MESSAGE_FORMAT

    def process_ses_record(self, record: Dict[str, Any]) -> RelayResult:
        """
        Process a single SQS record containing SES notification.

        Args:
            record: SQS record dict containing SES notification

        Returns:
            RelayResult with success=True or success=False (errors logged)
        """
        message_id = record.get('messageId', 'UNKNOWN')
        logger.info(f"Processing SQS message: {message_id}")

        try:
            metadata = self._parse_ses_notification(record)
            logger.info(f"Parsed: from={metadata.from_address}, subject={metadata.subject}")

            raw_email = s3_service.fetch_email_from_s3(metadata.bucket_name, metadata.object_key)
            logger.info(f"Fetched {len(raw_email):,} bytes from S3")

            content = self._extract_content(raw_email, metadata)
            logger.info(
                f"Extracted: parser={self.body_parser}, text={len(content.text_body)}, "
                f"html={len(content.html_body)}, attachments={len(content.attachments)}"
            )

            payload = self._build_payload(metadata, content)

        except Exception as e:
            logger.error(f"Failed to process {message_id}: {e}", exc_info=True)

            return RelayResult(
                success=False,
                message_id=message_id,
                error_message=str(e)
            )

        webhook_delivered = discord_webhook.post_message(payload)

        # Forwarding never affects the webhook outcome
        forwarded = False
        if forwarding.is_configured():
            forwarded = forwarding.forward_email(raw_email, metadata)

        return RelayResult(
            success=True,
            message_id=message_id,
            metadata=metadata,
            webhook_delivered=webhook_delivered,
            forwarded=forwarded
        )

    def _parse_ses_notification(self, record: Dict[str, Any]) -> EmailMetadata:
        """
        Parse SQS record and extract SES notification metadata.

        Handles both direct SES->SQS and SNS-wrapped notifications.

        Args:
            record: SQS record dict

        Returns:
            EmailMetadata: Structured email metadata

        Raises:
            ValueError: If notification structure is invalid
            json.JSONDecodeError: If JSON parsing fails
        """
        message_id = record.get('messageId', 'UNKNOWN')

        sqs_body = json.loads(record['body'])

        # Optional setup: SES -> SNS -> SQS
        if sqs_body.get('Type') == 'Notification' and 'Message' in sqs_body:
            logger.info("Unwrapping SNS message (SES -> SNS -> SQS)")
            ses_notification = json.loads(sqs_body['Message'])
        else:
            ses_notification = sqs_body

        if 'mail' not in ses_notification or 'receipt' not in ses_notification:
            raise ValueError("SES notification missing 'mail' or 'receipt' fields")

        mail = ses_notification['mail']
        receipt = ses_notification['receipt']
        common_headers = mail.get('commonHeaders', {})

        from_header = common_headers.get('from', [])
        if isinstance(from_header, str):
            from_header = [from_header] if from_header else []
        sender_name, header_address = email_service.parse_sender(from_header[0] if from_header else '')

        # Envelope sender first, like the mail server saw it
        from_address = (
            mail.get('source')
            or header_address
            or mail.get('returnPath')
            or 'Unknown'
        )

        to_addresses = (
            receipt.get('recipients')
            or mail.get('destination')
            or common_headers.get('to')
            or []
        )
        if isinstance(to_addresses, str):
            to_addresses = [to_addresses]

        action = receipt.get('action', {})
        bucket_name = action.get('bucketName')
        object_key = action.get('objectKey')

        if not bucket_name or not object_key:
            raise ValueError("Missing S3 location in SES notification")

        return EmailMetadata(
            message_id=message_id,
            from_address=from_address,
            to_addresses=list(to_addresses),
            subject=common_headers.get('subject') or '',
            timestamp=mail.get('timestamp', ''),
            bucket_name=bucket_name,
            object_key=object_key,
            sender_name=sender_name
        )

    def _extract_content(self, raw_email: bytes, metadata: EmailMetadata) -> EmailContent:
        """
        Extract the readable body with the configured parser.

        Fills in the subject from the raw headers when the notification
        carried none.
        """
        if self.body_parser == 'legacy':
            content = EmailContent(
                text_body=mime_text.get_message_body(mime_text.decode_raw(raw_email)),
                html_body=''
            )
        else:
            parsed = email_service.extract_email_body(raw_email)
            content = EmailContent(
                text_body=parsed.get('text_body', ''),
                html_body=parsed.get('html_body', ''),
                attachments=[
                    Attachment(
                        filename=att.get('filename', ''),
                        content_type=att.get('content_type', 'application/octet-stream'),
                        size=att.get('size', 0)
                    )
                    for att in parsed.get('attachments', [])
                ]
            )

        if not metadata.subject and raw_email:
            headers = email_service.parse_email_headers(raw_email)
            metadata.subject = headers.get('Subject', '')

        return content

    def _build_payload(self, metadata: EmailMetadata, content: EmailContent) -> Dict[str, Any]:
        """Build the webhook payload in the configured format."""
        if self.message_format == 'embed':
            return message_format.build_embed_payload(metadata, content)
        return message_format.build_text_payload(metadata, content.body_for_message.strip())
