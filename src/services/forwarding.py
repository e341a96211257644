"""
Forwarding of inbound emails to another mailbox through SES.

SES only sends mail from verified identities, so the original message cannot
be relayed byte for byte. The From header is rewritten to the forwarding
identity (keeping the original display name) and replies are pointed back at
the original sender.

Forwarding is best effort: errors are logged and never raised.
"""

import logging
import os
from email import message_from_bytes, policy
from email.utils import formataddr, parseaddr

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from domain.models import EmailMetadata

logger = logging.getLogger(__name__)

# Configure SES client with timeouts
ses_config = Config(
    retries={
        'max_attempts': 1,
        'mode': 'standard'
    },
    connect_timeout=10,
    read_timeout=30
)

region = os.environ.get('AWS_REGION', os.environ.get('AWS_DEFAULT_REGION', 'us-east-1'))

# Module-level client (reused across invocations)
ses_client = boto3.client('ses', region_name=region, config=ses_config)

# Configuration from environment
FORWARD_EMAIL_ADDRESS = os.environ.get('FORWARD_EMAIL_ADDRESS', '')
FORWARD_FROM_ADDRESS = os.environ.get('FORWARD_FROM_ADDRESS', '')

# Headers SES rejects or that no longer match once From is rewritten
_STRIPPED_HEADERS = ('Return-Path', 'Sender', 'DKIM-Signature')


def is_configured() -> bool:
    """
    Check if forwarding is configured.

    Returns:
        True if FORWARD_EMAIL_ADDRESS is set
    """
    return bool(FORWARD_EMAIL_ADDRESS)


def prepare_forward(raw_email: bytes, from_address: str, original_sender: str) -> bytes:
    """
    Rewrite a raw message so SES accepts it for sending.

    Args:
        raw_email: Original raw message
        from_address: Verified SES identity to send from
        original_sender: Envelope sender of the original message

    Returns:
        bytes: The rewritten raw message
    """
    # compat32 keeps the body and untouched headers as they came in
    msg = message_from_bytes(raw_email, policy=policy.compat32)

    original_from = msg.get('From', '') or original_sender
    display_name, _ = parseaddr(str(original_from))

    for header in _STRIPPED_HEADERS:
        del msg[header]

    if msg.get('Reply-To') is None:
        msg['Reply-To'] = str(original_from)

    del msg['From']
    msg['From'] = formataddr((display_name, from_address))

    return msg.as_bytes()


def forward_email(raw_email: bytes, metadata: EmailMetadata) -> bool:
    """
    Forward the raw email to FORWARD_EMAIL_ADDRESS.

    Args:
        raw_email: Original raw message
        metadata: Email metadata (envelope sender and recipients)

    Returns:
        True if SES accepted the message, False if forwarding is not
        configured or failed
    """
    if not is_configured():
        logger.info("Forwarding not configured, skipping")
        return False

    from_address = FORWARD_FROM_ADDRESS or (metadata.to_addresses[0] if metadata.to_addresses else '')
    if not from_address:
        logger.error("Cannot forward email: no FORWARD_FROM_ADDRESS and no envelope recipient")
        return False

    try:
        data = prepare_forward(raw_email, from_address, metadata.from_address)
        response = ses_client.send_raw_email(
            Source=from_address,
            Destinations=[FORWARD_EMAIL_ADDRESS],
            RawMessage={'Data': data}
        )
        logger.info(
            f"Forwarded email to {FORWARD_EMAIL_ADDRESS}: "
            f"ses_message_id={response.get('MessageId', 'UNKNOWN')}"
        )
        return True

    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', 'Unknown')
        error_message = e.response.get('Error', {}).get('Message', str(e))
        logger.error(
            f"Failed to forward email to {FORWARD_EMAIL_ADDRESS}: "
            f"error_code={error_code}, error_message={error_message}"
        )
        return False
    except Exception as e:
        logger.error(f"Unexpected error forwarding email to {FORWARD_EMAIL_ADDRESS}: {e}", exc_info=True)
        return False
