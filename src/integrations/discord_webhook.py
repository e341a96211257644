"""
Discord-compatible webhook delivery.

This module posts formatted chat messages to the webhook configured in
DISCORD_WEBHOOK_URL. Delivery is a single attempt: failures are logged with
the response details and reported to the caller as False.

Usage:
    from integrations import discord_webhook

    delivered = discord_webhook.post_message({"content": "Hello"})
"""

import logging
import os
from typing import Dict, Any

import requests

# Configure logging
logger = logging.getLogger(__name__)


# ============================================================================
# Custom Exception Classes
# ============================================================================

class ConfigurationError(Exception):
    """Raised when module configuration is invalid or missing."""
    pass


# ============================================================================
# Module-Level Configuration
# ============================================================================

DEFAULT_TIMEOUT_SECONDS = '10'


def _read_webhook_timeout() -> float:
    """
    Read WEBHOOK_TIMEOUT_SECONDS from environment variables.

    Returns:
        float: Request timeout in seconds (default 10)

    Raises:
        ConfigurationError: If the value is not a positive number
    """
    raw_value = os.environ.get('WEBHOOK_TIMEOUT_SECONDS') or DEFAULT_TIMEOUT_SECONDS

    try:
        timeout = float(raw_value)
    except ValueError:
        raise ConfigurationError(
            f"WEBHOOK_TIMEOUT_SECONDS must be a number of seconds, got: '{raw_value}'"
        )

    if not 0 < timeout < float('inf'):
        raise ConfigurationError(
            f"WEBHOOK_TIMEOUT_SECONDS must be positive, got: '{raw_value}'"
        )

    return timeout


def _read_webhook_url() -> str:
    """
    Read and validate DISCORD_WEBHOOK_URL from environment variables.

    Returns:
        str: The validated webhook URL

    Raises:
        ConfigurationError: If DISCORD_WEBHOOK_URL is missing or invalid
    """
    webhook_url = os.environ.get('DISCORD_WEBHOOK_URL')

    if not webhook_url:
        raise ConfigurationError(
            "DISCORD_WEBHOOK_URL environment variable is required but not set. "
            "Please configure this in your SAM template or Lambda environment."
        )

    if not webhook_url.startswith(('https://', 'http://')):
        raise ConfigurationError(
            f"DISCORD_WEBHOOK_URL has invalid format. "
            f"Expected an http(s) URL, got: '{webhook_url[:30]}...'"
        )

    # The URL embeds the webhook token; only log its prefix
    logger.info(f"Webhook URL configured: {webhook_url[:40]}...")
    return webhook_url


# Read at module import time (reused across invocations)
try:
    WEBHOOK_URL = _read_webhook_url()
    WEBHOOK_TIMEOUT_SECONDS = _read_webhook_timeout()
except ConfigurationError as e:
    logger.error(f"Module initialization failed: {e}")
    raise


# ============================================================================
# Delivery
# ============================================================================

def post_message(payload: Dict[str, Any]) -> bool:
    """
    POST a JSON payload to the configured webhook.

    Args:
        payload: Webhook JSON body (``content`` or ``embeds`` message)

    Returns:
        bool: True if the webhook answered with a 2xx status

    Example:
        >>> post_message({"content": "送信元:a@example.com ..."})
        True
    """
    try:
        response = requests.post(
            WEBHOOK_URL,
            json=payload,
            timeout=WEBHOOK_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        logger.error(f"Webhook request failed: {e}")
        return False

    # Response.ok also accepts 1xx/3xx; only 2xx means the message was posted
    if 200 <= response.status_code < 300:
        logger.info(f"Webhook delivered: status={response.status_code}")
        return True

    logger.error(
        f"Webhook delivery failed: status={response.status_code}, "
        f"reason={response.reason}, body={response.text[:500]}, "
        f"payload={payload}"
    )
    return False
