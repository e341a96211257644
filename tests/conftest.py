"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys
import pytest

# Add src to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

# Set up test environment variables before importing any modules
os.environ.setdefault('DISCORD_WEBHOOK_URL', 'https://discord.com/api/webhooks/123456789012345678/test-token')
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-west-2')
os.environ.setdefault('ENVIRONMENT', 'test')
os.environ.setdefault('LOG_LEVEL', 'INFO')


@pytest.fixture
def raw_multipart_email():
    """Multipart/alternative email with CRLF line endings, as SES stores it."""
    return (
        b"From: Taro Yamada <sender@example.com>\r\n"
        b"To: inbox@yourdomain.com\r\n"
        b"Subject: Test Email Subject\r\n"
        b"MIME-Version: 1.0\r\n"
        b"Content-Type: multipart/alternative; boundary=\"boundary123\"\r\n"
        b"\r\n"
        b"--boundary123\r\n"
        b"Content-Type: text/plain; charset=\"utf-8\"\r\n"
        b"Content-Transfer-Encoding: base64\r\n"
        b"\r\n"
        b"44OG44K544OI5pys5paH\r\n"
        b"\r\n"
        b"--boundary123\r\n"
        b"Content-Type: text/html; charset=\"utf-8\"\r\n"
        b"\r\n"
        b"<html><body><p>HTML body</p></body></html>\r\n"
        b"\r\n"
        b"--boundary123--\r\n"
    )
