"""
Service functions used by the email relay.

This package contains reusable functions for reading raw emails from S3,
extracting their text, formatting chat messages and forwarding mail.
"""

__all__ = ['email', 'mime_text', 'message_format', 'forwarding', 's3']
