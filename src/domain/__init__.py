"""
Domain layer for the email relay.

This layer contains:
- Data models (metadata, parsed content, relay result)
- The relay pipeline (SES notification -> webhook message -> forward)
"""
