"""
AWS Lambda handler relaying SES email notifications from SQS to a chat webhook.

Thin orchestration layer that delegates to EmailRelay.
Policy: Always delete messages (no retries). Errors logged to CloudWatch.
"""

import logging
from typing import Dict, Any

from domain.email_relay import EmailRelay

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

# Add console handler for local testing (AWS Lambda provides handlers automatically)
if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter('%(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Initialize relay once at module level (reused across invocations)
email_relay = EmailRelay()


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Relay SES email notifications from SQS.

    Args:
        event: Lambda event with SQS records
        context: Lambda context

    Returns:
        Dict with batchItemFailures (always empty - no retries)
    """
    records = event.get('Records', [])
    logger.info(f"SES email relay - processing batch of {len(records)} message(s)")

    results = []
    for record in records:
        result = email_relay.process_ses_record(record)
        results.append(result)

        if not result.success:
            logger.warning(
                f"Dropped message {result.message_id} with ERRORS: {result.error_message}"
            )
        elif not result.webhook_delivered:
            logger.warning(f"Message {result.message_id} parsed but webhook delivery failed")
        else:
            logger.info(f"Relayed message {result.message_id}")

    success_count = sum(1 for r in results if r.success)
    delivered_count = sum(1 for r in results if r.webhook_delivered)
    forwarded_count = sum(1 for r in results if r.forwarded)
    logger.info(
        f"Batch complete: {len(results)} message(s), parsed={success_count}, "
        f"delivered={delivered_count}, forwarded={forwarded_count}, "
        f"errors={len(results) - success_count}"
    )

    return {"batchItemFailures": []}
