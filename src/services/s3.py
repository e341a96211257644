"""
S3 access for raw inbound emails.

SES receipt rules store each inbound message as an S3 object; this module
streams it back for parsing and forwarding.
"""

import logging

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

# Read size for the object body stream
CHUNK_SIZE = 64 * 1024

# Configure S3 client with timeouts to prevent infinite hangs
s3_config = Config(
    retries={
        'max_attempts': 1,  # 1 attempt total (no retries)
        'mode': 'standard'
    },
    connect_timeout=10,
    read_timeout=60
)

# Initialize S3 client at module level (reused across invocations)
s3_client = boto3.client('s3', config=s3_config)
logger.info("S3 client initialized with timeouts: connect=10s, read=60s, max_attempts=1")


def fetch_email_from_s3(bucket: str, key: str) -> bytes:
    """
    Read the raw email stored by the SES receipt rule.

    The object body is consumed chunk by chunk so large messages are not
    buffered twice by the HTTP layer.

    Args:
        bucket: S3 bucket name
        key: S3 object key of the raw message

    Returns:
        bytes: The raw RFC 822 message

    Raises:
        ValueError: If the bucket or key does not exist
        ClientError: For any other S3 failure
    """
    try:
        response = s3_client.get_object(Bucket=bucket, Key=key)
        body = response['Body']
        chunks = []
        for chunk in body.iter_chunks(chunk_size=CHUNK_SIZE):
            chunks.append(chunk)
        return b''.join(chunks)
    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', '')
        if error_code == 'NoSuchKey':
            logger.error(f"S3 object not found: s3://{bucket}/{key}")
            raise ValueError(f"Email file not found in S3: {key}")
        elif error_code == 'NoSuchBucket':
            logger.error(f"S3 bucket not found: {bucket}")
            raise ValueError(f"S3 bucket not found: {bucket}")
        else:
            logger.error(f"Failed to fetch from S3 s3://{bucket}/{key}: {e}")
            raise
