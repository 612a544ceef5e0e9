"""
Shared clients: Redis for breaker state, R2 (S3 API via boto3) for brief archives.

Neither client opens a connection at import, so tests and local runs without
credentials import this module safely.
"""
import logging
from typing import Optional

import boto3
import redis
from botocore.client import Config
from botocore.exceptions import BotoCoreError

from bridgeit.config import (
    REDIS_URL,
    R2_ACCESS_KEY_ID, R2_SECRET_ACCESS_KEY, R2_ENDPOINT_URL,
)

logger = logging.getLogger('bridgeit.extensions')


def make_redis_client(url: str = REDIS_URL) -> redis.Redis:
    return redis.from_url(url, decode_responses=True, socket_timeout=2, socket_connect_timeout=2)


def make_r2_client(access_key: str = R2_ACCESS_KEY_ID, secret_key: str = R2_SECRET_ACCESS_KEY,
                   endpoint: str = R2_ENDPOINT_URL) -> Optional[object]:
    """S3-compatible client for the brief archive, or None when R2 is not configured."""
    if not (access_key and secret_key and endpoint):
        logger.warning("R2 credentials not set, handoff briefs will not be archived")
        return None
    try:
        client = boto3.client(
            's3',
            endpoint_url=endpoint,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=Config(signature_version='s3v4'),
            region_name='auto',
        )
    except (BotoCoreError, ValueError) as e:
        logger.error("Error initializing R2 client: %s", e)
        return None
    logger.info("R2 client initialized for %s", endpoint)
    return client


redis_client = make_redis_client()
r2_client = make_r2_client()
