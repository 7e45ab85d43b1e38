"""
Shared client instances: Redis, object store (boto3 S3), ECS, OpenAI.

Clients are built on first access and cached per process so warm workers reuse
connections. Each cached client can be dropped with its reset_* function; the
next get_* call builds a fresh one. Importing this module is always safe, even
when env vars are missing during tests.
"""
import logging
import threading

import redis
import boto3
from botocore.client import Config

from leadpipe.config import (
    REDIS_URL,
    OBJECT_STORE_ENDPOINT_URL, OBJECT_STORE_ACCESS_KEY_ID,
    OBJECT_STORE_SECRET_ACCESS_KEY, OBJECT_STORE_REGION,
    AWS_REGION,
    OPENAI_API_KEY, OPENAI_TIMEOUT_SECONDS,
)

logger = logging.getLogger('leadpipe.extensions')

_lock = threading.Lock()
_clients = {}

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)


# ── Object store (S3-compatible) ──────────────────────────────────────────────

def _build_object_store_client():
    kwargs = {
        'config': Config(signature_version='s3v4', retries={'max_attempts': 3}),
        'region_name': OBJECT_STORE_REGION,
    }
    if OBJECT_STORE_ENDPOINT_URL:
        kwargs['endpoint_url'] = OBJECT_STORE_ENDPOINT_URL
    if OBJECT_STORE_ACCESS_KEY_ID and OBJECT_STORE_SECRET_ACCESS_KEY:
        kwargs['aws_access_key_id'] = OBJECT_STORE_ACCESS_KEY_ID
        kwargs['aws_secret_access_key'] = OBJECT_STORE_SECRET_ACCESS_KEY
    else:
        logger.warning("Object store credentials not set, using default AWS credential chain")
    client = boto3.client('s3', **kwargs)
    logger.info("Object store client initialized (endpoint=%s)", OBJECT_STORE_ENDPOINT_URL or 'aws')
    return client


# ── ECS ───────────────────────────────────────────────────────────────────────

def _build_ecs_client():
    client = boto3.client('ecs', region_name=AWS_REGION)
    logger.info("ECS client initialized (region=%s)", AWS_REGION)
    return client


# ── OpenAI ────────────────────────────────────────────────────────────────────

def _build_openai_client():
    if not OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not set")
    from openai import OpenAI
    client = OpenAI(api_key=OPENAI_API_KEY, timeout=OPENAI_TIMEOUT_SECONDS, max_retries=0)
    logger.info("OpenAI client initialized successfully")
    return client


_FACTORIES = {
    'object_store': _build_object_store_client,
    'ecs': _build_ecs_client,
    'openai': _build_openai_client,
}


def _get(name):
    client = _clients.get(name)
    if client is not None:
        return client
    with _lock:
        if name not in _clients:
            _clients[name] = _FACTORIES[name]()
        return _clients[name]


def _reset(name):
    with _lock:
        if _clients.pop(name, None) is not None:
            logger.warning("Dropped cached %s client, next call reconnects", name)


def get_object_store_client():
    return _get('object_store')


def reset_object_store_client():
    _reset('object_store')


def get_ecs_client():
    return _get('ecs')


def reset_ecs_client():
    _reset('ecs')


def get_openai_client():
    return _get('openai')


def reset_openai_client():
    _reset('openai')
