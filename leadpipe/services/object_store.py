"""
Object store operations: JSON/text put/get, prefix listing, deletes.

Every call goes through _call(), which wraps botocore failures in
PersistenceError. A connection-level failure drops the cached client and the
call is retried once on a fresh one.
"""
import json
import logging
from typing import Any, Iterable, List

from botocore.exceptions import (
    BotoCoreError, ClientError, ConnectionClosedError,
    EndpointConnectionError, ReadTimeoutError,
)

from leadpipe.config import OBJECT_STORE_BUCKET
from leadpipe.errors import NotFoundError, PersistenceError
from leadpipe.extensions import get_object_store_client, reset_object_store_client

logger = logging.getLogger('services.object_store')

_RECONNECT_ERRORS = (EndpointConnectionError, ConnectionClosedError, ReadTimeoutError)


def _call(method: str, **kwargs):
    for attempt in range(2):
        client = get_object_store_client()
        try:
            return getattr(client, method)(**kwargs)
        except _RECONNECT_ERRORS as e:
            if attempt == 0:
                logger.warning("Object store connection lost on %s (%s), reconnecting", method, e)
                reset_object_store_client()
                continue
            raise PersistenceError(f"Object store {method} failed: {e}") from e
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', '')
            if code in ('NoSuchKey', '404', 'NotFound'):
                raise NotFoundError(f"Object not found: {kwargs.get('Key')}") from e
            raise PersistenceError(f"Object store {method} failed: {e}") from e
        except BotoCoreError as e:
            raise PersistenceError(f"Object store {method} failed: {e}") from e


def bucket_name() -> str:
    return OBJECT_STORE_BUCKET


def put_text(key: str, body: str, content_type: str = 'text/plain') -> str:
    """Write a UTF-8 text object; returns the key."""
    _call('put_object', Bucket=OBJECT_STORE_BUCKET, Key=key,
          Body=body.encode('utf-8'), ContentType=content_type)
    logger.debug("Wrote %d chars to %s", len(body), key)
    return key


def put_json(key: str, data: Any) -> str:
    """Write a JSON document; returns the key."""
    return put_text(key, json.dumps(data, indent=2, default=str), content_type='application/json')


def get_text(key: str) -> str:
    obj = _call('get_object', Bucket=OBJECT_STORE_BUCKET, Key=key)
    return obj['Body'].read().decode('utf-8')


def get_json(key: str) -> Any:
    """Read and decode a JSON document. Malformed JSON raises ValueError."""
    return json.loads(get_text(key))


def list_keys(prefix: str) -> List[str]:
    """All keys under a prefix, following continuation tokens."""
    keys = []
    token = None
    while True:
        kwargs = {'Bucket': OBJECT_STORE_BUCKET, 'Prefix': prefix}
        if token:
            kwargs['ContinuationToken'] = token
        page = _call('list_objects_v2', **kwargs)
        keys.extend(item['Key'] for item in page.get('Contents', []))
        if not page.get('IsTruncated'):
            break
        token = page.get('NextContinuationToken')
    return sorted(keys)


def delete_keys(keys: Iterable[str]) -> int:
    """Delete objects in chunks of 1000 (S3 API limit). Returns count requested."""
    keys = list(keys)
    for start in range(0, len(keys), 1000):
        chunk = keys[start:start + 1000]
        _call('delete_objects', Bucket=OBJECT_STORE_BUCKET,
              Delete={'Objects': [{'Key': k} for k in chunk], 'Quiet': True})
    if keys:
        logger.info("Deleted %d objects", len(keys))
    return len(keys)


def check_object_store() -> bool:
    """True when the bucket is reachable."""
    _call('head_bucket', Bucket=OBJECT_STORE_BUCKET)
    return True
