"""
Task dispatcher: one delivery of trigger messages -> one batch -> one Task ->
one launched worker.

Order of side effects: batch payload, Task row (running), launcher. A launch
that yields no execution handle or raises marks the Task failed and surfaces
as LaunchError.
"""
import json
import uuid
import logging
from typing import Any, Dict, Iterable, List, Optional

from leadpipe.config import DISPATCH_MAX_MESSAGES, TASK_TYPES, TRIGGER_QUEUE_KEY
from leadpipe.errors import LaunchError, ValidationError
from leadpipe.pipeline.base import BatchItem
from leadpipe.services import db, object_store
from leadpipe.services.launcher import get_launcher

logger = logging.getLogger('pipeline.dispatcher')


def parse_message(raw: Any) -> BatchItem:
    """Trigger message body (JSON text, bytes or dict) -> BatchItem."""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode('utf-8', errors='replace')
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise ValidationError(f"Trigger message is not JSON: {e}") from e
    return BatchItem.from_dict(raw)


def collect_batch(messages: Iterable[Any]) -> List[BatchItem]:
    """Parse a delivery, dropping malformed messages and duplicate lead ids."""
    items: List[BatchItem] = []
    seen = set()
    for raw in messages:
        try:
            item = parse_message(raw)
        except ValidationError as e:
            logger.warning("Dropping malformed trigger message: %s", e)
            continue
        if item.lead_id in seen:
            continue
        seen.add(item.lead_id)
        items.append(item)
    return items


def batch_ref_for(task_type: str) -> str:
    return f"{task_type}-batches/{uuid.uuid4()}.json"


def dispatch(messages: Iterable[Any], task_type: str = 'ai_scoring', launcher=None) -> Optional[Dict[str, Any]]:
    """
    Returns the Task record, or None when no message survived parsing.
    Raises LaunchError after marking the Task failed.
    """
    if task_type not in TASK_TYPES:
        raise ValidationError(f"Unknown task type '{task_type}'")

    messages = list(messages)
    if len(messages) > DISPATCH_MAX_MESSAGES:
        logger.warning("Delivery of %d messages exceeds the limit of %d, ignoring the rest",
                       len(messages), DISPATCH_MAX_MESSAGES)
        messages = messages[:DISPATCH_MAX_MESSAGES]

    items = collect_batch(messages)
    if not items:
        logger.info("No valid messages in delivery, skipping")
        return None

    batch_ref = batch_ref_for(task_type)
    object_store.put_json(batch_ref, [item.to_dict() for item in items])
    logger.info("Dispatching %d leads as %s", len(items), task_type)
    return launch_batch(batch_ref, task_type, launcher=launcher)


def launch_batch(batch_ref: str, task_type: str, launcher=None, job_id: str = None) -> Dict[str, Any]:
    """Create the running Task for an existing batch payload and start its worker."""
    task = db.create_task(task_type, batch_ref, status='running')
    task_id = task['id']
    descriptor = {'batchRef': batch_ref, 'taskId': task_id}
    if job_id:
        descriptor['jobId'] = job_id
    job_input = json.dumps(descriptor)
    launcher = launcher or get_launcher()
    try:
        result = launcher.run_task({'JOB_INPUT': job_input})
    except Exception as e:
        logger.error("Launcher raised for task %s: %s", task_id, e, exc_info=True, extra={'task_id': task_id})
        db.fail_task(task_id, str(e))
        raise LaunchError(f"Worker launch failed: {e}") from e

    if not result.ok:
        reasons = '; '.join(f.get('reason') or 'Unknown' for f in result.failures) or 'no execution handle'
        logger.error("Worker launch failed for task %s: %s", task_id, reasons, extra={'task_id': task_id})
        db.fail_task(task_id, reasons)
        raise LaunchError(f"Worker launch failed: {reasons}", failures=result.failures)

    task = db.update_task(task_id, external_handle=result.handle)
    logger.info("Started worker for task %s (%s)", task_id, result.handle, extra={'task_id': task_id})
    return task


def dispatch_manifest(manifest, task_type: str = 'web_scrape', launcher=None) -> List[Dict[str, Any]]:
    """Launch one worker per planned batch key; returns the Task records."""
    if task_type not in TASK_TYPES:
        raise ValidationError(f"Unknown task type '{task_type}'")
    data = manifest.to_dict() if hasattr(manifest, 'to_dict') else manifest
    job_id = data.get('jobId')
    return [launch_batch(key, task_type, launcher=launcher, job_id=job_id) for key in data.get('batchKeys') or []]


def drain_queue(redis_client=None, max_messages: int = None, queue_key: str = None) -> List[str]:
    """Pop up to max_messages trigger messages from the Redis list."""
    if redis_client is None:
        from leadpipe.extensions import redis_client
    max_messages = max_messages or DISPATCH_MAX_MESSAGES
    popped = redis_client.lpop(queue_key or TRIGGER_QUEUE_KEY, max_messages)
    if not popped:
        return []
    return popped if isinstance(popped, list) else [popped]


def dispatch_from_queue(task_type: str = 'ai_scoring', launcher=None, redis_client=None):
    """Drain one delivery from Redis and dispatch it."""
    messages = drain_queue(redis_client)
    if not messages:
        return None
    return dispatch(messages, task_type=task_type, launcher=launcher)
