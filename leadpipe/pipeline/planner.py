"""
Batch planner: select leads by filter rules and write fixed-size batch
payloads plus one manifest per job.

Re-planning a job id overwrites its manifest and batches; batch objects left
over from a larger earlier plan are deleted so the prefix matches the manifest.
"""
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from leadpipe.config import BATCH_SIZE
from leadpipe.database import get_session
from leadpipe.errors import PersistenceError, ValidationError
from leadpipe.models.lead import Lead
from leadpipe.services import object_store

logger = logging.getLogger('pipeline.planner')

OPERATORS = ('EXISTS', 'NOT_EXISTS', 'EQUALS', 'NOT_EQUALS')

DEFAULT_FILTER_RULES = [
    {'field': 'website', 'operator': 'EXISTS'},
    {'field': 'web_scraped_at', 'operator': 'NOT_EXISTS'},
]


@dataclass
class Manifest:
    bucket: str
    key: str
    totalItems: int
    totalBatches: int
    jobId: str
    batchKeys: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def batches_prefix(job_id: str) -> str:
    return f"jobs/{job_id}/batches/"


def batch_key(job_id: str, index: int) -> str:
    return f"{batches_prefix(job_id)}batch-{index:04d}.json"


def manifest_key(job_id: str) -> str:
    return f"jobs/{job_id}/batch-manifest.json"


def _column(name: str):
    column = Lead.__table__.columns.get(name)
    if column is None:
        raise ValidationError(f"Unknown filter field '{name}'")
    return getattr(Lead, name)


def build_filter(rule: Dict[str, Any]):
    """One {field, operator, value} rule -> SQLAlchemy criterion."""
    if not isinstance(rule, dict):
        raise ValidationError(f"Filter rule must be an object: {rule!r}")
    operator = str(rule.get('operator') or '').upper()
    if operator not in OPERATORS:
        raise ValidationError(f"Unknown filter operator '{rule.get('operator')}'")
    column = _column(rule.get('field') or '')

    if operator == 'EXISTS':
        return column.isnot(None)
    if operator == 'NOT_EXISTS':
        return column.is_(None)
    if 'value' not in rule:
        raise ValidationError(f"Operator {operator} needs a value")
    if operator == 'EQUALS':
        return column == rule['value']
    return (column != rule['value']) | column.is_(None)


def select_leads(filter_rules: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
    """Matching leads as ordered {leadId, ref} items (created_at, then id)."""
    rules = DEFAULT_FILTER_RULES if filter_rules is None else filter_rules
    criteria = [build_filter(rule) for rule in rules]

    session = get_session()
    try:
        query = session.query(Lead.id, Lead.place_id)
        for criterion in criteria:
            query = query.filter(criterion)
        rows = query.order_by(Lead.created_at.asc(), Lead.id.asc()).all()
        return [{'leadId': lead_id, 'ref': place_id} for lead_id, place_id in rows]
    except SQLAlchemyError as e:
        logger.error("Lead selection failed", exc_info=True)
        raise PersistenceError(f"Lead selection failed: {e}") from e
    finally:
        session.close()


def plan(job_id: str, filter_rules: Optional[List[Dict[str, Any]]] = None,
         batch_size: int = None) -> Manifest:
    """Write batches and the manifest for job_id; returns the manifest."""
    if not job_id:
        raise ValidationError("job_id is required")
    batch_size = BATCH_SIZE if batch_size is None else batch_size
    if batch_size < 1:
        raise ValidationError(f"batch_size must be positive, got {batch_size}")

    items = select_leads(filter_rules)
    logger.info("Found %d leads for job %s", len(items), job_id, extra={'job_id': job_id})

    keys = []
    for index, start in enumerate(range(0, len(items), batch_size)):
        key = batch_key(job_id, index)
        object_store.put_json(key, items[start:start + batch_size])
        keys.append(key)

    current = set(keys)
    stale = [k for k in object_store.list_keys(batches_prefix(job_id)) if k not in current]
    if stale:
        logger.info("Removing %d stale batch objects for job %s", len(stale), job_id, extra={'job_id': job_id})
        object_store.delete_keys(stale)

    manifest = Manifest(
        bucket=object_store.bucket_name(),
        key=manifest_key(job_id),
        totalItems=len(items),
        totalBatches=len(keys),
        jobId=job_id,
        batchKeys=keys,
    )
    object_store.put_json(manifest.key, manifest.to_dict())
    logger.info("Wrote %d batch files + manifest for job %s", len(keys), job_id, extra={'job_id': job_id})
    return manifest
