"""
Batch stage contracts.

Every worker stage implements BatchStage.process_lead() for one lead and gets
bounded fan-out from BatchStage.run(). The worker only sees the uniform
interface and looks stages up by Task.type.
"""
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from leadpipe.config import WORKER_CONCURRENCY
from leadpipe.errors import ValidationError

logger = logging.getLogger('pipeline.base')

PROCESSED = 'processed'
SKIPPED = 'skipped'
FAILED = 'failed'


@dataclass(frozen=True)
class BatchItem:
    """One entry of a batch payload: {leadId, ref}."""
    lead_id: str
    ref: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Any) -> 'BatchItem':
        if not isinstance(raw, dict):
            raise ValidationError(f"Batch item must be an object, got {type(raw).__name__}")
        lead_id = raw.get('leadId') or raw.get('lead_id')
        if not lead_id or not isinstance(lead_id, str):
            raise ValidationError(f"Batch item missing leadId: {raw!r}")
        ref = raw.get('ref') or raw.get('place_id')
        return cls(lead_id=lead_id, ref=ref)

    def to_dict(self) -> Dict[str, Any]:
        return {'leadId': self.lead_id, 'ref': self.ref}


@dataclass
class LeadOutcome:
    lead_id: str
    status: str
    error: Optional[str] = None
    detail: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BatchResult:
    """Uniform output from every batch stage."""
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    outcomes: List[LeadOutcome] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def record(self, outcome: LeadOutcome) -> None:
        if outcome.status == PROCESSED:
            self.processed += 1
        elif outcome.status == SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            if outcome.error:
                self.errors.append(f"{outcome.lead_id}: {outcome.error}")
        self.outcomes.append(outcome)

    def metadata(self) -> Dict[str, int]:
        return {'processed': self.processed, 'skipped': self.skipped, 'failed': self.failed}


class BatchStage(ABC):
    """
    Base class for worker stages.

    process_lead() owns one lead end to end, including recording its failure
    state on the lead row. run() fans the batch out over a fixed-size thread
    pool; a new lead starts as soon as a slot frees and run() returns only
    after every lead has settled.
    """
    task_type: str = ''
    description: str = ''

    def before_batch(self, items: List[BatchItem]) -> None:
        """Optional hook run once before any lead starts."""

    def after_batch(self, items: List[BatchItem], result: BatchResult) -> None:
        """Optional hook run once after every lead has settled."""

    @abstractmethod
    def process_lead(self, item: BatchItem) -> LeadOutcome:
        ...

    def run(self, items: List[BatchItem], concurrency: int = None) -> BatchResult:
        concurrency = max(1, concurrency or WORKER_CONCURRENCY)
        result = BatchResult()

        self.before_batch(items)
        logger.info("%s: %d leads, concurrency %d", self.task_type, len(items), concurrency)

        with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix=self.task_type or 'stage') as pool:
            futures = {pool.submit(self.process_lead, item): item for item in items}
            for future in as_completed(futures):
                item = futures[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    # process_lead could not even record the failure on the lead row
                    logger.error("Unhandled error for lead %s: %s", item.lead_id, e,
                                 exc_info=True, extra={'lead_id': item.lead_id})
                    outcome = LeadOutcome(item.lead_id, FAILED, error=str(e))
                result.record(outcome)

        logger.info("%s done: %d processed, %d skipped, %d failed",
                    self.task_type, result.processed, result.skipped, result.failed)
        self.after_batch(items, result)
        return result


# ── Stage registry ────────────────────────────────────────────────────────────
# The worker keeps {task_type: stage class}, e.g.
#   STAGES = {'ai_scoring': ScoringStage, 'web_scrape': EnrichmentStage}


def get_stage(stages: Dict[str, Type[BatchStage]], task_type: str, **kwargs) -> BatchStage:
    """Look up and instantiate the stage for a task type."""
    stage_cls = stages.get(task_type)
    if not stage_cls:
        raise ValidationError(f"No stage registered for task type '{task_type}'")
    return stage_cls(**kwargs)
