"""
Batch worker: resolves a task descriptor to its Task and batch payload, runs
the stage registered for Task.type, and records the terminal task state.

Run as a container entry point (JOB_INPUT env var holds the descriptor JSON)
or enqueued through RQ by QueueLauncher:
    python -m leadpipe.pipeline.worker
"""
import os
import json
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from leadpipe.config import ERROR_MESSAGE_MAX_CHARS, STUCK_LEAD_MINUTES
from leadpipe.errors import NotFoundError, ValidationError
from leadpipe.pipeline import market, scoring
from leadpipe.pipeline.base import (
    BatchItem, BatchResult, BatchStage, LeadOutcome,
    PROCESSED, SKIPPED, FAILED, get_stage,
)
from leadpipe.pipeline.enrichment import extract_all, stored_page_source
from leadpipe.pipeline.markdown import normalize_and_store
from leadpipe.services import db, object_store

logger = logging.getLogger('pipeline.worker')


def _now():
    return datetime.now(timezone.utc)


def _truncate(message: str) -> str:
    return (message or '')[:ERROR_MESSAGE_MAX_CHARS]


@dataclass
class JobContext:
    """What a stage knows about the job it runs under."""
    task_id: Optional[str] = None
    batch_ref: Optional[str] = None
    job_id: Optional[str] = None
    run_id: Optional[str] = None
    force: bool = False
    page_source: Optional[Callable] = None


# ── Scoring stage ─────────────────────────────────────────────────────────────

class ScoringStage(BatchStage):
    """
    Two-pass LLM scoring for each lead in the batch.

    Market stats are refreshed before the batch so Pass 2 sees current cohort
    distributions, and again afterwards together with the global rank refresh.
    A lead already scored is left alone unless the job was forced.
    """
    task_type = 'ai_scoring'
    description = 'Extract facts from website markdown and score the lead'

    def __init__(self, context: JobContext = None):
        self.context = context or JobContext()

    def before_batch(self, items):
        try:
            market.refresh_market_stats()
        except Exception as e:
            logger.warning("Market stats refresh before batch failed: %s", e)

    def after_batch(self, items, result):
        if not result.processed:
            return
        try:
            market.refresh_market_stats()
            market.refresh_lead_ranks()
        except Exception as e:
            logger.error("Post-batch market refresh failed: %s", e, exc_info=True)

    def _load_markdown(self, lead) -> Optional[str]:
        if not lead.scrape_markdown_key:
            return None
        try:
            return object_store.get_text(lead.scrape_markdown_key)
        except NotFoundError:
            logger.warning("Markdown %s missing for lead %s", lead.scrape_markdown_key, lead.id,
                           extra={'lead_id': lead.id})
            return None

    def process_lead(self, item: BatchItem) -> LeadOutcome:
        lead_id = item.lead_id
        lead = db.get_lead(lead_id)
        if lead is None:
            logger.warning("Lead %s not found, skipping", lead_id, extra={'lead_id': lead_id})
            return LeadOutcome(lead_id, SKIPPED, detail={'reason': 'not_found'})
        if lead.scored_at is not None and not self.context.force:
            if lead.pipeline_status != 'idle':
                db.set_pipeline_status(lead_id, 'idle')
            return LeadOutcome(lead_id, SKIPPED, detail={'reason': 'already_scored'})

        try:
            db.set_pipeline_status(lead_id, 'scoring', scoring_error=None)

            markdown = self._load_markdown(lead)
            lead_data = lead.scoring_payload()
            facts = scoring.extract_facts(lead.basic_info(), markdown)
            facts_key = scoring.store_facts(lead_id, facts)

            market_context = market.build_market_context(lead.business_type, lead.review_count, lead.rating)
            result = scoring.score_lead(lead_data, facts, market_context)

            db.set_pipeline_status(
                lead_id, 'idle',
                facts_key=facts_key,
                scored_at=_now(),
                **result.lead_fields(),
            )
            logger.info("Scored lead %s: quality=%s exit=%s tier=%s", lead_id,
                        result.business_quality_score, result.exit_readiness_score, result.priority_tier,
                        extra={'lead_id': lead_id})
            return LeadOutcome(lead_id, PROCESSED, detail={'priority_tier': result.priority_tier})
        except NotFoundError as e:
            logger.warning("Lead %s vanished mid-scoring: %s", lead_id, e, extra={'lead_id': lead_id})
            return LeadOutcome(lead_id, SKIPPED, detail={'reason': 'not_found'})
        except Exception as e:
            message = _truncate(str(e) or type(e).__name__)
            logger.error("Scoring failed for lead %s: %s", lead_id, message, exc_info=True,
                         extra={'lead_id': lead_id})
            db.set_pipeline_status(lead_id, 'scoring_failed', scoring_error=message)
            return LeadOutcome(lead_id, FAILED, error=message)


# ── Enrichment stage ──────────────────────────────────────────────────────────

def results_key(job_id: str, batch_ref: str) -> str:
    """jobs/{job_id}/results/{batch file name}; one result file per batch."""
    name = os.path.basename(batch_ref or '') or f"{uuid.uuid4()}.json"
    return f"jobs/{job_id}/results/{name}"


class EnrichmentStage(BatchStage):
    """
    Deterministic website enrichment for each lead in the batch.

    Pages come from context.page_source (stored scrape pages by default). The
    extracted fields land on the lead, the normalized markdown in the object
    store; a per-lead result file is written when the batch belongs to a job.
    """
    task_type = 'web_scrape'
    description = 'Extract contact, team and history signals from scraped pages'

    def __init__(self, context: JobContext = None):
        self.context = context or JobContext()
        self.page_source = self.context.page_source or stored_page_source
        self.run_id = self.context.run_id or _now().strftime('%Y%m%dT%H%M%SZ')

    def process_lead(self, item: BatchItem) -> LeadOutcome:
        lead_id = item.lead_id
        lead = db.get_lead(lead_id)
        if lead is None:
            logger.warning("Lead %s not found, skipping", lead_id, extra={'lead_id': lead_id})
            return LeadOutcome(lead_id, SKIPPED, detail={'reason': 'not_found'})

        try:
            db.set_pipeline_status(lead_id, 'scraping')
            pages = self.page_source(lead)
            data = extract_all(pages, [lead.phone] if lead.phone else [])
            stored = normalize_and_store(pages, lead_id, self.run_id)

            fields = data.lead_fields()
            fields['web_scraped_at'] = _now()
            fields['scrape_error'] = None
            if stored:
                fields['scrape_markdown_key'] = stored['markdown_key']
                fields['scrape_pages_prefix'] = stored['pages_prefix']
            db.set_pipeline_status(lead_id, 'idle', **fields)

            logger.info("Enriched lead %s from %d pages: %d emails, %d snippets", lead_id, len(pages),
                        len(data.emails), len(data.snippets), extra={'lead_id': lead_id})
            return LeadOutcome(lead_id, PROCESSED, detail={
                'pages': len(pages),
                'emails': len(data.emails),
                'markdown_key': stored['markdown_key'] if stored else None,
            })
        except NotFoundError as e:
            logger.warning("Lead %s vanished mid-enrichment: %s", lead_id, e, extra={'lead_id': lead_id})
            return LeadOutcome(lead_id, SKIPPED, detail={'reason': 'not_found'})
        except Exception as e:
            message = _truncate(str(e) or type(e).__name__)
            logger.error("Enrichment failed for lead %s: %s", lead_id, message, exc_info=True,
                         extra={'lead_id': lead_id})
            db.set_pipeline_status(lead_id, 'idle', scrape_error=message)
            return LeadOutcome(lead_id, FAILED, error=message)

    def after_batch(self, items, result):
        if not self.context.job_id:
            return
        entries = []
        for outcome in result.outcomes:
            if outcome.status == SKIPPED:
                continue
            entries.append({
                'lead_id': outcome.lead_id,
                'status': 'SUCCEEDED' if outcome.status == PROCESSED else 'FAILED',
                'error': outcome.error,
                **outcome.detail,
            })
        key = results_key(self.context.job_id, self.context.batch_ref)
        object_store.put_json(key, entries)
        logger.info("Wrote %d result entries to %s", len(entries), key, extra={'job_id': self.context.job_id})


# ── Stage registry ────────────────────────────────────────────────────────────

STAGES = {
    'ai_scoring': ScoringStage,
    'web_scrape': EnrichmentStage,
}


def score_batch(items: List[BatchItem], force: bool = False, concurrency: int = None) -> BatchResult:
    return ScoringStage(JobContext(force=force)).run(items, concurrency=concurrency)


def enrich_batch(items: List[BatchItem], page_source: Callable = None, job_id: str = None,
                 run_id: str = None, batch_ref: str = None, concurrency: int = None) -> BatchResult:
    context = JobContext(job_id=job_id, run_id=run_id, batch_ref=batch_ref, page_source=page_source)
    return EnrichmentStage(context).run(items, concurrency=concurrency)


# ── Job entry point ───────────────────────────────────────────────────────────

def load_descriptor(descriptor: Any = None) -> Dict[str, Any]:
    """Descriptor dict (or JSON text, or the JOB_INPUT env var) with batchRef and taskId."""
    if descriptor is None:
        descriptor = os.getenv('JOB_INPUT')
    if isinstance(descriptor, str):
        try:
            descriptor = json.loads(descriptor)
        except ValueError as e:
            raise ValidationError(f"Job descriptor is not JSON: {e}") from e
    if not isinstance(descriptor, dict):
        raise ValidationError("Job descriptor missing")
    if not descriptor.get('batchRef') or not descriptor.get('taskId'):
        raise ValidationError("Job descriptor needs batchRef and taskId")
    return descriptor


def load_batch(batch_ref: str) -> List[BatchItem]:
    """Batch payload -> BatchItems; malformed entries are logged and skipped."""
    raw = object_store.get_json(batch_ref)
    if not isinstance(raw, list):
        raise ValidationError(f"Batch {batch_ref} is not a list")
    items = []
    for entry in raw:
        try:
            items.append(BatchItem.from_dict(entry))
        except ValidationError as e:
            logger.warning("Skipping malformed batch entry in %s: %s", batch_ref, e)
    return items


def run_job(descriptor: Any = None, page_source: Callable = None, force: bool = False,
            concurrency: int = None) -> Dict[str, Any]:
    """
    Execute one task end to end; returns the metadata recorded on the Task.

    Per-lead failures are absorbed into the counts. Anything that stops the
    batch as a whole (unreadable payload, unknown task type) marks the Task
    failed and re-raises.
    """
    descriptor = load_descriptor(descriptor)
    task_id = descriptor['taskId']
    batch_ref = descriptor['batchRef']

    task = db.get_task(task_id)
    if task is None:
        raise NotFoundError(f"Task {task_id} not found")

    log_extra = {'task_id': task_id}
    try:
        context = JobContext(
            task_id=task_id,
            batch_ref=batch_ref,
            job_id=descriptor.get('jobId'),
            run_id=descriptor.get('runId'),
            force=bool(descriptor.get('force', force)),
            page_source=page_source,
        )
        stage = get_stage(STAGES, task['type'], context=context)
        items = load_batch(batch_ref)
        logger.info("Task %s: %s over %d leads from %s", task_id, task['type'], len(items), batch_ref,
                    extra=log_extra)

        result = stage.run(items, concurrency=concurrency)
        metadata = result.metadata()
        if result.errors:
            metadata['errors'] = result.errors[:20]
        db.complete_task(task_id, metadata)
        logger.info("Task %s completed: %s", task_id, result.metadata(), extra=log_extra)
        return metadata
    except Exception as e:
        logger.error("Task %s failed: %s", task_id, e, exc_info=True, extra=log_extra)
        db.fail_task(task_id, _truncate(str(e) or type(e).__name__))
        raise


def reconcile(max_age_minutes: int = None) -> int:
    """Release leads stuck in scraping/scoring so they can be picked up again."""
    return db.reconcile_stuck_leads(max_age_minutes or STUCK_LEAD_MINUTES)


def main():
    from leadpipe.logging_config import configure_logging
    configure_logging(service='worker')
    reconcile()
    run_job()


if __name__ == '__main__':
    main()
