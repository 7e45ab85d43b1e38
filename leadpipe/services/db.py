"""
Relational-store helpers: lead reads/updates, task lifecycle, run counters.

Each helper is its own unit of work: one session, commit on success, rollback
and PersistenceError on failure. Writes that touch lead or task state are never
swallowed; callers decide whether a failure is fatal.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from leadpipe.config import TERMINAL_TASK_STATUSES, PIPELINE_STATUSES, ACTIVE_PIPELINE_STATUSES
from leadpipe.database import get_session
from leadpipe.errors import NotFoundError, PersistenceError, ValidationError
from leadpipe.models.campaign_run import CampaignRun
from leadpipe.models.lead import Lead
from leadpipe.models.task import Task

logger = logging.getLogger('services.db')


def _now():
    return datetime.now(timezone.utc)


# ── Leads ─────────────────────────────────────────────────────────────────────

def get_lead(lead_id: str) -> Optional[Lead]:
    """Load a lead by id; None when it does not exist."""
    session = get_session()
    try:
        return session.get(Lead, lead_id)
    except SQLAlchemyError as e:
        logger.error("Failed to load lead %s", lead_id, exc_info=True)
        raise PersistenceError(f"Failed to load lead {lead_id}: {e}") from e
    finally:
        session.close()


def update_lead_fields(lead_id: str, **fields) -> None:
    """
    Apply column updates to one lead.

    Setting pipeline_status also stamps pipeline_status_at, which the
    reconciliation sweep uses to age out stuck leads.
    """
    status = fields.get('pipeline_status')
    if status is not None and status not in PIPELINE_STATUSES:
        raise ValidationError(f"Unknown pipeline_status '{status}'")

    session = get_session()
    try:
        lead = session.get(Lead, lead_id)
        if lead is None:
            raise NotFoundError(f"Lead {lead_id} not found")
        for name, value in fields.items():
            if not hasattr(Lead, name):
                raise ValidationError(f"Lead has no field '{name}'")
            setattr(lead, name, value)
        if status is not None:
            lead.pipeline_status_at = _now()
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Failed to update lead %s", lead_id, exc_info=True)
        raise PersistenceError(f"Failed to update lead {lead_id}: {e}") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def set_pipeline_status(lead_id: str, status: str, **fields) -> None:
    update_lead_fields(lead_id, pipeline_status=status, **fields)


def reconcile_stuck_leads(max_age_minutes: int) -> int:
    """
    Return leads stuck in an active stage for longer than max_age_minutes to idle.

    A worker killed mid-batch leaves its in-flight leads in scraping/scoring;
    releasing them makes them eligible for re-pickup. Returns the count released.
    """
    cutoff = _now() - timedelta(minutes=max_age_minutes)
    session = get_session()
    try:
        stuck = (
            session.query(Lead)
            .filter(Lead.pipeline_status.in_(ACTIVE_PIPELINE_STATUSES))
            .filter((Lead.pipeline_status_at.is_(None)) | (Lead.pipeline_status_at < cutoff))
            .all()
        )
        now = _now()
        for lead in stuck:
            logger.warning("Releasing lead %s stuck in '%s' since %s",
                           lead.id, lead.pipeline_status, lead.pipeline_status_at,
                           extra={'lead_id': lead.id})
            lead.pipeline_status = 'idle'
            lead.pipeline_status_at = now
        session.commit()
        if stuck:
            logger.info("Reconciliation released %d stuck leads", len(stuck))
        return len(stuck)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Reconciliation sweep failed", exc_info=True)
        raise PersistenceError(f"Reconciliation sweep failed: {e}") from e
    finally:
        session.close()


# ── Tasks ─────────────────────────────────────────────────────────────────────

def create_task(task_type: str, batch_ref: str, status: str = 'running') -> Dict[str, Any]:
    """INSERT a task row; running tasks get started_at. Returns task.to_dict()."""
    session = get_session()
    try:
        task = Task(type=task_type, status=status, batch_ref=batch_ref)
        if status == 'running':
            task.started_at = _now()
        session.add(task)
        session.commit()
        return task.to_dict()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Failed to create %s task", task_type, exc_info=True)
        raise PersistenceError(f"Failed to create task: {e}") from e
    finally:
        session.close()


def get_task(task_id: str) -> Optional[Dict[str, Any]]:
    session = get_session()
    try:
        task = session.get(Task, task_id)
        return task.to_dict() if task else None
    finally:
        session.close()


def update_task(task_id: str, **fields) -> Dict[str, Any]:
    """Non-terminal task updates (external handle, metadata)."""
    if fields.get('status') in TERMINAL_TASK_STATUSES:
        raise ValidationError("Use complete_task/fail_task for terminal transitions")

    session = get_session()
    try:
        task = session.get(Task, task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        for name, value in fields.items():
            setattr(task, name, value)
        if fields.get('status') == 'running' and task.started_at is None:
            task.started_at = _now()
        session.commit()
        return task.to_dict()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceError(f"Failed to update task {task_id}: {e}") from e
    finally:
        session.close()


def _finish_task(task_id: str, status: str, error_message: str = None,
                 metadata: Dict[str, Any] = None) -> bool:
    session = get_session()
    try:
        task = session.get(Task, task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        if task.status in TERMINAL_TASK_STATUSES:
            logger.warning("Task %s already %s, ignoring transition to %s",
                           task_id, task.status, status, extra={'task_id': task_id})
            return False
        task.status = status
        task.completed_at = _now()
        if error_message is not None:
            task.error_message = error_message
        if metadata is not None:
            task.meta = metadata
        session.commit()
        return True
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Failed to mark task %s %s", task_id, status, exc_info=True)
        raise PersistenceError(f"Failed to mark task {task_id} {status}: {e}") from e
    finally:
        session.close()


def complete_task(task_id: str, metadata: Dict[str, Any] = None) -> bool:
    """Terminal transition to completed. False if the task was already terminal."""
    return _finish_task(task_id, 'completed', metadata=metadata)


def fail_task(task_id: str, error_message: str, metadata: Dict[str, Any] = None) -> bool:
    """Terminal transition to failed. False if the task was already terminal."""
    return _finish_task(task_id, 'failed', error_message=error_message, metadata=metadata)


# ── Campaign runs ─────────────────────────────────────────────────────────────

def increment_run_counters(run_id: str, leads_found: int, errors: int,
                           mark_completed: bool = True, session=None) -> None:
    """
    Additive counter update: leads_found += n, errors += m.

    Pass ``session`` to join a caller's transaction (the aggregator records its
    ledger row in the same commit); otherwise a session is opened and committed here.
    """
    own_session = session is None
    session = session or get_session()
    try:
        run = session.get(CampaignRun, run_id)
        if run is None:
            raise NotFoundError(f"Campaign run {run_id} not found")
        run.leads_found = CampaignRun.leads_found + leads_found
        run.errors = CampaignRun.errors + errors
        if mark_completed:
            run.status = 'completed'
            run.completed_at = _now()
        if own_session:
            session.commit()
    except SQLAlchemyError as e:
        if own_session:
            session.rollback()
        raise PersistenceError(f"Failed to update run {run_id}: {e}") from e
    finally:
        if own_session:
            session.close()
