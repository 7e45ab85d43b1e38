"""
Result aggregator: tally a job's per-batch result files and fold the totals
into the campaign run's counters.

Each (run_id, result_prefix) pair is folded at most once. The ledger row and
the counter increment share one transaction, so a retried aggregation either
sees the ledger row and returns the recorded tallies, or applies both.
"""
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError

from leadpipe.database import get_session
from leadpipe.errors import NotFoundError, PersistenceError, ValidationError
from leadpipe.models.campaign_run import AggregatedResultSet
from leadpipe.services import db, object_store

logger = logging.getLogger('pipeline.aggregator')


@dataclass
class AggregateSummary:
    run_id: str
    result_prefix: str
    succeeded: int = 0
    failed: int = 0
    files_read: int = 0
    already_aggregated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _entry_failed(entry: Dict[str, Any]) -> bool:
    status = entry.get('status') or entry.get('Status') or ''
    return str(status).upper() == 'FAILED'


def tally_results(result_prefix: str) -> Dict[str, int]:
    """
    Count succeeded/failed entries under a prefix.

    An entry is failed when its status is FAILED; every other object entry
    counts as succeeded. A file that cannot be read or is not a list counts as
    one failure.
    """
    succeeded = failed = files_read = 0
    for key in object_store.list_keys(result_prefix):
        try:
            entries = object_store.get_json(key)
        except (NotFoundError, PersistenceError, ValueError) as e:
            logger.warning("Unreadable result file %s: %s", key, e)
            failed += 1
            continue
        files_read += 1
        if not isinstance(entries, list):
            logger.warning("Result file %s is not a list", key)
            failed += 1
            continue
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            if _entry_failed(entry):
                failed += 1
            else:
                succeeded += 1
    return {'succeeded': succeeded, 'failed': failed, 'files_read': files_read}


def aggregate_results(run_id: str, result_prefix: str, force: bool = False) -> AggregateSummary:
    """
    Fold one result set into the run's leads_found/errors counters.

    A prefix already folded into this run returns its recorded tallies without
    touching the counters; force=True re-tallies and adds the counts again.
    """
    if not run_id or not result_prefix:
        raise ValidationError("run_id and result_prefix are required")

    session = get_session()
    try:
        existing = (
            session.query(AggregatedResultSet)
            .filter_by(run_id=run_id, result_prefix=result_prefix)
            .first()
        )
        if existing is not None and not force:
            logger.info("Result set %s already aggregated into run %s", result_prefix, run_id,
                        extra={'run_id': run_id})
            return AggregateSummary(
                run_id=run_id,
                result_prefix=result_prefix,
                succeeded=existing.succeeded or 0,
                failed=existing.failed or 0,
                files_read=existing.files_read or 0,
                already_aggregated=True,
            )

        counts = tally_results(result_prefix)
        if existing is None:
            existing = AggregatedResultSet(run_id=run_id, result_prefix=result_prefix)
            session.add(existing)
        existing.succeeded = counts['succeeded']
        existing.failed = counts['failed']
        existing.files_read = counts['files_read']

        db.increment_run_counters(run_id, counts['succeeded'], counts['failed'], session=session)
        session.commit()

        logger.info("Aggregated %s into run %s: %d succeeded, %d failed (%d files)",
                    result_prefix, run_id, counts['succeeded'], counts['failed'], counts['files_read'],
                    extra={'run_id': run_id})
        return AggregateSummary(run_id=run_id, result_prefix=result_prefix, **counts)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Aggregation failed for run %s", run_id, exc_info=True, extra={'run_id': run_id})
        raise PersistenceError(f"Aggregation failed for run {run_id}: {e}") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def aggregate_job(run_id: str, job_id: str, force: bool = False) -> AggregateSummary:
    """Aggregate the result files a planned job's workers wrote."""
    return aggregate_results(run_id, f"jobs/{job_id}/results/", force=force)
