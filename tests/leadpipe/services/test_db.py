"""Tests for leadpipe.services.db -- lead updates, task lifecycle, run counters."""
import pytest
from datetime import datetime, timezone

from leadpipe.errors import NotFoundError, ValidationError
from leadpipe.models.campaign_run import CampaignRun
from leadpipe.models.lead import Lead
from leadpipe.models.task import Task
from leadpipe.services.db import (
    complete_task,
    create_task,
    fail_task,
    get_lead,
    get_task,
    increment_run_counters,
    reconcile_stuck_leads,
    set_pipeline_status,
    update_lead_fields,
    update_task,
)


# ---------------------------------------------------------------------------
# Leads
# ---------------------------------------------------------------------------

class TestLeads:
    """Lead reads and column updates."""

    def test_get_lead(self, make_lead):
        lead_id = make_lead(name='Bee Electric')
        assert get_lead(lead_id).name == 'Bee Electric'
        assert get_lead('nope') is None

    def test_status_change_stamps_time(self, make_lead, db_session):
        lead_id = make_lead()
        set_pipeline_status(lead_id, 'scraping')

        db_session.expire_all()
        lead = db_session.get(Lead, lead_id)
        assert lead.pipeline_status == 'scraping'
        assert lead.pipeline_status_at is not None

    def test_plain_update_leaves_status_time(self, make_lead, db_session):
        lead_id = make_lead()
        update_lead_fields(lead_id, tagline='Fast and fair')

        db_session.expire_all()
        lead = db_session.get(Lead, lead_id)
        assert lead.tagline == 'Fast and fair'
        assert lead.pipeline_status_at is None

    def test_unknown_status(self, make_lead):
        with pytest.raises(ValidationError):
            set_pipeline_status(make_lead(), 'archived')

    def test_unknown_field_rolls_back(self, make_lead, db_session):
        lead_id = make_lead()
        with pytest.raises(ValidationError):
            update_lead_fields(lead_id, tagline='x', shoe_size=11)
        db_session.expire_all()
        assert db_session.get(Lead, lead_id).tagline is None

    def test_missing_lead(self):
        with pytest.raises(NotFoundError):
            update_lead_fields('nope', tagline='x')


class TestReconcileStuckLeads:

    def test_releases_only_old_active_leads(self, make_lead, db_session):
        old = datetime(2020, 1, 1, tzinfo=timezone.utc)
        stuck = make_lead(pipeline_status='scraping', pipeline_status_at=old)
        never_stamped = make_lead(pipeline_status='scoring')
        failed = make_lead(pipeline_status='scoring_failed', pipeline_status_at=old)

        assert reconcile_stuck_leads(60) == 2

        db_session.expire_all()
        assert db_session.get(Lead, stuck).pipeline_status == 'idle'
        assert db_session.get(Lead, never_stamped).pipeline_status == 'idle'
        assert db_session.get(Lead, failed).pipeline_status == 'scoring_failed'


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

class TestTaskLifecycle:
    """pending/running -> completed|failed, terminal exactly once."""

    def test_create_running(self):
        task = create_task('ai_scoring', 'ai_scoring-batches/a.json')
        assert task['status'] == 'running'
        assert task['startedAt'] is not None
        assert task['completedAt'] is None
        assert get_task(task['id'])['batchRef'] == 'ai_scoring-batches/a.json'

    def test_create_pending_has_no_start(self):
        assert create_task('web_scrape', 'b.json', status='pending')['startedAt'] is None

    def test_update_handle(self):
        task = create_task('ai_scoring', 'a.json')
        assert update_task(task['id'], external_handle='h-1')['externalHandle'] == 'h-1'

    def test_update_refuses_terminal_status(self):
        task = create_task('ai_scoring', 'a.json')
        with pytest.raises(ValidationError):
            update_task(task['id'], status='completed')

    def test_complete(self, db_session):
        task = create_task('ai_scoring', 'a.json')
        assert complete_task(task['id'], {'processed': 3}) is True

        db_session.expire_all()
        row = db_session.get(Task, task['id'])
        assert row.status == 'completed'
        assert row.meta == {'processed': 3}
        assert row.completed_at is not None

    def test_terminal_transition_happens_once(self, db_session):
        task = create_task('ai_scoring', 'a.json')
        assert fail_task(task['id'], 'launch failed') is True
        assert complete_task(task['id']) is False

        db_session.expire_all()
        row = db_session.get(Task, task['id'])
        assert row.status == 'failed'
        assert row.error_message == 'launch failed'

    def test_finish_missing_task(self):
        with pytest.raises(NotFoundError):
            complete_task('nope')

    def test_get_missing_task(self):
        assert get_task('nope') is None


# ---------------------------------------------------------------------------
# Campaign runs
# ---------------------------------------------------------------------------

class TestIncrementRunCounters:

    def test_additive(self, db_session):
        db_session.add(CampaignRun(id='run-1', leads_found=10, errors=2))
        db_session.commit()

        increment_run_counters('run-1', 5, 1)
        increment_run_counters('run-1', 1, 0, mark_completed=False)

        db_session.expire_all()
        run = db_session.get(CampaignRun, 'run-1')
        assert run.leads_found == 16
        assert run.errors == 3
        assert run.status == 'completed'

    def test_missing_run(self):
        with pytest.raises(NotFoundError):
            increment_run_counters('nope', 1, 0)
