"""Tests for leadpipe.pipeline.dispatcher: trigger messages to launched tasks."""
import json
import pytest
from unittest.mock import MagicMock

from leadpipe.config import DISPATCH_MAX_MESSAGES
from leadpipe.errors import LaunchError, ValidationError
from leadpipe.models.task import Task
from leadpipe.pipeline.base import BatchItem
from leadpipe.pipeline.dispatcher import (
    batch_ref_for,
    collect_batch,
    dispatch,
    dispatch_from_queue,
    dispatch_manifest,
    drain_queue,
    parse_message,
)
from leadpipe.services.launcher import LaunchResult


def _launcher(result=None, side_effect=None):
    launcher = MagicMock()
    launcher.run_task.return_value = result or LaunchResult(handle='arn:aws:ecs:task/abc')
    if side_effect is not None:
        launcher.run_task.side_effect = side_effect
    return launcher


# ── Parsing ──────────────────────────────────────────────────────────────────

class TestParseMessage:

    def test_json_text(self):
        assert parse_message('{"leadId": "l1", "ref": "p1"}') == BatchItem('l1', 'p1')

    def test_bytes(self):
        assert parse_message(b'{"leadId": "l1"}') == BatchItem('l1', None)

    def test_dict(self):
        assert parse_message({'lead_id': 'l1', 'place_id': 'p1'}) == BatchItem('l1', 'p1')

    def test_not_json(self):
        with pytest.raises(ValidationError):
            parse_message('leadId=l1')

    def test_missing_lead_id(self):
        with pytest.raises(ValidationError):
            parse_message('{"ref": "p1"}')


class TestCollectBatch:

    def test_drops_malformed_and_duplicates(self):
        items = collect_batch(['{"leadId": "l1"}', 'garbage', '{"leadId": "l2"}', '{"leadId": "l1"}', '[]'])
        assert [i.lead_id for i in items] == ['l1', 'l2']


def test_batch_ref_uses_task_type():
    assert batch_ref_for('ai_scoring').startswith('ai_scoring-batches/')
    assert batch_ref_for('ai_scoring').endswith('.json')


# ── dispatch ─────────────────────────────────────────────────────────────────

class TestDispatch:

    def test_happy_path(self, fake_store, db_session):
        launcher = _launcher()
        task = dispatch(['{"leadId": "l1", "ref": "p1"}', '{"leadId": "l2"}'], launcher=launcher)

        assert task['status'] == 'running'
        assert task['type'] == 'ai_scoring'
        assert task['externalHandle'] == 'arn:aws:ecs:task/abc'
        assert task['startedAt'] is not None
        assert fake_store.json(task['batchRef']) == [
            {'leadId': 'l1', 'ref': 'p1'}, {'leadId': 'l2', 'ref': None},
        ]

        env = launcher.run_task.call_args[0][0]
        assert json.loads(env['JOB_INPUT']) == {'batchRef': task['batchRef'], 'taskId': task['id']}

    def test_no_valid_messages(self, fake_store, db_session):
        launcher = _launcher()
        assert dispatch(['garbage'], launcher=launcher) is None
        launcher.run_task.assert_not_called()
        assert db_session.query(Task).count() == 0

    def test_delivery_capped_at_max_messages(self, fake_store, db_session):
        messages = [json.dumps({'leadId': f'l{i}'}) for i in range(DISPATCH_MAX_MESSAGES + 10)]
        task = dispatch(messages, launcher=_launcher())

        payload = fake_store.json(task['batchRef'])
        assert len(payload) == DISPATCH_MAX_MESSAGES
        assert payload[-1]['leadId'] == f'l{DISPATCH_MAX_MESSAGES - 1}'

    def test_unknown_task_type(self, fake_store):
        with pytest.raises(ValidationError):
            dispatch(['{"leadId": "l1"}'], task_type='crm_sync', launcher=_launcher())

    def test_launch_without_handle_fails_task(self, fake_store, db_session):
        launcher = _launcher(LaunchResult(handle=None, failures=[{'arn': 'x', 'reason': 'RESOURCE:MEMORY'}]))
        with pytest.raises(LaunchError) as exc_info:
            dispatch(['{"leadId": "l1"}'], launcher=launcher)
        assert exc_info.value.failures == [{'arn': 'x', 'reason': 'RESOURCE:MEMORY'}]

        task = db_session.query(Task).one()
        assert task.status == 'failed'
        assert task.error_message == 'RESOURCE:MEMORY'
        assert task.completed_at is not None

    def test_empty_failure_list_still_fails(self, fake_store, db_session):
        with pytest.raises(LaunchError):
            dispatch(['{"leadId": "l1"}'], launcher=_launcher(LaunchResult()))
        assert db_session.query(Task).one().error_message == 'no execution handle'

    def test_launcher_exception_fails_task(self, fake_store, db_session):
        with pytest.raises(LaunchError):
            dispatch(['{"leadId": "l1"}'], launcher=_launcher(side_effect=RuntimeError('throttled')))
        task = db_session.query(Task).one()
        assert task.status == 'failed'
        assert task.error_message == 'throttled'


class TestDispatchManifest:

    def test_one_task_per_batch_with_job_id(self, fake_store, db_session):
        launcher = _launcher()
        manifest = {'jobId': 'job-1', 'batchKeys': ['jobs/job-1/batches/batch-0000.json',
                                                    'jobs/job-1/batches/batch-0001.json']}
        tasks = dispatch_manifest(manifest, launcher=launcher)

        assert [t['batchRef'] for t in tasks] == manifest['batchKeys']
        assert all(t['type'] == 'web_scrape' for t in tasks)
        descriptors = [json.loads(c[0][0]['JOB_INPUT']) for c in launcher.run_task.call_args_list]
        assert all(d['jobId'] == 'job-1' for d in descriptors)


# ── Redis queue ──────────────────────────────────────────────────────────────

class TestQueue:

    def test_drain_list_result(self, mock_redis):
        mock_redis.lpop.return_value = ['{"leadId": "l1"}', '{"leadId": "l2"}']
        assert drain_queue(max_messages=10) == ['{"leadId": "l1"}', '{"leadId": "l2"}']
        assert mock_redis.lpop.call_args[0][1] == 10

    def test_drain_empty(self, mock_redis):
        mock_redis.lpop.return_value = None
        assert drain_queue() == []

    def test_dispatch_from_queue(self, mock_redis, fake_store, db_session):
        mock_redis.lpop.return_value = ['{"leadId": "l1"}']
        task = dispatch_from_queue(launcher=_launcher())
        assert task['status'] == 'running'

    def test_dispatch_from_empty_queue(self, mock_redis):
        assert dispatch_from_queue(launcher=_launcher()) is None
