"""Tests for leadpipe.pipeline.base: batch items, results, stage fan-out."""
import threading
import pytest

from leadpipe.errors import ValidationError
from leadpipe.pipeline.base import (
    FAILED, PROCESSED, SKIPPED,
    BatchItem, BatchResult, BatchStage, LeadOutcome, get_stage,
)


class RecordingStage(BatchStage):
    task_type = 'test_stage'

    def __init__(self, fail_on=(), raise_on=()):
        self.fail_on = set(fail_on)
        self.raise_on = set(raise_on)
        self.calls = []
        self.before = None
        self.after = None
        self._lock = threading.Lock()

    def before_batch(self, items):
        self.before = len(items)

    def after_batch(self, items, result):
        self.after = result.metadata()

    def process_lead(self, item):
        with self._lock:
            self.calls.append(item.lead_id)
        if item.lead_id in self.raise_on:
            raise RuntimeError('unhandled')
        if item.lead_id in self.fail_on:
            return LeadOutcome(item.lead_id, FAILED, error='bad lead')
        return LeadOutcome(item.lead_id, PROCESSED)


class TestBatchItem:

    def test_from_camel_case(self):
        assert BatchItem.from_dict({'leadId': 'l1', 'ref': 'p1'}) == BatchItem('l1', 'p1')

    def test_from_snake_case(self):
        assert BatchItem.from_dict({'lead_id': 'l1', 'place_id': 'p1'}) == BatchItem('l1', 'p1')

    def test_rejects_non_object(self):
        with pytest.raises(ValidationError):
            BatchItem.from_dict(['l1'])

    def test_rejects_non_string_id(self):
        with pytest.raises(ValidationError):
            BatchItem.from_dict({'leadId': 42})

    def test_to_dict(self):
        assert BatchItem('l1').to_dict() == {'leadId': 'l1', 'ref': None}


class TestBatchResult:

    def test_record(self):
        result = BatchResult()
        result.record(LeadOutcome('a', PROCESSED))
        result.record(LeadOutcome('b', SKIPPED))
        result.record(LeadOutcome('c', FAILED, error='boom'))
        assert result.metadata() == {'processed': 1, 'skipped': 1, 'failed': 1}
        assert result.errors == ['c: boom']
        assert len(result.outcomes) == 3


class TestBatchStageRun:

    def test_every_lead_settles(self):
        stage = RecordingStage(fail_on={'l3'})
        items = [BatchItem(f'l{i}') for i in range(10)]

        result = stage.run(items, concurrency=3)

        assert sorted(stage.calls) == sorted(i.lead_id for i in items)
        assert result.metadata() == {'processed': 9, 'skipped': 0, 'failed': 1}

    def test_hooks_run_once(self):
        stage = RecordingStage()
        stage.run([BatchItem('l1'), BatchItem('l2')], concurrency=1)
        assert stage.before == 2
        assert stage.after == {'processed': 2, 'skipped': 0, 'failed': 0}

    def test_unhandled_exception_becomes_failure(self):
        stage = RecordingStage(raise_on={'l2'})
        result = stage.run([BatchItem('l1'), BatchItem('l2')], concurrency=2)
        assert result.failed == 1
        assert result.errors == ['l2: unhandled']

    def test_empty_batch(self):
        stage = RecordingStage()
        result = stage.run([], concurrency=1)
        assert result.metadata() == {'processed': 0, 'skipped': 0, 'failed': 0}
        assert stage.after is not None


class TestGetStage:

    def test_instantiates_with_kwargs(self):
        stage = get_stage({'test_stage': RecordingStage}, 'test_stage', fail_on={'x'})
        assert isinstance(stage, RecordingStage)
        assert stage.fail_on == {'x'}

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            get_stage({'test_stage': RecordingStage}, 'other')
