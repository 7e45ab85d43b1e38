"""Tests for leadpipe.services.launcher."""
import json
import pytest
from unittest.mock import MagicMock, patch

from leadpipe.services.launcher import EcsLauncher, LaunchResult, QueueLauncher, get_launcher


class TestEcsLauncher:

    def _launcher(self):
        return EcsLauncher(cluster='pipeline', task_definition='worker:3', container_name='worker',
                           subnets=['subnet-1'], security_groups=['sg-1'])

    def test_started_task(self):
        ecs = MagicMock()
        ecs.run_task.return_value = {'tasks': [{'taskArn': 'arn:task/1'}], 'failures': []}
        with patch('leadpipe.services.launcher.get_ecs_client', return_value=ecs):
            result = self._launcher().run_task({'JOB_INPUT': '{"taskId": "t1"}'})

        assert result == LaunchResult(handle='arn:task/1')
        assert result.ok
        kwargs = ecs.run_task.call_args[1]
        assert kwargs['cluster'] == 'pipeline'
        assert kwargs['launchType'] == 'FARGATE'
        override = kwargs['overrides']['containerOverrides'][0]
        assert override['name'] == 'worker'
        assert override['environment'] == [{'name': 'JOB_INPUT', 'value': '{"taskId": "t1"}'}]
        assert kwargs['networkConfiguration']['awsvpcConfiguration']['subnets'] == ['subnet-1']

    def test_failures_without_task(self):
        ecs = MagicMock()
        ecs.run_task.return_value = {'tasks': [], 'failures': [{'arn': 'a', 'reason': 'RESOURCE:CPU'}]}
        with patch('leadpipe.services.launcher.get_ecs_client', return_value=ecs):
            result = self._launcher().run_task({'JOB_INPUT': '{}'})

        assert not result.ok
        assert result.failures == [{'arn': 'a', 'reason': 'RESOURCE:CPU', 'detail': ''}]


class TestQueueLauncher:

    def test_enqueues_worker(self):
        queue = MagicMock()
        queue.enqueue.return_value = MagicMock(id='rq-job-1')
        descriptor = {'batchRef': 'b.json', 'taskId': 't1'}

        result = QueueLauncher(queue=queue).run_task({'JOB_INPUT': json.dumps(descriptor)})

        assert result.handle == 'rq-job-1'
        args = queue.enqueue.call_args[0]
        assert args == ('leadpipe.pipeline.worker.run_job', descriptor)


class TestGetLauncher:

    def test_by_name(self):
        assert isinstance(get_launcher('rq'), QueueLauncher)
        assert isinstance(get_launcher('ecs'), EcsLauncher)

    def test_unknown(self):
        with pytest.raises(ValueError):
            get_launcher('k8s')
