"""
Container launchers: start a worker for one job descriptor.

Both launchers return a LaunchResult; a result with no handle means the launch
did not happen, whatever the failure list says.

EcsLauncher:   boto3 ECS run_task with JOB_INPUT as a container env override.
QueueLauncher: enqueue leadpipe.pipeline.worker.run_job on RQ (local / single host).
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from leadpipe.config import (
    ECS_CLUSTER, ECS_TASK_DEFINITION, ECS_CONTAINER_NAME,
    ECS_SUBNETS, ECS_SECURITY_GROUPS, LAUNCHER, RQ_QUEUE_NAME,
)
from leadpipe.extensions import get_ecs_client

logger = logging.getLogger('services.launcher')


@dataclass
class LaunchResult:
    handle: Optional[str] = None
    failures: List[Dict[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.handle)


class EcsLauncher:
    """Run the worker image as a one-off Fargate task."""

    def __init__(self, cluster=None, task_definition=None, container_name=None,
                 subnets=None, security_groups=None):
        self.cluster = cluster or ECS_CLUSTER
        self.task_definition = task_definition or ECS_TASK_DEFINITION
        self.container_name = container_name or ECS_CONTAINER_NAME
        self.subnets = subnets if subnets is not None else ECS_SUBNETS
        self.security_groups = security_groups if security_groups is not None else ECS_SECURITY_GROUPS

    def run_task(self, env_overrides: Dict[str, str]) -> LaunchResult:
        response = get_ecs_client().run_task(
            cluster=self.cluster,
            taskDefinition=self.task_definition,
            launchType='FARGATE',
            count=1,
            networkConfiguration={
                'awsvpcConfiguration': {
                    'subnets': self.subnets,
                    'securityGroups': self.security_groups,
                    'assignPublicIp': 'DISABLED',
                },
            },
            overrides={
                'containerOverrides': [{
                    'name': self.container_name,
                    'environment': [{'name': k, 'value': v} for k, v in env_overrides.items()],
                }],
            },
        )
        tasks = response.get('tasks') or []
        failures = [
            {'arn': f.get('arn', ''), 'reason': f.get('reason', ''), 'detail': f.get('detail', '')}
            for f in response.get('failures') or []
        ]
        handle = tasks[0].get('taskArn') if tasks else None
        if handle:
            logger.info("Launched ECS task %s", handle)
        return LaunchResult(handle=handle, failures=failures)


class QueueLauncher:
    """Enqueue the worker on RQ; the job id is the execution handle."""

    def __init__(self, queue=None):
        self._queue = queue

    def _get_queue(self):
        if self._queue is None:
            from rq import Queue
            from leadpipe.extensions import redis_client
            self._queue = Queue(RQ_QUEUE_NAME, connection=redis_client)
        return self._queue

    def run_task(self, env_overrides: Dict[str, str]) -> LaunchResult:
        descriptor = json.loads(env_overrides['JOB_INPUT'])
        job = self._get_queue().enqueue(
            'leadpipe.pipeline.worker.run_job', descriptor, job_timeout=6 * 3600,
        )
        logger.info("Enqueued worker job %s", job.id)
        return LaunchResult(handle=job.id)


LAUNCHERS = {
    'ecs': EcsLauncher,
    'rq': QueueLauncher,
}


def get_launcher(name: str = None):
    """Instantiate the configured launcher ("ecs" or "rq")."""
    name = name or LAUNCHER
    launcher_cls = LAUNCHERS.get(name)
    if not launcher_cls:
        raise ValueError(f"No launcher registered for '{name}'")
    return launcher_cls()
