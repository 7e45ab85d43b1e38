"""
Process-wide logging setup for the API and the batch workers.

configure_logging() runs once per process, from create_app() or from the
worker entry point. LOG_FORMAT picks text lines for local runs or JSON lines
for the log shipper; LOG_LEVEL defaults to INFO.

Pipeline code attaches correlation ids with ``extra``::

    logger.info("Scored lead", extra={'lead_id': lead.id, 'task_id': task_id})

and the JSON formatter lifts them onto the entry.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ('lead_id', 'task_id', 'job_id', 'run_id')

TEXT_DATEFMT = '%Y-%m-%d %H:%M:%S'

# Client libraries that log every request at INFO
QUIET_LOGGERS = (
    'urllib3', 'botocore', 'boto3', 's3transfer',
    'openai', 'httpcore', 'httpx', 'rq.worker',
)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, tagged with the service name when given."""

    def __init__(self, service=None):
        super().__init__()
        self.service = service

    def format(self, record):
        when = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload = {
            'timestamp': when.isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if self.service:
            payload['service'] = self.service
        payload.update({
            name: getattr(record, name)
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            payload['exception'] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _text_formatter(service=None):
    parts = ['[%(asctime)s]', '%(levelname)s']
    if service:
        parts.append(service)
    parts.append('%(name)s - %(message)s')
    return logging.Formatter(' '.join(parts), datefmt=TEXT_DATEFMT)


def _resolve_level():
    name = os.getenv('LOG_LEVEL', 'INFO').upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(app=None, service=None):
    """
    Install a single stderr handler on the root logger.

    Reads LOG_LEVEL (a logging level name) and LOG_FORMAT ("text" or "json").
    ``service`` names the process in every line, e.g. "api" or "worker".
    Calling it again replaces the handler instead of stacking another one.
    """
    level = _resolve_level()
    use_json = os.getenv('LOG_FORMAT', 'text').lower() == 'json'

    stream = logging.StreamHandler(sys.stderr)
    stream.setLevel(level)
    stream.setFormatter(JSONFormatter(service=service) if use_json else _text_formatter(service))

    root = logging.getLogger()
    root.handlers = [stream]
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        app.logger.setLevel(level)
