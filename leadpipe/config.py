"""
Centralized configuration: env vars, pipeline knobs, status vocabularies.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
TRIGGER_QUEUE_KEY = os.getenv('TRIGGER_QUEUE_KEY', 'leadpipe:scoring-triggers')
RQ_QUEUE_NAME = os.getenv('RQ_QUEUE_NAME', 'leadpipe')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')
DB_POOL_RECYCLE_SECONDS = int(os.getenv('DB_POOL_RECYCLE_SECONDS', '1800'))

# ── Object store (S3 / R2) ────────────────────────────────────────────────────
OBJECT_STORE_BUCKET = os.getenv('OBJECT_STORE_BUCKET', 'campaign-data')
OBJECT_STORE_ENDPOINT_URL = os.getenv('OBJECT_STORE_ENDPOINT_URL')
OBJECT_STORE_ACCESS_KEY_ID = os.getenv('OBJECT_STORE_ACCESS_KEY_ID')
OBJECT_STORE_SECRET_ACCESS_KEY = os.getenv('OBJECT_STORE_SECRET_ACCESS_KEY')
OBJECT_STORE_REGION = os.getenv('OBJECT_STORE_REGION', 'auto')

# ── OpenAI ────────────────────────────────────────────────────────────────────
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
OPENAI_TIMEOUT_SECONDS = float(os.getenv('OPENAI_TIMEOUT_SECONDS', '120'))

# ── ECS (container launcher) ──────────────────────────────────────────────────
AWS_REGION = os.getenv('AWS_REGION', 'us-east-2')
ECS_CLUSTER = os.getenv('ECS_CLUSTER')
ECS_TASK_DEFINITION = os.getenv('ECS_TASK_DEFINITION')
ECS_CONTAINER_NAME = os.getenv('ECS_CONTAINER_NAME', 'worker')
ECS_SUBNETS = [s for s in os.getenv('ECS_SUBNETS', '').split(',') if s]
ECS_SECURITY_GROUPS = [s for s in os.getenv('ECS_SECURITY_GROUPS', '').split(',') if s]
LAUNCHER = os.getenv('LAUNCHER', 'ecs')  # "ecs" or "rq"

# ── Pipeline knobs ────────────────────────────────────────────────────────────
BATCH_SIZE = int(os.getenv('BATCH_SIZE', '250'))
WORKER_CONCURRENCY = int(os.getenv('WORKER_CONCURRENCY', '5'))
DISPATCH_MAX_MESSAGES = int(os.getenv('DISPATCH_MAX_MESSAGES', '50'))
MAX_MARKDOWN_CHARS = int(os.getenv('MAX_MARKDOWN_CHARS', '60000'))
STUCK_LEAD_MINUTES = int(os.getenv('STUCK_LEAD_MINUTES', '60'))
ERROR_MESSAGE_MAX_CHARS = 500

# ── Lead pipeline status values ───────────────────────────────────────────────
PIPELINE_STATUSES = [
    'idle',
    'scraping',
    'scoring',
    'scoring_failed',
]
ACTIVE_PIPELINE_STATUSES = ['scraping', 'scoring']

# ── Task types / status values ────────────────────────────────────────────────
TASK_TYPES = [
    'web_scrape',
    'ai_scoring',
]

TASK_STATUSES = [
    'pending',
    'running',
    'completed',
    'failed',
]
TERMINAL_TASK_STATUSES = ['completed', 'failed']
