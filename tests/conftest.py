"""Shared test fixtures."""
import io
import json
import pytest
from unittest.mock import patch, MagicMock
from botocore.exceptions import ClientError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from leadpipe.database import Base

# Modules that bind get_session at import time
SESSION_USERS = [
    'leadpipe.database.get_session',
    'leadpipe.services.db.get_session',
    'leadpipe.pipeline.planner.get_session',
    'leadpipe.pipeline.market.get_session',
    'leadpipe.pipeline.aggregator.get_session',
]


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created, shared across worker threads."""
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    import leadpipe.models.lead
    import leadpipe.models.task
    import leadpipe.models.campaign_run
    import leadpipe.models.market_stats
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """Session for test setup and assertions. Call expire_all() before reading back."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_engine):
    """
    Route every get_session() call to a fresh session on the test engine.

    Production code closes its sessions in finally blocks, so each call gets
    its own session rather than the shared db_session.
    """
    import leadpipe.services.db  # noqa: F401
    import leadpipe.pipeline.planner  # noqa: F401
    import leadpipe.pipeline.market  # noqa: F401
    import leadpipe.pipeline.aggregator  # noqa: F401

    TestSession = sessionmaker(bind=db_engine)
    patchers = [patch(target, side_effect=lambda: TestSession()) for target in SESSION_USERS]
    for p in patchers:
        p.start()
    yield TestSession
    for p in reversed(patchers):
        p.stop()


# ── Object store ──────────────────────────────────────────────────────────────

class FakeS3Client:
    """Dict-backed stand-in for the boto3 S3 client calls object_store makes."""

    def __init__(self, page_size=1000):
        self.objects = {}
        self.page_size = page_size

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self.objects[Key] = Body if isinstance(Body, bytes) else Body.encode('utf-8')
        return {}

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({'Error': {'Code': 'NoSuchKey', 'Message': 'missing'}}, 'GetObject')
        return {'Body': io.BytesIO(self.objects[Key])}

    def list_objects_v2(self, Bucket, Prefix, ContinuationToken=None):
        keys = sorted(k for k in self.objects if k.startswith(Prefix))
        start = int(ContinuationToken or 0)
        page = keys[start:start + self.page_size]
        truncated = start + self.page_size < len(keys)
        response = {'Contents': [{'Key': k} for k in page], 'IsTruncated': truncated}
        if truncated:
            response['NextContinuationToken'] = str(start + self.page_size)
        return response

    def delete_objects(self, Bucket, Delete):
        for obj in Delete['Objects']:
            self.objects.pop(obj['Key'], None)
        return {}

    def head_bucket(self, Bucket):
        return {}

    # Helpers for tests
    def put(self, key, data):
        body = data if isinstance(data, str) else json.dumps(data)
        self.objects[key] = body.encode('utf-8')

    def json(self, key):
        return json.loads(self.objects[key].decode('utf-8'))

    def text(self, key):
        return self.objects[key].decode('utf-8')


@pytest.fixture
def fake_store():
    """Route object_store calls to an in-memory FakeS3Client."""
    client = FakeS3Client()
    with patch('leadpipe.services.object_store.get_object_store_client', return_value=client):
        yield client


@pytest.fixture
def mock_redis():
    """Mock Redis client."""
    mock = MagicMock()
    mock.ping.return_value = True
    mock.lpop.return_value = None
    with patch('leadpipe.extensions.redis_client', mock):
        yield mock


@pytest.fixture
def no_sleep():
    """Make backoff waits instant; yields the sleep mock."""
    with patch('leadpipe.services.llm.time.sleep') as mock_sleep:
        yield mock_sleep


@pytest.fixture(autouse=True)
def reset_scoring_config():
    """Each test starts with the scoring config cache cleared."""
    from leadpipe.pipeline import scoring
    scoring.reset_cache()
    yield
    scoring.reset_cache()


# ── App ───────────────────────────────────────────────────────────────────────

@pytest.fixture
def app():
    """Flask test app."""
    from leadpipe import create_app
    app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


# ── Factories ─────────────────────────────────────────────────────────────────

@pytest.fixture
def make_lead(db_session):
    """Factory fixture: insert and commit a Lead, returning its id."""
    from leadpipe.models.lead import Lead
    counter = {'n': 0}

    def _make(**overrides):
        counter['n'] += 1
        n = counter['n']
        defaults = dict(
            place_id=f'place-{n:03d}',
            name=f'Acme Plumbing {n}',
            business_type='plumber',
            city='Austin',
            state='TX',
            website=f'https://acme{n}.example.com',
            phone='5124781234',
            rating=4.6,
            review_count=120,
            pipeline_status='idle',
        )
        defaults.update(overrides)
        lead = Lead(**defaults)
        db_session.add(lead)
        db_session.commit()
        return lead.id
    return _make


@pytest.fixture
def make_task(db_session):
    """Factory fixture: insert a running Task, returning its id."""
    from leadpipe.models.task import Task

    def _make(task_type='ai_scoring', batch_ref='ai_scoring-batches/test.json', status='running'):
        task = Task(type=task_type, status=status, batch_ref=batch_ref)
        db_session.add(task)
        db_session.commit()
        return task.id
    return _make
