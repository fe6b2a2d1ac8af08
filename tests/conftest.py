"""
Pytest configuration and fixtures for the message trust project
"""

import os
import shutil
import tempfile
from pathlib import Path

import pytest

from message_trust import create_app
from message_trust.database import db as _db
from message_trust.shared.models import PersonalityTraits
from message_trust.shared.settings import InferenceSettings, PipelineSettings
from tests.test_utils import build_chat_export


class BaseTestConfig:
    """Test configuration using an in-memory database and broker"""
    def __init__(self):
        # App configuration
        self.secret_key = 'test-secret-key'

        # SQLite in memory unless a real database is provided
        self.sqlalchemy_database_uri = os.getenv('TEST_DATABASE_URL', 'sqlite://')
        self.sqlalchemy_track_modifications = False

        # Celery never reaches a real broker in tests
        self.celery_broker_url = 'memory://'
        self.celery_result_backend = 'cache+memory://'

        # Inference service configuration
        self.inference_base_url = 'http://inference.test'
        self.inference_model = 'test-model'
        self.inference_api_key = None

        self.content_encryption_key = 'test-content-key'
        self.pipeline_settings = PipelineSettings(
            inference=InferenceSettings(max_attempts=3, backoff_base_seconds=0),
        )


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


@pytest.fixture(scope="session")
def app():
    """Create Flask app for testing"""
    return create_app(BaseTestConfig())


@pytest.fixture
def test_config():
    return BaseTestConfig()


@pytest.fixture
def db(app):
    """Fresh tables for every test"""
    with app.app_context():
        _db.create_all()
        try:
            yield _db
        finally:
            _db.session.remove()
            _db.drop_all()


@pytest.fixture
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture
def settings(app):
    return app.config['PIPELINE_SETTINGS']


@pytest.fixture
def encryption_key(app):
    return app.config['CONTENT_ENCRYPTION_KEY']


@pytest.fixture
def chat_export():
    """Platform A chat export with 60 messages between two people"""
    return build_chat_export(60)


@pytest.fixture
def reliable_traits():
    """Traits of a reliable communicator"""
    return PersonalityTraits(
        conscientiousness=85,
        neuroticism=25,
        agreeableness=70,
        openness=60,
        extraversion=50,
        confidence=90,
    )


@pytest.fixture
def unreliable_traits():
    """Traits of an unreliable communicator"""
    return PersonalityTraits(
        conscientiousness=20,
        neuroticism=80,
        agreeableness=30,
        openness=40,
        extraversion=35,
        confidence=75,
    )
