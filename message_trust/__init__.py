"""
Message trust pipeline - turns exported message histories into audited trust scores
"""

import dataclasses
import os

from flask import Flask

from message_trust.shared.settings import PipelineSettings


class Config:
    """Configuration class for Flask app with required environment variables"""

    def __init__(self):
        # Flask configuration
        self.secret_key = self._require_env('SECRET_KEY')

        # Database configuration
        self.sqlalchemy_database_uri = self._require_env('DATABASE_URL')
        self.sqlalchemy_track_modifications = False

        # Celery configuration
        self.celery_broker_url = self._require_env('CELERY_BROKER_URL')
        self.celery_result_backend = self._require_env('CELERY_RESULT_BACKEND')

        # Inference service configuration
        self.inference_base_url = self._require_env('INFERENCE_BASE_URL')
        self.inference_model = self._require_env('INFERENCE_MODEL')
        self.inference_api_key = os.environ.get('INFERENCE_API_KEY') or None

        # Key protecting raw uploads at rest
        self.content_encryption_key = self._require_env('CONTENT_ENCRYPTION_KEY')

        self.pipeline_settings = PipelineSettings.from_env()

    def _require_env(self, var_name: str) -> str:
        """Require environment variable or raise error"""
        value = os.environ.get(var_name)
        if not value:
            raise RuntimeError(f"Required environment variable {var_name} is not set")
        return value


def create_app(config=None):
    """Application factory"""
    app = Flask(__name__)

    # Initialize configuration
    if config is None:
        config = Config()

    settings = getattr(config, 'pipeline_settings', None) or PipelineSettings()
    settings = dataclasses.replace(
        settings,
        inference=dataclasses.replace(
            settings.inference,
            base_url=config.inference_base_url,
            model=config.inference_model,
            api_key=config.inference_api_key,
        ),
    )

    # Set Flask config from our config object
    app.config['SECRET_KEY'] = config.secret_key
    app.config['SQLALCHEMY_DATABASE_URI'] = config.sqlalchemy_database_uri
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = config.sqlalchemy_track_modifications
    app.config['CELERY_BROKER_URL'] = config.celery_broker_url
    app.config['CELERY_RESULT_BACKEND'] = config.celery_result_backend
    app.config['CONTENT_ENCRYPTION_KEY'] = config.content_encryption_key
    app.config['PIPELINE_SETTINGS'] = settings
    # Leave headroom so oversized files reach validation and get a descriptive error
    app.config['MAX_CONTENT_LENGTH'] = settings.upload.max_file_size + 1024 * 1024

    from message_trust.services.consent_service import HeaderConsentProvider
    app.config['CONSENT_PROVIDER'] = getattr(config, 'consent_provider', None) or HeaderConsentProvider()

    # Configure Celery app context
    from message_trust.tasks.celery_app import celery, init_celery
    init_celery(celery, app)

    # Register blueprints
    from message_trust.blueprints.uploads import uploads_bp
    app.register_blueprint(uploads_bp)

    # Initialize database
    from message_trust.database import init_app as init_database
    init_database(app)

    # Register error handlers and CLI commands
    from message_trust.error_handlers import register_error_handlers
    register_error_handlers(app)

    from message_trust.commands import register_commands
    register_commands(app)

    return app
