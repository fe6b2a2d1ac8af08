"""
Celery application configuration
"""
import os

from celery import Celery


def make_celery():
    """Create Celery instance"""
    broker_url = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
    result_backend = os.environ.get('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0')

    celery = Celery('message_trust', include=['message_trust.tasks.upload_tasks'])
    celery.conf.update(
        broker_url=broker_url,
        result_backend=result_backend,
        task_serializer='json',
        accept_content=['json'],
        result_serializer='json',
        timezone='UTC',
        enable_utc=True,
        # One job at a time per worker process; a job never runs twice
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        beat_schedule={
            'sweep-expired-uploads': {
                'task': 'message_trust.tasks.upload_tasks.sweep_expired_uploads',
                'schedule': 3600.0,
            },
        },
    )

    return celery


def init_celery(celery, app):
    """Bind the Celery instance to a Flask app so tasks run inside its app context"""
    celery.conf.update(
        broker_url=app.config['CELERY_BROKER_URL'],
        result_backend=app.config['CELERY_RESULT_BACKEND'],
    )

    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = ContextTask
    return celery


# Global celery instance
celery = make_celery()
