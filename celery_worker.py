"""
Celery worker entry point

Start workers with: celery -A celery_worker.celery worker --loglevel=info
Start the scheduler with: celery -A celery_worker.celery beat --loglevel=info
"""
from message_trust import create_app
from message_trust.tasks.celery_app import celery as celery_instance


# Create Flask app - environment variables provided by Docker/deployment
app = create_app()

# create_app() bound the Celery instance to the app context via init_celery()
celery = celery_instance
