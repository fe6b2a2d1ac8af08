"""
Shared helpers for API blueprints
"""
from functools import wraps

from flask import current_app, g, jsonify, request

from message_trust.database import db
from message_trust.services.upload_service import UploadService
from message_trust.shared.logging_config import get_project_logger


logger = get_project_logger(__name__)

OWNER_HEADER = 'X-User-Id'


def require_owner(func):
    """Reject requests without the owner identity supplied by the auth gateway"""
    @wraps(func)
    def wrapper(*args, **kwargs):
        owner_id = request.headers.get(OWNER_HEADER, '').strip()
        if not owner_id:
            logger.warning(f"Rejected {request.method} {request.path}: missing {OWNER_HEADER}")
            return jsonify({'success': False, 'error': 'Authentication required'}), 401
        g.owner_id = owner_id
        return func(*args, **kwargs)
    return wrapper


def get_upload_service() -> UploadService:
    """Build the upload service from the app configuration"""
    return UploadService(
        settings=current_app.config['PIPELINE_SETTINGS'],
        encryption_key=current_app.config['CONTENT_ENCRYPTION_KEY'],
        db_session=db.session,
    )


def get_consent_provider():
    return current_app.config['CONSENT_PROVIDER']


def read_uploaded_file(field_name: str = 'file'):
    """
    Return (filename, bytes, mime type) of an uploaded file, or None if absent
    """
    uploaded = request.files.get(field_name)
    if uploaded is None or uploaded.filename == '':
        return None
    data = uploaded.read()
    mime_type = (uploaded.mimetype or 'application/octet-stream').lower()
    return uploaded.filename, data, mime_type
