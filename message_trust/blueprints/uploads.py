"""
Uploads API blueprint - submission, progress, results and analysis of message exports
"""
from flask import Blueprint, g, jsonify, request

from message_trust.blueprints.blueprint_utils import (
    get_consent_provider,
    get_upload_service,
    read_uploaded_file,
    require_owner,
)
from message_trust.shared.logging_config import get_project_logger


logger = get_project_logger(__name__)

uploads_bp = Blueprint('uploads', __name__, url_prefix='/api/uploads')


@uploads_bp.route('', methods=['POST'])
@require_owner
def create_upload():
    """Accept a message export for processing"""
    uploaded = read_uploaded_file()
    if uploaded is None:
        return jsonify({
            'success': False,
            'error': 'No file uploaded',
            'details': {'errors': ['No file selected']},
        }), 400

    filename, data, mime_type = uploaded
    format_hint = request.form.get('format') or None

    submission = get_upload_service().submit_upload(g.owner_id, filename, data, mime_type, format_hint)
    return jsonify(submission.to_dict()), 201


@uploads_bp.route('', methods=['GET'])
@require_owner
def list_uploads():
    """List the caller's uploads (metadata only)"""
    uploads = get_upload_service().list_uploads(g.owner_id)
    return jsonify({'success': True, 'uploads': uploads})


@uploads_bp.route('/<upload_id>/progress', methods=['GET'])
@require_owner
def upload_progress(upload_id):
    """Get processing progress of an upload"""
    progress = get_upload_service().get_progress(upload_id, g.owner_id)
    return jsonify({'success': True, **progress})


@uploads_bp.route('/<upload_id>/result', methods=['GET'])
@require_owner
def upload_result(upload_id):
    """Get result metadata of a completed upload"""
    result = get_upload_service().get_result(upload_id, g.owner_id)
    return jsonify({'success': True, **result})


@uploads_bp.route('/<upload_id>/process', methods=['POST'])
@require_owner
def process_upload(upload_id):
    """Queue processing for an upload; repeated calls are harmless"""
    outcome = get_upload_service().request_processing(upload_id, g.owner_id)
    return jsonify({'success': True, **outcome}), 202


@uploads_bp.route('/<upload_id>', methods=['DELETE'])
@require_owner
def delete_upload(upload_id):
    """Delete an upload, or cancel it when it is processing"""
    outcome = get_upload_service().delete_upload(upload_id, g.owner_id)
    status_code = 202 if outcome['cancelled'] else 200
    return jsonify({'success': True, **outcome}), status_code


@uploads_bp.route('/<upload_id>/analysis', methods=['GET'])
@require_owner
def upload_analysis(upload_id):
    """Get traits, trust score and bias flags, subject to analysis consent"""
    analysis = get_upload_service().get_analysis(upload_id, g.owner_id, get_consent_provider())
    if analysis['withheld']:
        logger.info(f"Analysis for upload {upload_id} is withheld pending review")
        return jsonify({
            'success': True,
            'upload_id': analysis['upload_id'],
            'withheld': True,
            'message': 'Analysis is pending manual review',
        }), 202
    return jsonify({'success': True, **analysis})
