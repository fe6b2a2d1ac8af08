"""
Integration tests for the uploads API blueprint
"""

import io
from unittest.mock import patch

import pytest

from message_trust.repositories import AnalysisRepository, UploadJobRepository
from message_trust.services.bias_auditor import AuditOutcome, BiasAuditor
from message_trust.services.trust_score_engine import compute_trust_score
from tests.test_utils import build_chat_export


OWNER_HEADERS = {'X-User-Id': 'owner-1'}
CONSENT_HEADERS = {**OWNER_HEADERS, 'X-Analysis-Consent': 'granted'}


@pytest.fixture
def mock_task():
    """Processing task stand-in so no broker is needed"""
    with patch('message_trust.tasks.upload_tasks.process_message_upload') as task:
        yield task


def _upload(client, data=None, filename='chat.json', mime_type='application/json', headers=OWNER_HEADERS,
            **form):
    payload = {'file': (io.BytesIO(data if data is not None else build_chat_export(60)), filename, mime_type)}
    payload.update(form)
    return client.post('/api/uploads', data=payload, headers=headers, content_type='multipart/form-data')


def _complete(db, upload_id, traits, withheld=False):
    job = UploadJobRepository(db.session).get_job(upload_id)
    job.status = 'completed'
    job.message_count = 60
    outcome = BiasAuditor().audit(compute_trust_score(traits), traits)
    if withheld:
        outcome = AuditOutcome(outcome.result, outcome.flags, True, outcome.original_score)
    AnalysisRepository(db.session).save_analysis(job, traits, outcome, model_version='test-model')
    db.session.commit()


class TestCreateUpload:
    """POST /api/uploads"""

    def test_requires_owner(self, client, db):
        response = _upload(client, headers={})

        assert response.status_code == 401
        assert response.get_json()['success'] is False

    def test_accepts_valid_export(self, client, db, mock_task):
        response = _upload(client)

        assert response.status_code == 201
        data = response.get_json()
        assert data['success'] is True
        assert data['status'] == 'validating'
        assert data['format'] == 'platform_a_chat'
        assert data['estimated_message_count'] == 60
        mock_task.apply_async.assert_called_once()

    def test_format_hint_from_form(self, client, db, mock_task):
        response = _upload(client, format='whatsapp')

        assert response.status_code == 201
        assert any('whatsapp' in warning for warning in response.get_json()['warnings'])

    def test_missing_file(self, client, db):
        response = client.post('/api/uploads', data={}, headers=OWNER_HEADERS, content_type='multipart/form-data')

        assert response.status_code == 400
        assert response.get_json()['error'] == 'No file uploaded'

    def test_disallowed_type(self, client, db, mock_task):
        response = _upload(client, filename='photo.png', mime_type='image/png')

        assert response.status_code == 400
        data = response.get_json()
        assert data['success'] is False
        assert any('image/png' in error for error in data['details']['errors'])
        mock_task.apply_async.assert_not_called()

    def test_unrecognized_format(self, client, db, mock_task):
        response = _upload(client, data=b'Just a shopping list: eggs, milk', filename='notes.txt',
                           mime_type='text/plain')

        assert response.status_code == 422


class TestUploadQueries:
    """Listing, progress and result endpoints"""

    @pytest.fixture
    def upload_id(self, client, db, mock_task):
        return _upload(client).get_json()['upload_id']

    def test_list_uploads(self, client, upload_id):
        response = client.get('/api/uploads', headers=OWNER_HEADERS)

        assert response.status_code == 200
        uploads = response.get_json()['uploads']
        assert [u['upload_id'] for u in uploads] == [upload_id]

    def test_progress(self, client, upload_id):
        response = client.get(f'/api/uploads/{upload_id}/progress', headers=OWNER_HEADERS)

        assert response.status_code == 200
        assert response.get_json()['status'] == 'validating'

    def test_other_owner_gets_not_found(self, client, upload_id):
        response = client.get(f'/api/uploads/{upload_id}/progress', headers={'X-User-Id': 'owner-2'})

        assert response.status_code == 404

    def test_malformed_id_gets_not_found(self, client, db):
        response = client.get('/api/uploads/not-an-id/progress', headers=OWNER_HEADERS)

        assert response.status_code == 404

    def test_result_before_completion_conflicts(self, client, upload_id):
        response = client.get(f'/api/uploads/{upload_id}/result', headers=OWNER_HEADERS)

        assert response.status_code == 409

    def test_result_after_completion(self, client, db, upload_id, reliable_traits):
        _complete(db, upload_id, reliable_traits)

        response = client.get(f'/api/uploads/{upload_id}/result', headers=OWNER_HEADERS)

        assert response.status_code == 200
        data = response.get_json()
        assert data['message_count'] == 60
        assert 'content' not in data

    def test_process_request(self, client, upload_id, mock_task):
        response = client.post(f'/api/uploads/{upload_id}/process', headers=OWNER_HEADERS)

        assert response.status_code == 202
        assert response.get_json()['queued'] is True
        assert mock_task.apply_async.call_count == 2

    def test_delete_waiting_upload(self, client, upload_id):
        response = client.delete(f'/api/uploads/{upload_id}', headers=OWNER_HEADERS)

        assert response.status_code == 200
        assert response.get_json()['deleted'] is True
        assert client.get('/api/uploads', headers=OWNER_HEADERS).get_json()['uploads'] == []

    def test_delete_processing_upload(self, client, db, upload_id):
        UploadJobRepository(db.session).get_job(upload_id).status = 'processing'
        db.session.commit()

        response = client.delete(f'/api/uploads/{upload_id}', headers=OWNER_HEADERS)

        assert response.status_code == 202
        assert response.get_json()['cancelled'] is True


class TestAnalysisEndpoint:
    """GET /api/uploads/<id>/analysis"""

    @pytest.fixture
    def upload_id(self, client, db, mock_task):
        return _upload(client).get_json()['upload_id']

    def test_requires_consent(self, client, db, upload_id, reliable_traits):
        _complete(db, upload_id, reliable_traits)

        response = client.get(f'/api/uploads/{upload_id}/analysis', headers=OWNER_HEADERS)

        assert response.status_code == 403

    def test_requires_completion(self, client, upload_id):
        response = client.get(f'/api/uploads/{upload_id}/analysis', headers=CONSENT_HEADERS)

        assert response.status_code == 409

    def test_returns_analysis(self, client, db, upload_id, reliable_traits):
        _complete(db, upload_id, reliable_traits)

        response = client.get(f'/api/uploads/{upload_id}/analysis', headers=CONSENT_HEADERS)

        assert response.status_code == 200
        data = response.get_json()
        assert data['traits']['conscientiousness'] == 85
        assert data['trust_score']['score'] == 75
        assert data['trust_score']['traditional_score'] == 713
        assert data['bias_flags'] == []

    def test_withheld_analysis_is_not_disclosed(self, client, db, upload_id, reliable_traits):
        _complete(db, upload_id, reliable_traits, withheld=True)

        response = client.get(f'/api/uploads/{upload_id}/analysis', headers=CONSENT_HEADERS)

        assert response.status_code == 202
        data = response.get_json()
        assert data['withheld'] is True
        assert 'trust_score' not in data
        assert 'traits' not in data


class TestErrorHandling:
    """Errors come back as JSON"""

    def test_unknown_route(self, client, db):
        response = client.get('/api/nothing-here')

        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'error': 'Resource not found'}

    def test_method_not_allowed(self, client, db):
        response = client.put('/api/uploads', headers=OWNER_HEADERS)

        assert response.status_code == 405
