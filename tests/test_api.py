import io
from pathlib import Path

import pytest

from sugarcane_scan import storage
from sugarcane_scan.api import create_app
from sugarcane_scan.diseases import PENDING_ANALYSIS
from sugarcane_scan.errors import StorageError


def upload(client, data, filename='leaf.jpg', content_type='image/jpeg'):
    return client.post(
        '/api/upload-scan',
        data={'image': (io.BytesIO(data), filename, content_type)},
        content_type='multipart/form-data',
    )


def test_scan_round_trip(client, leaf_jpeg):
    response = upload(client, leaf_jpeg)
    assert response.status_code == 201
    body = response.get_json()
    assert body['success'] is True
    scan_id, image_key = body['scanId'], body['imageKey']
    assert image_key.startswith('scans/')

    scan = client.get(f'/api/scans/{scan_id}').get_json()['scan']
    assert scan['disease_detected'] == PENDING_ANALYSIS
    assert scan['image_key'] == image_key

    response = client.put(f'/api/scans/{scan_id}',
                          json={'disease_detected': 'rust', 'confidence_score': 0.82})
    assert response.status_code == 200
    assert response.get_json() == {'success': True}

    scan = client.get(f'/api/scans/{scan_id}').get_json()['scan']
    assert scan['disease_detected'] == 'rust'
    assert scan['confidence_score'] == pytest.approx(0.82)
    assert scan['updated_at'] > scan['created_at']

    image = client.get(f'/api/images/{image_key}')
    assert image.status_code == 200
    assert image.data == leaf_jpeg
    assert image.headers['Content-Type'] == 'image/jpeg'


def test_upload_without_file(client):
    response = client.post('/api/upload-scan', data={}, content_type='multipart/form-data')
    assert response.status_code == 400
    assert response.get_json()['error'] == "No image file provided"


def test_upload_wrong_type(client):
    response = upload(client, b'hello', filename='notes.txt', content_type='text/plain')
    assert response.status_code == 400
    assert 'error' in response.get_json()


def test_upload_non_ascii_filename(client, leaf_jpeg):
    response = upload(client, leaf_jpeg, filename='лист.jpg')

    assert response.status_code == 201
    key = response.get_json()['imageKey']
    assert key.endswith('-upload.jpg')
    assert client.get(f'/api/images/{key}').data == leaf_jpeg


def test_upload_blob_write_failure(client, config, leaf_jpeg, monkeypatch):
    def fail_replace(src, dst):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(storage.os, 'replace', fail_replace)

    response = upload(client, leaf_jpeg)

    assert response.status_code == 500
    assert response.get_json() == {'error': "Storage operation failed"}
    monkeypatch.undo()
    assert client.get('/api/scans').get_json() == {'scans': []}
    assert [p for p in Path(config.BLOB_ROOT).rglob('*') if p.is_file()] == []


def test_upload_too_large(config, service, leaf_jpeg):
    config.MAX_CONTENT_LENGTH = 1024 * 1024
    client = create_app(config, service=service).test_client()

    response = upload(client, b'\xff' * (2 * 1024 * 1024))

    assert response.status_code == 413
    assert response.get_json()['error'] == "File too large. Maximum size is 1MB."
    assert service.list_records() == []


def test_list_scans(client, leaf_jpeg):
    assert client.get('/api/scans').get_json() == {'scans': []}

    ids = [upload(client, leaf_jpeg).get_json()['scanId'] for _ in range(3)]

    scans = client.get('/api/scans').get_json()['scans']
    assert [s['id'] for s in scans] == ids[::-1]
    scans = client.get('/api/scans?limit=1').get_json()['scans']
    assert [s['id'] for s in scans] == [ids[-1]]


def test_missing_scan_returns_404(client):
    response = client.get('/api/scans/999')
    assert response.status_code == 404
    assert response.get_json() == {'error': "Scan not found"}

    response = client.put('/api/scans/999', json={'user_notes': 'x'})
    assert response.status_code == 404


def test_invalid_update_returns_400(client, leaf_jpeg):
    scan_id = upload(client, leaf_jpeg).get_json()['scanId']

    response = client.put(f'/api/scans/{scan_id}', json={'disease_detected': 'blight'})
    assert response.status_code == 400

    response = client.put(f'/api/scans/{scan_id}', data='not json',
                          content_type='text/plain')
    assert response.status_code == 400

    scan = client.get(f'/api/scans/{scan_id}').get_json()['scan']
    assert scan['disease_detected'] == PENDING_ANALYSIS


def test_missing_image_returns_404(client):
    response = client.get('/api/images/scans/nothing.jpg')
    assert response.status_code == 404
    assert response.get_json() == {'error': "Image not found"}


def test_image_caching_headers(client, leaf_jpeg):
    key = upload(client, leaf_jpeg).get_json()['imageKey']

    response = client.get(f'/api/images/{key}')
    assert 'max-age=86400' in response.headers['Cache-Control']
    assert 'public' in response.headers['Cache-Control']
    etag = response.headers['ETag']

    cached = client.get(f'/api/images/{key}', headers={'If-None-Match': etag})
    assert cached.status_code == 304


def test_image_key_without_prefix(client, leaf_jpeg):
    key = upload(client, leaf_jpeg).get_json()['imageKey']
    response = client.get(f"/api/images/{key[len('scans/'):]}")
    assert response.status_code == 200
    assert response.data == leaf_jpeg


def test_storage_errors_are_not_leaked(client, service, monkeypatch):
    def fail(*args, **kwargs):
        raise StorageError("database is locked at /srv/secret/scans.db")

    monkeypatch.setattr(service.database, 'query', fail)

    response = client.get('/api/scans')

    assert response.status_code == 500
    assert response.get_json() == {'error': "Storage operation failed"}


def test_unknown_route_is_json(client):
    response = client.get('/api/nope')
    assert response.status_code == 404
    assert 'error' in response.get_json()


def test_diseases(client):
    diseases = client.get('/api/diseases').get_json()['diseases']
    assert set(diseases) == {'red_rot', 'smut', 'rust', 'mosaic', 'healthy'}
    assert diseases['rust']['severity'] == 'medium'
    assert diseases['red_rot']['name'] == "Red Rot"


def test_health(client):
    body = client.get('/api/health').get_json()
    assert body['status'] == 'ok'
    assert body['timestamp']


def test_create_app_from_dict(tmp_path):
    app = create_app({
        'DATABASE': str(tmp_path / 'db.sqlite'),
        'BLOB_ROOT': str(tmp_path / 'blobs'),
    })
    assert app.test_client().get('/api/scans').status_code == 200
