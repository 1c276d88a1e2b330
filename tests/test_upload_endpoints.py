"""Tests for the upload API endpoints."""

import asyncio
import errno
import io
from unittest.mock import AsyncMock, Mock

import bcrypt
import pytest
from fastapi.testclient import TestClient

from videoserver import config
from videoserver.auth import ANONYMOUS_CALLER
from videoserver.main import app


def post_chunk(client, data, chunk, total, name='lecture.mp4', content_type='video/mp4', **fields):
    form = {'chunk': str(chunk), 'totalChunks': str(total), 'originalname': name}
    form.update(fields)
    return client.post(
        '/api/upload',
        files={'video': (name, data, content_type)},
        data=form,
    )


def upload_all(client, chunks, name='lecture.mp4', **fields):
    responses = []
    for index, data in enumerate(chunks):
        responses.append(post_chunk(client, data, index, len(chunks), name=name, **fields))
    return responses


def test_root_endpoint(api_client):
    response = api_client.get('/')
    assert response.status_code == 200
    assert response.json()['status'] == 'running'


def test_health_reports_store_state(api_client):
    response = api_client.get('/health')

    assert response.status_code == 200
    assert response.json() == {'status': 'healthy', 'service': 'videoserver', 'objectStore': 'unknown'}


def test_responses_carry_request_id(api_client):
    response = api_client.get('/health')
    assert response.headers['X-Request-ID']


def test_three_chunks_with_store_unreachable(api_client, fake_store, upload_service):
    """Chunks 0 and 1 are acknowledged; chunk 2 publishes to local storage."""
    fake_store.probe_error = ConnectionRefusedError('connection refused')
    chunks = [b'A' * 10, b'B' * 10, b'C' * 5]

    first, second, last = upload_all(api_client, chunks)

    assert first.status_code == 200
    assert first.json() == {'message': 'Chunk uploaded successfully', 'chunk': 1, 'totalChunks': 3}
    assert second.json() == {'message': 'Chunk uploaded successfully', 'chunk': 2, 'totalChunks': 3}

    assert last.status_code == 200
    body = last.json()
    assert 'local storage' in body['message']
    descriptor = body['file']
    assert descriptor['filename'] == 'lecture.mp4'
    assert descriptor['originalName'] == 'lecture.mp4'
    assert descriptor['size'] == 25
    assert descriptor['mimetype'] == 'video/mp4'
    assert descriptor['videoUrl'] == 'http://testserver/uploads/lecture.mp4'
    assert descriptor['baseURL'] == 'http://testserver/uploads/'
    assert descriptor['storageMode'] == 'local'
    assert descriptor['usingFallback'] is True

    fetched = api_client.get('/uploads/lecture.mp4')
    assert fetched.status_code == 200
    assert fetched.content == b''.join(chunks)
    assert upload_service.staging.existing_part_indices('lecture.mp4') == []
    assert api_client.get('/health').json()['objectStore'] == 'unavailable'


def test_upload_to_store(api_client, fake_store, upload_service):
    """Reachable store: object uploaded, local copy removed, cloud URL returned."""
    chunks = [b'first-', b'second-', b'third']

    responses = upload_all(api_client, chunks)

    body = responses[-1].json()
    assert body['message'] == 'Video uploaded successfully to cloud storage.'
    assert body['file']['videoUrl'] == 'http://store.test/video-bucket/lecture.mp4'
    assert body['file']['storageMode'] == 'cloud'
    assert body['file']['usingFallback'] is False
    assert fake_store.objects[('video-bucket', 'lecture.mp4')] == b'first-second-third'
    assert not upload_service.staging.output_path('lecture.mp4').exists()
    assert api_client.get('/uploads/lecture.mp4').status_code == 404


def test_single_chunk_upload_with_defaults(api_client, fake_store):
    """chunk and totalChunks default to 0 and 1; the part's filename names the file."""
    response = api_client.post(
        '/api/upload',
        files={'video': ('solo clip.mp4', b'whole-file', 'video/mp4')},
    )

    assert response.status_code == 200
    assert response.json()['file']['filename'] == 'solo_clip.mp4'
    assert fake_store.objects[('video-bucket', 'solo_clip.mp4')] == b'whole-file'


def test_octet_stream_chunks_accepted(api_client, fake_store):
    responses = upload_all(api_client, [b'ab', b'cd'], content_type='application/octet-stream', mimeType='video/webm')

    assert responses[-1].status_code == 200
    assert responses[-1].json()['file']['mimetype'] == 'video/webm'
    assert fake_store.content_types[('video-bucket', 'lecture.mp4')] == 'video/webm'


def test_non_video_rejected_before_write(api_client, upload_service):
    response = post_chunk(api_client, b'\x89PNG', 0, 2, name='picture.png', content_type='image/png')

    assert response.status_code == 400
    assert response.json() == {'error': 'Not a video file. Please upload only videos.', 'code': 'UNSUPPORTED_MEDIA_TYPE'}
    assert list(upload_service.staging.chunks_dir.iterdir()) == []


def test_missing_video_field(api_client):
    response = api_client.post('/api/upload', data={'chunk': '0', 'totalChunks': '1', 'originalname': 'a.mp4'})

    assert response.status_code == 400
    assert response.json()['error'] == "No video file uploaded. Expected multipart field 'video'."


@pytest.mark.parametrize('chunk, total', [('zero', '2'), ('0', 'many'), ('3', '3'), ('-1', '3'), ('0', '0')])
def test_bad_chunk_numbers(api_client, upload_service, chunk, total):
    response = api_client.post(
        '/api/upload',
        files={'video': ('a.mp4', b'data', 'video/mp4')},
        data={'chunk': chunk, 'totalChunks': total, 'originalname': 'a.mp4'},
    )

    assert response.status_code == 400
    assert response.json()['code'] == 'INVALID_CHUNK'
    assert list(upload_service.staging.chunks_dir.iterdir()) == []


def test_chunk_over_size_limit(api_client, upload_service):
    upload_service.max_chunk_size = 4

    response = post_chunk(api_client, b'12345', 0, 2)

    assert response.status_code == 400
    assert response.json()['code'] == 'CHUNK_TOO_LARGE'
    assert list(upload_service.staging.chunks_dir.iterdir()) == []


def test_missing_chunk_fails_without_publishing(api_client, fake_store, upload_service):
    """Chunk 2 of 4 never sent: the final chunk reports a missing chunk."""
    for index in (0, 1):
        post_chunk(api_client, b'xx', index, 4)
    response = post_chunk(api_client, b'zz', 3, 4)

    assert response.status_code == 500
    body = response.json()
    assert body['code'] == 'MISSING_CHUNK'
    assert body['error'].startswith('Chunk processing failed')
    assert not upload_service.staging.output_path('lecture.mp4').exists()
    assert fake_store.objects == {}
    assert upload_service.staging.existing_part_indices('lecture.mp4') == [0, 1, 3]


def test_locked_chunk_reports_processing_failure(api_client, fake_store, upload_service):
    upload_service.reassembler._copy_part = Mock(side_effect=BlockingIOError(errno.EAGAIN, 'busy'))

    response = post_chunk(api_client, b'data', 0, 1)

    assert response.status_code == 500
    assert response.json()['code'] == 'CHUNK_LOCKED'
    assert upload_service.reassembler._copy_part.call_count == 5
    assert fake_store.objects == {}


def test_unexpected_error_is_generic(upload_service):
    from videoserver.service_locator import set_upload_service

    upload_service.receive_chunk = AsyncMock(side_effect=RuntimeError('secret internals'))
    set_upload_service(upload_service)
    try:
        client = TestClient(app, raise_server_exceptions=False)
        response = post_chunk(client, b'data', 0, 1)
    finally:
        set_upload_service(None)

    assert response.status_code == 500
    assert response.json() == {'error': 'An error occurred while uploading the video chunk.', 'code': 'INTERNAL_ERROR'}


def test_same_name_legacy_uploads_interfere(api_client, fake_store):
    """Two session-less uploads of one name share chunk files."""
    post_chunk(api_client, b'AAAA', 0, 2, name='clip.mp4')
    post_chunk(api_client, b'BBBB', 0, 2, name='clip.mp4')
    first_final = post_chunk(api_client, b'aaaa', 1, 2, name='clip.mp4')
    second_final = post_chunk(api_client, b'bbbb', 1, 2, name='clip.mp4')

    assert first_final.status_code == 200
    assert fake_store.objects[('video-bucket', 'clip.mp4')] == b'BBBBaaaa'
    assert second_final.status_code == 500
    assert second_final.json()['code'] == 'MISSING_CHUNK'


def test_same_name_session_uploads_stay_separate(api_client, fake_store):
    """With upload sessions, interleaved uploads of one name do not mix."""
    first = api_client.post('/api/upload/init', json={'originalname': 'clip.mp4', 'totalChunks': 2}).json()
    second = api_client.post('/api/upload/init', json={'originalname': 'clip.mp4', 'totalChunks': 2}).json()

    post_chunk(api_client, b'AAAA', 0, 2, name='clip.mp4', uploadId=first['uploadId'])
    post_chunk(api_client, b'BBBB', 0, 2, name='clip.mp4', uploadId=second['uploadId'])
    first_final = post_chunk(api_client, b'aaaa', 1, 2, name='clip.mp4', uploadId=first['uploadId'])
    second_final = post_chunk(api_client, b'bbbb', 1, 2, name='clip.mp4', uploadId=second['uploadId'])

    assert first_final.status_code == 200
    assert second_final.status_code == 200
    assert first_final.json()['file']['filename'] == first['objectName']
    assert first_final.json()['file']['originalName'] == 'clip.mp4'
    assert fake_store.objects[('video-bucket', first['objectName'])] == b'AAAAaaaa'
    assert fake_store.objects[('video-bucket', second['objectName'])] == b'BBBBbbbb'


def test_init_upload(api_client, upload_service):
    response = api_client.post(
        '/api/upload/init',
        json={'originalname': 'week 1.mp4', 'totalChunks': 3, 'mimeType': 'video/mp4', 'size': 1000},
    )

    assert response.status_code == 201
    body = response.json()
    assert len(body['uploadId']) == 32
    assert body['objectName'] == f"{body['uploadId']}_week_1.mp4"
    assert body['totalChunks'] == 3
    assert body['maxChunkSize'] == upload_service.max_chunk_size
    assert body['expiresIn'] == upload_service.sessions.ttl_seconds


def test_init_upload_too_large(api_client, upload_service):
    response = api_client.post(
        '/api/upload/init',
        json={'originalname': 'huge.mp4', 'totalChunks': 1, 'size': upload_service.max_upload_size + 1},
    )

    assert response.status_code == 400
    assert response.json()['code'] == 'UPLOAD_TOO_LARGE'


def test_init_upload_validation(api_client):
    response = api_client.post('/api/upload/init', json={'originalname': 'a.mp4', 'totalChunks': 0})
    assert response.status_code == 422


def test_unknown_session_is_404(api_client):
    response = post_chunk(api_client, b'data', 0, 1, uploadId='0' * 32)

    assert response.status_code == 404
    assert response.json()['code'] == 'UPLOAD_SESSION_NOT_FOUND'


def test_session_total_chunks_mismatch(api_client):
    session = api_client.post('/api/upload/init', json={'originalname': 'a.mp4', 'totalChunks': 3}).json()

    response = post_chunk(api_client, b'data', 0, 2, name='a.mp4', uploadId=session['uploadId'])

    assert response.status_code == 400
    assert response.json()['code'] == 'INVALID_CHUNK'


def test_session_closed_after_success(api_client):
    session = api_client.post('/api/upload/init', json={'originalname': 'a.mp4', 'totalChunks': 1}).json()
    post_chunk(api_client, b'data', 0, 1, name='a.mp4', uploadId=session['uploadId'])

    response = post_chunk(api_client, b'data', 0, 1, name='a.mp4', uploadId=session['uploadId'])

    assert response.status_code == 404


def test_complete_staged_upload(api_client, fake_store, upload_service):
    """Explicit completion reassembles chunks whose final request never got an answer."""
    for index, data in enumerate([b'one-', b'two-', b'three']):
        upload_service.staging.write_part('lecture.mp4', index, io.BytesIO(data), max_bytes=100)

    response = api_client.post('/api/upload/complete', json={'originalname': 'lecture.mp4', 'totalChunks': 3})

    assert response.status_code == 200
    assert response.json()['file']['size'] == 13
    assert fake_store.objects[('video-bucket', 'lecture.mp4')] == b'one-two-three'


def test_complete_with_missing_chunk(api_client, upload_service):
    upload_service.staging.write_part('lecture.mp4', 0, io.BytesIO(b'one'), max_bytes=100)

    response = api_client.post('/api/upload/complete', json={'originalname': 'lecture.mp4', 'totalChunks': 2})

    assert response.status_code == 500
    assert response.json()['code'] == 'MISSING_CHUNK'


def test_complete_requires_name_or_session(api_client):
    response = api_client.post('/api/upload/complete', json={'totalChunks': 2})

    assert response.status_code == 400
    assert response.json()['code'] == 'INVALID_CHUNK'


def test_cleanup_removes_staged_chunks(api_client, upload_service):
    for index in range(3):
        upload_service.staging.write_part('lecture.mp4', index, io.BytesIO(b'x'), max_bytes=10)
    upload_service.staging.output_path('lecture.mp4').write_bytes(b'partial')
    upload_service.staging.write_part('other.mp4', 0, io.BytesIO(b'x'), max_bytes=10)

    response = api_client.post('/api/upload/cleanup', json={'filename': 'lecture.mp4'})

    assert response.status_code == 200
    assert response.json() == {'message': 'Cleanup complete', 'deletedFiles': 4}
    assert upload_service.staging.existing_part_indices('lecture.mp4') == []
    assert upload_service.staging.existing_part_indices('other.mp4') == [0]


def test_cleanup_session_upload(api_client, upload_service):
    session = api_client.post('/api/upload/init', json={'originalname': 'a.mp4', 'totalChunks': 3}).json()
    post_chunk(api_client, b'x', 0, 3, name='a.mp4', uploadId=session['uploadId'])

    response = api_client.post('/api/upload/cleanup', json={'uploadId': session['uploadId']})

    assert response.json()['deletedFiles'] == 1
    assert len(upload_service.sessions) == 0


def test_cleanup_keeps_served_fallback_video(local_api_client):
    """A finished upload served from local storage is not a partial file."""
    responses = upload_all(local_api_client, [b'aa', b'bb'])
    assert responses[-1].json()['file']['usingFallback'] is True

    response = local_api_client.post('/api/upload/cleanup', json={'filename': 'lecture.mp4'})

    assert response.json()['deletedFiles'] == 0
    assert local_api_client.get('/uploads/lecture.mp4').content == b'aabb'


@pytest.mark.asyncio
async def test_cleanup_waits_for_running_finalization(upload_service, fake_store):
    for index in range(2):
        upload_service.staging.write_part('lecture.mp4', index, io.BytesIO(b'x'), max_bytes=10)
    fake_store.upload_delay = 0.3

    finalizing = asyncio.ensure_future(upload_service.complete(
        2, ANONYMOUS_CALLER, 'http://testserver/', original_name='lecture.mp4'
    ))
    await asyncio.sleep(0.05)
    cleaning = asyncio.ensure_future(upload_service.cleanup(ANONYMOUS_CALLER, filename='lecture.mp4'))
    await asyncio.sleep(0.1)
    assert not cleaning.done()

    completed = await finalizing
    deleted = await cleaning

    assert completed.published.durable is True
    assert completed.size == 2
    assert deleted == 0


def test_serving_rejects_unknown_files(api_client):
    assert api_client.get('/uploads/nothing.mp4').status_code == 404


class TestApiKeyAuthentication:
    """Uploads with VIDEO_API_KEY_HASHES configured."""

    @pytest.fixture(autouse=True)
    def require_key(self, monkeypatch):
        key_hash = bcrypt.hashpw(b'course-key', bcrypt.gensalt(rounds=4)).decode('utf-8')
        monkeypatch.setattr(config, 'API_KEY_HASHES', [key_hash])

    def test_missing_header_rejected(self, api_client):
        response = post_chunk(api_client, b'data', 0, 2)

        assert response.status_code == 401
        assert response.json()['code'] == 'INVALID_API_KEY'

    def test_wrong_key_rejected(self, api_client):
        api_client.headers['Authorization'] = 'Bearer not-the-key'
        response = post_chunk(api_client, b'data', 0, 2)

        assert response.status_code == 401

    def test_valid_key_accepted(self, api_client):
        api_client.headers['Authorization'] = 'Bearer course-key'
        response = post_chunk(api_client, b'data', 0, 2)

        assert response.status_code == 200

    def test_session_belongs_to_its_caller(self, api_client, monkeypatch):
        api_client.headers['Authorization'] = 'Bearer course-key'
        session = api_client.post('/api/upload/init', json={'originalname': 'a.mp4', 'totalChunks': 2}).json()

        key_hash = bcrypt.hashpw(b'other-key', bcrypt.gensalt(rounds=4)).decode('utf-8')
        monkeypatch.setattr(config, 'API_KEY_HASHES', config.API_KEY_HASHES + [key_hash])
        api_client.headers['Authorization'] = 'Bearer other-key'
        response = post_chunk(api_client, b'data', 0, 2, name='a.mp4', uploadId=session['uploadId'])

        assert response.status_code == 404
