"""Tests for upload helper functions."""

import pytest

from videoserver.exceptions import InvalidChunkError
from videoserver.services.upload_service import resolve_mimetype
from videoserver.utils import (
    is_allowed_chunk_type,
    normalize_filename,
    parse_int_field,
    validate_chunk_numbers,
)


@pytest.mark.parametrize('raw, expected', [
    ('lecture.mp4', 'lecture.mp4'),
    ('my video.mp4', 'my_video.mp4'),
    ('week#2/intro (final).mov', 'week_2_intro__final_.mov'),
    ('clip-01_A.webm', 'clip-01_A.webm'),
    ('vidéo.mp4', 'vid_o.mp4'),
])
def test_normalize_filename(raw, expected):
    assert normalize_filename(raw) == expected


@pytest.mark.parametrize('raw', [None, '', '.', '..'])
def test_normalize_filename_rejects_unusable_names(raw):
    with pytest.raises(InvalidChunkError):
        normalize_filename(raw)


def test_parse_int_field():
    assert parse_int_field('chunk', None, 0) == 0
    assert parse_int_field('chunk', '', 0) == 0
    assert parse_int_field('totalChunks', ' 12 ', 1) == 12
    with pytest.raises(InvalidChunkError, match="Field 'chunk' must be an integer"):
        parse_int_field('chunk', 'two', 0)


@pytest.mark.parametrize('chunk, total', [(0, 1), (2, 3), (0, 100)])
def test_validate_chunk_numbers_accepts_in_range(chunk, total):
    validate_chunk_numbers(chunk, total)


@pytest.mark.parametrize('chunk, total', [(-1, 3), (3, 3), (0, 0), (5, 2)])
def test_validate_chunk_numbers_rejects_out_of_range(chunk, total):
    with pytest.raises(InvalidChunkError):
        validate_chunk_numbers(chunk, total)


@pytest.mark.parametrize('content_type, allowed', [
    ('video/mp4', True),
    ('video/webm; codecs=vp9', True),
    ('VIDEO/QuickTime', True),
    ('application/octet-stream', True),
    ('image/png', False),
    ('text/plain', False),
    (None, False),
    ('', False),
])
def test_is_allowed_chunk_type(content_type, allowed):
    assert is_allowed_chunk_type(content_type) is allowed


def test_resolve_mimetype_prefers_declaration():
    assert resolve_mimetype('video/webm', 'video/mp4', 'a.mov') == 'video/webm'
    assert resolve_mimetype(None, 'video/quicktime', 'a.mp4') == 'video/quicktime'
    assert resolve_mimetype(None, 'application/octet-stream', 'a.mov') == 'video/quicktime'
    assert resolve_mimetype(None, 'application/octet-stream', 'a.unknown') == 'video/mp4'
