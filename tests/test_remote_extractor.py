"""
Unit tests for the remote (HTTP) field extractor

Uses httpx.MockTransport, no network access.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json

import httpx
import pytest

from service_notes.core.field_schema import create_empty_fields
from service_notes.errors import ExtractionFailure, ValidationError
from service_notes.utils.remote_extractor import RemoteFieldExtractor

URL = "https://extract.example.test/parse-service-note-step"


def make_extractor(handler, api_key="secret"):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return RemoteFieldExtractor(URL, api_key=api_key, client=client)


def test_success_round_trip():
    seen = {}

    def handler(request):
        seen['body'] = json.loads(request.content)
        seen['auth'] = request.headers.get('Authorization')
        return httpx.Response(200, json={'fields': {
            'destination': '車で自宅へ',
            'toilet': {'urination': True},
        }})

    current = create_empty_fields()
    current.mood = 'sunny'
    extractor = make_extractor(handler)

    result = extractor.extract('destination', ' 車で自宅へ ', current)

    assert seen['body']['stepId'] == 'destination'
    assert seen['body']['answer'] == '車で自宅へ'
    assert seen['body']['current']['mood'] == 'sunny'
    assert seen['auth'] == 'Bearer secret'
    assert result.fields.destination == '電車で自宅へ'
    assert result.fields.toilet['urination'] is True
    assert result.summary.startswith('電車で自宅へまでの移動支援を行いました。')


def test_bare_record_accepted():
    extractor = make_extractor(lambda request: httpx.Response(200, json={'mood': 'cloudy'}))
    result = extractor.extract('mood', '少し沈み', create_empty_fields())

    assert result.fields.mood == 'cloudy'


def test_no_auth_header_without_key():
    seen = {}

    def handler(request):
        seen['auth'] = request.headers.get('Authorization')
        return httpx.Response(200, json={})

    make_extractor(handler, api_key=None).extract('memo', 'メモ', create_empty_fields())
    assert seen['auth'] is None


def test_http_error_status():
    extractor = make_extractor(lambda request: httpx.Response(500, text='internal boom'))

    with pytest.raises(ExtractionFailure) as exc_info:
        extractor.extract('mood', '明るい', create_empty_fields())

    assert exc_info.value.status_code == 500
    assert exc_info.value.step_id == 'mood'
    assert 'internal boom' in str(exc_info.value)


def test_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExtractionFailure, match="connection refused") as exc_info:
        make_extractor(handler).extract('mood', '明るい', create_empty_fields())

    assert exc_info.value.status_code is None


def test_non_json_body():
    extractor = make_extractor(lambda request: httpx.Response(200, text='<html>oops</html>'))

    with pytest.raises(ExtractionFailure, match="non-JSON"):
        extractor.extract('mood', '明るい', create_empty_fields())


def test_non_object_body():
    extractor = make_extractor(lambda request: httpx.Response(200, json=['a', 'b']))

    with pytest.raises(ExtractionFailure, match="JSON object"):
        extractor.extract('mood', '明るい', create_empty_fields())


def test_validation_before_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    extractor = make_extractor(handler)

    with pytest.raises(ValidationError):
        extractor.extract('unknown-step', '明るい', create_empty_fields())
    with pytest.raises(ValidationError):
        extractor.extract('mood', '', create_empty_fields())
    assert calls == []


def test_url_required():
    with pytest.raises(ValueError):
        RemoteFieldExtractor('')


def test_context_manager_closes_owned_client():
    with RemoteFieldExtractor(URL) as extractor:
        assert extractor.client.is_closed is False
    assert extractor.client.is_closed is True


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
