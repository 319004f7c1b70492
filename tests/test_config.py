"""
Test configuration loading and collaborator construction

Run with: pytest tests/test_config.py
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pathlib import Path

import pytest

from service_notes import config
from service_notes.config import ExtractorKind, Settings
from service_notes.core.field_extractor import FieldExtractor
from service_notes.utils.helpers import build_extractor, generate_conversation_id, generate_note_id
from service_notes.utils.remote_extractor import RemoteFieldExtractor

ENV_VARS = [
    'SERVICE_NOTES_EXTRACTOR',
    'SERVICE_NOTES_MODEL',
    'SERVICE_NOTES_LOAD_IN_4BIT',
    'SERVICE_NOTES_DEVICE',
    'SERVICE_NOTES_EXTRACT_URL',
    'SERVICE_NOTES_API_KEY',
    'SERVICE_NOTES_HTTP_TIMEOUT',
    'SERVICE_NOTES_DATA_DIR',
    'SERVICE_NOTES_POLL_TIMEOUT',
    'SERVICE_NOTES_POLL_INTERVAL',
]


@pytest.fixture
def clean_env(monkeypatch):
    """No SERVICE_NOTES_* variables and no .env file lookup"""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, 'load_dotenv', lambda *args, **kwargs: False)
    return monkeypatch


class MockHFClient:
    def is_loaded(self):
        return True

    def generate_json(self, prompt, system_prompt=None, max_tokens=512, temperature=0.0):
        return '{}'


def test_defaults(clean_env):
    settings = Settings.load()

    assert settings.extractor is ExtractorKind.LOCAL
    assert settings.model_name == config.DEFAULT_MODEL
    assert settings.load_in_4bit is True
    assert settings.device == 'cuda'
    assert settings.extract_url is None
    assert settings.http_timeout == 30.0
    assert settings.data_dir == Path('outputs/service_notes')
    assert settings.poll_timeout == 20.0
    assert settings.poll_interval == 0.8


def test_values_from_environment(clean_env):
    clean_env.setenv('SERVICE_NOTES_EXTRACTOR', 'Remote')
    clean_env.setenv('SERVICE_NOTES_EXTRACT_URL', 'https://extract.example.test')
    clean_env.setenv('SERVICE_NOTES_API_KEY', 'secret')
    clean_env.setenv('SERVICE_NOTES_LOAD_IN_4BIT', 'false')
    clean_env.setenv('SERVICE_NOTES_DEVICE', 'CPU')
    clean_env.setenv('SERVICE_NOTES_POLL_TIMEOUT', '5')
    clean_env.setenv('SERVICE_NOTES_DATA_DIR', '/tmp/notes')

    settings = Settings.load()

    assert settings.extractor is ExtractorKind.REMOTE
    assert settings.extract_url == 'https://extract.example.test'
    assert settings.api_key == 'secret'
    assert settings.load_in_4bit is False
    assert settings.device == 'cpu'
    assert settings.poll_timeout == 5.0
    assert settings.data_dir == Path('/tmp/notes')


@pytest.mark.parametrize("name, value", [
    ('SERVICE_NOTES_EXTRACTOR', 'cloud'),
    ('SERVICE_NOTES_DEVICE', 'tpu'),
    ('SERVICE_NOTES_HTTP_TIMEOUT', 'soon'),
    ('SERVICE_NOTES_POLL_INTERVAL', '0'),
])
def test_invalid_values(clean_env, name, value):
    clean_env.setenv(name, value)

    with pytest.raises(RuntimeError):
        Settings.load()


def test_remote_requires_url(clean_env):
    clean_env.setenv('SERVICE_NOTES_EXTRACTOR', 'remote')

    with pytest.raises(RuntimeError, match="SERVICE_NOTES_EXTRACT_URL"):
        Settings.load()


def test_build_remote_extractor():
    settings = Settings(extractor=ExtractorKind.REMOTE, extract_url='https://extract.example.test',
                        http_timeout=5.0)
    extractor = build_extractor(settings)

    assert isinstance(extractor, RemoteFieldExtractor)
    assert extractor.timeout == 5.0
    extractor.close()


def test_build_local_extractor_reuses_client():
    extractor = build_extractor(Settings(), hf_client=MockHFClient())
    assert isinstance(extractor, FieldExtractor)


def test_generated_ids():
    assert len(generate_note_id()) == 32
    assert len(generate_note_id(short=True)) == 8
    assert len(generate_conversation_id()) == 12
    assert generate_note_id() != generate_note_id()


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
