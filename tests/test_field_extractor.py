"""
Unit tests for Field Extractor (local LLM extraction)

Uses a mock HF client, no model is loaded.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json

import pytest

from service_notes.core.field_extractor import (
    SYSTEM_PROMPT,
    ExtractionResult,
    FieldExtractor,
    build_user_prompt,
)
from service_notes.core.field_schema import create_empty_fields, normalize_fields
from service_notes.core.narrative_builder import build_summary
from service_notes.errors import ExtractionFailure, ValidationError


class MockHFClient:
    """Mock HuggingFace client returning a canned JSON string"""

    def __init__(self, response='{}', loaded=True, error=None):
        self.response = response
        self.loaded = loaded
        self.error = error
        self.calls = []

    def is_loaded(self):
        return self.loaded

    def generate_json(self, prompt, system_prompt=None, max_tokens=512, temperature=0.0):
        self.calls.append({
            'prompt': prompt,
            'system_prompt': system_prompt,
            'max_tokens': max_tokens,
            'temperature': temperature,
        })
        if self.error:
            raise self.error
        return self.response


class TestFieldExtractorInit:

    def test_requires_generate_json(self):
        class NoJson:
            def is_loaded(self):
                return True

        with pytest.raises(TypeError, match="generate_json"):
            FieldExtractor(NoJson())

    def test_requires_loaded_model(self):
        with pytest.raises(RuntimeError, match="not loaded"):
            FieldExtractor(MockHFClient(loaded=False))


class TestFieldExtractorExtract:

    @pytest.fixture
    def current(self):
        fields = create_empty_fields()
        fields.sections['familyReport'] = True
        fields.destination = 'まごめ園'
        return fields

    def test_valid_output(self, current):
        client = MockHFClient(json.dumps({
            'destination': '自宅から車で公園',
            'mood': 'sunny',
            'condition': {'calm': True},
        }))
        extractor = FieldExtractor(client)

        result = extractor.extract('destination', '自宅から車で公園', current)

        assert isinstance(result, ExtractionResult)
        assert result.fields.destination == '自宅から電車で公園'
        assert result.fields.mood == 'sunny'
        assert result.fields.condition['calm'] is True
        assert result.summary == build_summary(result.fields)

    def test_sections_carried_over(self, current):
        extractor = FieldExtractor(MockHFClient('{"mood": "rainy"}'))
        result = extractor.extract('mood', '不機嫌', current)

        assert result.fields.sections['familyReport'] is True

    def test_wrapped_output(self, current):
        client = MockHFClient('{"fields": {"mealFood": "half", "unknown": 1}}')
        result = FieldExtractor(client).extract('meal', '半分', current)

        assert result.fields.meal_food == 'half'

    def test_prompts(self, current):
        client = MockHFClient('{}')
        FieldExtractor(client, temperature=0.0, max_tokens=300).extract('toilet', ' 排尿あり ', current)

        call = client.calls[0]
        assert call['system_prompt'] == SYSTEM_PROMPT
        assert call['max_tokens'] == 300
        assert call['temperature'] == 0.0
        assert 'toilet' in call['prompt']
        assert '排尿あり' in call['prompt']
        assert 'まごめ園' in call['prompt']
        assert call['prompt'] == build_user_prompt('toilet', '排尿あり', normalize_fields(current))

    def test_user_prompt_omits_sections(self, current):
        prompt = build_user_prompt('memo', 'メモ', current)
        assert '"sections"' not in prompt
        assert '"mealFood"' in prompt

    def test_invalid_json(self, current):
        extractor = FieldExtractor(MockHFClient('not json at all'))

        with pytest.raises(ExtractionFailure) as exc_info:
            extractor.extract('mood', '明るい', current)
        assert exc_info.value.step_id == 'mood'

    def test_non_object_json(self, current):
        extractor = FieldExtractor(MockHFClient('[1, 2, 3]'))

        with pytest.raises(ExtractionFailure, match="JSON object"):
            extractor.extract('mood', '明るい', current)

    def test_generation_error(self, current):
        extractor = FieldExtractor(MockHFClient(error=RuntimeError("CUDA error")))

        with pytest.raises(ExtractionFailure, match="CUDA error"):
            extractor.extract('mood', '明るい', current)

    def test_unknown_step_rejected_before_model_call(self, current):
        client = MockHFClient()

        with pytest.raises(ValidationError):
            FieldExtractor(client).extract('weather', '晴れ', current)
        assert client.calls == []

    def test_blank_answer_rejected(self, current):
        client = MockHFClient()

        with pytest.raises(ValidationError):
            FieldExtractor(client).extract('mood', '   ', current)
        assert client.calls == []


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
