"""
Test JSON repair of model output

Skipped when torch/transformers are not installed; no model is loaded.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json

import pytest

pytest.importorskip("torch")
pytest.importorskip("transformers")

from service_notes.utils.hf_client import repair_json


@pytest.mark.parametrize("raw, expected", [
    ('{"mood": "sunny"}', {'mood': 'sunny'}),
    ('```json\n{"mood": "sunny"}\n```', {'mood': 'sunny'}),
    ('```\n{"mood": "sunny"}\n```', {'mood': 'sunny'}),
    ('Here is the record: {"mood": "sunny"} hope this helps', {'mood': 'sunny'}),
    ('{"fields": {"mood": "sunny"}', {'fields': {'mood': 'sunny'}}),
])
def test_repair_json(raw, expected):
    assert json.loads(repair_json(raw)) == expected


def test_repair_without_braces_returns_text():
    assert repair_json("no json here") == "no json here"


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
