"""
Test Expression Rules - vehicle and park rewriting with protected words

Run with: pytest tests/test_expression_rules.py
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from service_notes.core.expression_rules import apply_expression_rules


def test_car_becomes_train():
    """Standalone 車 is rewritten to 電車"""
    assert apply_expression_rules("車で行った") == "電車で行った"
    assert apply_expression_rules("自宅からまごめ園まで車で移動") == "自宅からまごめ園まで電車で移動"


def test_vehicle_becomes_bus():
    """車両 is rewritten to バス before the single-character rule runs"""
    assert apply_expression_rules("車両で移動") == "バスで移動"
    assert apply_expression_rules("車両と電車を乗り継いだ") == "バスと電車を乗り継いだ"


@pytest.mark.parametrize("text", [
    "車椅子で移動",
    "自転車に乗った",
    "電車で帰宅",
    "バスで帰宅",
    "車椅子から自転車を見た。電車とバスも見えた",
])
def test_protected_words_unchanged(text):
    """Literal vehicle words are never mangled"""
    assert apply_expression_rules(text) == text


def test_protected_and_blanket_rules_mixed():
    """Protected words survive while bare 車 in the same text is rewritten"""
    assert apply_expression_rules("車椅子で車に乗った") == "車椅子で電車に乗った"
    assert apply_expression_rules("バス停から車で") == "バス停から電車で"


def test_park_playground_sentence_collapsed():
    """公園 ... 遊具 in one sentence becomes 公園を散歩した"""
    assert apply_expression_rules("公園で遊具を使った") == "公園を散歩した"
    assert apply_expression_rules("公園で遊具で遊んだ。その後帰宅") == "公園を散歩した。その後帰宅"


def test_park_rule_stays_inside_sentence():
    """The park rule never crosses a sentence end"""
    text = "公園に行った。遊具は使わなかった"
    assert apply_expression_rules(text) == text


def test_park_rule_window_limit():
    """遊具 more than 20 characters after 公園 is not matched"""
    near = "公園" + "あ" * 20 + "遊具"
    far = "公園" + "あ" * 21 + "遊具"

    assert apply_expression_rules(near) == "公園を散歩した"
    assert apply_expression_rules(far) == far


def test_park_window_counts_protected_words_at_full_length():
    """A protected word inside the window counts as its own characters"""
    near = "公園バス" + "あ" * 15 + "遊具"
    far = "公園車椅子" + "あ" * 18 + "遊具"

    assert apply_expression_rules(near) == "公園を散歩した"
    assert apply_expression_rules(far) == far


@pytest.mark.parametrize("value, expected", [
    (None, ""),
    ("", ""),
    (123, "123"),
])
def test_total_on_any_input(value, expected):
    """None and empty yield '', other values are stringified"""
    assert apply_expression_rules(value) == expected


@pytest.mark.parametrize("text", [
    "車で行った",
    "車両で移動",
    "公園で遊具を使った。車で帰った",
    "車椅子で車に乗った",
    "自宅からまごめ園まで車で移動",
    "普通のメモ",
])
def test_idempotent(text):
    """Re-applying to rewritten text changes nothing"""
    once = apply_expression_rules(text)
    assert apply_expression_rules(once) == once


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
