"""
Test Narrative Builder - detailed text, summary precedence and facts

Run with: pytest tests/test_narrative_builder.py
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest

from service_notes.core.field_schema import create_empty_fields, normalize_fields
from service_notes.core.narrative_builder import (
    NOTHING_NOTABLE,
    REWRITE_INSTRUCTION,
    SUMMARY_FALLBACK,
    build_detailed,
    build_facts,
    build_summary,
)


class TestBuildSummary(unittest.TestCase):
    """Per-group precedence rules of the short summary"""

    def test_empty_record_uses_fallback(self):
        self.assertEqual(build_summary(create_empty_fields()), SUMMARY_FALLBACK)

    def test_flags_without_phrases_use_fallback(self):
        """no-seizure and no-toilet never produce a sentence"""
        fields = normalize_fields({
            'condition': {'no-seizure': True},
            'toilet': {'no-toilet': True},
        })
        self.assertEqual(build_summary(fields), SUMMARY_FALLBACK)

    def test_interaction_not_summarized(self):
        fields = normalize_fields({'interaction': 'had'})
        self.assertEqual(build_summary(fields), SUMMARY_FALLBACK)

    def test_destination_sentence(self):
        fields = normalize_fields({'destination': 'まごめ園'})
        self.assertEqual(build_summary(fields), 'まごめ園までの移動支援を行いました。')

    def test_condition_headline_precedence(self):
        """seizure wins over calm; only one headline"""
        fields = normalize_fields({'condition': {'calm': True, 'seizure': True}})
        summary = build_summary(fields)

        self.assertEqual(
            summary,
            '移動中に軽い発作が見られたため、安全の確保と体勢の調整を行いました。'
        )
        self.assertNotIn('落ち着いた様子', summary)

    def test_condition_change_precedence(self):
        fields = normalize_fields({
            'condition': {'condition-changed': True, 'condition-unchanged': True}
        })
        self.assertEqual(build_summary(fields), '普段と比べて体調や様子に変化が見られました。')

    def test_toilet_actions_joined(self):
        fields = normalize_fields({'toilet': {'both': True, 'diaper': True}})
        self.assertEqual(build_summary(fields), '排尿介助・排便介助・おむつ交換を行いました。')

    def test_meal_clauses(self):
        food_only = normalize_fields({'mealFood': 'all'})
        both = normalize_fields({'mealFood': 'all', 'mealWater': 'enough'})

        self.assertEqual(build_summary(food_only), '食事は全量摂取されています。')
        self.assertEqual(
            build_summary(both),
            '食事は全量摂取されています。水分は十分に摂取されています。'
        )

    def test_medication_phrase(self):
        fields = normalize_fields({'medication': 'forgot'})
        self.assertEqual(
            build_summary(fields),
            '服薬の失念が見られたため、確認と声かけを行いました。'
        )

    def test_memo_truncation(self):
        exact = normalize_fields({'memo': 'あ' * 40})
        long = normalize_fields({'memo': 'あ' * 41})

        self.assertEqual(build_summary(exact), 'メモ: ' + 'あ' * 40)
        self.assertEqual(build_summary(long), 'メモ: ' + 'あ' * 39 + '…')

    def test_group_order(self):
        fields = normalize_fields({
            'destination': 'まごめ園',
            'condition': {'calm': True},
            'mood': 'sunny',
            'memo': '特になし',
        })
        self.assertEqual(
            build_summary(fields),
            'まごめ園までの移動支援を行いました。'
            '全体を通して落ち着いた様子で過ごされていました。'
            '表情も明るく比較的穏やかに過ごされています。'
            'メモ: 特になし'
        )


def test_detailed_empty_record():
    lines = build_detailed(create_empty_fields()).split('\n')

    assert lines == [
        REWRITE_INSTRUCTION,
        f'行き先：{NOTHING_NOTABLE}',
        '① その時の状態・様子',
        f'　{NOTHING_NOTABLE}',
        '② トイレ・排泄状況',
        f'　{NOTHING_NOTABLE}',
        f'気分・表情：{NOTHING_NOTABLE}',
        f'食事・水分摂取：食事：{NOTHING_NOTABLE}／水分：{NOTHING_NOTABLE}',
        f'服薬：{NOTHING_NOTABLE}',
        f'家族・他職員との交流：{NOTHING_NOTABLE}',
        f'実績メモ（短くてOK）：{NOTHING_NOTABLE}',
    ]

    print("✓ Detailed template test passed")


def test_detailed_labels_per_group():
    """'none' resolves to each group's own label"""
    fields = normalize_fields({
        'destination': 'まごめ園',
        'condition': {'calm': True, 'no-seizure': True},
        'toilet': {'urination': True},
        'mood': 'sunny',
        'mealFood': 'none',
        'mealWater': 'enough',
        'medication': 'taken',
        'interaction': 'none',
        'memo': '車で帰宅',
    })
    lines = build_detailed(fields).split('\n')

    assert lines[1] == '行き先：まごめ園'
    assert lines[3] == '　落ち着いていた、発作はなかった'
    assert lines[5] == '　トイレに行った（排尿あり）'
    assert lines[6] == '気分・表情：☀️ 明るい'
    assert lines[7] == '食事・水分摂取：食事：食欲なし／水分：十分'
    assert lines[8] == '服薬：内服した'
    assert lines[9] == '家族・他職員との交流：なかった'
    assert lines[10] == '実績メモ（短くてOK）：電車で帰宅'


def test_facts_empty():
    assert build_facts(create_empty_fields()) == ''


def test_facts_lists_all_condition_flags_and_no_toilet():
    fields = normalize_fields({
        'condition': {'calm': True, 'seizure': True},
        'toilet': {'no-toilet': True},
    })

    assert build_facts(fields) == (
        '状態・様子: 移動中に軽い発作があった／全体として落ち着いた様子だった\n'
        'トイレ・排泄: トイレ誘導は行っていない'
    )


def test_facts_gated_by_sections():
    fields = normalize_fields({
        'sections': {'mood': False, 'medication': False},
        'mood': 'sunny',
        'medication': 'taken',
        'mealWater': 'lack',
        'memo': 'メモ',
    })

    assert build_facts(fields) == '食事・水分: 水分摂取はやや不足気味\n補足メモ: メモ'


if __name__ == '__main__':
    unittest.main()
