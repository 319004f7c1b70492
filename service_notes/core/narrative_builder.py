"""
Narrative Builder - Deterministic text assembly from a structured record

Responsibilities:
- build_detailed(): fixed multi-line template, one line per field-group
- build_summary(): short prose paragraph with per-group precedence rules
- build_facts(): section-gated bullet facts handed to an LLM formatter

Design principles:
- Deterministic assembly (no LLM, same record -> same text)
- Never state observations that were not collected: meal and medication
  stay silent when unset, condition speaks only for flags that are true
- Family interaction is carried by the detailed text only; the summary
  does not read it
"""

import logging
from typing import List

from service_notes.core.expression_rules import apply_expression_rules
from service_notes.core.field_schema import (
    CONDITION_OPTIONS,
    INTERACTION_OPTIONS,
    MEAL_FOOD_OPTIONS,
    MEAL_WATER_OPTIONS,
    MEDICATION_OPTIONS,
    MOOD_OPTIONS,
    TOILET_OPTIONS,
    ServiceNoteFields,
    option_label,
)

logger = logging.getLogger(__name__)

NOTHING_NOTABLE = '特記なし'
SUMMARY_FALLBACK = '本日の支援について特記すべき点はありません。'

# Leading instruction line of the detailed text, consumed by the formatter
REWRITE_INSTRUCTION = (
    '【ルール】車・車両などの表現は電車やバスに言い換え、'
    '公園の遊具という記述は公園を散歩した等に変更してください。'
)

MEMO_SUMMARY_LIMIT = 40

# Condition headline, first true flag wins
CONDITION_HEADLINES = (
    ('seizure', '移動中に軽い発作が見られたため、安全の確保と体勢の調整を行いました。'),
    ('agitated', '興奮気味な場面もあり、声かけや見守りを強めながら対応しました。'),
    ('slightly-unstable', '一時的に不安定な様子もありましたが、声かけにより落ち着かれています。'),
    ('calm', '全体を通して落ち着いた様子で過ごされていました。'),
)

CONDITION_CHANGE_PHRASES = (
    ('condition-changed', '普段と比べて体調や様子に変化が見られました。'),
    ('condition-unchanged', '体調や様子に大きな変化は見られませんでした。'),
)

MOOD_PHRASES = {
    'sunny': '表情も明るく比較的穏やかに過ごされています。',
    'cloudy-sun': '概ね穏やかですが、時折不安そうな様子も見られました。',
    'cloudy': 'やや元気がない様子も見られました。',
    'rainy': '不安定な様子が見られたため、こまめに声かけを行いました。',
}

MEAL_FOOD_PHRASES = {
    'all': '食事は全量摂取されています',
    'half': '食事は半量程度の摂取でした',
    'none': '食事はほとんど摂取されませんでした',
}

MEAL_WATER_PHRASES = {
    'enough': '水分は十分に摂取されています',
    'lack': '水分摂取がやや少ない印象でした',
}

MEDICATION_PHRASES = {
    'taken': '服薬は指示どおり行えています。',
    'forgot': '服薬の失念が見られたため、確認と声かけを行いました。',
    'refused': '服薬の拒否が見られたため、状況を共有しつつ様子を見ています。',
}

# Facts wording (bullet form for the formatter)
CONDITION_FACTS = (
    ('seizure', '移動中に軽い発作があった'),
    ('agitated', '興奮気味な場面があった'),
    ('slightly-unstable', '一時的に不安定な様子が見られた'),
    ('calm', '全体として落ち着いた様子だった'),
    ('condition-changed', 'いつもと比べて様子に変化があった'),
    ('condition-unchanged', '体調や様子に大きな変化はなかった'),
)

MOOD_FACTS = {
    'sunny': '表情は明るく穏やかだった',
    'cloudy-sun': 'おおむね穏やかだが、時折不安そうな様子もあった',
    'cloudy': 'やや元気がない様子が見られた',
    'rainy': '不安定な様子が見られ、こまめに声かけを行った',
}

MEAL_FOOD_FACTS = {
    'all': '食事は全量摂取',
    'half': '食事は半量程度',
    'none': '食事量は少ない／摂取なし',
}

MEAL_WATER_FACTS = {
    'enough': '水分摂取は十分',
    'lack': '水分摂取はやや不足気味',
}

MEDICATION_FACTS = {
    'taken': '服薬は指示どおり行えた',
    'forgot': '服薬を忘れていたため確認と声かけを行った',
    'refused': '服薬の拒否があり、状況を共有して様子を見ている',
}


def _selected_labels(flags, options) -> List[str]:
    return [label for option_id, label in options if flags.get(option_id)]


def _section(title: str, content) -> str:
    if isinstance(content, list):
        body = '／'.join(content) if content else NOTHING_NOTABLE
    else:
        body = content or NOTHING_NOTABLE
    return f"{title}：{body}"


def build_detailed(fields: ServiceNoteFields) -> str:
    """
    Rule-based detailed report text.

    One line (or heading + indented line) per field-group, selected
    labels joined with '、', '特記なし' for empty groups. The leading
    instruction line is part of the text by contract: it is read by the
    formatting step, not shown to end users as-is.

    Args:
        fields: Normalized record

    Returns:
        str: Newline-joined report
    """
    condition = _selected_labels(fields.condition, CONDITION_OPTIONS)
    toilet = _selected_labels(fields.toilet, TOILET_OPTIONS)
    food = option_label(MEAL_FOOD_OPTIONS, fields.meal_food)
    water = option_label(MEAL_WATER_OPTIONS, fields.meal_water)
    memo = apply_expression_rules(fields.memo.strip())
    destination = apply_expression_rules(fields.destination.strip())

    lines = [
        REWRITE_INSTRUCTION,
        _section('行き先', destination),
        '① その時の状態・様子',
        f"　{'、'.join(condition) if condition else NOTHING_NOTABLE}",
        '② トイレ・排泄状況',
        f"　{'、'.join(toilet) if toilet else NOTHING_NOTABLE}",
        _section('気分・表情', option_label(MOOD_OPTIONS, fields.mood)),
        _section('食事・水分摂取', [
            f"食事：{food or NOTHING_NOTABLE}",
            f"水分：{water or NOTHING_NOTABLE}",
        ]),
        _section('服薬', option_label(MEDICATION_OPTIONS, fields.medication)),
        _section('家族・他職員との交流', option_label(INTERACTION_OPTIONS, fields.interaction)),
        f"実績メモ（短くてOK）：{memo or NOTHING_NOTABLE}",
    ]
    return '\n'.join(lines)


def _summarize_memo(memo: str) -> str:
    if len(memo) > MEMO_SUMMARY_LIMIT:
        return memo[:MEMO_SUMMARY_LIMIT - 1] + '…'
    return memo


def build_summary(fields: ServiceNoteFields) -> str:
    """
    Short natural-language summary paragraph.

    Precedence rules per group:
    - destination: one sentence when non-empty
    - condition: one headline (seizure > agitated > slightly-unstable > calm),
      then changed / unchanged if set
    - toilet: one sentence joining the care actions with '・'
    - mood, medication: one phrase when set
    - meal: one clause per set value, joined by '。'
    - memo: 'メモ: ' + memo, cut to 39 chars + '…' past 40

    Args:
        fields: Normalized record

    Returns:
        str: Concatenated sentences, or the fixed fallback when empty
    """
    parts: List[str] = []

    destination = fields.destination.strip()
    if destination:
        parts.append(f"{destination}までの移動支援を行いました。")

    for flag, phrase in CONDITION_HEADLINES:
        if fields.condition.get(flag):
            parts.append(phrase)
            break

    for flag, phrase in CONDITION_CHANGE_PHRASES:
        if fields.condition.get(flag):
            parts.append(phrase)
            break

    toilet = fields.toilet
    toilet_actions = []
    if toilet.get('urination') or toilet.get('both'):
        toilet_actions.append('排尿介助')
    if toilet.get('defecation') or toilet.get('both'):
        toilet_actions.append('排便介助')
    if toilet.get('diaper'):
        toilet_actions.append('おむつ交換')
    if toilet.get('assist'):
        toilet_actions.append('動作の見守りや声かけ')
    if toilet_actions:
        parts.append(f"{'・'.join(toilet_actions)}を行いました。")

    if fields.mood in MOOD_PHRASES:
        parts.append(MOOD_PHRASES[fields.mood])

    meal_texts = []
    if fields.meal_food in MEAL_FOOD_PHRASES:
        meal_texts.append(MEAL_FOOD_PHRASES[fields.meal_food])
    if fields.meal_water in MEAL_WATER_PHRASES:
        meal_texts.append(MEAL_WATER_PHRASES[fields.meal_water])
    if meal_texts:
        parts.append('。'.join(meal_texts) + '。')

    if fields.medication in MEDICATION_PHRASES:
        parts.append(MEDICATION_PHRASES[fields.medication])

    memo = fields.memo.strip()
    if memo:
        parts.append(f"メモ: {_summarize_memo(memo)}")

    summary = ''.join(parts)
    if not summary:
        return SUMMARY_FALLBACK

    logger.debug(f"Summary built from {len(parts)} part(s)")
    return summary


def build_facts(fields: ServiceNoteFields) -> str:
    """
    Bullet facts for the LLM formatter, gated by fields.sections.

    Every true condition flag is listed (no precedence) so the formatter
    sees the full picture; groups without content are omitted.

    Returns:
        str: One 'label: fact／fact' line per group, '' when nothing applies
    """
    lines: List[str] = []
    sections = fields.sections

    if sections.get('condition'):
        facts = [text for flag, text in CONDITION_FACTS if fields.condition.get(flag)]
        if facts:
            lines.append(f"状態・様子: {'／'.join(facts)}")

    if sections.get('toilet'):
        toilet = fields.toilet
        facts = []
        if toilet.get('urination') or toilet.get('both'):
            facts.append('排尿介助を行った')
        if toilet.get('defecation') or toilet.get('both'):
            facts.append('排便介助を行った')
        if toilet.get('no-toilet'):
            facts.append('トイレ誘導は行っていない')
        if toilet.get('diaper'):
            facts.append('おむつ交換を行った')
        if toilet.get('assist'):
            facts.append('トイレ動作の見守りや声かけを行った')
        if facts:
            lines.append(f"トイレ・排泄: {'／'.join(facts)}")

    if sections.get('mood') and fields.mood in MOOD_FACTS:
        lines.append(f"気分・表情: {MOOD_FACTS[fields.mood]}")

    if sections.get('meal'):
        facts = []
        if fields.meal_food in MEAL_FOOD_FACTS:
            facts.append(MEAL_FOOD_FACTS[fields.meal_food])
        if fields.meal_water in MEAL_WATER_FACTS:
            facts.append(MEAL_WATER_FACTS[fields.meal_water])
        if facts:
            lines.append(f"食事・水分: {'／'.join(facts)}")

    if sections.get('medication') and fields.medication in MEDICATION_FACTS:
        lines.append(f"服薬: {MEDICATION_FACTS[fields.medication]}")

    memo = fields.memo.strip()
    if memo:
        lines.append(f"補足メモ: {memo}")

    return '\n'.join(lines)
