"""
Field Schema - Canonical structured record for one service visit

Responsibilities:
- Define the fixed key sets (sections, condition flags, toilet flags)
- Define the single-select option tables with display labels
- Normalize any untrusted candidate (storage, model output, legacy form)
  into a fresh, fully-populated ServiceNoteFields
- Convert to/from the camelCase wire shape used by extractors and the API

Design principles:
- Every map always holds exactly its canonical key set
- Unknown keys and out-of-set enum values are dropped, never passed on
- Normalization deep-copies: output never aliases input containers
- Idempotent: normalize_fields(normalize_fields(x)) == normalize_fields(x)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from service_notes.core.expression_rules import apply_expression_rules

logger = logging.getLogger(__name__)

# Option tables: (id, display label), in display order
CONDITION_OPTIONS: Tuple[Tuple[str, str], ...] = (
    ('calm', '落ち着いていた'),
    ('slightly-unstable', '少し不安定だった'),
    ('agitated', '落ち着いていなかった（不穏・怒り・涙など）'),
    ('seizure', '発作があった'),
    ('no-seizure', '発作はなかった'),
    ('condition-changed', '体調に変化あり（頭痛・腹痛・発熱など）'),
    ('condition-unchanged', '体調に変化なし'),
)

TOILET_OPTIONS: Tuple[Tuple[str, str], ...] = (
    ('urination', 'トイレに行った（排尿あり）'),
    ('defecation', 'トイレに行った（排便あり）'),
    ('both', 'トイレに行った（排尿・排便あり）'),
    ('no-toilet', 'トイレに行かなかった'),
    ('diaper', 'おむつ交換あり'),
    ('assist', 'トイレ介助あり／自立'),
)

MOOD_OPTIONS: Tuple[Tuple[str, str], ...] = (
    ('sunny', '☀️ 明るい'),
    ('cloudy-sun', '🌤 普通'),
    ('cloudy', '☁️ 少し沈み'),
    ('rainy', '🌧 不機嫌'),
)

MEAL_FOOD_OPTIONS: Tuple[Tuple[str, str], ...] = (
    ('all', '完食'),
    ('half', '半分'),
    ('none', '食欲なし'),
)

MEAL_WATER_OPTIONS: Tuple[Tuple[str, str], ...] = (
    ('enough', '十分'),
    ('lack', '不足'),
)

MEDICATION_OPTIONS: Tuple[Tuple[str, str], ...] = (
    ('taken', '内服した'),
    ('forgot', '忘れた'),
    ('refused', '一部拒否'),
)

INTERACTION_OPTIONS: Tuple[Tuple[str, str], ...] = (
    ('had', 'あった'),
    ('none', 'なかった'),
)

CONDITION_KEYS = tuple(option_id for option_id, _ in CONDITION_OPTIONS)
TOILET_KEYS = tuple(option_id for option_id, _ in TOILET_OPTIONS)

# Field-groups that can be in scope for a record
SECTION_KEYS = ('condition', 'toilet', 'mood', 'meal', 'medication', 'familyReport')
DEFAULT_SECTIONS = {
    'condition': True,
    'toilet': True,
    'mood': True,
    'meal': True,
    'medication': True,
    'familyReport': False,
}

# Wire key -> option table, for every single-select
SINGLE_SELECT_OPTIONS: Dict[str, Tuple[Tuple[str, str], ...]] = {
    'mood': MOOD_OPTIONS,
    'mealFood': MEAL_FOOD_OPTIONS,
    'mealWater': MEAL_WATER_OPTIONS,
    'medication': MEDICATION_OPTIONS,
    'interaction': INTERACTION_OPTIONS,
}

# Wire key -> dataclass attribute
_SINGLE_SELECT_ATTRS = {
    'mood': 'mood',
    'mealFood': 'meal_food',
    'mealWater': 'meal_water',
    'medication': 'medication',
    'interaction': 'interaction',
}

WIRE_KEYS = frozenset(
    ('destination', 'sections', 'condition', 'toilet', 'memo') + tuple(SINGLE_SELECT_OPTIONS)
)

# Boolean spellings a model may emit inside JSON
TRUE_VALUES = {'true', 'yes', 'y', '1', 't'}
FALSE_VALUES = {'false', 'no', 'n', '0', 'f', ''}


def _default_condition() -> Dict[str, bool]:
    return dict.fromkeys(CONDITION_KEYS, False)


def _default_toilet() -> Dict[str, bool]:
    return dict.fromkeys(TOILET_KEYS, False)


def _default_sections() -> Dict[str, bool]:
    return dict(DEFAULT_SECTIONS)


@dataclass
class ServiceNoteFields:
    """
    Structured record of one service visit.

    Attributes:
        destination: Free text, always rewritten by the expression rules
        sections: Field-groups in scope for this record
        condition: 7 independent condition flags
        toilet: 6 independent toilet flags
        mood: 'sunny' | 'cloudy-sun' | 'cloudy' | 'rainy' | None
        meal_food: 'all' | 'half' | 'none' | None
        meal_water: 'enough' | 'lack' | None
        medication: 'taken' | 'forgot' | 'refused' | None
        interaction: 'had' | 'none' | None
        memo: Free text, always rewritten by the expression rules
    """
    destination: str = ''
    sections: Dict[str, bool] = field(default_factory=_default_sections)
    condition: Dict[str, bool] = field(default_factory=_default_condition)
    toilet: Dict[str, bool] = field(default_factory=_default_toilet)
    mood: Optional[str] = None
    meal_food: Optional[str] = None
    meal_water: Optional[str] = None
    medication: Optional[str] = None
    interaction: Optional[str] = None
    memo: str = ''

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase wire shape (deep copy)"""
        return {
            'destination': self.destination,
            'sections': dict(self.sections),
            'condition': dict(self.condition),
            'toilet': dict(self.toilet),
            'mood': self.mood,
            'mealFood': self.meal_food,
            'mealWater': self.meal_water,
            'medication': self.medication,
            'interaction': self.interaction,
            'memo': self.memo,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ServiceNoteFields":
        """Deserialize from the wire shape (always normalized)"""
        return normalize_fields(data)


def create_empty_fields() -> ServiceNoteFields:
    """Fresh record with every key at its default"""
    return ServiceNoteFields()


def clone_fields(fields: ServiceNoteFields) -> ServiceNoteFields:
    """Independent copy; same as normalizing"""
    return normalize_fields(fields)


def _coerce_flag(value: Any) -> bool:
    """
    Coerce a candidate flag to bool.

    Model output sometimes carries 'true'/'false' strings, so those are
    read by meaning rather than by truthiness.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
    return bool(value)


def _as_mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _copy_flags(candidate: Any, keys: Tuple[str, ...], group: str) -> Dict[str, bool]:
    source = _as_mapping(candidate)
    unknown = [k for k in source if k not in keys]
    if unknown:
        logger.warning(f"Dropped unknown {group} flags: {unknown}")
    return {key: _coerce_flag(source.get(key, False)) for key in keys}


def _copy_sections(candidate: Any) -> Dict[str, bool]:
    source = _as_mapping(candidate)
    sections = {}
    for key in SECTION_KEYS:
        value = source.get(key)
        sections[key] = DEFAULT_SECTIONS[key] if value is None else _coerce_flag(value)
    return sections


def _pick_option(wire_key: str, value: Any) -> Optional[str]:
    """Keep a single-select value only if it is a known option id"""
    if value is None or value == '':
        return None
    allowed = SINGLE_SELECT_OPTIONS[wire_key]
    if isinstance(value, str) and any(option_id == value for option_id, _ in allowed):
        return value
    logger.warning(f"Invalid {wire_key} value {value!r}, using None")
    return None


def _as_text(value: Any) -> str:
    if value is None:
        return ''
    return value if isinstance(value, str) else str(value)


def normalize_fields(candidate: Any) -> ServiceNoteFields:
    """
    Rebuild a canonical record from an untrusted candidate.

    Accepts a ServiceNoteFields, a wire-shaped dict (camelCase keys), or
    anything else (treated as empty). Only recognized keys and values are
    copied; destination and memo are passed through the expression rules.

    Args:
        candidate: Record from storage, model output or the API

    Returns:
        ServiceNoteFields: Fresh record owning all nested structures

    Examples:
        >>> normalize_fields({'mood': 'sunny', 'extra': 1}).mood
        'sunny'
        >>> normalize_fields({'mood': 'windy'}).mood is None
        True
        >>> normalize_fields(None) == create_empty_fields()
        True
    """
    if isinstance(candidate, ServiceNoteFields):
        candidate = candidate.to_dict()
    elif not isinstance(candidate, Mapping):
        if candidate is not None:
            logger.warning(
                f"Cannot normalize {type(candidate).__name__}, using empty record"
            )
        candidate = {}

    record = ServiceNoteFields(
        destination=apply_expression_rules(_as_text(candidate.get('destination'))),
        sections=_copy_sections(candidate.get('sections')),
        condition=_copy_flags(candidate.get('condition'), CONDITION_KEYS, 'condition'),
        toilet=_copy_flags(candidate.get('toilet'), TOILET_KEYS, 'toilet'),
        memo=apply_expression_rules(_as_text(candidate.get('memo'))),
    )

    for wire_key, attr in _SINGLE_SELECT_ATTRS.items():
        setattr(record, attr, _pick_option(wire_key, candidate.get(wire_key)))

    return record


def option_label(options: Tuple[Tuple[str, str], ...], option_id: Optional[str]) -> str:
    """Display label of an option id within one table ('' when unknown)"""
    for candidate_id, label in options:
        if candidate_id == option_id:
            return label
    return ''
