"""
Note Form - Legacy flat form representation and stored-answer codec

The flat form is the older encoding of a service note: condition and
toilet are lists of flag ids, single-selects are plain strings with ''
meaning unset. It only exists at system boundaries:

- decoding a stored answer snapshot (restore_form_state)
- encoding a submission (serialize_answers)

Business logic works on ServiceNoteFields; fields_from_note_form() and
fields_to_note_form() are the only bridge between the two.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from service_notes.core.expression_rules import apply_expression_rules
from service_notes.core.field_schema import (
    CONDITION_KEYS,
    SINGLE_SELECT_OPTIONS,
    TOILET_KEYS,
    ServiceNoteFields,
    create_empty_fields,
    normalize_fields,
)
from service_notes.core.narrative_builder import build_detailed

logger = logging.getLogger(__name__)


@dataclass
class NoteFormState:
    """Flat form: flag-id lists and ''-for-unset strings"""
    condition: List[str] = field(default_factory=list)
    toilet: List[str] = field(default_factory=list)
    mood: str = ''
    meal_food: str = ''
    meal_water: str = ''
    medication: str = ''
    interaction: str = ''
    memo: str = ''
    destination: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'condition': list(self.condition),
            'toilet': list(self.toilet),
            'mood': self.mood,
            'mealFood': self.meal_food,
            'mealWater': self.meal_water,
            'medication': self.medication,
            'interaction': self.interaction,
            'memo': self.memo,
            'destination': self.destination,
        }


@dataclass
class StoredAnswers:
    """
    Persisted payload of a note.

    Attributes:
        actual: Deterministic detailed text at submission time
        form: Raw flat snapshot for later editing
    """
    actual: Optional[str] = None
    form: Optional[NoteFormState] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.actual is not None:
            data['actual'] = self.actual
        if self.form is not None:
            data['form'] = self.form.to_dict()
        return data


def create_default_form() -> NoteFormState:
    return NoteFormState()


def _is_known(wire_key: str, value: Any) -> bool:
    return isinstance(value, str) and any(
        option_id == value for option_id, _ in SINGLE_SELECT_OPTIONS[wire_key]
    )


def _known_flags(values: Any, keys) -> List[str]:
    if not isinstance(values, list):
        return []
    return [value for value in values if isinstance(value, str) and value in keys]


def restore_form_state(
    raw: Union[StoredAnswers, Mapping, None],
    fallback_destination: str = ''
) -> NoteFormState:
    """
    Decode a stored answer snapshot into a flat form.

    Unknown list entries and unknown enum strings are dropped. A blank
    stored destination falls back to the task's scheduled destination.

    Args:
        raw: StoredAnswers, its dict form ({'actual'?, 'form'?}) or None
        fallback_destination: Destination from the schedule

    Returns:
        NoteFormState: Clean form (destination rewritten)
    """
    if isinstance(raw, StoredAnswers):
        raw = raw.to_dict()

    stored = raw.get('form') if isinstance(raw, Mapping) else None
    if not isinstance(stored, Mapping):
        form = create_default_form()
        form.destination = apply_expression_rules(fallback_destination or '')
        return form

    def single(wire_key: str) -> str:
        value = stored.get(wire_key)
        return value if _is_known(wire_key, value) else ''

    destination = stored.get('destination')
    if not (isinstance(destination, str) and destination.strip()):
        destination = fallback_destination or ''

    memo = stored.get('memo')

    return NoteFormState(
        condition=_known_flags(stored.get('condition'), CONDITION_KEYS),
        toilet=_known_flags(stored.get('toilet'), TOILET_KEYS),
        mood=single('mood'),
        meal_food=single('mealFood'),
        meal_water=single('mealWater'),
        medication=single('medication'),
        interaction=single('interaction'),
        memo=memo if isinstance(memo, str) else '',
        destination=apply_expression_rules(destination),
    )


def _clean_form(form: NoteFormState) -> NoteFormState:
    """Copy of a flat form with unknown flags and enum strings removed"""
    def single(wire_key: str, value: Any) -> str:
        return value if _is_known(wire_key, value) else ''

    return NoteFormState(
        condition=_known_flags(form.condition, CONDITION_KEYS),
        toilet=_known_flags(form.toilet, TOILET_KEYS),
        mood=single('mood', form.mood),
        meal_food=single('mealFood', form.meal_food),
        meal_water=single('mealWater', form.meal_water),
        medication=single('medication', form.medication),
        interaction=single('interaction', form.interaction),
        memo=form.memo if isinstance(form.memo, str) else '',
        destination=form.destination if isinstance(form.destination, str) else '',
    )


def fields_from_note_form(form: NoteFormState) -> ServiceNoteFields:
    """
    Flat form -> structured record.

    Unknown flag ids and enum strings are dropped first. Sections are
    derived from the remaining values; familyReport has no signal in the
    flat form and is always False.
    """
    form = _clean_form(form)
    record = create_empty_fields()

    for flag in form.condition:
        record.condition[flag] = True
    for flag in form.toilet:
        record.toilet[flag] = True

    record.mood = form.mood or None
    record.meal_food = form.meal_food or None
    record.meal_water = form.meal_water or None
    record.medication = form.medication or None
    record.interaction = form.interaction or None
    record.memo = form.memo or ''
    record.destination = form.destination or ''

    record.sections = {
        'condition': len(form.condition) > 0,
        'toilet': len(form.toilet) > 0,
        'mood': bool(form.mood),
        'meal': bool(form.meal_food or form.meal_water),
        'medication': bool(form.medication),
        'familyReport': False,
    }

    return normalize_fields(record)


def fields_to_note_form(fields: ServiceNoteFields) -> NoteFormState:
    """
    Structured record -> flat form.

    Flags are listed in canonical order. Sections have no flat
    counterpart and are not carried.
    """
    return NoteFormState(
        condition=[key for key in CONDITION_KEYS if fields.condition.get(key)],
        toilet=[key for key in TOILET_KEYS if fields.toilet.get(key)],
        mood=fields.mood or '',
        meal_food=fields.meal_food or '',
        meal_water=fields.meal_water or '',
        medication=fields.medication or '',
        interaction=fields.interaction or '',
        memo=fields.memo,
        destination=fields.destination,
    )


def build_actual_text(form: NoteFormState) -> str:
    """Detailed report text of a flat form"""
    return build_detailed(fields_from_note_form(form))


def serialize_answers(form: NoteFormState) -> StoredAnswers:
    """Encode a submission: detailed text plus the cleaned form snapshot"""
    form = _clean_form(form)
    return StoredAnswers(actual=build_actual_text(form), form=form)


def has_form_content(form: NoteFormState) -> bool:
    """Whether anything recognizable was entered"""
    form = _clean_form(form)
    if form.condition or form.toilet:
        return True
    if (form.mood or form.meal_food or form.meal_water or form.medication
            or form.interaction or form.destination.strip()):
        return True
    return bool(form.memo.strip())
