"""
Field Extractor - Update a service note record from one interview answer

Responsibilities:
- Build the extraction prompt (record shape, allowed values, step, answer,
  current record)
- Call the LLM for a complete updated record in JSON
- Parse, unwrap and normalize the output
- Translate every failure into ExtractionFailure

Contract:
    extract(step_id, answer, current) -> ExtractionResult(fields, summary)

The model must return the complete record, not a delta. The summary is
recomputed locally from the normalized record.

Design principles:
- Dependency injection (model client passed in, no singleton)
- Never trust the model's shape: mandatory normalization
- Fail with a single error kind the conversation engine can show
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from service_notes.core.conversation_steps import STEP_IDS
from service_notes.core.field_schema import (
    CONDITION_KEYS,
    SINGLE_SELECT_OPTIONS,
    TOILET_KEYS,
    WIRE_KEYS,
    ServiceNoteFields,
    normalize_fields,
)
from service_notes.core.narrative_builder import build_summary
from service_notes.errors import ExtractionFailure, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionResult:
    """
    Extraction capability output

    Attributes:
        fields: Complete, normalized record
        summary: build_summary(fields), computed locally
    """
    fields: ServiceNoteFields
    summary: str


def _choices(wire_key: str) -> str:
    values = ' | '.join(f'"{option_id}"' for option_id, _ in SINGLE_SELECT_OPTIONS[wire_key])
    return f"{values} | null"


def _flag_block(keys) -> str:
    return ',\n'.join(f'    "{key}": boolean' for key in keys)


SYSTEM_PROMPT = f"""あなたは訪問介護のサービス実績記録を構造化するアシスタントです。
必ず ServiceNoteFields 型の JSON オブジェクトのみを返してください。
前後に説明文やコメント、コードブロックは一切付けないでください。

返す JSON の型:

{{
  "destination": string,
  "condition": {{
{_flag_block(CONDITION_KEYS)}
  }},
  "toilet": {{
{_flag_block(TOILET_KEYS)}
  }},
  "mood": {_choices('mood')},
  "mealFood": {_choices('mealFood')},
  "mealWater": {_choices('mealWater')},
  "medication": {_choices('medication')},
  "interaction": {_choices('interaction')},
  "memo": string
}}

ルール:
- destination: 文字列。入力に合わせて自然な表現にしてください（例「自宅→まごめ園」など）。
- condition / toilet: ブールフラグ。該当する内容のみ true、それ以外は false。
  condition/toilet ステップでは記述から複数フラグを的確に判断してください。
- mood, mealFood, mealWater, medication, interaction: 指定の選択肢から選ぶ。該当がなければ null。
- memo: 自由記述。短文で要点のみ。不要なら空文字列。

入力として渡される現在のフォーム(JSON)をベースに、今回の回答を反映した
「更新後の ServiceNoteFields 全体」を JSON で1つだけ出力してください。"""


def build_user_prompt(step_id: str, answer: str, current: ServiceNoteFields) -> str:
    """Step, answer and current record (sections are not sent to the model)"""
    payload = current.to_dict()
    payload.pop('sections', None)
    current_json = json.dumps(
        {'stepId': step_id, 'answer': answer, 'current': payload},
        ensure_ascii=False,
        indent=2
    )
    return (
        f"現在のステップ: {step_id}\n"
        f"回答:\n{answer}\n\n"
        f"現在のフォーム(JSON):\n{current_json}"
    )


def parse_extraction_output(parsed: Any, step_id: str, current: ServiceNoteFields) -> ServiceNoteFields:
    """
    Turn decoded model/endpoint JSON into a normalized record

    Accepts a bare record or one wrapped as {'fields': {...}}. The current
    sections are carried over when the output has none, since the model
    is never asked for them.

    Raises:
        ExtractionFailure: If the payload is not a JSON object
    """
    if isinstance(parsed, Mapping) and isinstance(parsed.get('fields'), Mapping):
        parsed = parsed['fields']

    if not isinstance(parsed, Mapping):
        raise ExtractionFailure(
            f"Extraction output must be a JSON object, got {type(parsed).__name__}",
            step_id=step_id
        )

    unknown = sorted(key for key in parsed if key not in WIRE_KEYS)
    if unknown:
        logger.warning(f"[{step_id}] Ignoring unknown keys in extraction: {unknown}")

    candidate: Dict[str, Any] = dict(parsed)
    if 'sections' not in candidate:
        candidate['sections'] = dict(current.sections)

    return normalize_fields(candidate)


class FieldExtractor:
    """Extract service note fields from an answer with a local LLM"""

    def __init__(
        self,
        hf_client,
        temperature: float = 0.0,
        max_tokens: int = 512
    ) -> None:
        """
        Initialize extractor with a model client

        Args:
            hf_client: Loaded HuggingFaceClient (or anything with
                generate_json() and is_loaded())
            temperature: LLM sampling temperature (default 0.0)
            max_tokens: Max tokens to generate; the whole record is
                returned each turn so this is larger than a single field

        Raises:
            TypeError: If hf_client is missing required methods
            RuntimeError: If hf_client model not loaded
        """
        if not callable(getattr(hf_client, 'generate_json', None)):
            raise TypeError("hf_client must have callable generate_json() method")

        if not callable(getattr(hf_client, 'is_loaded', None)) or not hf_client.is_loaded():
            raise RuntimeError("HuggingFace client model not loaded")

        self.hf_client = hf_client
        self.temperature = temperature
        self.max_tokens = max_tokens

        logger.info(
            f"Field extractor initialized "
            f"(temp={temperature}, max_tokens={max_tokens})"
        )

    def extract(self, step_id: str, answer: str, current: Any) -> ExtractionResult:
        """
        Reflect one answer into the record

        Args:
            step_id: Interview step id (e.g., 'toilet')
            answer: Helper's answer text
            current: Current record (normalized before use)

        Returns:
            ExtractionResult with the complete updated record

        Raises:
            ValidationError: Unknown step id or blank answer (no model call)
            ExtractionFailure: Generation error or unusable output
        """
        if step_id not in STEP_IDS:
            raise ValidationError(f"Unknown step id: {step_id!r}")
        if not isinstance(answer, str) or not answer.strip():
            raise ValidationError("answer is required")

        current_fields = normalize_fields(current)
        prompt = build_user_prompt(step_id, answer.strip(), current_fields)
        logger.debug(f"[{step_id}] Built extraction prompt ({len(prompt)} chars)")

        try:
            llm_output = self.hf_client.generate_json(
                prompt=prompt,
                system_prompt=SYSTEM_PROMPT,
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
            logger.debug(f"[{step_id}] LLM output: {llm_output[:200]}...")
        except Exception as e:
            logger.error(f"[{step_id}] LLM generation failed: {type(e).__name__} - {e}")
            raise ExtractionFailure(
                f"Model generation failed: {e}", step_id=step_id
            ) from e

        try:
            parsed = json.loads(llm_output)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"[{step_id}] Invalid JSON: {e}")
            raise ExtractionFailure(
                f"Failed to parse JSON from model output: {e}", step_id=step_id
            ) from e

        fields = parse_extraction_output(parsed, step_id, current_fields)
        logger.info(f"[{step_id}] Extraction succeeded")

        return ExtractionResult(fields=fields, summary=build_summary(fields))
