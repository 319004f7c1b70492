"""
Conversation Engine - Step-by-step service note interview

Responsibilities:
- Drive the fixed interview step sequence
- Send each answer plus the current record to the extraction capability
- Normalize and adopt the returned record, recompute the summary locally
- Keep the transcript (prompts, answers, acknowledgements, errors)
- Recover from extraction failures without losing state

Design principles:
- Linear state machine: N answerable states plus one absorbing
  'finished' state, no skips and no backward moves (reset only)
- Extraction result is never trusted as-is: always normalized
- Summary is always rebuilt locally from the returned record
- One extraction call in flight per engine (in-flight flag, no locking)
- Nothing is committed externally mid-interview
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from service_notes.contracts import ConversationStep, MessageSender, TranscriptMessage
from service_notes.core.conversation_steps import SERVICE_NOTE_STEPS, format_prompt
from service_notes.core.field_schema import (
    ServiceNoteFields,
    clone_fields,
    create_empty_fields,
    normalize_fields,
)
from service_notes.core.narrative_builder import build_summary
from service_notes.errors import ExtractionFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnResult:
    """
    Outcome of one submit_answer() call

    Attributes:
        accepted: False when the call was ignored (finished, busy, blank)
        advanced: Whether the interview moved to the next step
        finished: Whether the interview is complete after this call
        messages: Transcript messages appended by this call
        error: Failure reason when extraction failed, else None
    """
    accepted: bool
    advanced: bool
    finished: bool
    messages: Tuple[TranscriptMessage, ...] = ()
    error: Optional[str] = None


class ConversationEngine:
    """
    Conversational field extraction for one service note

    The engine owns its state; callers read it through properties and
    snapshot(). Abandoning an engine has no side effects.
    """

    ACKNOWLEDGEMENT = '入力を反映しました。'
    COMPLETION_MESSAGE = '会話モードは終了しました。この内容で記録を作成してください。'
    DEFAULT_FAILURE_REASON = '解析に失敗しました'

    def __init__(
        self,
        extractor,
        initial_fields: Any = None,
        steps: Optional[Sequence[ConversationStep]] = None
    ) -> None:
        """
        Initialize engine at step 0

        Args:
            extractor: Object with callable extract(step_id, answer, current)
                returning an object (or dict) carrying 'fields'
            initial_fields: Baseline record (normalized; empty when None)
            steps: Interview steps (default: SERVICE_NOTE_STEPS)

        Raises:
            TypeError: If extractor has no callable extract()
            ValueError: If steps is empty
        """
        if not callable(getattr(extractor, 'extract', None)):
            raise TypeError("extractor must have callable extract() method")

        self.extractor = extractor
        self.steps: Tuple[ConversationStep, ...] = tuple(
            steps if steps is not None else SERVICE_NOTE_STEPS
        )
        if not self.steps:
            raise ValueError("steps must contain at least one step")

        self._baseline = (
            normalize_fields(initial_fields) if initial_fields is not None
            else create_empty_fields()
        )
        self._in_flight = False
        self._generation = 0
        self._start(self._baseline)

        logger.info(f"Conversation engine initialized ({len(self.steps)} steps)")

    def _start(self, fields: ServiceNoteFields) -> None:
        self._step_index = 0
        self._fields = clone_fields(fields)
        self._transcript: List[TranscriptMessage] = [
            TranscriptMessage(MessageSender.SYSTEM, format_prompt(self.steps[0]))
        ]
        self._summary = ''
        self._error: Optional[str] = None

    # ==================== STATE ====================

    @property
    def step_index(self) -> int:
        return self._step_index

    @property
    def step_count(self) -> int:
        return len(self.steps)

    @property
    def current_step(self) -> Optional[ConversationStep]:
        if self.is_finished:
            return None
        return self.steps[self._step_index]

    @property
    def fields(self) -> ServiceNoteFields:
        """Copy of the current record"""
        return clone_fields(self._fields)

    @property
    def transcript(self) -> Tuple[TranscriptMessage, ...]:
        return tuple(self._transcript)

    @property
    def is_finished(self) -> bool:
        return self._step_index >= len(self.steps)

    @property
    def is_processing(self) -> bool:
        return self._in_flight

    @property
    def last_summary(self) -> str:
        return self._summary

    @property
    def last_error(self) -> Optional[str]:
        return self._error

    @property
    def progress(self) -> Tuple[int, int]:
        """(current step number, total), current capped at total"""
        total = len(self.steps)
        return min(self._step_index + 1, total), total

    # ==================== OPERATIONS ====================

    def submit_answer(self, text: str) -> TurnResult:
        """
        Process the helper's answer to the current step

        Ignored (accepted=False, no state change) when the interview is
        finished, another extraction is in flight, or the answer is blank.

        On success the record is replaced by the normalized extraction
        result, the summary is rebuilt, and the engine advances. On
        failure an error message is appended and the step is kept so the
        caller can retry.

        Args:
            text: Answer text (trimmed before use)

        Returns:
            TurnResult describing what happened
        """
        if self.is_finished:
            logger.debug("Answer ignored: conversation finished")
            return self._ignored()
        if self._in_flight:
            logger.debug("Answer ignored: extraction already in flight")
            return self._ignored()
        if not isinstance(text, str) or not text.strip():
            logger.debug("Answer ignored: blank")
            return self._ignored()

        step = self.steps[self._step_index]
        answer = text.strip()
        generation = self._generation
        start = len(self._transcript)

        self._transcript.append(TranscriptMessage(MessageSender.USER, answer))
        self._in_flight = True
        self._error = None

        try:
            result = self.extractor.extract(step.id, answer, clone_fields(self._fields))
            returned = self._unwrap_fields(result, step.id)
        except Exception as e:
            if generation != self._generation:
                logger.info(f"[{step.id}] Extraction failed after reset, discarded: {e}")
                return self._ignored()
            reason = str(e) or self.DEFAULT_FAILURE_REASON
            logger.error(f"[{step.id}] Extraction failed: {type(e).__name__} - {reason}")
            self._error = reason
            self._transcript.append(TranscriptMessage(
                MessageSender.SYSTEM, f"⚠️ {reason}。もう一度お試しください。"
            ))
            return TurnResult(
                accepted=True,
                advanced=False,
                finished=False,
                messages=tuple(self._transcript[start:]),
                error=reason
            )
        finally:
            # After a reset the flag belongs to the newer generation
            if generation == self._generation:
                self._in_flight = False

        if generation != self._generation:
            logger.info(f"[{step.id}] Extraction finished after reset, discarded")
            return self._ignored()

        self._fields = normalize_fields(returned)
        self._summary = build_summary(self._fields)
        self._transcript.append(TranscriptMessage(MessageSender.SYSTEM, self.ACKNOWLEDGEMENT))
        self._step_index += 1

        if self.is_finished:
            self._transcript.append(
                TranscriptMessage(MessageSender.SYSTEM, self.COMPLETION_MESSAGE)
            )
            logger.info("Conversation finished")
        else:
            next_step = self.steps[self._step_index]
            self._transcript.append(
                TranscriptMessage(MessageSender.SYSTEM, format_prompt(next_step))
            )
            logger.info(f"[{step.id}] Reflected answer, next step '{next_step.id}'")

        return TurnResult(
            accepted=True,
            advanced=True,
            finished=self.is_finished,
            messages=tuple(self._transcript[start:])
        )

    def reset(self, fields: Any = None) -> None:
        """
        Restart the interview at step 0

        Transcript, step index, summary and error are cleared. The record
        restarts from `fields` when given, else from the initial baseline.
        An extraction still in flight is discarded when it returns.
        """
        baseline = normalize_fields(fields) if fields is not None else self._baseline
        self._generation += 1
        self._in_flight = False
        self._start(baseline)
        logger.info("Conversation reset")

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe view of the engine state (for the API layer)"""
        step = self.current_step
        current, total = self.progress
        return {
            'stepIndex': self._step_index,
            'stepCount': total,
            'progress': {'current': current, 'total': total},
            'currentStep': (
                {'id': step.id, 'prompt': step.prompt, 'hint': step.hint}
                if step else None
            ),
            'fields': self._fields.to_dict(),
            'transcript': [message.to_dict() for message in self._transcript],
            'isFinished': self.is_finished,
            'isProcessing': self._in_flight,
            'summary': self._summary,
            'error': self._error,
        }

    # ==================== HELPERS ====================

    def _ignored(self) -> TurnResult:
        return TurnResult(accepted=False, advanced=False, finished=self.is_finished)

    @staticmethod
    def _unwrap_fields(result: Any, step_id: str) -> Any:
        """Pull the record out of an extraction result"""
        if isinstance(result, ServiceNoteFields):
            return result
        returned = getattr(result, 'fields', None)
        if returned is None and isinstance(result, Mapping):
            returned = result.get('fields')
        if not isinstance(returned, (ServiceNoteFields, Mapping)):
            raise ExtractionFailure(
                "Extraction returned no record", step_id=step_id
            )
        return returned
