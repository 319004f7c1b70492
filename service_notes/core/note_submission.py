"""
Note Submission - Snapshot upsert, narrative formatting and polling

Responsibilities:
- Refuse empty submissions
- Encode the form, upsert the task's snapshot, mark the task submitted
- Trigger narrative formatting fire-and-forget (daemon thread)
- Format narratives: LLM rewrite of the facts, deterministic fallback
- Wait for the narrative with a bounded poll

Design principles:
- Submission never waits on the formatter; only wait_for_narrative does
- Formatting failures are logged, never raised to the submitter
- The Expression Rewriter runs on every narrative before it is stored
- A stale formatting job never overwrites a newer snapshot's narrative
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Tuple, Union

from service_notes.core.expression_rules import apply_expression_rules
from service_notes.core.field_schema import ServiceNoteFields
from service_notes.core.narrative_builder import build_facts, build_summary
from service_notes.core.note_form import (
    NoteFormState,
    fields_from_note_form,
    fields_to_note_form,
    has_form_content,
    restore_form_state,
    serialize_answers,
)
from service_notes.errors import NarrativeTimeoutError, ValidationError
from service_notes.persistence import NoteStore, TaskStatus

logger = logging.getLogger(__name__)

DEFAULT_POLL_TIMEOUT = 20.0
DEFAULT_POLL_INTERVAL = 0.8

NARRATIVE_SYSTEM_PROMPT = (
    "あなたは訪問介護事業所のサービス提供責任者です。"
    "与えられた事実だけを使い、サービス実績記録の本文を日本語の自然な文章で"
    "3〜5文にまとめてください。事実にない観察や推測は書かないでください。"
    "見出しや箇条書き、前置きは不要です。本文のみを出力してください。"
)


class NarrativeFormatter:
    """
    Produce and store the narrative of a note.

    With an hf_client the section-gated facts are rewritten into prose by
    the model; without one (or when generation fails or returns nothing)
    the deterministic summary is used.
    """

    def __init__(self, store: NoteStore, hf_client=None,
                 temperature: float = 0.2, max_tokens: int = 400):
        """
        Initialize narrative formatter

        Args:
            store: NoteStore holding snapshots and narratives
            hf_client: Optional loaded model client (generate + is_loaded)
            temperature: Sampling temperature for the rewrite
            max_tokens: Generation ceiling for the rewrite

        Raises:
            TypeError: If hf_client lacks generate()
            RuntimeError: If hf_client model is not loaded
        """
        if hf_client is not None:
            if not callable(getattr(hf_client, 'generate', None)):
                raise TypeError("hf_client must provide generate()")
            if hasattr(hf_client, 'is_loaded') and not hf_client.is_loaded():
                raise RuntimeError("HuggingFace client model not loaded")

        self.store = store
        self.hf_client = hf_client
        self.temperature = temperature
        self.max_tokens = max_tokens

        mode = "LLM rewrite" if hf_client is not None else "deterministic"
        logger.info(f"Narrative formatter initialized ({mode})")

    def compose(self, fields: ServiceNoteFields) -> str:
        """Narrative text for a record, rewritten and ready to store"""
        text = None
        if self.hf_client is not None:
            facts = build_facts(fields)
            if facts:
                text = self._rewrite_facts(facts)

        if not text:
            text = build_summary(fields)

        return apply_expression_rules(text)

    def _rewrite_facts(self, facts: str) -> Optional[str]:
        prompt = f"次の事実をもとに記録本文を作成してください。\n\n{facts}"
        try:
            raw = self.hf_client.generate(
                prompt=prompt,
                system_prompt=NARRATIVE_SYSTEM_PROMPT,
                max_tokens=self.max_tokens,
                temperature=self.temperature
            )
        except Exception as e:
            logger.error(f"Narrative generation failed, using summary: {e}")
            return None

        text = _clean_narrative(raw if isinstance(raw, str) else '')
        if not text:
            logger.warning("Narrative generation returned no text, using summary")
        return text or None

    def format_note(self, note_id: str) -> Optional[str]:
        """
        Build and store the narrative of a stored note

        Args:
            note_id: Note to format

        Returns:
            str: Stored narrative, or None when the snapshot changed while
                formatting (the newer submission formats itself)

        Raises:
            KeyError: Note does not exist
        """
        answers = self.store.load_answers(note_id)
        form = restore_form_state(answers)
        text = self.compose(fields_from_note_form(form))

        if not self.store.save_narrative_if_current(note_id, answers, text):
            logger.info(f"Note {note_id} was resubmitted during formatting, discarding")
            return None
        return text


def _clean_narrative(text: str) -> str:
    """Strip code fences and collapse blank-line runs"""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split('\n')[1:]
        if lines and lines[-1].startswith("```"):
            lines = lines[:-1]
        text = '\n'.join(lines)

    while '\n\n\n' in text:
        text = text.replace('\n\n\n', '\n\n')

    return text.strip()


class NoteSubmitter:
    """
    Submission pipeline for one store.

    submit() returns as soon as the snapshot is stored and the task is
    marked submitted; formatting runs afterwards and marks it done.
    """

    def __init__(self, store: NoteStore, formatter: NarrativeFormatter,
                 run_in_background: bool = True):
        if not callable(getattr(formatter, 'format_note', None)):
            raise TypeError("formatter must provide format_note()")

        self.store = store
        self.formatter = formatter
        self.run_in_background = run_in_background
        self._workers: List[threading.Thread] = []

    def submit(self, task_id: str, form: Union[NoteFormState, ServiceNoteFields]) -> str:
        """
        Store a task's note and trigger formatting

        Args:
            task_id: Scheduled task identifier
            form: Flat form or structured record

        Returns:
            str: Note id

        Raises:
            ValidationError: Blank task id or nothing entered
        """
        if not isinstance(task_id, str) or not task_id.strip():
            raise ValidationError("task_id is required")

        if isinstance(form, ServiceNoteFields):
            form = fields_to_note_form(form)
        elif not isinstance(form, NoteFormState):
            raise TypeError("form must be NoteFormState or ServiceNoteFields")

        if not has_form_content(form):
            raise ValidationError("Nothing was entered for this note")

        answers = serialize_answers(form)
        note_id = self.store.upsert_snapshot(task_id, answers)
        self.store.set_status(task_id, TaskStatus.SUBMITTED)
        logger.info(f"Task {task_id} submitted as note {note_id}")

        self._trigger_formatting(task_id, note_id)
        return note_id

    def submit_and_wait(
        self,
        task_id: str,
        form: Union[NoteFormState, ServiceNoteFields],
        timeout: float = DEFAULT_POLL_TIMEOUT,
        interval: float = DEFAULT_POLL_INTERVAL
    ) -> Tuple[str, str]:
        """
        Submit and poll for the narrative

        Returns:
            tuple: (note_id, narrative)

        Raises:
            NarrativeTimeoutError: Narrative still pending after timeout
        """
        note_id = self.submit(task_id, form)
        text = wait_for_narrative(
            self.store.fetch_narrative, note_id,
            timeout=timeout, interval=interval
        )
        return note_id, text

    def _trigger_formatting(self, task_id: str, note_id: str) -> None:
        if not self.run_in_background:
            self._format(task_id, note_id)
            return

        worker = threading.Thread(
            target=self._format,
            args=(task_id, note_id),
            name=f"format-{note_id[:8]}",
            daemon=True
        )
        self._workers = [w for w in self._workers if w.is_alive()]
        self._workers.append(worker)
        worker.start()

    def _format(self, task_id: str, note_id: str) -> None:
        try:
            text = self.formatter.format_note(note_id)
            if text is not None:
                self.store.set_status(task_id, TaskStatus.DONE)
        except Exception as e:
            logger.error(f"Formatting failed for note {note_id} (task {task_id}): {e}")

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for running formatting jobs (tests and shutdown)"""
        for worker in list(self._workers):
            worker.join(timeout)


def wait_for_narrative(
    fetch: Callable[[str], Optional[str]],
    note_id: str,
    timeout: float = DEFAULT_POLL_TIMEOUT,
    interval: float = DEFAULT_POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic
) -> str:
    """
    Poll for a note's narrative at a fixed interval up to a ceiling

    Args:
        fetch: Returns the narrative or None (e.g. NoteStore.fetch_narrative)
        note_id: Note to poll
        timeout: Ceiling in seconds
        interval: Seconds between polls
        sleep, clock: Injectable for tests

    Returns:
        str: First non-blank narrative

    Raises:
        ValueError: Non-positive timeout or interval
        NarrativeTimeoutError: Narrative still missing at the ceiling
    """
    if timeout <= 0 or interval <= 0:
        raise ValueError("timeout and interval must be positive")

    deadline = clock() + timeout
    attempts = 0

    while True:
        attempts += 1
        text = fetch(note_id)
        if isinstance(text, str) and text.strip():
            logger.debug(f"Narrative for note {note_id} ready after {attempts} poll(s)")
            return text

        remaining = deadline - clock()
        if remaining <= 0:
            logger.warning(f"Narrative for note {note_id} not ready after {attempts} poll(s)")
            raise NarrativeTimeoutError(note_id, timeout)

        sleep(min(interval, remaining))
