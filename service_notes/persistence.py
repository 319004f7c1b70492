"""
Service note persistence.

JSON files standing in for the external record store: one file per note
plus a task index. At most one note per task; re-submitting overwrites
the snapshot (not versioned).
"""

import json
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from service_notes.core.note_form import StoredAnswers
from service_notes.utils.helpers import generate_note_id

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    """Task lifecycle after note submission"""
    SUBMITTED = "submitted"
    DONE = "done"


class NoteStore:
    """
    Manages note snapshots, narratives and task statuses.

    Layout:
        outputs/service_notes/
            tasks.json               {task_id: {note_id, status}}
            notes/NOTE-<id>.json     {note_id, task_id, answers, note_text, ...}

    Design:
    - Upsert by task id (overwrite, never version)
    - Narrative cleared on overwrite so pollers wait for the fresh one
    - One lock per store; the formatter writes from a background thread
    """

    def __init__(self, base_dir: Union[str, Path] = "outputs/service_notes"):
        """
        Initialize persistence layer.

        Args:
            base_dir: Base directory for all notes
        """
        self.base_dir = Path(base_dir)
        self.notes_dir = self.base_dir / "notes"
        self.notes_dir.mkdir(parents=True, exist_ok=True)
        self.index_path = self.base_dir / "tasks.json"
        self._lock = threading.RLock()
        logger.info(f"NoteStore initialized: {self.base_dir}")

    # ==================== FILE HELPERS ====================

    def _note_path(self, note_id: str) -> Path:
        return self.notes_dir / f"NOTE-{note_id}.json"

    @staticmethod
    def _read_json(path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    @staticmethod
    def _write_json(path: Path, data: Dict[str, Any]) -> None:
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        tmp_path.replace(path)

    def _load_index(self) -> Dict[str, Dict[str, Any]]:
        return self._read_json(self.index_path) or {}

    def _load_note(self, note_id: str) -> Dict[str, Any]:
        note = self._read_json(self._note_path(note_id))
        if note is None:
            raise KeyError(f"Note {note_id} does not exist")
        return note

    # ==================== SNAPSHOTS ====================

    def upsert_snapshot(self, task_id: str, answers: Union[StoredAnswers, Mapping]) -> str:
        """
        Create or overwrite the note of a task.

        Args:
            task_id: Scheduled task identifier
            answers: StoredAnswers or its dict form

        Returns:
            str: Note id (stable across overwrites)
        """
        if not task_id:
            raise ValueError("task_id is required")

        payload = answers.to_dict() if isinstance(answers, StoredAnswers) else dict(answers)
        now = datetime.now(timezone.utc).isoformat()

        with self._lock:
            index = self._load_index()
            entry = index.get(task_id)

            if entry and self._note_path(entry['note_id']).exists():
                note_id = entry['note_id']
                note = self._load_note(note_id)
                note['answers'] = payload
                note['note_text'] = None
                note['updated_at'] = now
                logger.info(f"Overwrote snapshot for task {task_id}: note {note_id}")
            else:
                note_id = generate_note_id()
                note = {
                    'note_id': note_id,
                    'task_id': task_id,
                    'answers': payload,
                    'note_text': None,
                    'created_at': now,
                    'updated_at': now,
                }
                entry = {'note_id': note_id, 'status': None}
                logger.info(f"Created note {note_id} for task {task_id}")

            self._write_json(self._note_path(note_id), note)
            entry['note_id'] = note_id
            index[task_id] = entry
            self._write_json(self.index_path, index)

        return note_id

    def load_answers(self, note_id: str) -> Dict[str, Any]:
        """Stored answer snapshot of a note ({'actual'?, 'form'?})"""
        with self._lock:
            return self._load_note(note_id).get('answers') or {}

    def note_for_task(self, task_id: str) -> Optional[str]:
        """Note id of a task, None when nothing was submitted"""
        with self._lock:
            entry = self._load_index().get(task_id)
        return entry['note_id'] if entry else None

    def task_for_note(self, note_id: str) -> str:
        with self._lock:
            return self._load_note(note_id)['task_id']

    # ==================== STATUS ====================

    def set_status(self, task_id: str, status: Union[TaskStatus, str]) -> None:
        """
        Update a task's status.

        Raises:
            ValueError: Unknown status value
            KeyError: Task has no note
        """
        status = TaskStatus(status)
        with self._lock:
            index = self._load_index()
            if task_id not in index:
                raise KeyError(f"Task {task_id} has no note")
            index[task_id]['status'] = status.value
            self._write_json(self.index_path, index)
        logger.info(f"Task {task_id} status -> {status.value}")

    def get_status(self, task_id: str) -> Optional[TaskStatus]:
        with self._lock:
            entry = self._load_index().get(task_id)
        if not entry or not entry.get('status'):
            return None
        return TaskStatus(entry['status'])

    # ==================== NARRATIVE ====================

    def save_narrative(self, note_id: str, text: str) -> None:
        with self._lock:
            note = self._load_note(note_id)
            note['note_text'] = text
            note['updated_at'] = datetime.now(timezone.utc).isoformat()
            self._write_json(self._note_path(note_id), note)
        logger.info(f"Stored narrative for note {note_id} ({len(text)} chars)")

    def save_narrative_if_current(self, note_id: str, answers: Mapping, text: str) -> bool:
        """
        Store a narrative only if the note still holds the given snapshot.

        Compare and write happen under the store lock.

        Returns:
            bool: False when the snapshot changed and nothing was written
        """
        with self._lock:
            note = self._load_note(note_id)
            if (note.get('answers') or {}) != answers:
                return False
            self.save_narrative(note_id, text)
        return True

    def fetch_narrative(self, note_id: str) -> Optional[str]:
        """Narrative text, None while missing or blank"""
        with self._lock:
            note = self._read_json(self._note_path(note_id))
        if not note:
            return None
        text = note.get('note_text')
        return text if isinstance(text, str) and text.strip() else None
