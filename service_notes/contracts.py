"""
Semantic contracts shared by the conversation modules.

Frozen dataclasses only: no validation logic and no dependencies on other
modules. These define shape and meaning, the modules that produce them
are responsible for populating them correctly.

Contents:
- ConversationStep: one fixed stage of the guided interview
- TranscriptMessage: one line of the conversation transcript
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class MessageSender(str, Enum):
    """Who produced a transcript message"""
    SYSTEM = "system"
    USER = "user"


@dataclass(frozen=True)
class ConversationStep:
    """
    Immutable interview step.

    Attributes:
        id: Step identifier (e.g., 'destination', 'toilet', 'memo').
            Sent to the extraction capability so it knows which
            field-group the answer is about.
        prompt: Question shown to the helper.
            Example: '行き先を教えてください。'
        hint: Optional second line with answer examples.
            Example: '例: 自宅から〇〇園まで など'
    """
    id: str
    prompt: str
    hint: Optional[str] = None


@dataclass(frozen=True)
class TranscriptMessage:
    """
    One transcript entry.

    Transcripts are append-only during a session and are discarded when
    the interview restarts. They are never persisted by the core.
    """
    sender: MessageSender
    text: str

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe form used by the API layer ({'from', 'text'})"""
        return {'from': self.sender.value, 'text': self.text}
