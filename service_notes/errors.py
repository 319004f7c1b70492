"""
Error kinds for the service note core.

Nothing here is fatal: every error leaves the structured record and the
conversation transcript in a consistent, retryable state.

- ValidationError: blank answers, unknown step ids, empty submissions
- ExtractionFailure: extraction capability unreachable, non-success or malformed
- NarrativeTimeoutError: narrative polling ceiling exceeded
"""

from typing import Optional


class ServiceNoteError(Exception):
    """Base class for service note errors"""


class ValidationError(ServiceNoteError, ValueError):
    """Input rejected locally (never surfaced as fatal)"""


class ExtractionFailure(ServiceNoteError):
    """
    The extraction capability could not produce a record.

    Model generation errors, network errors, non-2xx responses and
    non-JSON output all collapse into this one kind so the conversation
    engine can treat them uniformly.

    Attributes:
        step_id: Interview step the extraction was for
        status_code: HTTP status for remote extractors, else None
    """

    def __init__(self, message: str, step_id: Optional[str] = None,
                 status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.step_id = step_id
        self.status_code = status_code


class NarrativeTimeoutError(ServiceNoteError, TimeoutError):
    """
    Narrative text did not appear before the polling ceiling.

    The stored snapshot and the submitted status stay valid; only the
    narrative is still pending.
    """

    def __init__(self, note_id: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Narrative for note {note_id} not ready after {timeout_seconds:g}s. "
            f"Reload later to fetch it."
        )
        self.note_id = note_id
        self.timeout_seconds = timeout_seconds
