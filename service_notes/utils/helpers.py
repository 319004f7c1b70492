"""
Utility helpers for the service note system

ID generation and construction of the configured model-backed
collaborators.
"""

import logging
import uuid

logger = logging.getLogger(__name__)


def generate_note_id(short=False):
    """
    Generate unique identifier

    Args:
        short (bool): If True, return 8-char hex. If False, return full hex UUID.

    Returns:
        str: Identifier

    Examples:
        >>> generate_note_id(short=True)
        'a3f7e2b9'
    """
    full_id = uuid.uuid4().hex
    return full_id[:8] if short else full_id


def build_hf_client(settings):
    """
    Load the local model described by settings (expensive, ~30 seconds)

    Imported lazily so API and tests never load torch unless a local
    model is actually requested.
    """
    from service_notes.utils.hf_client import HuggingFaceClient

    return HuggingFaceClient(
        model_name=settings.model_name,
        load_in_4bit=settings.load_in_4bit,
        device=settings.device
    )


def build_extractor(settings, hf_client=None):
    """
    Build the extraction capability selected by settings

    Args:
        settings: Settings instance
        hf_client: Already loaded client to reuse (local extractor only)

    Returns:
        FieldExtractor or RemoteFieldExtractor
    """
    from service_notes.config import ExtractorKind

    if settings.extractor is ExtractorKind.REMOTE:
        from service_notes.utils.remote_extractor import RemoteFieldExtractor

        logger.info(f"Using remote extractor: {settings.extract_url}")
        return RemoteFieldExtractor(
            url=settings.extract_url,
            api_key=settings.api_key,
            timeout=settings.http_timeout
        )

    from service_notes.core.field_extractor import FieldExtractor

    logger.info(f"Using local extractor: {settings.model_name}")
    return FieldExtractor(hf_client or build_hf_client(settings))


def generate_conversation_id():
    """12-char hex id for an in-memory conversation"""
    return uuid.uuid4().hex[:12]
