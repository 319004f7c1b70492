"""Configuration for the service note core, loaded from the environment."""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_MODEL = "Qwen/Qwen2.5-7B-Instruct"


class ExtractorKind(str, Enum):
    """Where field extraction runs"""

    LOCAL = "local"
    REMOTE = "remote"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "ExtractorKind":
        normalized = (value or cls.LOCAL.value).strip().lower()
        for candidate in cls:
            if candidate.value == normalized:
                return candidate
        raise RuntimeError(f"Unsupported SERVICE_NOTES_EXTRACTOR: {value}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass
class Settings:
    """Runtime settings, passed explicitly to whatever needs them."""

    extractor: ExtractorKind = ExtractorKind.LOCAL
    model_name: str = DEFAULT_MODEL
    load_in_4bit: bool = True
    device: str = "cuda"
    extract_url: Optional[str] = None
    api_key: Optional[str] = None
    http_timeout: float = 30.0
    data_dir: Path = Path("outputs/service_notes")
    poll_timeout: float = 20.0
    poll_interval: float = 0.8

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from the environment or .env file."""
        load_dotenv()
        extractor = ExtractorKind.from_string(os.getenv("SERVICE_NOTES_EXTRACTOR"))
        extract_url = os.getenv("SERVICE_NOTES_EXTRACT_URL") or None
        if extractor is ExtractorKind.REMOTE and not extract_url:
            raise RuntimeError(
                "SERVICE_NOTES_EXTRACT_URL is required when SERVICE_NOTES_EXTRACTOR=remote."
            )
        device = os.getenv("SERVICE_NOTES_DEVICE", "cuda").strip().lower()
        if device not in {"cuda", "cpu"}:
            raise RuntimeError("SERVICE_NOTES_DEVICE must be 'cuda' or 'cpu'")
        return cls(
            extractor=extractor,
            model_name=os.getenv("SERVICE_NOTES_MODEL", DEFAULT_MODEL),
            load_in_4bit=_env_bool("SERVICE_NOTES_LOAD_IN_4BIT", True),
            device=device,
            extract_url=extract_url,
            api_key=os.getenv("SERVICE_NOTES_API_KEY") or None,
            http_timeout=_env_float("SERVICE_NOTES_HTTP_TIMEOUT", 30.0),
            data_dir=Path(os.getenv("SERVICE_NOTES_DATA_DIR", "outputs/service_notes")),
            poll_timeout=_env_float("SERVICE_NOTES_POLL_TIMEOUT", 20.0),
            poll_interval=_env_float("SERVICE_NOTES_POLL_INTERVAL", 0.8),
        )
