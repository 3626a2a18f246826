"""
Durable local state for MediMind.

A small key/value store persisted as one JSON file, holding per-document
chat history and the user's preferences. Values are JSON-encoded strings,
so a single bad entry never poisons the rest of the file.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

from medimind.config import settings
from medimind.models.schemas import ChatModel, Persona, SummaryFocus, Voice
from medimind.utils.logger import get_logger

logger = get_logger("local_store")

E = TypeVar("E", bound=Enum)

CHAT_HISTORY_PREFIX = "chatHistory_"


def chat_history_key(document_id: str) -> str:
    return f"{CHAT_HISTORY_PREFIX}{document_id}"


class LocalStore:
    """
    String key/value store backed by a JSON file.

    A missing, unreadable or corrupted file is treated as empty.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else settings.storage_file
        self._items: Dict[str, str] = self._read()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Local storage unreadable, starting empty", path=str(self.path), error=str(e))
            return {}
        if not isinstance(data, dict):
            logger.warning("Local storage has unexpected shape, starting empty", path=str(self.path))
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._items, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._write()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._write()

    def keys(self) -> list[str]:
        return list(self._items)

    def get_json(self, key: str, default: Any = None) -> Any:
        """Decode a stored value, falling back to default when absent or corrupt."""
        raw = self._items.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Stored value is not valid JSON", key=key)
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value, ensure_ascii=False))


class Preferences:
    """Persona, voice, model and summary focus, persisted independently of documents."""

    PERSONA_KEY = "persona"
    VOICE_KEY = "voice"
    MODEL_KEY = "model"
    SUMMARY_FOCUS_KEY = "summaryFocus"

    def __init__(self, store: LocalStore):
        self.store = store

    def _get(self, key: str, enum_type: Type[E], default: E) -> E:
        value = self.store.get_json(key)
        try:
            return enum_type(value)
        except ValueError:
            if value is not None:
                logger.warning("Ignoring unknown preference value", key=key, value=str(value))
            return default

    def _set(self, key: str, value: Enum) -> None:
        self.store.set_json(key, value.value)

    @property
    def persona(self) -> Persona:
        return self._get(self.PERSONA_KEY, Persona, Persona.PROFESSIONAL)

    @persona.setter
    def persona(self, value: Persona) -> None:
        self._set(self.PERSONA_KEY, Persona(value))

    @property
    def voice(self) -> Voice:
        return self._get(self.VOICE_KEY, Voice, Voice.KORE)

    @voice.setter
    def voice(self, value: Voice) -> None:
        self._set(self.VOICE_KEY, Voice(value))

    @property
    def model(self) -> ChatModel:
        return self._get(self.MODEL_KEY, ChatModel, ChatModel(settings.default_chat_model))

    @model.setter
    def model(self, value: ChatModel) -> None:
        self._set(self.MODEL_KEY, ChatModel(value))

    @property
    def summary_focus(self) -> SummaryFocus:
        return self._get(self.SUMMARY_FOCUS_KEY, SummaryFocus, SummaryFocus.KEY_POINTS)

    @summary_focus.setter
    def summary_focus(self, value: SummaryFocus) -> None:
        self._set(self.SUMMARY_FOCUS_KEY, SummaryFocus(value))
