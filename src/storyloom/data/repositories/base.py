"""Base repository implementation for JSON documents."""
from __future__ import annotations

from pathlib import Path
from typing import Generic, TypeVar

from storyloom.data.errors import DataLoadError, DataValidationError
from storyloom.data.json_loader import load_json

T = TypeVar("T")


class RepositoryBase(Generic[T]):
    """Common caching and loading behavior for document repositories."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._loaded: T | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    def _load_raw(self) -> dict[str, object]:
        if self._path is None:
            raise DataLoadError(f"{type(self).__name__} has no document path configured.")
        raw = load_json(self._path)
        if not isinstance(raw, dict):
            raise DataValidationError(f"Expected top-level object in {self._path}")
        return raw

    def _build(self, raw: dict[str, object]) -> T:
        """Convert a raw dict into a typed document."""
        raise NotImplementedError

    def load(self) -> T:
        """Return the parsed document, reading it from disk on first use."""
        if self._loaded is None:
            self._loaded = self._build(self._load_raw())
        return self._loaded

    def parse(self, raw: object) -> T:
        """Build a document from an in-memory payload without touching disk."""
        return self._build(self._require_mapping(raw, "document"))

    @staticmethod
    def _require_mapping(value: object, context: str) -> dict[str, object]:
        if not isinstance(value, dict):
            raise DataValidationError(f"{context} must be an object/dict.")
        return value

    @staticmethod
    def _require_str(value: object, context: str) -> str:
        if not isinstance(value, str):
            raise DataValidationError(f"{context} must be a string.")
        return value

    @staticmethod
    def _require_optional_str(value: object, context: str) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise DataValidationError(f"{context} must be a string if provided.")
        return value

    @staticmethod
    def _require_list(value: object, context: str) -> list[object]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise DataValidationError(f"{context} must be a list if provided.")
        return value

    @staticmethod
    def _require_optional_number(value: object, context: str) -> float | None:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise DataValidationError(f"{context} must be a number if provided.")
        return value
