"""Data layer utilities for loading story graph documents."""

from .errors import DataError, DataLoadError, DataReferenceError, DataValidationError
from .json_loader import load_json

__all__ = [
    "DataError",
    "DataLoadError",
    "DataReferenceError",
    "DataValidationError",
    "load_json",
]
