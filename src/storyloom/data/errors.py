"""Exceptions raised while loading story graph documents."""


class DataError(Exception):
    """Base exception for the data layer."""


class DataLoadError(DataError):
    """Raised when a story document is missing or is not valid JSON."""


class DataValidationError(DataError):
    """Raised when a story document has the wrong shape."""


class DataReferenceError(DataError):
    """Raised when nodes or edges reference ids that do not exist."""
