"""Service-layer exceptions."""


class SaveLoadError(Exception):
    """Raised when a save snapshot cannot be produced or restored."""
