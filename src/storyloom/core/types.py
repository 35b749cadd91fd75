"""Shared type aliases for the core and domain layers."""
from typing import Dict, Literal, Union

PlaybackPhase = Literal[
    "idle",
    "advancing_dialogue",
    "presenting_choices",
    "awaiting_input",
    "ended",
    "halted",
]

VariableValue = Union[str, int, float, bool, None]
VariableStore = Dict[str, VariableValue]

__all__ = ["PlaybackPhase", "VariableStore", "VariableValue"]
