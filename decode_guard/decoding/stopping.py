"""
Stop conditions for the generation loop.
"""

import enum
from typing import Iterable, Optional


class StopReason(str, enum.Enum):
    """Why a generation loop ended."""

    EOS = "eos"
    MAX_LENGTH = "max_length"
    CONSTRAINT = "constraint"
    STOP_SEQUENCE = "stop_sequence"


def find_stop_sequence(text: str, stop_sequences: Iterable[str]) -> Optional[str]:
    """Return the first stop sequence that ``text`` ends with, or None."""
    for seq in stop_sequences:
        if text.endswith(seq):
            return seq
    return None


def check_stop_sequences(text: str, stop_sequences: Iterable[str]) -> bool:
    """
    Check whether ``text`` ends with any of ``stop_sequences``.

    Example:
        ```python
        check_stop_sequences("hello world", ["world", "xyz"])  # True
        check_stop_sequences("hello world", ["xyz"])           # False
        ```
    """
    return find_stop_sequence(text, stop_sequences) is not None
