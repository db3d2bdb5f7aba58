"""
Core data models for Earshot.

Immutable value types exchanged between the classifier, the periodic
classification pass and the display.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class ListenerState(Enum):
    """Lifecycle of the capture loop."""

    IDLE = "idle"
    RECORDING = "recording"
    FAULTED = "faulted"


@dataclass(frozen=True)
class AudioFormat:
    """
    Audio format a model expects its input in.

    Attributes:
        channels: Number of interleaved channels (1 for YAMNet)
        sample_rate: Samples per second per channel
    """

    channels: int
    sample_rate: int

    def __post_init__(self):
        if self.channels < 1:
            raise ValueError(f"channels must be positive, got {self.channels}")
        if self.sample_rate < 1:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")

    def describe(self) -> str:
        """Human-readable summary shown when recording starts."""
        return f"Audio specs - Channels: {self.channels}, Sample Rate: {self.sample_rate}"


@dataclass(frozen=True)
class Category:
    """A single (label, score) prediction."""

    label: str
    score: float
    index: int = -1

    @property
    def display_name(self) -> str:
        return self.label


@dataclass(frozen=True)
class Classifications:
    """
    One classification group: the predictions of a single model head.

    A model can expose several output heads, so one classify() call may
    return several groups.
    """

    head_index: int
    categories: List[Category] = field(default_factory=list)
    head_name: Optional[str] = None


Categories = List[Category]
