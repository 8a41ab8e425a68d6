"""Records passed to callbacks at each point of the training lifecycle.

Epoch and batch numbers are 1-based.
"""

from dataclasses import dataclass, asdict
from typing import Dict


@dataclass(frozen=True)
class EpochStartEvent:
    epoch: int


@dataclass(frozen=True)
class BatchStartEvent:
    epoch: int
    batch: int


@dataclass(frozen=True)
class BatchEndEvent:
    epoch: int
    batch: int
    samples_seen: int
    loss: float
    metric: float


@dataclass(frozen=True)
class EpochEndEvent:
    epoch: int
    samples_seen: int
    loss: float
    validation_loss: float
    metric: float
    validation_metric: float

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class TrainingEndEvent:
    loss: float
    validation_loss: float
    metric: float
    validation_metric: float

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)
