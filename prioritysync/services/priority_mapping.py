"""Notion priority value <-> GitHub priority label mapping"""

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from prioritysync.services.errors import UnknownPriorityError

DEFAULT_PRIORITY_LABELS = "High:High-Priority,Medium:Medium-Priority,Low:Low-Priority"


@dataclass(frozen=True)
class PriorityMapping:
    """Fixed, ordered, invertible mapping of priority values to labels.

    Declaration order matters only when an issue carries several priority
    labels at once; ``pick_value`` then returns the first one declared.
    """

    pairs: Tuple[Tuple[str, str], ...]

    def __post_init__(self):
        if not self.pairs:
            raise ValueError("Priority mapping must not be empty")
        values = [v for v, _ in self.pairs]
        labels = [l for _, l in self.pairs]
        if len(set(values)) != len(values):
            raise ValueError(f"Duplicate priority values in mapping: {values}")
        if len(set(labels)) != len(labels):
            raise ValueError(f"Duplicate priority labels in mapping: {labels}")

    @classmethod
    def parse(cls, text: Optional[str]) -> "PriorityMapping":
        """Parse ``"High:High-Priority,Low:Low-Priority"`` style config."""
        pairs = []
        for chunk in (text or DEFAULT_PRIORITY_LABELS).split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            value, sep, label = chunk.partition(":")
            if not sep or not value.strip() or not label.strip():
                raise ValueError(f"Invalid priority mapping entry: {chunk!r}")
            pairs.append((value.strip(), label.strip()))
        return cls(tuple(pairs))

    @property
    def values(self) -> Tuple[str, ...]:
        return tuple(v for v, _ in self.pairs)

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(l for _, l in self.pairs)

    def is_priority_label(self, name: Optional[str]) -> bool:
        return name in self.labels

    def label_for(self, value: str) -> str:
        for v, label in self.pairs:
            if v == value:
                return label
        raise UnknownPriorityError(f"Unknown priority: {value}")

    def value_for(self, label: str) -> Optional[str]:
        for v, l in self.pairs:
            if l == label:
                return v
        return None

    def priority_labels_in(self, labels: Iterable[str]) -> list[str]:
        """Priority labels present in ``labels``, in declaration order."""
        present = set(labels)
        return [l for l in self.labels if l in present]

    def pick_value(self, labels: Iterable[str]) -> Tuple[Optional[str], bool]:
        """Return (priority value, ambiguous) for a label set."""
        present = self.priority_labels_in(labels)
        if not present:
            return None, False
        return self.value_for(present[0]), len(present) > 1
