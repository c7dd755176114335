"""
Assignment of unique human-readable labels to writer processes.

Labels are drawn at random from a fixed pool of German first names so that
processes starting at nearly the same instant, reading the same "claimed
so far" snapshot, are unlikely to pick the same one. Once every pool name
is claimed, labels get a numeric suffix (Hans1, Friedrich1, ... Hans2).
"""

import random
from typing import List, Optional, Sequence, Set

from roomlog.core.mutex import AsyncLock
from roomlog.utils.logging import get_logger

logger = get_logger(__name__)

GERMAN_NAMES = (
    "Hans", "Friedrich", "Karl", "Wilhelm", "Otto",
    "Heinrich", "Hermann", "Ernst", "Paul", "Werner",
    "Walter", "Franz", "Josef", "Ludwig", "Georg",
    "Klaus", "Günter", "Dieter", "Helmut", "Jürgen",
    "Gerhard", "Wolfgang", "Horst", "Manfred", "Bernd",
    "Greta", "Frieda", "Margarete", "Emma", "Anna",
    "Liesel", "Helga", "Gertrud", "Ingrid", "Monika",
    "Ursula", "Brigitte", "Christa", "Renate", "Petra",
    "Sabine", "Heike", "Katrin", "Claudia", "Stefanie",
    "Anke", "Ute", "Beate", "Karin", "Martina",
)


class LabelPool:
    """
    Hands out labels that are unique among those it knows to be claimed.

    Labels claimed by other processes must be registered before assign()
    is called.
    """

    def __init__(
        self,
        names: Sequence[str] = GERMAN_NAMES,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize label pool.

        Args:
            names: Base labels
            rng: Random source (a fresh random.Random if None)
        """
        if not names:
            raise ValueError("Label pool must not be empty")

        self._names = tuple(names)
        self._rng = rng or random.Random()
        self._used: Set[str] = set()
        self._overflow_index = 0
        self._lock = AsyncLock()

    @property
    def size(self) -> int:
        return len(self._names)

    async def assign(self) -> str:
        """
        Claim and return a new unique label.

        Returns:
            A pool name if any is unclaimed, otherwise a suffixed pool name
        """
        async with self._lock:
            available = [n for n in self._names if n not in self._used]

            if available:
                label = self._rng.choice(available)
            else:
                label = self._next_overflow_label()
                logger.debug("Label pool exhausted, using suffixed label", label=label)

            self._used.add(label)
            return label

    def _next_overflow_label(self) -> str:
        while True:
            base = self._names[self._overflow_index % len(self._names)]
            suffix = self._overflow_index // len(self._names) + 1
            self._overflow_index += 1

            label = f"{base}{suffix}"
            if label not in self._used:
                return label

    async def register_used(self, label: str) -> None:
        """Mark a label as claimed (by another process)."""
        async with self._lock:
            self._used.add(label)

    async def release(self, label: str) -> None:
        """Return a label to the pool."""
        async with self._lock:
            self._used.discard(label)

    def used_labels(self) -> List[str]:
        return list(self._used)

    def is_used(self, label: str) -> bool:
        return label in self._used
