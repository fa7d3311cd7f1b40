# predictive_metrics/utils/clock.py
from datetime import date, datetime, timedelta, timezone
from typing import Optional

import numpy as np


class Clock:
    """Source of the current time and of random generators.

    Timestamps are naive UTC so they compare directly with stored values
    normalized by ``convert_to_datetime``.
    """

    def __init__(self, seed: Optional[int] = None):
        """Initialize the clock.

        Args:
            seed: Default seed for generators created by ``rng``
        """
        self.seed = seed

    def now(self) -> datetime:
        """Get the current naive UTC timestamp."""
        return datetime.now(timezone.utc).replace(tzinfo=None)

    def today(self) -> date:
        """Get the current UTC calendar day."""
        return self.now().date()

    def rng(self, seed: Optional[int] = None) -> np.random.Generator:
        """Create a random generator.

        Args:
            seed: Explicit seed; falls back to the clock's default seed

        Returns:
            numpy Generator, reproducible when a seed is known
        """
        return np.random.default_rng(seed if seed is not None else self.seed)


class FixedClock(Clock):
    """Clock frozen at a given instant, for deterministic runs."""

    def __init__(self, current: datetime, seed: Optional[int] = 0):
        super().__init__(seed=seed)
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by a timedelta built from kwargs."""
        self.current = self.current + timedelta(**kwargs)
        return self.current
