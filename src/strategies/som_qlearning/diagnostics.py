from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, Optional


class DegeneracyCounter:
    """Count numeric fallbacks taken on the hot path.

    Degenerate inputs (zero-norm vectors, flat windows, missing samples) are
    never fatal; each one is resolved locally and recorded here by name so a
    run can report how often it happened.
    """

    ZERO_NORM = "zero_norm"
    ZERO_STD = "zero_std"
    ZERO_PRICE_DENOMINATOR = "zero_price_denominator"
    MISSING_PRICE = "missing_price"
    MISSING_VOLUME = "missing_volume"

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.counts: Counter = Counter()
        self.logger = logger or logging.getLogger(__name__)

    def record(self, kind: str, count: int = 1, **context) -> None:
        if count <= 0:
            return
        self.counts[kind] += count
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug("degeneracy=%s count=%d %s", kind, count, context or "")

    def __getitem__(self, kind: str) -> int:
        return self.counts[kind]

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def as_dict(self) -> Dict[str, int]:
        return dict(self.counts)

    def reset(self) -> None:
        self.counts.clear()
