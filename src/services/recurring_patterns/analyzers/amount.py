"""
Amount tolerance model for recurring pattern detection.

Decides whether the amounts of a merchant group are stable enough to be
one recurring obligation and, if so, the band future charges should fall in.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_UP
from typing import List, Optional, Sequence, Tuple

import numpy as np

from services.recurring_patterns.config import AmountToleranceConfig

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class AmountEvaluation:
    """Center and tolerance band of a set of signed amounts."""
    center: Decimal
    tolerance: Decimal
    consistent: bool

    def contains(self, amount: Decimal) -> bool:
        return abs(amount - self.center) <= self.tolerance


class AmountToleranceModel:
    """
    Computes a tolerance band around the median of a group's amounts.

    tolerance = max(largest deviation from the median, floor_pct * |median|)

    A group is consistent when every amount has the same sign and the band
    is no wider than ``max_drift_pct`` of the median.
    """

    def __init__(self, config: Optional[AmountToleranceConfig] = None):
        self.config = config or AmountToleranceConfig()
        self._floor_pct = Decimal(str(self.config.floor_pct))
        self._max_drift_pct = Decimal(str(self.config.max_drift_pct))

    def evaluate(self, amounts: Sequence[Decimal]) -> AmountEvaluation:
        """
        Evaluate a set of signed amounts.

        Args:
            amounts: Signed transaction amounts

        Returns:
            AmountEvaluation; an empty input is never consistent
        """
        if not amounts:
            return AmountEvaluation(center=Decimal("0"), tolerance=Decimal("0"), consistent=False)

        # Amounts are whole cents, so statistics are rounded back to cents
        values = np.array([float(a) for a in amounts])
        center = Decimal(str(np.median(values))).quantize(CENT)
        max_deviation = Decimal(str(np.max(np.abs(values - float(center))))).quantize(CENT)
        raw_tolerance = max(max_deviation, self._floor_pct * abs(center))

        signs = {(a > 0) - (a < 0) for a in amounts}
        consistent = (
            len(signs) == 1
            and 0 not in signs
            and center != 0
            and raw_tolerance <= self._max_drift_pct * abs(center)
        )

        return AmountEvaluation(
            center=center,
            tolerance=raw_tolerance.quantize(CENT, rounding=ROUND_UP),
            consistent=consistent,
        )

    def split(self, amounts: Sequence[Decimal]) -> List[Tuple[List[int], AmountEvaluation]]:
        """
        Partition amounts by sign and evaluate each partition once.

        Used when a group is inconsistent as a whole, e.g. a subscription
        with an occasional refund. Zero amounts belong to no partition.

        Args:
            amounts: Signed transaction amounts

        Returns:
            (indices into ``amounts``, evaluation) for each non-empty partition,
            outflows first
        """
        outflows = [i for i, a in enumerate(amounts) if a < 0]
        inflows = [i for i, a in enumerate(amounts) if a > 0]

        partitions = []
        for indices in (outflows, inflows):
            if indices:
                evaluation = self.evaluate([amounts[i] for i in indices])
                partitions.append((indices, evaluation))
        return partitions
