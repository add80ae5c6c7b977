"""Learning algorithms for vocabtrace.

Provides lemma aggregation, promotion, noise-word reconciliation,
auto-trace replenishment and review card selection.
"""

from vocabtrace.learning.noise import NoiseConfig, NoiseReconciler, NoiseSyncResult
from vocabtrace.learning.promotion import PromotionPipeline
from vocabtrace.learning.replenish import AutoTraceReplenisher
from vocabtrace.learning.review import (
    LinearCongruentialGenerator,
    TopNSelector,
    WeightedShuffleSelector,
    compute_priority,
    select_cards,
)

__all__ = [
    "AutoTraceReplenisher",
    "LinearCongruentialGenerator",
    "NoiseConfig",
    "NoiseReconciler",
    "NoiseSyncResult",
    "PromotionPipeline",
    "TopNSelector",
    "WeightedShuffleSelector",
    "compute_priority",
    "select_cards",
]
