"""
Rank scoring for aggregated chart entries.

    score = (source_weight * normalized_rank**2) + cross_source_bonus

The quadratic decay makes a source's top entries worth far more than its
mid-pack entries; the bonus rewards tracks that several sources agree on.
"""

from __future__ import annotations

# (minimum source count, bonus), checked from the highest threshold down
CROSS_SOURCE_BONUSES: tuple[tuple[int, float], ...] = (
    (3, 1.0),
    (2, 0.5),
)


def cross_source_bonus(
    source_count: int,
    bonuses: tuple[tuple[int, float], ...] = CROSS_SOURCE_BONUSES,
) -> float:
    """Return the bonus for a track seen on ``source_count`` distinct sources."""
    for threshold, bonus in sorted(bonuses, reverse=True):
        if source_count >= threshold:
            return bonus
    return 0.0


def normalized_rank(rank: int, max_rank: float) -> float:
    """Map a 0-based source rank onto [0, 1], 1.0 being the top of the chart."""
    value = 1.0 - (rank / max_rank)
    return max(0.0, min(1.0, value))


def compute_score(
    rank: int,
    weight: float,
    max_rank: float,
    source_count: int,
    bonuses: tuple[tuple[int, float], ...] = CROSS_SOURCE_BONUSES,
) -> float:
    """
    Compute the aggregate score of one chart entry.

    Args:
        rank: Position within the source chart (0 is the top)
        weight: Trust weight of the source, in (0, 1]
        max_rank: Rank at which the rank contribution reaches zero
        source_count: Number of distinct sources the track appeared on
        bonuses: Cross-source bonus table

    Returns:
        Rank score plus cross-source bonus

    Raises:
        ValueError: If rank is negative or max_rank is not positive
    """
    if rank < 0:
        raise ValueError(f"rank must be >= 0, got {rank}")
    if max_rank <= 0:
        raise ValueError(f"max_rank must be > 0, got {max_rank}")

    n = normalized_rank(rank, max_rank)
    rank_score = weight * (n * n)
    return rank_score + cross_source_bonus(source_count, bonuses)
