"""Tiered prize pool allocation with a capped, rolling jackpot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .settings import DrawSettingsSnapshot


@dataclass(frozen=True)
class PrizePoolAllocation:
    """Pool sizes and per-winner payouts for one draw.

    Attributes
    ----------
    base_prize_pool : float
        ``participants * base_amount_per_sub``.
    tier1_standard, tier2_standard, tier3_standard : float
        Each tier's share of the base pool. ``tier1_standard`` is clamped to
        the room left under the cap when the cap is reached.
    total_potential_jackpot : float
        Carried jackpot plus the unclamped tier 1 share.
    tier1_pool, tier2_pool, tier3_pool : float
        Final pools. ``tier1_pool`` never exceeds the cap.
    rollover_to_tier2 : float
        Amount above the cap diverted into tier 2.
    cap_reached : bool
        Whether the cap clipped the tier 1 pool.
    tier1_payout, tier2_payout, tier3_payout : float
        Pool divided evenly among the tier's winners (0 without winners).
    jackpot_rollover : float
        Unclaimed tier 1 pool carried into the next jackpot.
    next_jackpot : float
        Jackpot tracker value after the draw: ``jackpot_rollover`` when nobody
        hit five matches, otherwise ``0``.
    """

    current_jackpot: float
    base_prize_pool: float
    tier1_standard: float
    tier2_standard: float
    tier3_standard: float
    total_potential_jackpot: float
    tier1_pool: float
    tier2_pool: float
    tier3_pool: float
    rollover_to_tier2: float
    cap_reached: bool
    tier1_payout: float
    tier2_payout: float
    tier3_payout: float
    jackpot_rollover: float
    next_jackpot: float

    def pool_for(self, tier: int) -> float:
        return {1: self.tier1_pool, 2: self.tier2_pool, 3: self.tier3_pool}[tier]

    def payout_for(self, tier: int) -> float:
        return {1: self.tier1_payout, 2: self.tier2_payout, 3: self.tier3_payout}[tier]


def _split(pool: float, winners: int) -> float:
    return pool / winners if winners > 0 else 0.0


def allocate_prize_pool(
    participant_count: int,
    settings: DrawSettingsSnapshot,
    current_jackpot: float,
    winner_counts: Mapping[int, int],
) -> PrizePoolAllocation:
    """Compute tier pools and payouts.

    The tier 1 pool is the carried jackpot plus this draw's tier 1 share,
    capped at ``settings.jackpot_cap``. Anything above the cap moves into
    tier 2 so that nothing raised is lost; tier 3 is never affected.

    Parameters
    ----------
    participant_count : int
        Number of eligible participants.
    settings : DrawSettingsSnapshot
        Base contribution, tier percentages and jackpot cap.
    current_jackpot : float
        Jackpot carried into this draw.
    winner_counts : Mapping[int, int]
        Winners per tier, keyed by tier number (1, 2, 3). Missing tiers count
        as zero winners.
    """

    if participant_count < 0:
        raise ValueError("participant_count must not be negative")
    if current_jackpot < 0:
        raise ValueError("current_jackpot must not be negative")

    current_jackpot = float(current_jackpot)
    base_prize_pool = participant_count * settings.base_amount_per_sub

    tier1_standard = base_prize_pool * (settings.tier1_percent / 100)
    tier2_standard = base_prize_pool * (settings.tier2_percent / 100)
    tier3_standard = base_prize_pool * (settings.tier3_percent / 100)

    cap = settings.jackpot_cap
    total_potential_jackpot = current_jackpot + tier1_standard
    cap_reached = False
    rollover_to_tier2 = 0.0
    if total_potential_jackpot > cap:
        cap_reached = True
        rollover_to_tier2 = total_potential_jackpot - cap
        tier1_standard = max(0.0, cap - current_jackpot)

    tier1_pool = min(total_potential_jackpot, cap)
    tier2_pool = tier2_standard + rollover_to_tier2
    tier3_pool = tier3_standard

    tier1_winners = winner_counts.get(1, 0)
    jackpot_rollover = tier1_pool if tier1_winners == 0 else 0.0

    return PrizePoolAllocation(
        current_jackpot=current_jackpot,
        base_prize_pool=base_prize_pool,
        tier1_standard=tier1_standard,
        tier2_standard=tier2_standard,
        tier3_standard=tier3_standard,
        total_potential_jackpot=total_potential_jackpot,
        tier1_pool=tier1_pool,
        tier2_pool=tier2_pool,
        tier3_pool=tier3_pool,
        rollover_to_tier2=rollover_to_tier2,
        cap_reached=cap_reached,
        tier1_payout=_split(tier1_pool, tier1_winners),
        tier2_payout=_split(tier2_pool, winner_counts.get(2, 0)),
        tier3_payout=_split(tier3_pool, winner_counts.get(3, 0)),
        jackpot_rollover=jackpot_rollover,
        next_jackpot=jackpot_rollover,
    )


__all__ = ["PrizePoolAllocation", "allocate_prize_pool"]
