"""
Quality Adaptation for Streaming

Turns queue pressure, send failures and the server congestion flag into a
congestion level with inertia, and recommends a stream profile. Switching
between the nominal and degraded resolution is gated by elapsed time and
stability so the capture process is not restarted back and forth.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from .shared_state import (
    NOMINAL_PROFILE,
    QUALITY_FLOOR,
    StreamProfile,
    degraded_profile,
)

logger = logging.getLogger(__name__)

MAX_CONGESTION_LEVEL = 10

# Indicator thresholds
QUEUE_HIGH = 20
QUEUE_ELEVATED = 10
FAILURES_HIGH = 3

# Hysteresis gates
DEGRADE_LEVEL = 6            # degrade when level is above this
UPGRADE_LEVEL = 3            # upgrade when level is below this
DEGRADE_HOLD_SECONDS = 2.0
UPGRADE_HOLD_SECONDS = 15.0
UPGRADE_STABILITY = 20
DOWNGRADE_STABILITY = 5
STABILITY_SWING = 2


class ProfileTransition(Enum):
    """Resolution switch decided by an evaluation"""
    NONE = "none"
    DEGRADE = "degrade"
    UPGRADE = "upgrade"


@dataclass(frozen=True)
class NetworkState:
    """Congestion state owned by the adaptation controller"""
    congested: bool = False
    congestion_level: int = 0
    stability_counter: int = 0
    last_change: float = field(default_factory=time.monotonic)

    def to_dict(self) -> dict:
        return {
            "congested": self.congested,
            "congestion_level": self.congestion_level,
            "stability_counter": self.stability_counter,
            "seconds_since_change": round(time.monotonic() - self.last_change, 1),
        }


@dataclass(frozen=True)
class Recommendation:
    """Profile the estimator wants the capture process to run with"""
    profile: StreamProfile
    congested: bool
    transition: ProfileTransition = ProfileTransition.NONE


def congestion_indicator(occupancy: int, consecutive_failures: int, server_congested: bool) -> int:
    """Combine queue pressure, failures and the server flag into one score"""
    if occupancy > QUEUE_HIGH:
        queue_term = 2
    elif occupancy > QUEUE_ELEVATED:
        queue_term = 1
    else:
        queue_term = 0

    if consecutive_failures > FAILURES_HIGH:
        failure_term = 3
    elif consecutive_failures > 0:
        failure_term = 1
    else:
        failure_term = 0

    server_term = 3 if server_congested else 0

    return queue_term + failure_term + server_term


def degraded_quality(level: int) -> int:
    return max(QUALITY_FLOOR, 50 - 2 * level)


def nominal_quality(level: int) -> int:
    return max(QUALITY_FLOOR, NOMINAL_PROFILE.quality - 3 * level)


class CongestionEstimator:
    """
    Hysteresis-based congestion estimator

    evaluate() is a pure function of its inputs: it never mutates the state
    it is given and takes the current time as an argument. This is a
    heuristic that damps oscillation, not a rate controller.
    """

    def evaluate(
        self,
        state: NetworkState,
        occupancy: int,
        consecutive_failures: int,
        server_congested: bool,
        now: Optional[float] = None,
    ) -> Tuple[NetworkState, Recommendation]:
        """
        Run one evaluation

        Args:
            state: Current network state
            occupancy: Shared queue occupancy counter
            consecutive_failures: Failure count maintained by the caller
            server_congested: Shared congestion flag
            now: Monotonic time in seconds (defaults to time.monotonic())

        Returns:
            tuple: (updated NetworkState, Recommendation)
        """
        if now is None:
            now = time.monotonic()

        indicator = congestion_indicator(occupancy, consecutive_failures, server_congested)

        # Rise immediately, fall only once things have been stable for a while
        level = state.congestion_level
        if indicator > level:
            level = min(level + 1, MAX_CONGESTION_LEVEL)
        elif indicator < level and state.stability_counter > DOWNGRADE_STABILITY:
            level = max(level - 1, 0)

        if abs(indicator - level) > STABILITY_SWING:
            stability = 0
        else:
            stability = state.stability_counter + 1

        elapsed = now - state.last_change

        should_degrade = (
            level > DEGRADE_LEVEL
            and elapsed >= DEGRADE_HOLD_SECONDS
            and not state.congested
        )
        should_upgrade = (
            level < UPGRADE_LEVEL
            and elapsed >= UPGRADE_HOLD_SECONDS
            and state.congested
            and stability > UPGRADE_STABILITY
        )

        new_state = replace(state, congestion_level=level, stability_counter=stability)

        if should_degrade:
            new_state = replace(new_state, congested=True, last_change=now)
            profile = degraded_profile(degraded_quality(level))
            logger.info(
                f"📉 Network congestion detected (level {level}). "
                f"Reducing resolution to {profile.resolution}, quality to {profile.quality}"
            )
            return new_state, Recommendation(profile, True, ProfileTransition.DEGRADE)

        if should_upgrade:
            new_state = replace(new_state, congested=False, last_change=now)
            profile = NOMINAL_PROFILE
            logger.info(
                f"📈 Network stable (level {level}) for {stability} checks. "
                f"Increasing resolution to {profile.resolution}, quality to {profile.quality}"
            )
            return new_state, Recommendation(profile, False, ProfileTransition.UPGRADE)

        if new_state.congested:
            profile = degraded_profile(degraded_quality(level))
        else:
            profile = NOMINAL_PROFILE.with_quality(nominal_quality(level))

        return new_state, Recommendation(profile, new_state.congested)
