"""
Adaptation Controller

Periodically samples the shared telemetry, runs the congestion estimator
and restarts the capture process when the recommended profile differs
enough from the one it is running.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from cam_uplink.config import AppConfig

from .quality_adaptation import CongestionEstimator, NetworkState, Recommendation
from .shared_state import NOMINAL_PROFILE, SharedTelemetry, StreamProfile
from .streaming_stats import UplinkStats

logger = logging.getLogger(__name__)

MAX_FAILURES = 10
MAX_SUCCESSES = 30
OCCUPANCY_PRESSURE = 15
QUALITY_CHANGE_THRESHOLD = 5
STABLE_CHECKS_FOR_SLOW_INTERVAL = 15


class AdaptationController:
    """
    Control loop between the estimator and the encoder supervisor

    The encoder only needs restart(profile); anything with that coroutine
    can be plugged in.
    """

    def __init__(
        self,
        config: AppConfig,
        telemetry: SharedTelemetry,
        encoder,
        stats: Optional[UplinkStats] = None,
        estimator: Optional[CongestionEstimator] = None,
        initial_profile: StreamProfile = NOMINAL_PROFILE,
    ):
        self.config = config
        self.telemetry = telemetry
        self.encoder = encoder
        self.stats = stats or UplinkStats()
        self.estimator = estimator or CongestionEstimator()

        self.network_state = NetworkState()
        self.current_profile = initial_profile
        self.last_recommendation: Optional[Recommendation] = None

        # Separate from the transport session's counters
        self.consecutive_failures = 0
        self.consecutive_successes = 0

        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _update_counters(self, occupancy: int, server_congested: bool):
        if server_congested or occupancy > OCCUPANCY_PRESSURE:
            self.consecutive_failures = min(self.consecutive_failures + 1, MAX_FAILURES)
            self.consecutive_successes = 0
        else:
            self.consecutive_successes = min(self.consecutive_successes + 1, MAX_SUCCESSES)
            self.consecutive_failures = max(self.consecutive_failures - 1, 0)

    def is_significant_change(self, profile: StreamProfile) -> bool:
        """Quality moved by more than the threshold, or the resolution differs"""
        current = self.current_profile
        if profile.size != current.size:
            return True
        return abs(profile.quality - current.quality) > QUALITY_CHANGE_THRESHOLD

    async def evaluate_once(self, now: Optional[float] = None) -> Recommendation:
        """Run one evaluation and apply the result if it is significant"""
        if now is None:
            now = time.monotonic()

        occupancy = self.telemetry.queue_occupancy
        server_congested = self.telemetry.network_congested
        self._update_counters(occupancy, server_congested)

        self.network_state, recommendation = self.estimator.evaluate(
            self.network_state,
            occupancy,
            self.consecutive_failures,
            server_congested,
            now=now,
        )
        self.last_recommendation = recommendation
        self.stats.evaluations += 1

        if self.config.controller_publishes_congestion:
            self.telemetry.network_congested = recommendation.congested

        if self.is_significant_change(recommendation.profile):
            await self._apply(recommendation)

        return recommendation

    async def _apply(self, recommendation: Recommendation):
        old = self.current_profile
        new = recommendation.profile
        logger.info(
            f"🎛️  Applying profile {new.resolution} q{new.quality} "
            f"(was {old.resolution} q{old.quality}, level {self.network_state.congestion_level})"
        )

        self.telemetry.publish_profile(new)
        await self.encoder.restart(new)
        self.current_profile = new
        self.stats.record_profile_change(old.to_dict(), new.to_dict(), recommendation.transition.value)

        if self.config.reset_counters_on_profile_change:
            self.consecutive_failures = 0
            self.consecutive_successes = 0

    def check_interval(self) -> float:
        if self.network_state.stability_counter > STABLE_CHECKS_FOR_SLOW_INTERVAL:
            return self.config.slow_check_interval
        return self.config.fast_check_interval

    async def run(self):
        """Evaluate until stopped"""
        self._running = True
        logger.info("🎯 Adaptation controller started")

        while self._running:
            await self.evaluate_once()
            await asyncio.sleep(self.check_interval())

        logger.info("🎯 Adaptation controller stopped")

    def stop(self):
        self._running = False

    def get_status(self) -> Dict[str, Any]:
        return {
            "network_state": self.network_state.to_dict(),
            "running_profile": self.current_profile.to_dict(),
            "degraded": self.current_profile.is_degraded,
            "consecutive_failures": self.consecutive_failures,
            "consecutive_successes": self.consecutive_successes,
            "check_interval": self.check_interval(),
        }
