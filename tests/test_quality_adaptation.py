"""Unit tests for the congestion estimator."""

from dataclasses import replace

import pytest

from cam_uplink.camera.streaming.quality_adaptation import (
    CongestionEstimator,
    NetworkState,
    ProfileTransition,
    congestion_indicator,
    degraded_quality,
    nominal_quality,
)
from cam_uplink.camera.streaming.shared_state import (
    NOMINAL_PROFILE,
    StreamProfile,
    degraded_profile,
)


@pytest.fixture
def estimator():
    return CongestionEstimator()


class TestIndicator:

    @pytest.mark.parametrize("occupancy, failures, server, expected", [
        (0, 0, False, 0),
        (10, 0, False, 0),
        (11, 0, False, 1),
        (20, 0, False, 1),
        (21, 0, False, 2),
        (0, 1, False, 1),
        (0, 3, False, 1),
        (0, 4, False, 3),
        (0, 0, True, 3),
        (25, 4, True, 8),
    ])
    def test_indicator_terms(self, occupancy, failures, server, expected):
        assert congestion_indicator(occupancy, failures, server) == expected

    def test_quality_formulas_respect_floor(self):
        assert degraded_quality(0) == 50
        assert degraded_quality(7) == 36
        assert degraded_quality(20) == 20
        assert nominal_quality(0) == 70
        assert nominal_quality(10) == 40
        assert nominal_quality(30) == 20
        assert degraded_profile(5).quality == 20


class TestLevelDynamics:

    def test_level_rises_one_step_per_evaluation(self, estimator):
        state = NetworkState(last_change=0.0)
        levels, stabilities = [], []

        for _ in range(8):
            state, _ = estimator.evaluate(state, 25, 4, True, now=1.0)
            levels.append(state.congestion_level)
            stabilities.append(state.stability_counter)

        assert levels == [1, 2, 3, 4, 5, 6, 7, 8]
        assert stabilities == [0, 0, 0, 0, 0, 1, 2, 3]

    def test_level_falls_only_after_stable_period(self, estimator):
        state = NetworkState(congestion_level=5, stability_counter=5, last_change=0.0)

        new_state, _ = estimator.evaluate(state, 0, 0, False, now=1.0)

        assert new_state.congestion_level == 5
        assert new_state.stability_counter == 0

        stable = NetworkState(congestion_level=5, stability_counter=6, last_change=0.0)
        new_state, _ = estimator.evaluate(stable, 0, 0, False, now=1.0)

        assert new_state.congestion_level == 4

    def test_level_holds_when_indicator_matches(self, estimator):
        state = NetworkState(congested=True, congestion_level=8, stability_counter=3, last_change=0.0)

        new_state, _ = estimator.evaluate(state, 25, 4, True, now=1.0)

        assert new_state.congestion_level == 8
        assert new_state.stability_counter == 4

    def test_input_state_is_not_modified(self, estimator):
        state = NetworkState(congestion_level=3, stability_counter=4, last_change=0.0)

        estimator.evaluate(state, 25, 4, True, now=10.0)

        assert state == NetworkState(congestion_level=3, stability_counter=4, last_change=0.0)


class TestDegrade:

    def test_degrades_above_level_six(self, estimator):
        state = NetworkState(congestion_level=6, last_change=0.0)

        new_state, rec = estimator.evaluate(state, 25, 4, True, now=2.0)

        assert rec.transition is ProfileTransition.DEGRADE
        assert rec.congested
        assert rec.profile == StreamProfile(640, 480, 36)
        assert new_state.congested
        assert new_state.last_change == 2.0

    def test_level_six_does_not_degrade(self, estimator):
        state = NetworkState(congestion_level=5, last_change=0.0)

        new_state, rec = estimator.evaluate(state, 25, 4, True, now=100.0)

        assert new_state.congestion_level == 6
        assert rec.transition is ProfileTransition.NONE
        assert rec.profile == NOMINAL_PROFILE.with_quality(52)

    def test_degrade_needs_two_seconds_since_last_switch(self, estimator):
        state = NetworkState(congestion_level=6, last_change=100.0)

        _, early = estimator.evaluate(state, 25, 4, True, now=101.999)
        _, on_time = estimator.evaluate(state, 25, 4, True, now=102.0)

        assert early.transition is ProfileTransition.NONE
        assert on_time.transition is ProfileTransition.DEGRADE

    def test_no_second_degrade_while_degraded(self, estimator):
        state = NetworkState(congested=True, congestion_level=8, last_change=0.0)

        new_state, rec = estimator.evaluate(state, 25, 4, True, now=100.0)

        assert rec.transition is ProfileTransition.NONE
        assert rec.profile == StreamProfile(640, 480, 50 - 2 * 8)
        assert new_state.last_change == 0.0

    def test_last_change_untouched_without_switch(self, estimator):
        state = NetworkState(congestion_level=2, last_change=42.0)

        new_state, _ = estimator.evaluate(state, 25, 4, True, now=100.0)

        assert new_state.last_change == 42.0


class TestUpgrade:

    def upgradable_state(self, **overrides):
        state = NetworkState(congested=True, congestion_level=2, stability_counter=21, last_change=0.0)
        return replace(state, **overrides)

    def test_upgrades_when_calm_and_stable(self, estimator):
        new_state, rec = estimator.evaluate(self.upgradable_state(), 0, 0, False, now=15.0)

        assert rec.transition is ProfileTransition.UPGRADE
        assert rec.profile == NOMINAL_PROFILE
        assert not rec.congested
        assert not new_state.congested
        assert new_state.last_change == 15.0

    def test_upgrade_needs_fifteen_seconds(self, estimator):
        _, rec = estimator.evaluate(self.upgradable_state(), 0, 0, False, now=14.9)

        assert rec.transition is ProfileTransition.NONE
        assert rec.profile.resolution == "640x480"

    def test_upgrade_needs_stability_above_twenty(self, estimator):
        new_state, rec = estimator.evaluate(
            self.upgradable_state(stability_counter=19), 0, 0, False, now=100.0
        )

        assert new_state.stability_counter == 20
        assert rec.transition is ProfileTransition.NONE
        assert rec.profile == StreamProfile(640, 480, 48)

    def test_upgrade_needs_low_level(self, estimator):
        _, rec = estimator.evaluate(
            self.upgradable_state(congestion_level=4), 0, 0, False, now=100.0
        )

        assert rec.transition is ProfileTransition.NONE


class TestSustainedCongestion:

    def test_server_flag_with_pressure_degrades_on_seventh_check(self, estimator):
        state = NetworkState(last_change=0.0)
        transitions = []

        for check in range(1, 10):
            state, rec = estimator.evaluate(state, 25, 4, True, now=2.0 * check)
            transitions.append(rec.transition)

        assert transitions.index(ProfileTransition.DEGRADE) == 6
        assert transitions.count(ProfileTransition.DEGRADE) == 1

    def test_pressure_without_server_flag_plateaus(self, estimator):
        state = NetworkState(last_change=0.0)

        for check in range(1, 30):
            state, rec = estimator.evaluate(state, 25, 4, False, now=2.0 * check)
            assert rec.transition is ProfileTransition.NONE

        assert state.congestion_level == 5
        assert rec.profile == NOMINAL_PROFILE.with_quality(55)
