"""Step classification and accounting.

Run:
    pytest tests/test_classifier.py -v
"""

import logging

import pytest

from psu_energy.classifier import classify_and_account
from psu_energy.config import AccountingConfig
from psu_energy.errors import NonMonotonicInputError
from psu_energy.models import NS_PER_SECOND, GroupKey, Result, StepKind

from conftest import measurement


def _assert_sum_invariant(result: Result) -> None:
    assert result.total.elapsed_ns == sum(b.elapsed_ns for b in result.buckets.values())
    assert result.total.energy_joules == pytest.approx(
        sum(b.energy_joules for b in result.buckets.values())
    )


class TestConsistentAndImprecise:

    def test_consistent_step_integrates_wall_time(self, utc_config):
        result = Result()
        prev = measurement("2024-03-10T12:00:00", 1000, 50000, power=400)
        cur = measurement("2024-03-10T12:01:00", 1060, 50060, power=600)

        kind = classify_and_account(result, prev, cur, utc_config)

        assert kind is StepKind.CONSISTENT
        assert result.total.elapsed_ns == 60 * NS_PER_SECOND
        assert result.total.energy_joules == pytest.approx(30_000.0)
        assert result.buckets[GroupKey(2024, 3)].elapsed_ns == 60 * NS_PER_SECOND
        assert not result.bad

    def test_consistent_within_clock_tolerance(self, utc_config):
        """Wall clock 1.5s ahead of the lifetime counter still counts as consistent."""
        result = Result()
        prev = measurement("2024-03-10T12:00:00", 1000, 50000)
        cur = measurement("2024-03-10T12:01:00", 900, 50058.5)

        kind = classify_and_account(result, prev, cur, utc_config)

        assert kind is StepKind.CONSISTENT
        assert result.total.elapsed_ns == 60 * NS_PER_SECOND

    def test_wall_clock_drift_with_agreeing_counters_is_imprecise(self, utc_config):
        result = Result()
        prev = measurement("2024-03-10T12:00:00", 1000, 50000, power=500)
        cur = measurement("2024-03-10T12:01:05", 1060, 50060, power=500)

        kind = classify_and_account(result, prev, cur, utc_config)

        assert kind is StepKind.IMPRECISE
        # host delta is still the elapsed-time estimate
        assert result.total.elapsed_ns == 65 * NS_PER_SECOND
        assert result.total.energy_joules == pytest.approx(500 * 65)
        assert not result.bad

    def test_imprecise_drift_logged_at_debug(self, utc_config, caplog):
        prev = measurement("2024-03-10T12:00:00", 1000, 50000)
        cur = measurement("2024-03-10T12:01:05", 1060, 50060)

        with caplog.at_level(logging.DEBUG, logger="psu_energy.step"):
            classify_and_account(Result(), prev, cur, utc_config)

        assert "Host clock drift at 2024-03-10T12:01:05+00:00" in caplog.text
        assert caplog.records[-1].step == "IMPRECISE"

    def test_imprecise_drift_silent_above_debug(self, utc_config, caplog):
        prev = measurement("2024-03-10T12:00:00", 1000, 50000)
        cur = measurement("2024-03-10T12:01:05", 1060, 50060)

        with caplog.at_level(logging.INFO, logger="psu_energy.step"):
            classify_and_account(Result(), prev, cur, utc_config)

        assert caplog.records == []

    def test_clock_tolerance_is_strict(self, utc_config):
        result = Result()
        prev = measurement("2024-03-10T12:00:00", 1000, 50000)
        cur = measurement("2024-03-10T12:01:02", 1060, 50060)

        assert classify_and_account(result, prev, cur, utc_config) is StepKind.IMPRECISE

    def test_custom_tolerances(self):
        config = AccountingConfig(clock_tolerance_s=10.0)
        result = Result()
        prev = measurement("2024-03-10T12:00:00", 1000, 50000)
        cur = measurement("2024-03-10T12:01:05", 1060, 50060)

        assert classify_and_account(result, prev, cur, config) is StepKind.CONSISTENT

    def test_sum_of_consistent_steps(self, utc_config):
        result = Result()
        samples = [
            measurement("2024-03-10T12:00:00", 1000, 50000, power=100),
            measurement("2024-03-10T12:00:30", 1030, 50030, power=200),
            measurement("2024-03-10T12:01:30", 1090, 50090, power=300),
            measurement("2024-03-10T12:01:40", 1100.5, 50100.5, power=150),
        ]
        for prev, cur in zip(samples, samples[1:]):
            classify_and_account(result, prev, cur, utc_config)

        assert result.total.elapsed_ns == 100 * NS_PER_SECOND
        expected = (100 + 200) * 30 / 2 + (200 + 300) * 60 / 2 + (300 + 150) * 10 / 2
        assert result.total.energy_joules == pytest.approx(expected)
        _assert_sum_invariant(result)


class TestRollover:

    def test_rollover_with_trusted_lifetime_counter(self, utc_config, caplog):
        """Device rebooted; lifetime counter advanced 590s over a 600s wall gap."""
        result = Result()
        prev = measurement("2024-03-10T12:00:00", 1000, 50000, power=200)
        cur = measurement("2024-03-10T12:10:00", 100, 50590, power=300)

        with caplog.at_level(logging.INFO, logger="psu_energy.step"):
            kind = classify_and_account(result, prev, cur, utc_config)

        assert kind is StepKind.ROLLOVER
        assert result.rollover_count == 1
        assert not result.bad
        assert result.total.elapsed_ns == 590 * NS_PER_SECOND
        assert result.total.energy_joules == pytest.approx((200 + 300) * 590 / 2)
        assert "ROLLOVER #1" in caplog.text
        assert caplog.records[-1].step == "ROLLOVER"

    def test_rollover_with_suspect_counter_keeps_current_session_only(self, utc_config):
        result = Result()
        prev = measurement("2024-03-31T23:30:00", 1000, 50000, power=200)
        cur = measurement("2024-04-01T00:30:00", 100, 50050, power=300)

        kind = classify_and_account(result, prev, cur, utc_config)

        assert kind is StepKind.ROLLOVER_GAP
        assert result.rollover_count == 1
        assert not result.bad
        # only the 100s boot session, rectangular at the current power
        assert result.total.elapsed_ns == 100 * NS_PER_SECOND
        assert result.total.energy_joules == pytest.approx(300 * 100)
        # attributed to the current sample's month
        assert list(result.buckets) == [GroupKey(2024, 4)]

    def test_rollovers_accumulate(self, utc_config):
        result = Result()
        a = measurement("2024-03-10T12:00:00", 1000, 50000)
        b = measurement("2024-03-10T13:00:00", 100, 50050)
        c = measurement("2024-03-10T14:00:00", 80, 50100)

        classify_and_account(result, a, b, utc_config)
        classify_and_account(result, b, c, utc_config)

        assert result.rollover_count == 2
        assert result.step_counts[StepKind.ROLLOVER_GAP] == 2


class TestInconsistent:

    def test_unclassifiable_step_marks_bad_and_accounts_nothing(self, utc_config, caplog):
        result = Result()
        prev = measurement("2024-03-10T12:00:00", 1000, 50000)
        cur = measurement("2024-03-10T12:01:00", 100, 50030)

        with caplog.at_level(logging.ERROR, logger="psu_energy.step"):
            kind = classify_and_account(result, prev, cur, utc_config)

        assert kind is StepKind.INCONSISTENT
        assert result.bad
        assert result.rollover_count == 0
        assert result.total.elapsed_ns == 0
        assert result.total.energy_joules == 0.0
        assert result.buckets == {}
        assert "INCONSISTENT" in caplog.text
        assert caplog.records[-1].step == "INCONSISTENT"

    def test_bad_is_sticky(self, utc_config):
        result = Result()
        a = measurement("2024-03-10T12:00:00", 1000, 50000)
        b = measurement("2024-03-10T12:01:00", 100, 50030)
        c = measurement("2024-03-10T12:02:00", 160, 50090)

        classify_and_account(result, a, b, utc_config)
        assert classify_and_account(result, b, c, utc_config) is StepKind.CONSISTENT
        assert result.bad


class TestMonthAttribution:

    def test_step_across_month_boundary_goes_to_start_month(self, utc_config):
        result = Result()
        prev = measurement("2024-01-31T23:59:00", 1000, 50000)
        cur = measurement("2024-02-01T00:01:00", 1120, 50120)

        classify_and_account(result, prev, cur, utc_config)

        assert list(result.buckets) == [GroupKey(2024, 1)]
        assert result.buckets[GroupKey(2024, 1)].elapsed_ns == 120 * NS_PER_SECOND


class TestNonMonotonic:

    def test_equal_timestamps_raise(self, utc_config):
        result = Result()
        prev = measurement("2024-03-10T12:00:00", 1000, 50000)
        cur = measurement("2024-03-10T12:00:00", 1000, 50000)

        with pytest.raises(NonMonotonicInputError):
            classify_and_account(result, prev, cur, utc_config)
        assert result.total.elapsed_ns == 0
        assert not result.bad

    def test_backwards_timestamp_raises(self, utc_config):
        prev = measurement("2024-03-10T12:01:00", 1060, 50060)
        cur = measurement("2024-03-10T12:00:00", 1000, 50000)

        with pytest.raises(NonMonotonicInputError, match="Timestamp went from"):
            classify_and_account(Result(), prev, cur, utc_config)

    def test_negative_counter_raises(self, utc_config):
        prev = measurement("2024-03-10T12:00:00", 1000, 50000)
        cur = measurement("2024-03-10T12:01:00", -5, 50060)

        with pytest.raises(NonMonotonicInputError, match="Negative uptime"):
            classify_and_account(Result(), prev, cur, utc_config)
