"""
This module contains a collection of unit tests for the `TimeManager` class. The
module contains two test classes, namely: `TestParameterInputs` and `TestTimeControl`.

`TestParameterInputs` contains test methods that check the sanity of the input
parameters. This includes checks for default parameters in initialization and checks
for admissible parameter values.

`TestTimeControl` contains checks for the correction of proposed time steps (based on
minimum and maximum allowable time steps or to satisfy required scheduled times), and
for the resetting of time needed by coupling windows that are repeated.
"""

import json

import numpy as np
import pytest

import partipy as pa


class TestParameterInputs:
    """The following tests are written to check the sanity of the input parameters"""

    def test_default_parameters_and_attribute_initialization(self):
        """Test the default parameters and initialization of attributes."""
        time_manager = pa.TimeManager(schedule=[0, 1], dt_init=0.1)
        np.testing.assert_equal(time_manager.schedule, np.array([0, 1]))
        assert time_manager.time_init == 0
        assert time_manager.time_final == 1
        assert time_manager.dt_init == 0.1
        assert time_manager.dt_min_max == (0.001, 1)
        assert time_manager.time == 0
        assert time_manager.time_index == 0
        assert time_manager.dt == 0.1

    @pytest.mark.parametrize(
        "schedule", [(0, 0.5, 1), [0, 0.5, 1], np.array([0, 0.5, 1])]
    )
    def test_schedule_argument_type_compatibility(self, schedule):
        """The 'schedule' object is supposed to take any array-like object."""
        time_manager = pa.TimeManager(schedule=schedule, dt_init=0.01)
        assert isinstance(time_manager.schedule, np.ndarray)
        assert (time_manager.schedule == np.array([0.0, 0.5, 1.0])).all()

    @pytest.mark.parametrize(
        "schedule, dt_init, msg",
        [
            ([], 0.1, "Expected schedule with at least two elements."),
            ([1], 0.1, "Expected schedule with at least two elements."),
            ([-1, 10], 0.1, "Encountered at least one negative time in schedule."),
            ([0, 5, 3], 0.1, "Schedule must contain strictly increasing times."),
            ([0, 1], 0, "Initial time step must be positive."),
            ([0, 1], 2, "Initial time step cannot be larger than"),
        ],
    )
    def test_invalid_schedule_or_initial_time_step(self, schedule, dt_init, msg):
        with pytest.raises(ValueError) as excinfo:
            pa.TimeManager(schedule=schedule, dt_init=dt_init)
        assert msg in str(excinfo.value)

    @pytest.mark.parametrize(
        "dt_min_max, msg",
        [
            ((0, 0.5), "Minimum time step must be positive."),
            ((0.5, 0.1), "Minimum time step cannot exceed maximum time step."),
            ((0.2, 0.5), "Initial time step must lie within dt_min_max."),
        ],
    )
    def test_invalid_dt_min_max(self, dt_min_max, msg):
        with pytest.raises(ValueError) as excinfo:
            pa.TimeManager(schedule=[0, 1], dt_init=0.1, dt_min_max=dt_min_max)
        assert msg in str(excinfo.value)


class TestTimeControl:
    """The following tests check the corrections of the proposed time steps."""

    @pytest.mark.parametrize(
        "dt, expected",
        [
            # Within the bounds.
            (0.5, 0.5),
            # Below the minimum.
            (0.01, 0.1),
            # Above the maximum.
            (5.0, 2.0),
        ],
    )
    def test_bounds(self, dt, expected):
        time_manager = pa.TimeManager([0, 10], dt_init=1, dt_min_max=(0.1, 2))
        assert time_manager.set_time_step(dt) == pytest.approx(expected)

    def test_scheduled_times_are_hit(self):
        time_manager = pa.TimeManager([0, 1.5, 3], dt_init=1)
        times = []
        while not time_manager.final_time_reached():
            time_manager.set_time_step(1.0)
            time_manager.increase_time()
            times.append(time_manager.time)
        np.testing.assert_allclose(times, [1.0, 1.5, 2.5, 3.0])

    def test_schedule_may_undercut_minimum(self):
        time_manager = pa.TimeManager([0, 1.05], dt_init=1, dt_min_max=(0.5, 1))
        time_manager.set_time_step(1.0)
        time_manager.increase_time()
        assert time_manager.set_time_step(1.0) == pytest.approx(0.05)

    @pytest.mark.parametrize("dt", [0, -1])
    def test_non_positive_time_step(self, dt):
        time_manager = pa.TimeManager([0, 1], dt_init=0.1)
        with pytest.raises(ValueError):
            time_manager.set_time_step(dt)

    def test_next_scheduled_time(self):
        time_manager = pa.TimeManager([0, 1, 2], dt_init=0.5)
        assert time_manager.next_scheduled_time() == 1
        time_manager.reset_time(1.0)
        assert time_manager.next_scheduled_time() == 2
        time_manager.reset_time(2.0)
        assert time_manager.next_scheduled_time() == 2
        assert time_manager.final_time_reached()

    def test_reset_time(self):
        time_manager = pa.TimeManager([0, 10], dt_init=1)
        for _ in range(3):
            time_manager.increase_time()
            time_manager.increase_time_index()
        time_manager.reset_time(1.0, 1)
        assert time_manager.time == 1.0
        assert time_manager.time_index == 1
        # Without an index, only the time is reset.
        time_manager.reset_time(0.0)
        assert time_manager.time_index == 1

    def test_repr(self):
        time_manager = pa.TimeManager([0, 10], dt_init=1)
        assert "Initial and final simulation time = (0.0, 10.0)" in repr(time_manager)


class TestTimeInformation:
    def test_write_and_load(self, tmp_path):
        path = tmp_path / "out" / "times.json"
        time_manager = pa.TimeManager([0, 10], dt_init=1)
        for _ in range(2):
            time_manager.increase_time()
            time_manager.write_time_information(path)

        with open(path) as f:
            assert json.load(f) == {"time": [1.0, 2.0], "dt": [1.0, 1.0]}

        other = pa.TimeManager([0, 10], dt_init=1)
        other.load_time_information(path)
        assert other.time_history == [1.0, 2.0]
        assert other.dt_history == [1.0, 1.0]
