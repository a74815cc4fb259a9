"""
This module contains the local time stepping of a participant in a coupled simulation.

In a partitioned simulation, the time step of a participant is constrained from three
sides: By its own stability or accuracy requirements, by the schedule of the
participant (final time and intermediate times to be hit exactly) and by the coupling
peer, which prescribes the time windows. The first two are handled here, the latter by
:class:`~partipy.coupling.time_window.TimeWindowNegotiator`.

Since a time window can be repeated after non-convergence of the coupling, the time of
the manager must be resettable. The checkpoint controller stores :attr:`time` and
:attr:`time_index` when a window starts, and puts them back on rollback.

Algorithm Workflow in Pseudocode (:meth:`TimeManager.set_time_step`):

    INPUT
        dt // proposed time step

    IF dt <= 0 THEN
        RAISE Error
    ENDIF

    IF dt < dt_min THEN
        SET dt = dt_min
    ENDIF

    IF dt > dt_max THEN
        SET dt = dt_max
    ENDIF

    IF time + dt > next scheduled time THEN
        SET dt = next scheduled time - time
    ENDIF

    RETURN dt

"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
from numpy.typing import ArrayLike

__all__ = ["TimeManager"]

logger = logging.getLogger(__name__)


class TimeManager:
    """Time and time step of a participating solver.

    Parameters:
        schedule: Array-like object containing the target times for the simulation.
            The `schedule` must contain minimally two elements, corresponding to the
            initial and final simulation times. Schedules of size > 2 must contain
            strictly increasing times. Time steps are shortened so that all scheduled
            times are hit.
        dt_init: Initial time step. The initial time step is required to be positive and
            less or equal than the final simulation time.
        dt_min_max: Minimum and maximum permissible time steps.
            If None, then the minimum time step is set to 0.1% of the final simulation
            time and the maximum time step is set to the length of the simulation.
        rtol: Relative tolerance parameter for float point equality.
        atol: Absolute tolerance parameter for float point equality.

    Example:
        # The following is an example on how to initialize a time manager
        time_manager = pa.TimeManager(schedule=[0, 100], dt_init=1, dt_min_max=(0.1, 5))
        # To inspect the attributes of the object
        print(time_manager)

    Attributes:
        dt (float): Time step.
        dt_init (float): Initial time step.
        dt_min_max (tuple[float, float]): Min and max time steps.
        schedule (np.ndarray): Scheduled times including initial and final times.
        time (float): Current time.
        time_final (float): Final simulation time.
        time_index (int): Number of completed time steps.
        time_init (float): Initial simulation time.

    """

    def __init__(
        self,
        schedule: ArrayLike,
        dt_init: Union[int, float],
        dt_min_max: Optional[tuple[Union[int, float], Union[int, float]]] = None,
        rtol: float = 1e-10,
        atol: float = 1e-16,
    ) -> None:
        schedule = np.array(schedule, dtype=float)
        # Sanity checks for schedule
        if np.size(schedule) < 2:
            raise ValueError("Expected schedule with at least two elements.")
        elif any(time < 0 for time in schedule):
            raise ValueError("Encountered at least one negative time in schedule.")
        elif not self._is_strictly_increasing(schedule):
            raise ValueError("Schedule must contain strictly increasing times.")

        # Sanity checks for initial time step
        if dt_init <= 0:
            raise ValueError("Initial time step must be positive.")
        elif dt_init > schedule[-1] - schedule[0]:
            raise ValueError(
                "Initial time step cannot be larger than the simulated time span."
            )

        if dt_min_max is None:
            span = schedule[-1] - schedule[0]
            dt_min_max = (min(0.001 * span, dt_init), span)
        elif dt_min_max[0] <= 0:
            raise ValueError("Minimum time step must be positive.")
        elif dt_min_max[0] > dt_min_max[1]:
            raise ValueError("Minimum time step cannot exceed maximum time step.")
        elif not dt_min_max[0] <= dt_init <= dt_min_max[1]:
            raise ValueError("Initial time step must lie within dt_min_max.")

        self.rtol = rtol
        self.atol = atol

        self.schedule = schedule
        self.time_init = float(schedule[0])
        self.time_final = float(schedule[-1])
        self.dt_init = dt_init
        self.dt_min_max = dt_min_max

        self.time: float = self.time_init
        self.dt: float = self.dt_init
        self.time_index: int = 0

        self.time_history: list[float] = []
        """Times at which :meth:`write_time_information` was called."""
        self.dt_history: list[float] = []
        """Time steps at which :meth:`write_time_information` was called."""

    def __repr__(self) -> str:
        s = "Time manager with attributes:\n"
        s += "Initial and final simulation time = "
        s += f"({self.time_init}, {self.time_final})\n"
        s += f"Initial time step = {self.dt_init}\n"
        s += f"Minimum and maximum time steps = {self.dt_min_max}\n"
        s += f"Current time step and time are {self.dt} and {self.time}."
        return s

    def final_time_reached(self) -> bool:
        """Check whether the time manager has reached the end of the schedule.

        Returns:
            Whether the final time has reached or been overstepped.

        """
        return self.time > self.time_final or bool(
            np.isclose(self.time, self.time_final, rtol=self.rtol, atol=self.atol)
        )

    def set_time_step(self, dt: float) -> float:
        """Set the time step, corrected by the bounds and the schedule.

        See the module documentation for the order of corrections.

        Parameters:
            dt: Proposed time step.

        Raises:
            ValueError: If ``dt`` is not positive.

        Returns:
            The time step that will be used.

        """
        if dt <= 0:
            raise ValueError(f"Time step must be positive, got {dt}.")
        self.dt = dt
        self._correction_based_on_dt_min()
        self._correction_based_on_dt_max()
        self._correction_based_on_schedule()
        return self.dt

    def increase_time(self) -> None:
        """Increase simulation time by the current time step."""
        self.time += self.dt

    def increase_time_index(self) -> None:
        """Increase time index counter by one."""
        self.time_index += 1

    def reset_time(self, time: float, time_index: Optional[int] = None) -> None:
        """Move the simulation time back, e.g. to the start of a coupling window.

        Parameters:
            time: The time to reset to.
            time_index: The time index to reset to. Unchanged if not given.

        """
        self.time = time
        if time_index is not None:
            self.time_index = time_index

    def next_scheduled_time(self) -> float:
        """First scheduled time strictly after the current time.

        The final time is returned once it has been reached.

        """
        later = self.schedule[
            (self.schedule > self.time)
            & ~np.isclose(self.schedule, self.time, rtol=self.rtol, atol=self.atol)
        ]
        return float(later[0]) if later.size > 0 else self.time_final

    def _correction_based_on_dt_min(self) -> None:
        """Correct time step if dt < dt_min."""
        if self.dt < self.dt_min_max[0]:
            logger.debug(
                f"Proposed dt < dt_min. Using dt_min = {self.dt_min_max[0]} instead."
            )
            self.dt = self.dt_min_max[0]

    def _correction_based_on_dt_max(self) -> None:
        """Correct time step if dt > dt_max."""
        if self.dt > self.dt_min_max[1]:
            logger.debug(
                f"Proposed dt > dt_max. Using dt_max = {self.dt_min_max[1]} instead."
            )
            self.dt = self.dt_min_max[1]

    def _correction_based_on_schedule(self) -> None:
        """Correct time step if time + dt > scheduled_time.

        The correction may undercut dt_min, since scheduled times must be hit.

        """
        schedule_time = self.next_scheduled_time()
        if self.time + self.dt > schedule_time and schedule_time > self.time:
            self.dt = schedule_time - self.time
            logger.debug(f"Correcting time step to match scheduled time {self.dt}.")

    # Helpers
    @staticmethod
    def _is_strictly_increasing(check_array: np.ndarray) -> bool:
        """Checks if a list is strictly increasing.

        Parameters:
            check_array: Array to be tested.

        Returns: True or False.

        """
        return all(a < b for a, b in zip(check_array, check_array[1:]))

    # I/O
    def write_time_information(self, path: Optional[Path] = None) -> None:
        """Keep track of history of time and time step size and store as json file
        storing lists the evolution of both as lists.

        The driver calls this when a coupling window is committed, so the history
        contains the ends of the accepted windows only.

        Parameters:
            path: specified path for storing time and dt; if 'None' provided,
                ``times.json`` in the working directory is used.

        """
        self.time_history.append(float(self.time))
        self.dt_history.append(float(self.dt))

        if path is None:
            path = Path("times.json")

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as out_file:
            json.dump({"time": self.time_history, "dt": self.dt_history}, out_file)

    def load_time_information(self, path: Optional[Path] = None) -> None:
        """Load the history of time and time step size.

        Mirrors :meth:`write_time_information`.

        """
        with open(path if path is not None else Path("times.json")) as in_file:
            data = json.load(in_file)
            self.time_history = data["time"]
            self.dt_history = data["dt"]
