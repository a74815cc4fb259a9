"""This module contains the driver of a participant in an implicitly coupled run."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import numpy as np

import partipy as pa
from partipy.coupling.checkpoint import CheckpointStatus
from partipy.coupling.errors import InvalidStepSize
from partipy.models.convergence_check import ConvergenceStatus
from partipy.utils.ui_and_logging import (
    logging_redirect_tqdm_with_level as logging_redirect_tqdm,
)
from partipy.utils.ui_and_logging import progressbar_class

# Module-wide logger
logger = logging.getLogger(__name__)


@pa.time_logger(sections=["models"])
def run_coupled_model(
    session: pa.CouplingSession, params: Optional[dict] = None
) -> int:
    """Run the time loop of a participant in an implicitly coupled simulation.

    The participant must be announced and its meshes registered. The driver sets the
    initial solution, initializes the session and steps until the peer ends the
    coupling or the local final time is reached. Each step of the loop

    1. saves a checkpoint if the peer requires one, i.e. at the start of a window,
    2. advances the local time and solves with the accepted step size,
    3. exchanges the coupling data and advances the peer,
    4. restores the checkpoint if the peer rejects the window. Otherwise, the step
       is accepted and, at the end of a window, the window is committed.

    The session is finalized in any case, also when an error propagates.

    Note:
        If the ``"progressbars"`` key in ``params`` is set to ``True`` (default is
        ``False``), the progress of the local time is shown on a progressbar.

    Parameters:
        session: Coupling session of the participant. It must have a time manager,
            see the ``"time_manager"`` parameter of
            :class:`~partipy.coupling.session.CouplingSession`.
        params: Parameters related to the solution procedure. Recognized keys are
            ``"progressbars"`` and ``"times_file"``. If the latter is given, the time
            history of the committed steps is written to this path.

    Raises:
        ValueError: If the session has no time manager.

    Returns:
        The number of accepted local time steps.

    """
    params = params or {}
    time_manager = session.time_manager
    if time_manager is None:
        raise ValueError("The coupled time loop requires a time manager.")
    solver = session.solver
    progressbars: bool = params.get("progressbars", False)

    try:
        solver.apply_initial_solution()
        dt = session.initialize()
        initial_time_step = dt
        num_steps = 0

        # Redirect the root logger, s.t. no logger interferes with the progressbars.
        with logging_redirect_tqdm([logging.root], active=progressbars):
            expected_time_steps = int(
                np.ceil(
                    (time_manager.time_final - time_manager.time) / initial_time_step
                )
            )
            time_progressbar = progressbar_class(
                total=expected_time_steps,
                desc="time loop",
                position=0,
                dynamic_ncols=True,
                disable=not progressbars,
            )

            while (
                session.is_coupling_ongoing()
                and not time_manager.final_time_reached()
            ):
                if session.checkpoint.requires_write():
                    session.checkpoint.save()

                # The bounds of the time manager may not carry the step past the end
                # of the coupling window.
                step = min(time_manager.set_time_step(dt), dt)
                time_manager.dt = step
                time_manager.increase_time()
                time_progressbar.set_description_str(
                    f"Time step {time_manager.time_index + 1}, "
                    + f"iteration {session.checkpoint.iteration}"
                )

                if hasattr(solver, "set_coupling_data"):
                    solver.set_coupling_data(session)
                status: ConvergenceStatus = solver.solve(step)
                if not status.is_converged():
                    # The coupling decides on the window, the solver may catch up in
                    # the next iteration.
                    logger.warning(
                        f"Solver {status} at time {time_manager.time:.3e}."
                    )
                if hasattr(solver, "get_coupling_data"):
                    solver.get_coupling_data(session)

                try:
                    dt, converged = session.exchange_and_advance(step)
                except InvalidStepSize:
                    if session.is_coupling_ongoing():
                        raise
                    # The peer reports the end of the run with the last advance.
                    logger.info("The peer ended the coupling.")
                    solver.advance_time_step()
                    time_manager.increase_time_index()
                    num_steps += 1
                    break

                if not converged:
                    session.checkpoint.restore()
                    continue

                if session.checkpoint.status == CheckpointStatus.AWAITING_DECISION:
                    session.checkpoint.commit()
                solver.advance_time_step()
                time_manager.increase_time_index()
                num_steps += 1
                logger.info(
                    f"Time step {time_manager.time_index} at time"
                    + f" {time_manager.time:.1e}"
                    + f" of {time_manager.time_final:.1e}"
                    + f" with time step {step:.1e}"
                )
                if "times_file" in params:
                    time_manager.write_time_information(Path(params["times_file"]))
                time_progressbar.update(n=step / initial_time_step)

            time_progressbar.close()
    finally:
        session.finalize()

    return num_steps
