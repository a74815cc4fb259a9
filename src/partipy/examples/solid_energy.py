"""Solid energy participant of a conjugate heat transfer simulation.

The participant solves transient heat conduction in a solid block, see
:class:`~partipy.applications.heat_conduction.HeatConductionSolver`. On the top
boundary, it receives the heat flux from a free-flow participant and returns the
temperature. Both participants are coupled through preCICE, configured by
``precice-config.xml`` in the working directory.

"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import partipy as pa
from partipy.applications.heat_conduction import HeatConductionSolver

logger = logging.getLogger(__name__)


def setup_solid_energy(peer, params: Optional[dict] = None) -> pa.CouplingSession:
    """Create the coupling session of the solid energy participant.

    Parameters:
        peer: The coupling peer, e.g. :class:`~partipy.PreciceParticipant`.
        params: Parameters of the participant. The keys ``"participant"``,
            ``"config_source"`` and ``"meshes"`` are those of
            :func:`partipy.read_config.read`. The keys ``"solver"`` and
            ``"time_manager"`` hold the parameters of the heat conduction solver and
            the time manager, respectively.

    Returns:
        The announced session, with the interface mesh registered.

    """
    params = params or {}
    solver_params = params.get("solver", {})
    mesh_name = solver_params.get("mesh_name", "SolidEnergyMesh")
    default_meshes = {
        mesh_name: {"write_data": [pa.TEMPERATURE], "read_data": [pa.HEAT_FLUX]}
    }

    solver = HeatConductionSolver(solver_params)
    time_manager = params.get("time_manager")
    if time_manager is None:
        time_manager = pa.TimeManager(
            schedule=[0, 100 * pa.SECOND], dt_init=1 * pa.SECOND
        )

    session = pa.CouplingSession(
        peer,
        solver,
        {
            "time_manager": time_manager,
            "meshes": params.get("meshes", default_meshes),
            "dimension": solver.params["dimension"],
        },
    )
    session.announce(
        params.get("participant", "SolidEnergy"),
        params.get("config_source", pa.DEFAULT_CONFIG_SOURCE),
        params.get("rank", 0),
        params.get("size", 1),
    )
    session.register_mesh(
        solver.params["mesh_name"],
        solver.interface_coordinates(),
        solver.interface_face_ids(),
    )
    return session


def run_solid_energy(
    config_file: Optional[Path] = None, params: Optional[dict] = None
) -> None:
    """Run the solid energy participant against preCICE.

    Parameters:
        config_file: Participant configuration, see :mod:`partipy.utils.read_config`.
        params: Further parameters, see :func:`setup_solid_energy`, and
            ``"progressbars"`` for the time loop.

    """
    params = dict(params or {})
    if config_file is not None:
        params.update(pa.read_config.read(config_file))

    session = setup_solid_energy(pa.PreciceParticipant(), params)
    num_steps = pa.run_coupled_model(
        session, {"progressbars": params.get("progressbars", False)}
    )
    logger.info(
        f"Solid energy participant finished after {num_steps} time steps, "
        f"{session.checkpoint.num_restores} window repetitions."
    )


# If executed as main, run simulation
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    config_file = Path("solid-energy.json")
    run_solid_energy(
        config_file if config_file.exists() else None,
        {
            "solver": {
                "num_cells": 40,
                "num_columns": 20,
                "height": 0.25 * pa.METER,
                "width": 1.0 * pa.METER,
                # Conductivity and volumetric heat capacity of granite.
                "conductivity": 2.8,
                "heat_capacity": 2.2e6,
                "initial_temperature": pa.CELSIUS_to_KELVIN(10.0),
                "bottom_temperature": pa.CELSIUS_to_KELVIN(10.0),
            },
            "progressbars": True,
        },
    )
