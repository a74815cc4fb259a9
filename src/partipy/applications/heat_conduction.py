"""Transient heat conduction in a solid, as a participant of a conjugate heat transfer
simulation.

The solid is a stack of ``num_columns`` parallel rods of height ``height``, each
discretized by ``num_cells`` finite volume cells in the vertical direction. The bottom
faces carry a fixed temperature, the top faces form the coupling interface: The solver
receives the heat flux into the solid through the top faces and sends back the
temperature on them. Horizontal conduction between the rods is neglected.

The discretization is a two-point flux approximation with implicit Euler in time. Per
column and cell ``i``, the balance reads

    c h (T_i - T_i^old) / dt = q_{i-1/2} - q_{i+1/2},

with ``c`` the volumetric heat capacity, ``h`` the cell height and ``q`` the upward
heat flux ``-k dT/dy`` through the faces.

Faces are numbered column by column, from bottom to top, i.e. face ``j`` of column
``c`` has the index ``c * (num_cells + 1) + j``. The face indices of the top faces are
the local entity ids of the interface mesh.

"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import scipy.sparse as sps
import scipy.sparse.linalg as spla

import partipy as pa
from partipy.models.convergence_check import ConvergenceStatus, check_solution

__all__ = ["HeatConductionSolver"]

module_sections = ["numerics"]
logger = logging.getLogger(__name__)


class HeatConductionSolver:
    """Implicit finite volume solver for heat conduction with a coupled top boundary.

    Parameters:
        params: Parameters of the solver. Recognized keys, with default values, are

            - ``"num_cells"`` (10): Cells per column.
            - ``"num_columns"`` (1): Number of columns, i.e. of interface vertices.
            - ``"height"`` (1.0): Height of the solid.
            - ``"width"`` (1.0): Width of the solid, used for the interface
              coordinates only.
            - ``"conductivity"`` (1.0): Thermal conductivity ``k``.
            - ``"heat_capacity"`` (1.0): Volumetric heat capacity ``c``.
            - ``"initial_temperature"`` (0.0): Uniform initial temperature.
            - ``"bottom_temperature"``: Fixed temperature of the bottom faces.
              Defaults to the initial temperature.
            - ``"mesh_name"`` ("SolidEnergyMesh"): Name of the interface mesh.
            - ``"dimension"`` (2): Dimension of the interface coordinates, 2 or 3.
            - ``"tolerance"`` (1e-10): Tolerance of the relative residual of the
              linear solve.

    """

    def __init__(self, params: Optional[dict] = None) -> None:
        if params is None:
            params = {}
        default_params: dict = {
            "num_cells": 10,
            "num_columns": 1,
            "height": 1.0,
            "width": 1.0,
            "conductivity": 1.0,
            "heat_capacity": 1.0,
            "initial_temperature": 0.0,
            "bottom_temperature": None,
            "mesh_name": "SolidEnergyMesh",
            "dimension": 2,
            "tolerance": 1e-10,
        }
        default_params.update(params)
        self.params = default_params

        self.num_cells: int = int(self.params["num_cells"])
        self.num_columns: int = int(self.params["num_columns"])
        if self.num_cells < 1 or self.num_columns < 1:
            raise ValueError("At least one cell and one column are required.")
        if self.params["dimension"] not in (2, 3):
            raise ValueError("The interface is embedded in 2 or 3 dimensions.")

        self.cell_height: float = self.params["height"] / self.num_cells
        self.conductivity: float = self.params["conductivity"]
        self.heat_capacity: float = self.params["heat_capacity"]
        self.bottom_temperature: float = (
            self.params["initial_temperature"]
            if self.params["bottom_temperature"] is None
            else self.params["bottom_temperature"]
        )

        num_dofs = self.num_cells * self.num_columns
        self.temperature = np.zeros(num_dofs)
        """Cell temperatures of the current time level, column by column."""
        self.temperature_previous = np.zeros(num_dofs)
        """Cell temperatures of the previous time level."""
        self.interface_flux = np.zeros(self.num_columns)
        """Heat flux into the solid through the top face of each column."""

        self._stiffness = self._assemble_stiffness()

    # Interface geometry

    def interface_face_ids(self) -> np.ndarray:
        """Indices of the top faces, i.e. the local entity ids of the interface."""
        return np.arange(self.num_columns) * (self.num_cells + 1) + self.num_cells

    def interface_coordinates(self) -> np.ndarray:
        """Face centers of the top faces, ``shape=(num_columns, dimension)``."""
        nd = self.params["dimension"]
        dx = self.params["width"] / self.num_columns
        coordinates = np.zeros((self.num_columns, nd))
        coordinates[:, 0] = (np.arange(self.num_columns) + 0.5) * dx
        coordinates[:, 1] = self.params["height"]
        return coordinates

    def interface_temperature(self) -> np.ndarray:
        """Temperature on the top faces, reconstructed from the flux condition."""
        top_cells = self._top_cells()
        half_cell = 0.5 * self.cell_height
        return (
            self.temperature[top_cells]
            + half_cell * self.interface_flux / self.conductivity
        )

    # Coupling data

    def set_coupling_data(self, session: pa.CouplingSession) -> None:
        """Take the heat flux through the interface from the session."""
        mesh_name = self.params["mesh_name"]
        self.interface_flux = session.field(pa.HEAT_FLUX, mesh_name).read_on_entities(
            self.interface_face_ids()
        )

    def get_coupling_data(self, session: pa.CouplingSession) -> None:
        """Hand the interface temperature to the session."""
        mesh_name = self.params["mesh_name"]
        session.field(pa.TEMPERATURE, mesh_name).write_on_entities(
            self.interface_face_ids(), self.interface_temperature()
        )

    # Solver protocol

    def apply_initial_solution(self) -> None:
        self.temperature[:] = self.params["initial_temperature"]
        self.temperature_previous[:] = self.temperature

    def current_state(self) -> np.ndarray:
        return self.temperature.copy()

    def restore_state(self, state: np.ndarray) -> None:
        state = np.asarray(state, dtype=float)
        if state.shape != self.temperature.shape:
            raise ValueError(
                f"Expected state of shape {self.temperature.shape}, got {state.shape}."
            )
        # Checkpoints are taken at the start of a time level.
        self.temperature = state.copy()
        self.temperature_previous = state.copy()

    @pa.time_logger(sections=module_sections)
    def solve(self, dt: float) -> ConvergenceStatus:
        """Compute the temperature of the next time level.

        Parameters:
            dt: Time step size.

        Raises:
            ValueError: If ``dt`` is not positive.

        Returns:
            Status of the linear solve, based on its relative residual.

        """
        if dt <= 0:
            raise ValueError(f"Time step must be positive, got {dt}.")
        mass = self.heat_capacity * self.cell_height / dt
        num_dofs = self.temperature.size
        lhs = (self._stiffness + mass * sps.identity(num_dofs, format="csr")).tocsc()
        rhs = mass * self.temperature_previous + self._boundary_source()

        new_temperature = spla.spsolve(lhs, rhs)
        residual = np.linalg.norm(lhs @ new_temperature - rhs)
        scale = max(float(np.linalg.norm(rhs)), 1.0)
        increment = np.linalg.norm(new_temperature - self.temperature) / scale
        self.temperature = new_temperature

        tol = self.params["tolerance"]
        # A direct solve leaves no increment to converge; only the residual counts.
        status = check_solution(
            increment_norm=0.0,
            residual_norm=residual / scale,
            tol=tol,
            divergence_tol=1.0,
        )
        logger.debug(
            f"Solved with dt {dt:.3e}: relative residual {residual / scale:.2e}, "
            f"relative change {increment:.2e}, {status}."
        )
        return status

    def advance_time_step(self) -> None:
        self.temperature_previous = self.temperature.copy()

    # Helpers

    def _top_cells(self) -> np.ndarray:
        return np.arange(self.num_columns) * self.num_cells + self.num_cells - 1

    def _bottom_cells(self) -> np.ndarray:
        return np.arange(self.num_columns) * self.num_cells

    def _assemble_stiffness(self) -> sps.csr_matrix:
        """Two-point flux matrix, including the Dirichlet condition at the bottom."""
        n = self.num_cells
        transmissibility = self.conductivity / self.cell_height

        diagonal = np.full(n, 2 * transmissibility)
        # The top face carries a Neumann condition, the bottom face one of Dirichlet
        # type with half a cell distance to the cell center.
        diagonal[-1] -= transmissibility
        diagonal[0] += transmissibility
        off_diagonal = np.full(n - 1, -transmissibility)
        column = sps.diags(
            [off_diagonal, diagonal, off_diagonal],
            offsets=[-1, 0, 1],
            shape=(n, n),
            format="csr",
        )
        return sps.block_diag([column] * self.num_columns, format="csr")

    def _boundary_source(self) -> np.ndarray:
        source = np.zeros(self.temperature.size)
        source[self._bottom_cells()] += (
            2 * self.conductivity / self.cell_height * self.bottom_temperature
        )
        source[self._top_cells()] += self.interface_flux
        return source
