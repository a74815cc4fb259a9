"""Collection of objects related to convergence checking of participating solvers."""

from enum import Enum

import numpy as np


class ConvergenceStatus(Enum):
    CONVERGED = "converged"
    NOT_CONVERGED = "not_converged"
    DIVERGED = "diverged"

    def __str__(self):
        return self.value

    @classmethod
    def from_str(cls, status_str: str):
        """Convert a string to a ConvergenceStatus."""
        return cls[status_str.upper()]

    def is_converged(self) -> bool:
        """Check if the status indicates convergence."""
        return self == ConvergenceStatus.CONVERGED

    def is_not_converged(self) -> bool:
        """Check if the status indicates not converged."""
        return self == ConvergenceStatus.NOT_CONVERGED

    def is_diverged(self) -> bool:
        """Check if the status indicates divergence."""
        return self == ConvergenceStatus.DIVERGED


def check_solution(
    increment_norm: float, residual_norm: float, tol: float, divergence_tol: float
) -> ConvergenceStatus:
    """Classify a (non-)linear solve of a participating solver.

    Parameters:
        increment_norm: Norm of the last solution increment.
        residual_norm: Norm of the residual after the last increment.
        tol: Convergence tolerance, applied to both norms.
        divergence_tol: Residual norm above which the solve is considered diverged.

    Returns:
        The convergence status of the solve.

    """
    if np.isnan(increment_norm) or np.isnan(residual_norm):
        return ConvergenceStatus.DIVERGED
    if residual_norm > divergence_tol:
        return ConvergenceStatus.DIVERGED
    if increment_norm < tol and residual_norm < tol:
        return ConvergenceStatus.CONVERGED
    return ConvergenceStatus.NOT_CONVERGED
