"""
Defines types commonly used in PartiPy.
"""

from typing import Hashable, Sequence, Union

import numpy as np

__all__ = [
    "number",
    "LocalEntityId",
    "PeerVertexId",
    "CoordinateArray",
    "IdArray",
]

number = Union[float, int]
"""Type for numbers."""

LocalEntityId = Hashable
"""Identifier of a geometric entity (face, vertex, cell) in the local solver.

Typically an integer index of a sub-control-volume face, but any hashable will do.

"""

PeerVertexId = int
"""Identifier assigned to an interface vertex by the coupling peer."""

CoordinateArray = Union[np.ndarray, Sequence[Sequence[float]], Sequence[float]]
"""Type for the coordinates of interface vertices. Point-wise rows, or a flat
sequence of length ``num_points * nd``."""

IdArray = Union[np.ndarray, Sequence[int]]
"""Type for sequences of vertex identifiers."""
