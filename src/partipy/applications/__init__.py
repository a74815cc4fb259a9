"""
Reference solvers and test utilities for coupled simulations.

Modules:
    heat_conduction: Implicit finite volume solver for transient heat conduction in
        parallel 1d columns, with the top faces coupled to a partner participant.
    test_utils: Doubles of the coupling peer and of participating solvers.
"""

from . import heat_conduction
