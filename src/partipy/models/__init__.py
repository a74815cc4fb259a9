"""Convergence status of solvers and the driver of coupled time loops."""
