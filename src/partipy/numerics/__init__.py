"""Local time stepping of participating solvers."""
