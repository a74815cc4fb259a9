""" Timing of the coupling operations for PartiPy.

Timing is controlled by the configuration file partipy.cfg, which should be placed in
the current working directory (where the python script is initiated). All
logging-related information is located in a section in the cfg-file with heading
logging; see sample file below.

By default, timing is switched off. It can be turned on by setting the keyword
'active' to True.

Most of the time of a partitioned simulation is spent blocking on the peer, thus the
timings of e.g. ``advance`` include the time the partner participant needs to finish
its own solve. To log only parts of the code, all functions are classified as
relevant for the following (overlapping) categories

    all: Used to log all methods.
    coupling: Handshake, advance and finalization of a coupling session.
    mesh: Registration of interface meshes.
    data: Exchange of field buffers with the peer.
    checkpoint: Saving and restoring solver state.
    models: The coupled time loop.
    numerics: The local solvers in partipy.applications.

Example logging section of partipy.cfg:

    [logging]
    # Activate logging. Without this, the rest of the section has no effect
    active: True
    # To log all functions in PartiPy, there is no need for more information.

    # To only log specific sections, use e.g.
    sections: coupling
    # multiple sections are separated by commas:
    sections: coupling, checkpoint

"""
import functools
import inspect
import logging
import os
import time
from typing import Dict

import partipy as pa

__all__ = ["time_logger"]


# Try to access configuration information, as activated by the import of PartiPy
try:
    config: Dict = pa.config["logging"]
    raw_sections = config.get("sections", "all")
    active_sections = [s.strip().lower() for s in raw_sections.split(",")]
    logger_is_active = config.get("active", "false").strip().lower() == "true"
    always_log = "all" in active_sections

except KeyError:
    config = {}
    active_sections = ["all"]
    logger_is_active = False
    always_log = True

t_logger = logging.getLogger("Timer")
t_logger.setLevel(logging.INFO)


if logger_is_active and not t_logger.hasHandlers():
    # Add handler to write to file.
    time_handler = logging.FileHandler(config.get("file", "PartiPyTimings.log"))
    time_handler.setLevel(logging.INFO)
    time_formatter = logging.Formatter("%(message)s")
    time_handler.setFormatter(time_formatter)
    t_logger.addHandler(time_handler)

# Find where in the file path the directory 'partipy' is located.
# We will use this below to strip away the common parts of file names.
separator = os.sep
path_length = __file__.split(separator).index("partipy")


def time_logger(sections):
    """A decorator that measures ellapsed time for a function.

    Parameters:
        sections: Categories the decorated function belongs to. The function is timed
            if any of them is active in partipy.cfg.

    """

    def inner_func(func):
        @functools.wraps(func)
        def log_time(*args, **kwargs):
            if not logger_is_active:
                # Shortcut if logging is not activated.
                return func(*args, **kwargs)
            elif always_log or any([s in active_sections for s in sections]):
                # Get the name of the file, but strip away the part above
                # '/src/partipy'
                fn = separator.join(
                    inspect.getfile(func).split(separator)[path_length + 1 :]
                )
                name = f"{func.__qualname__} in file {fn}."

                t_logger.log(level=logging.INFO, msg=f"Calling {name}")

                start_time = time.perf_counter()
                value = func(*args, **kwargs)
                run_time = time.perf_counter() - start_time

                t_logger.log(
                    level=logging.INFO,
                    msg=f"Finished {name} Elapsed time: {run_time:.8f} s",
                )

                return value
            else:
                return func(*args, **kwargs)

        return log_time

    return inner_func
