"""   PartiPy.

Root directory for the PartiPy package. Contains the following sub-packages:

coupling: Interface meshes, index mapping, field buffers, checkpointing, time window
    negotiation and the coupling session driven by a participant.

numerics: Local time stepping of a participating solver.

models: Convergence status and the driver for implicitly coupled time loops.

applications: Reference solvers and test doubles for the coupling peer.

utils: Constants, logging, configuration files.


isort:skip_file

"""

import configparser
import os
from pathlib import Path


__version__ = "0.3.0"

# Try to read the config file from the directory where python process was launched
cwd = Path(os.getcwd())
pth = cwd / Path("partipy.cfg")
cfg = configparser.ConfigParser()
try:
    cfg.read(pth)
    config = {section: dict(cfg[section]) for section in cfg.sections()}
except configparser.Error:
    # the assumption is that no configurations are given
    config = {}

# ------------------------------------
# Simplified namespaces. The rule of thumb is that classes and modules that a
# user can be exposed to should have a shortcut here.

from partipy.utils.common_constants import *
from partipy.utils.partipy_types import *

from partipy.utils.logging import time_logger
from partipy.utils import read_config

# Errors and actions
from partipy.coupling.errors import (
    CouplingError,
    ProtocolViolation,
    InvalidCheckpointSequence,
    NoCheckpointSaved,
    NotAnnounced,
    IndexMappingError,
    UnknownEntity,
    UnknownVertex,
    UnknownMesh,
    UnknownField,
    DuplicateMesh,
    HandshakeFailed,
    InvalidStepSize,
    DimensionMismatch,
)
from partipy.coupling.actions import Action

# Coupling core
from partipy.coupling.vertex_index_mapper import InterfaceMesh, VertexIndexMapper
from partipy.coupling.field_buffer import FieldBuffer
from partipy.coupling.checkpoint import (
    CheckpointController,
    CheckpointState,
    CheckpointStatus,
)
from partipy.coupling.time_window import TimeWindowNegotiator
from partipy.coupling.session import CouplingSession, SessionState
from partipy.coupling.precice_peer import PreciceParticipant

# Time stepping control
from partipy.numerics.time_step_control import TimeManager

# Related to models and solvers
from partipy.models.convergence_check import ConvergenceStatus
from partipy.models.run_models import run_coupled_model

from partipy import applications
