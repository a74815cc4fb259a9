"""Exceptions raised by the coupling adapter.

All exceptions in this module are fatal to a coupling session: They are raised to the
caller immediately and never retried internally, since none of them is transient. The
only valid response of a driver is to abort after attempting
:meth:`~partipy.coupling.session.CouplingSession.finalize`.

Note:
    A coupling window that did not converge is not an error. It is signalled by the
    peer through :attr:`~partipy.coupling.actions.Action.READ_CHECKPOINT` and handled
    by :class:`~partipy.coupling.checkpoint.CheckpointController`.

"""

__all__ = [
    "CouplingError",
    "ProtocolViolation",
    "InvalidCheckpointSequence",
    "NoCheckpointSaved",
    "NotAnnounced",
    "IndexMappingError",
    "UnknownEntity",
    "UnknownVertex",
    "UnknownMesh",
    "UnknownField",
    "DuplicateMesh",
    "HandshakeFailed",
    "InvalidStepSize",
    "DimensionMismatch",
]


class CouplingError(Exception):
    """Base class for all errors of the coupling adapter."""


class ProtocolViolation(CouplingError):
    """The operations of the coupling protocol were called in an invalid order."""


class InvalidCheckpointSequence(ProtocolViolation):
    """A checkpoint was saved while another one is still outstanding."""


class NoCheckpointSaved(ProtocolViolation):
    """A checkpoint was to be restored, but none has been saved."""


class NotAnnounced(ProtocolViolation):
    """The participant used the session before announcing itself to the peer."""


class IndexMappingError(CouplingError, KeyError):
    """Base class for misses in the mapping between local entities and vertices."""

    def __str__(self) -> str:
        # KeyError quotes its argument, which garbles the message.
        return str(self.args[0]) if self.args else ""


class UnknownEntity(IndexMappingError):
    """A local entity is not part of the coupling interface."""


class UnknownVertex(IndexMappingError):
    """A vertex identifier was not assigned by the peer."""


class UnknownMesh(IndexMappingError):
    """No interface mesh is registered under the requested name."""


class UnknownField(IndexMappingError):
    """No field buffer is registered under the requested name."""


class DuplicateMesh(CouplingError):
    """An interface mesh was registered twice."""


class HandshakeFailed(CouplingError):
    """The peer rejected the configuration of the participant."""


class InvalidStepSize(CouplingError):
    """The peer reported a non-positive time window."""


class DimensionMismatch(CouplingError):
    """Local and peer geometric dimensions disagree."""
