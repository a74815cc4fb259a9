"""Actions the coupling peer may require from a participant."""

from enum import Enum


class Action(Enum):
    """Closed set of actions required by the peer during a coupled simulation.

    The peer raises a flag for an action, the participant performs it and reports
    back through ``mark_action_fulfilled``.

    """

    WRITE_CHECKPOINT = "write-iteration-checkpoint"
    """Save the solver state at the start of a coupling window."""

    READ_CHECKPOINT = "read-iteration-checkpoint"
    """The window did not converge; roll the solver state back to the checkpoint."""

    WRITE_INITIAL_DATA = "write-initial-data"
    """Provide coupling data before the first window."""

    def __str__(self):
        return self.value

    @classmethod
    def from_str(cls, action_str: str) -> "Action":
        """Convert a string to an Action.

        Both the member name (``"write_checkpoint"``) and the value used by the peer
        (``"write-iteration-checkpoint"``) are accepted.

        Raises:
            ValueError: If the string does not denote an action.

        """
        for action in cls:
            if action_str in (action.value, action.name, action.name.lower()):
                return action
        raise ValueError(f"Unknown coupling action {action_str}.")
