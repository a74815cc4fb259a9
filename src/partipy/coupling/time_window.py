"""Negotiation of the step size between a participant and the coupling peer.

The peer prescribes the coupling windows. A participant may subcycle, i.e. take several
steps within one window, but must never step past the end of the current window, since
the peer's data and convergence decision refer to the window end. The accepted step is
therefore the minimum of what the participant proposes, of its stability bound and of
the step the peer suggests:

    dt_accepted = min(dt_local, dt_stable, dt_peer)

The only exception is the first step of the run. It is clamped from below by the
smallest window size the peer has reported, so that a participant with a small initial
time step does not under-run the first window of the coupling scheme.

"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import numpy as np

import partipy as pa
from partipy.coupling.errors import InvalidStepSize

if TYPE_CHECKING:
    from partipy.coupling.protocol import CouplingPeer

__all__ = ["TimeWindowNegotiator"]

module_sections = ["coupling"]
logger = logging.getLogger(__name__)


class TimeWindowNegotiator:
    """Reconciles locally proposed step sizes with the windows of the peer.

    Parameters:
        peer: The coupling peer.
        stability_bound: Largest step the local solver can take. None for no bound.

    """

    def __init__(
        self, peer: CouplingPeer, stability_bound: Optional[float] = None
    ) -> None:
        if stability_bound is not None and stability_bound <= 0:
            raise ValueError("Stability bound must be positive.")
        self._peer = peer
        self.stability_bound = stability_bound
        """Largest step the local solver can take."""

        self.peer_dt: Optional[float] = None
        """Step size last suggested by the peer."""
        self.peer_dt_min: float = np.inf
        """Smallest step size the peer has reported so far."""
        self.accepted_dt: Optional[float] = None
        """Last accepted step size."""
        self.num_accepted = 0

    def initial(self, local_dt: float, peer_dt: float) -> float:
        """Accept the first step of the run.

        Parameters:
            local_dt: Initial step proposed by the participant.
            peer_dt: Window size reported by the peer at initialization.

        Raises:
            InvalidStepSize: If ``peer_dt`` is not positive.

        Returns:
            The step size for the first computation.

        """
        self._record_peer_dt(peer_dt)
        dt = max(self._constrain(local_dt, peer_dt), self.peer_dt_min)
        logger.info(f"First step size {dt:.3e} (peer window {peer_dt:.3e}).")
        return self._accept(dt)

    @pa.time_logger(sections=module_sections)
    def accept(self, local_proposed_dt: float) -> float:
        """Advance the peer and accept the next step size.

        Parameters:
            local_proposed_dt: The step the participant just computed, which is also
                its proposal for the next step.

        Raises:
            ValueError: If ``local_proposed_dt`` is not positive.
            InvalidStepSize: If the peer suggests a non-positive step, which means that
                the run has ended or the peer failed. The caller must finalize.

        Returns:
            The accepted step size.

        """
        if local_proposed_dt <= 0:
            raise ValueError(
                f"Proposed step size must be positive, got {local_proposed_dt}."
            )
        peer_dt = float(self._peer.advance(local_proposed_dt))
        self._record_peer_dt(peer_dt)
        return self._accept(self._constrain(local_proposed_dt, peer_dt))

    def _constrain(self, local_dt: float, peer_dt: float) -> float:
        dt = local_dt
        if self.stability_bound is not None:
            dt = min(dt, self.stability_bound)
        if peer_dt < dt:
            # The peer constrains the window.
            dt = peer_dt
        return dt

    def _record_peer_dt(self, peer_dt: float) -> None:
        if not peer_dt > 0:
            raise InvalidStepSize(
                f"Peer suggested the step size {peer_dt}. The coupled run has ended "
                "or the peer failed."
            )
        self.peer_dt = peer_dt
        self.peer_dt_min = min(self.peer_dt_min, peer_dt)

    def _accept(self, dt: float) -> float:
        self.accepted_dt = dt
        self.num_accepted += 1
        return dt
