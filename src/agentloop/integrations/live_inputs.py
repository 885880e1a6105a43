"""Registry of user inputs that are still being worked on.

A higher layer ends an input (for example when the user sends a new request)
and every agent working on it stops at its next loop boundary. The run is
then marked cancelled rather than failed.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class LiveUserInputs:
    """Tracks live user input ids per client session."""

    def __init__(self, *, enabled: bool = True) -> None:
        self._enabled = enabled
        self._live: dict[str, set[str]] = {}

    def start(self, client_session_id: str, user_input_id: str) -> None:
        self._live.setdefault(client_session_id, set()).add(user_input_id)

    def end(self, client_session_id: str, user_input_id: str) -> None:
        inputs = self._live.get(client_session_id)
        if inputs is None:
            return
        inputs.discard(user_input_id)
        if not inputs:
            del self._live[client_session_id]

    def cancel_session(self, client_session_id: str) -> None:
        """End every live input of a session."""
        dropped = self._live.pop(client_session_id, set())
        if dropped:
            logger.info("Cancelled %d live input(s) for session %s", len(dropped), client_session_id)

    def is_live(self, client_session_id: str, user_input_id: str) -> bool:
        if not self._enabled:
            return True
        return user_input_id in self._live.get(client_session_id, set())

    def live_inputs(self, client_session_id: str) -> list[str]:
        return sorted(self._live.get(client_session_id, set()))
