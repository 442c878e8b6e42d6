"""
Capturing registry.
Process-wide map of anchors currently being recorded.
"""

from typing import Dict, Iterator, Optional, Tuple

from .session import StreamSession


class CapturingRegistry:
    """
    Maps capture keys to the active stream session.

    At most one session is held per key. The check-and-store in
    ``insert_if_absent`` runs without awaiting, so it is atomic for all
    tasks on the event loop.
    """

    def __init__(self):
        self._sessions: Dict[str, StreamSession] = {}

    def insert_if_absent(self, key: str, session: StreamSession) -> Tuple[StreamSession, bool]:
        """
        Store ``session`` under ``key`` unless another session is there.

        Returns:
            The session now registered for the key, and whether it was inserted.
        """
        current = self._sessions.setdefault(key, session)
        return current, current is session

    def get(self, key: str) -> Optional[StreamSession]:
        return self._sessions.get(key)

    def remove(self, key: str, session: Optional[StreamSession] = None) -> bool:
        """
        Remove the entry for ``key``.

        When ``session`` is given the entry is only removed if it is that
        exact session.

        Returns:
            True if an entry was removed.
        """
        current = self._sessions.get(key)
        if current is None:
            return False
        if session is not None and current is not session:
            return False
        del self._sessions[key]
        return True

    def items(self) -> Iterator[Tuple[str, StreamSession]]:
        return iter(list(self._sessions.items()))

    def __contains__(self, key: str) -> bool:
        return key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
