import logging
import time
from typing import Callable, Dict, Optional, Tuple

from .route_editor import RouteEditor

logger = logging.getLogger(__name__)


class EditorSessionRegistry:
    """
    Open editor sessions keyed by session id.

    A session that is neither read nor written for `expiry` seconds is
    dropped the next time the registry is used, so editors abandoned without
    a save or discard do not accumulate.
    """

    def __init__(self, expiry: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.expiry = expiry
        self.clock = clock
        self._sessions: Dict[str, Tuple[RouteEditor, float]] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        self.expire_idle()
        return session_id in self._sessions

    def __setitem__(self, session_id: str, editor: RouteEditor) -> None:
        self.expire_idle()
        self._sessions[session_id] = (editor, self.clock())

    def get(self, session_id: str) -> Optional[RouteEditor]:
        self.expire_idle()
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        editor = entry[0]
        self._sessions[session_id] = (editor, self.clock())
        return editor

    def pop(self, session_id: str, default: Optional[RouteEditor] = None) -> Optional[RouteEditor]:
        entry = self._sessions.pop(session_id, None)
        return entry[0] if entry else default

    def clear(self) -> None:
        self._sessions.clear()

    def expire_idle(self) -> int:
        if not self.expiry:
            return 0
        cutoff = self.clock() - self.expiry
        stale = [sid for sid, (_, last_used) in self._sessions.items() if last_used < cutoff]
        for session_id in stale:
            del self._sessions[session_id]
            logger.info(f"Expired idle editor session {session_id}")
        return len(stale)
