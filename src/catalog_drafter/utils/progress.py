import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class ProgressEvent:
    """One checkpoint reported to the admin"""

    phase: str
    status: str  # active, complete, error, skipped
    detail: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


class ProgressTracker:
    """Collects phase checkpoints and one-time notices for a single pipeline run"""

    def __init__(self, callback: Optional[Callable[[ProgressEvent], None]] = None):
        self.callback = callback
        self.events: List[ProgressEvent] = []
        self.notices: List[str] = []
        self._shown: Set[str] = set()

    def update(self, phase: str, status: str, detail: str = "") -> ProgressEvent:
        event = ProgressEvent(phase=phase, status=status, detail=detail)
        self.events.append(event)
        logger.info(f"[{phase}] {status}: {detail}" if detail else f"[{phase}] {status}")

        if self.callback:
            self.callback(event)
        return event

    def notify_once(self, key: str, message: str) -> bool:
        """Record a notice unless one with the same key was already shown"""
        if key in self._shown:
            return False

        self._shown.add(key)
        self.notices.append(message)
        logger.warning(message)
        return True

    def phases(self, status: Optional[str] = None) -> List[str]:
        return [e.phase for e in self.events if status is None or e.status == status]


class CancellationToken:
    """Caller-owned cancel signal checked between pipeline phases"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
