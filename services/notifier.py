from abc import ABC, abstractmethod
from typing import Optional

from core.logging_handler import setup_logger
from domain.models import Phase

logger = setup_logger(__name__)

MESSAGES = {
    Phase.FOCUS: ("Focus Session Complete!", "Great work! Time for a well-deserved break."),
    Phase.SHORT_BREAK: ("Break Time Over!", "Break finished. Ready to focus again?"),
    Phase.LONG_BREAK: ("Break Time Over!", "Break finished. Ready to focus again?"),
}


def completion_message(phase: Phase):
    """(title, body) shown when `phase` runs out."""
    return MESSAGES[phase]


class NotificationPort(ABC):
    """Port for desktop notifications and completion sounds."""

    @abstractmethod
    async def notify(self, title: str, body: Optional[str] = None) -> None:
        """Show a notification (e.g., 'Focus Session Complete!')."""
        pass

    @abstractmethod
    async def play_sound(self, volume: int = 70) -> None:
        """Play the completion sound at `volume` (0-100)."""
        pass


class LogNotifier(NotificationPort):
    """Headless notifier: writes notifications to the log."""

    async def notify(self, title: str, body: Optional[str] = None) -> None:
        logger.info("[notification] %s%s", title, f" - {body}" if body else "")

    async def play_sound(self, volume: int = 70) -> None:
        logger.info("[sound] completion chime at volume %s", volume)
