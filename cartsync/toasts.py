"""Toast sinks - where panels send user-facing signals."""
import logging
from typing import Optional, Protocol

from cartsync.logging import get_logger
from cartsync.models import Toast, ToastVariant

logger = get_logger(__name__)

_LEVELS = {
    ToastVariant.INFO: logging.INFO,
    ToastVariant.SUCCESS: logging.INFO,
    ToastVariant.WARNING: logging.WARNING,
    ToastVariant.ERROR: logging.ERROR,
}


class ToastSink(Protocol):
    def show(self, toast: Toast) -> None: ...


class LoggingToastSink:
    """Default sink for headless use: toasts go to the log."""

    def show(self, toast: Toast) -> None:
        logger.log(_LEVELS[toast.variant], f"[{toast.variant.value}] {toast.title}: {toast.message}")


class CollectingToastSink:
    """Keeps every toast in order."""

    def __init__(self):
        self.toasts: list[Toast] = []

    def show(self, toast: Toast) -> None:
        self.toasts.append(toast)

    @property
    def last(self) -> Optional[Toast]:
        return self.toasts[-1] if self.toasts else None

    def clear(self) -> None:
        self.toasts.clear()
