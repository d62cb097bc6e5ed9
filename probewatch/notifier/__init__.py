from .base import CompositeNotifier, Notifier
from .factory import build_notifier_from_env
from .log import LogNotifier
from .types import AlertEvent

__all__ = ["AlertEvent", "CompositeNotifier", "LogNotifier", "Notifier", "build_notifier_from_env"]
