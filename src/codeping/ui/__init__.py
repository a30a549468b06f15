"""UI sinks and status publication."""

from .base import (
    ACTION_OPEN_VIEW,
    ACTION_REFRESH,
    ACTION_SIGN_IN,
    StatusKind,
    StatusView,
    UiSink,
    error_status,
    normal_status,
    unauthenticated_status,
)
from .console import ConsoleView, render_pull_requests

__all__ = [
    "ACTION_OPEN_VIEW",
    "ACTION_REFRESH",
    "ACTION_SIGN_IN",
    "ConsoleView",
    "StatusKind",
    "StatusView",
    "UiSink",
    "error_status",
    "normal_status",
    "render_pull_requests",
    "unauthenticated_status",
]
