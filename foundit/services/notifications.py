"""
Notification and confirmation surfaces.

Notifications are fire-and-forget; confirmations answer through a callback
before a destructive or state-changing command proceeds.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    success = "success"
    info = "info"
    error = "error"


@dataclass(frozen=True)
class Notification:
    title: str
    message: str
    severity: Severity = Severity.info

    def as_dict(self) -> dict:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data


class Notifier(Protocol):
    def show(self, title: str, message: str, severity: Severity = Severity.info) -> None:
        ...


class LoggingNotifier:
    def show(self, title: str, message: str, severity: Severity = Severity.info) -> None:
        level = logging.WARNING if severity == Severity.error else logging.INFO
        logger.log(level, "%s: %s", title, message)


@dataclass
class CollectingNotifier:
    """Keeps notifications so a request can return them with its response."""

    items: list[Notification] = field(default_factory=list)

    def show(self, title: str, message: str, severity: Severity = Severity.info) -> None:
        self.items.append(Notification(title, message, severity))

    def as_list(self) -> list[dict]:
        return [n.as_dict() for n in self.items]


@dataclass(frozen=True)
class ConfirmPrompt:
    title: str
    message: str
    confirm_label: str
    cancel_label: str = "Cancel"
    destructive: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


Confirmer = Callable[[ConfirmPrompt, Callable[[bool], None]], None]


class RequestConfirmation:
    """Confirmer for HTTP requests: the answer travels with the request."""

    def __init__(self, confirmed: bool):
        self.confirmed = confirmed
        self.prompt: Optional[ConfirmPrompt] = None

    def __call__(self, prompt: ConfirmPrompt, on_result: Callable[[bool], None]) -> None:
        self.prompt = prompt
        on_result(self.confirmed)
