"""
Addon Events
Typed progress events emitted by commands and the reconciler
"""

from dataclasses import dataclass, field
from typing import Callable, List, Tuple, Union


@dataclass(frozen=True)
class ScanStarted:
    pass


@dataclass(frozen=True)
class ScanProgress:
    folder: str


@dataclass(frozen=True)
class ScanComplete:
    count: int


@dataclass(frozen=True)
class UpdateCheckStarted:
    folder: str


@dataclass(frozen=True)
class UpdateCheckComplete:
    folder: str
    update_available: bool
    remote_version: str


@dataclass(frozen=True)
class InstallStarted:
    name: str


@dataclass(frozen=True)
class InstallDownloading:
    name: str


@dataclass(frozen=True)
class InstallExtracting:
    name: str


@dataclass(frozen=True)
class InstallCopying:
    name: str


@dataclass(frozen=True)
class InstallComplete:
    name: str


@dataclass(frozen=True)
class RemoveComplete:
    folder: str


@dataclass(frozen=True)
class FolderOwnership:
    parent_folder: str
    owned_folders: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ErrorEvent:
    context: str
    message: str


AddonEvent = Union[
    ScanStarted, ScanProgress, ScanComplete,
    UpdateCheckStarted, UpdateCheckComplete,
    InstallStarted, InstallDownloading, InstallExtracting, InstallCopying, InstallComplete,
    RemoveComplete, FolderOwnership, ErrorEvent,
]

EventListener = Callable[[AddonEvent], None]


class CommandContext:
    """Ordered event channel handed to commands.

    Listeners are called synchronously, in registration order, for every
    emitted event. The context carries nothing else.
    """

    def __init__(self, listeners=None):
        """Initialize command context.

        Args:
            listeners: Optional iterable of callables taking one event
        """
        self._listeners: List[EventListener] = list(listeners or [])

    def add_listener(self, listener):
        self._listeners.append(listener)

    def remove_listener(self, listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event):
        for listener in list(self._listeners):
            listener(event)
