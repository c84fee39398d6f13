"""
Addon Errors
Exception types raised by the registry, collaborators and commands
"""


class AddonManagerError(Exception):
    """Base class for expected failures surfaced to the user."""


class ValidationError(AddonManagerError):
    """Unsupported source host, missing credential or unparseable identifier."""


class NotFoundError(AddonManagerError):
    """Remote package (or local record) does not exist."""


class NetworkError(AddonManagerError):
    """Transport failure or non-success HTTP status."""


class FilesystemError(AddonManagerError):
    """Permission or copy failure on the local disk."""


class DuplicateFolderError(AddonManagerError):
    """A registry row for the folder already exists."""

    def __init__(self, folder, message=None):
        self.folder = folder
        super().__init__(message or f'Addon folder "{folder}" is already registered')


class NoArtifactsError(AddonManagerError):
    """Package contained no folder with a recognizable .toc manifest."""
