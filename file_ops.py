"""
File Operations
Directory copy/remove helpers that cope with Windows read-only files
"""

import logging
import os
import shutil
import stat
import subprocess
import sys
import tempfile
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = 'wow-addon-manager-'


def _handle_remove_readonly(func, path, exc):
    """Clear the read-only bit and retry (git pack files are read-only on Windows)."""
    try:
        os.chmod(path, stat.S_IWRITE)
        func(path)
    except OSError:
        logger.debug("Could not remove %s", path)


def remove_directory_safe(path):
    """Remove a directory tree, handling Windows file locks.

    Args:
        path: str/Path - Directory to remove (missing paths are ignored)
    """
    path = Path(path)
    if not path.exists() and not path.is_symlink():
        return

    if path.is_symlink() or path.is_file():
        path.unlink()
        return

    try:
        shutil.rmtree(path)
    except OSError:
        if sys.version_info >= (3, 12):
            shutil.rmtree(path, onexc=_handle_remove_readonly)
        else:
            shutil.rmtree(path, onerror=_handle_remove_readonly)

    if path.exists():
        # Last resort on Windows: rmdir copes with some locked handles
        if os.name == 'nt':
            subprocess.run(
                ['cmd', '/c', 'rmdir', '/S', '/Q', str(path)],
                capture_output=True,
                creationflags=subprocess.CREATE_NO_WINDOW,
            )
        if path.exists():
            raise OSError(f'Could not remove directory: {path}')


def copy_folder(source, dest):
    """Copy a folder tree over dest, merging into an existing directory.

    Args:
        source: str/Path - Source directory
        dest: str/Path - Destination directory
    """
    shutil.copytree(source, dest, dirs_exist_ok=True)


@contextmanager
def scratch_directory(label='scratch'):
    """Create a per-invocation scratch directory that is removed on exit.

    Args:
        label: str - Short name included in the directory name

    Yields:
        Path - Scratch directory
    """
    path = Path(tempfile.mkdtemp(prefix=f'{SCRATCH_PREFIX}{label}-'))
    try:
        yield path
    finally:
        try:
            remove_directory_safe(path)
        except OSError:
            logger.exception("Failed to remove scratch directory %s", path)
