"""
Directory Locator
Finds the retail World of Warcraft Interface/AddOns directory
"""

import asyncio
import logging
import os
import re
import subprocess
import sys
import time
from collections import deque
from pathlib import Path

from addon_errors import FilesystemError

logger = logging.getLogger(__name__)

# Stored in settings while no AddOns directory has been chosen
NOT_CONFIGURED = 'NOT_CONFIGURED'

MAX_DEPTH = 10
YIELD_INTERVAL = 50

FALLBACK_DRIVES = ['C', 'D', 'E', 'F', 'G']

IGNORED_DIRS = {
    # Development
    'node_modules', '.git',
    # macOS
    'Library', 'System', 'Applications', 'private',
    # Linux
    'proc', 'sys', 'dev', 'boot', 'snap', 'flatpak', 'lost+found', 'run', 'tmp',
    # Windows
    'Windows', '$Recycle.Bin', 'System Volume Information', 'ProgramData', 'AppData',
}

REJECTED_FLAVORS = {'_classic_', '_classic_era_', '_classic_ptr_'}
ROOT_ARTIFACTS = ['Data', '.build.info']
FLAVOR_ARTIFACTS = ['Wow.exe', 'Wow-64.exe', 'World of Warcraft.app']
MIN_ARTIFACTS = 2

RETAIL_ADDONS = Path('World of Warcraft', '_retail_', 'Interface', 'AddOns')

WINDOWS_TEMPLATES = [
    ':\\Program Files (x86)\\World of Warcraft\\_retail_\\Interface\\AddOns',
    ':\\Program Files\\World of Warcraft\\_retail_\\Interface\\AddOns',
    ':\\Games\\World of Warcraft\\_retail_\\Interface\\AddOns',
    ':\\World of Warcraft\\_retail_\\Interface\\AddOns',
]

MACOS_PATHS = ['/Applications/World of Warcraft/_retail_/Interface/AddOns']

LINUX_HOME_PATHS = [
    Path('Games/world-of-warcraft/drive_c/Program Files (x86)') / RETAIL_ADDONS,
    Path('.wine/drive_c/Program Files (x86)') / RETAIL_ADDONS,
    Path('.var/app/com.usebottles.bottles/data/bottles/bottles/World-of-Warcraft/drive_c/Program Files (x86)')
    / RETAIL_ADDONS,
    Path('.local/share/Steam/steamapps/common') / RETAIL_ADDONS,
    Path('.var/app/com.valvesoftware.Steam/.local/share/Steam/steamapps/common') / RETAIL_ADDONS,
]

# Relative locations probed under a user-chosen root before a deep search
QUICK_CHECK_PATHS = {
    'win32': [
        Path('Program Files (x86)') / RETAIL_ADDONS,
        Path('Program Files') / RETAIL_ADDONS,
        Path('Games') / RETAIL_ADDONS,
        RETAIL_ADDONS,
    ],
    'linux': LINUX_HOME_PATHS[:2] + LINUX_HOME_PATHS[3:4],
    'darwin': [Path('Applications') / RETAIL_ADDONS],
}

_DRIVE_LINE = re.compile(r'^([A-Z]):\\$')


def is_path_configured(path):
    return bool(path) and path != NOT_CONFIGURED


def list_windows_drives():
    """Get drive letters from PowerShell, falling back to C-G.

    Returns:
        list - Drive letters without colon
    """
    kwargs = {}
    if os.name == 'nt':
        kwargs['creationflags'] = subprocess.CREATE_NO_WINDOW
    try:
        result = subprocess.run(
            ['powershell', '-Command', '(Get-PSDrive -PSProvider FileSystem).Root'],
            capture_output=True,
            text=True,
            timeout=10,
            **kwargs
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Drive listing failed: %s", e)
        return list(FALLBACK_DRIVES)

    if result.returncode != 0:
        return list(FALLBACK_DRIVES)

    drives = []
    for line in result.stdout.splitlines():
        match = _DRIVE_LINE.match(line.strip())
        if match:
            drives.append(match.group(1))
    return drives or list(FALLBACK_DRIVES)


class DirectoryLocator:
    def __init__(self, platform_name=None, home=None, drive_lister=None):
        """Initialize directory locator.

        Args:
            platform_name: Optional str - 'win32', 'darwin' or 'linux' (default: sys.platform)
            home: Optional str/Path - Home directory for Linux candidates
            drive_lister: Optional callable - Returns Windows drive letters
        """
        self.platform = platform_name or sys.platform
        self.home = Path(home) if home else Path.home()
        self.drive_lister = drive_lister or list_windows_drives

    def default_candidates(self):
        """Get the fixed candidate AddOns paths for this platform."""
        if self.platform == 'win32':
            return [drive + template for drive in self.drive_lister() for template in WINDOWS_TEMPLATES]
        if self.platform == 'darwin':
            return list(MACOS_PATHS)
        if self.platform.startswith('linux'):
            return [str(self.home / relative) for relative in LINUX_HOME_PATHS]
        return []

    def get_default_path(self):
        """Probe well-known install locations.

        Returns:
            str - First verified AddOns path, or NOT_CONFIGURED
        """
        logger.info("Auto-detection started (platform: %s)", self.platform)
        for candidate in self.default_candidates():
            if self.verify(candidate):
                logger.info("Auto-detection found: %s", candidate)
                return candidate

        logger.info("Auto-detection completed: no WoW installation found")
        return NOT_CONFIGURED

    def verify(self, path):
        """Check that path is a retail Interface/AddOns directory of a real install.

        The path must exist, sit under _retail_ (never a classic flavor), end
        in Interface/AddOns, and at least two install artifacts must be
        present: Data or .build.info at the install root, or a game
        executable in the flavor directory.

        Args:
            path: str/Path - Candidate AddOns directory

        Returns:
            bool - True if the directory looks like a retail AddOns folder
        """
        if not path:
            return False
        path = Path(path)
        try:
            if not path.is_dir():
                return False
        except OSError:
            return False

        parts = path.parts
        lowered = {part.lower() for part in parts}
        if lowered & REJECTED_FLAVORS or '_retail_' not in lowered:
            return False

        interface_index = None
        for i in range(len(parts) - 1):
            if parts[i] == 'Interface' and parts[i + 1] == 'AddOns':
                interface_index = i
        if interface_index is None or interface_index < 2:
            return False

        flavor_dir = Path(*parts[:interface_index])
        wow_root = flavor_dir.parent

        found = [name for name in ROOT_ARTIFACTS if (wow_root / name).exists()]
        found += [name for name in FLAVOR_ARTIFACTS if (flavor_dir / name).exists()]
        if len(found) < MIN_ARTIFACTS:
            return False

        logger.info("Verified WoW path: %s (%d artifacts: %s)", path, len(found), ', '.join(found))
        return True

    def quick_check(self, root):
        """Probe common install locations relative to root.

        Returns:
            str - Verified AddOns path, or None
        """
        key = 'linux' if self.platform.startswith('linux') else self.platform
        for relative in QUICK_CHECK_PATHS.get(key, []):
            candidate = Path(root) / relative
            if self.verify(candidate):
                return str(candidate)
        return None

    async def search(self, root, cancel_event=None, on_progress=None):
        """Breadth-first search below root for a retail AddOns directory.

        Args:
            root: str/Path - Directory to search from
            cancel_event: Optional threading.Event/asyncio.Event - Set to cancel
            on_progress: Optional callable(dirs_scanned, current_path)

        Returns:
            str - Verified AddOns path, or None if not found or cancelled

        Raises:
            FilesystemError: root cannot be read
        """
        root = Path(root)
        if not root.is_dir() or not os.access(root, os.R_OK):
            raise FilesystemError(f'Cannot read directory: {root} (permission denied)')

        logger.info("Deep scan started from: %s", root)
        start = time.monotonic()
        queue = deque([(root, 0)])
        dirs_scanned = 0

        def cancelled():
            if cancel_event is not None and cancel_event.is_set():
                logger.info(
                    "Deep scan cancelled after %d directories (%dms)",
                    dirs_scanned, (time.monotonic() - start) * 1000,
                )
                return True
            return False

        while queue:
            if cancelled():
                return None

            current, depth = queue.popleft()
            dirs_scanned += 1
            if on_progress:
                on_progress(dirs_scanned, str(current))

            if dirs_scanned % YIELD_INTERVAL == 0:
                if cancelled():
                    return None
                await asyncio.sleep(0)
                if cancelled():
                    return None

            if depth > MAX_DEPTH:
                continue

            try:
                with os.scandir(current) as it:
                    entries = sorted(it, key=lambda entry: entry.name)
            except OSError:
                continue

            for entry in entries:
                if entry.name == '_retail_' and _is_real_dir(entry):
                    addons = Path(entry.path) / 'Interface' / 'AddOns'
                    if self.verify(addons):
                        logger.info(
                            "Deep scan found WoW after %d directories (%dms): %s",
                            dirs_scanned, (time.monotonic() - start) * 1000, addons,
                        )
                        return str(addons)

            for entry in entries:
                if entry.name in IGNORED_DIRS or not _is_real_dir(entry):
                    continue
                queue.append((Path(entry.path), depth + 1))

        logger.info(
            "Deep scan completed: not found after %d directories (%dms)",
            dirs_scanned, (time.monotonic() - start) * 1000,
        )
        return None


def _is_real_dir(entry):
    """True for a directory that is not a symlink."""
    try:
        return entry.is_dir(follow_symlinks=False)
    except OSError:
        return False
