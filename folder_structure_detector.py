"""
Folder Structure Detector
Detects addon folders inside downloaded packages and picks the parent folder
"""

import logging
import re
from pathlib import Path

from toc_parser import strip_flavor_suffix

logger = logging.getLogger(__name__)

# Directory names where addons commonly embed their libraries
EMBEDDED_LIB_DIRS = ['Libs', 'libs', 'Lib', 'lib', 'Libraries']

_NON_ALNUM = re.compile(r'[\W_]+')


def normalize_name(name):
    """Lower-case a name and strip whitespace and punctuation ("Details! Damage" -> "detailsdamage")."""
    return _NON_ALNUM.sub('', name or '').lower()


def determine_parent_folder(folders, display_name):
    """Pick the parent folder of a multi-folder package.

    1. Exactly one folder: it is the parent.
    2. A folder equal to the display name once case, whitespace and
       punctuation are normalized away.
    3. The shortest folder name.

    For (3) the share of folders that start with the shortest name is
    computed and logged, but the shortest name is returned either way.

    Args:
        folders: list - Folder names extracted from the package
        display_name: str - Package display name from the provider

    Returns:
        str - Parent folder name

    Raises:
        ValueError: folders is empty
    """
    if not folders:
        raise ValueError('No folders provided')

    if len(folders) == 1:
        return folders[0]

    target = normalize_name(display_name)
    if target:
        for folder in folders:
            if normalize_name(folder) == target:
                return folder

    shortest = sorted(folders, key=len)[0]
    prefix_count = sum(1 for folder in folders if folder.startswith(shortest))
    if prefix_count / len(folders) >= 0.5:
        logger.debug("Parent %s is a prefix of %d/%d folders", shortest, prefix_count, len(folders))
    else:
        logger.info(
            "Parent fallback %s is a prefix of only %d/%d folders", shortest, prefix_count, len(folders)
        )
    return shortest


class FolderStructureDetector:
    def detect_addon_folders(self, source_path, repo_name=None):
        """Detect installable addon folders in a cloned or extracted package.

        Args:
            source_path: str/Path - Package root
            repo_name: Optional str - Repository or package name, used to name
                a root-level addon

        Returns:
            A list of dicts, each with:
            - name: str - addon folder name to install as
            - path: Path - folder to copy
            - structure: str - 'root' (TOC files at the package root) or 'nested'
        """
        source_path = Path(source_path)
        if not source_path.is_dir():
            return []

        root_tocs = [p for p in source_path.glob('*.toc') if p.is_file()]
        if root_tocs:
            name = self._infer_root_addon_name(source_path, root_tocs, repo_name)
            return [{'name': name, 'path': source_path, 'structure': 'root'}]

        # Exclude .git and other hidden folders
        subdirs = sorted(
            (d for d in source_path.iterdir() if d.is_dir() and not d.name.startswith('.')),
            key=lambda d: d.name.lower(),
        )

        addons = [
            {'name': d.name, 'path': d, 'structure': 'nested'}
            for d in subdirs
            if any(p.is_file() for p in d.glob('*.toc'))
        ]
        if addons:
            return addons

        # Archives often wrap everything in one top-level folder (repo-1.2.3/)
        if len(subdirs) == 1:
            return self.detect_addon_folders(subdirs[0], repo_name)

        return []

    def _infer_root_addon_name(self, folder_path, toc_files, repo_name=None):
        """Infer the addon folder name for a package with TOC files at its root.

        Args:
            folder_path: Path - Package root
            toc_files: list - TOC file Paths at the root
            repo_name: Optional str - Repository name from the URL

        Returns:
            str - Addon folder name
        """
        candidates = []
        for toc in toc_files:
            base = strip_flavor_suffix(toc.stem)
            if base not in candidates:
                candidates.append(base)

        if len(candidates) == 1:
            return candidates[0]

        for wanted in (repo_name, folder_path.name):
            if not wanted:
                continue
            for candidate in candidates:
                if candidate.lower() == wanted.lower():
                    return candidate

        return sorted(candidates, key=str.lower)[0]

    def detect_embedded_libs(self, addon_path):
        """List libraries embedded under an addon's Libs/ style folders.

        A subdirectory counts as a library when it contains a .toc file.

        Args:
            addon_path: str/Path - Addon folder

        Returns:
            list - Library folder names, de-duplicated
        """
        addon_path = Path(addon_path)
        embedded = []

        for lib_dir in EMBEDDED_LIB_DIRS:
            libs_path = addon_path / lib_dir
            if not libs_path.is_dir():
                continue
            try:
                entries = sorted(libs_path.iterdir(), key=lambda p: p.name.lower())
            except OSError:
                continue
            for entry in entries:
                if not entry.is_dir():
                    continue
                has_toc = (entry / f'{entry.name}.toc').exists() or any(entry.glob('*.toc'))
                # Libs vs libs can be the same folder on case-insensitive filesystems
                if has_toc and entry.name not in embedded:
                    embedded.append(entry.name)

        return embedded
