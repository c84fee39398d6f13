"""
TOC Parser
Reads WoW addon .toc manifest files
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

# Flavor-specific TOC suffixes, first match wins
FLAVOR_SUFFIXES = {
    'retail': ['-Retail', '_Mainline', '-Mainline'],
    'classic': ['-Classic', '_Classic', '-Vanilla', '_Vanilla', '-Era', '_Era'],
    'cata': ['-Cata', '_Cata', '-Cataclysm', '_Cataclysm'],
}

ALL_FLAVOR_SUFFIXES = sorted(
    {suffix for suffixes in FLAVOR_SUFFIXES.values() for suffix in suffixes},
    key=len,
    reverse=True,
)

COLOR_CODE = re.compile(r'\|c[0-9a-fA-F]{8}(.*?)\|r')
DEP_SEPARATOR = re.compile(r',\s*|\s+')


@dataclass
class TocMetadata:
    title: str
    version: Optional[str] = None
    author: Optional[str] = None
    interface: Optional[str] = None
    required_deps: List[str] = field(default_factory=list)
    optional_deps: List[str] = field(default_factory=list)
    explicit_library: Optional[bool] = None

    @property
    def dependencies(self):
        """Required and optional dependencies, required first."""
        deps = list(self.required_deps)
        deps.extend(dep for dep in self.optional_deps if dep not in deps)
        return deps


def strip_flavor_suffix(toc_stem):
    """Remove a known flavor suffix from a TOC file stem (Foo_Mainline -> Foo)."""
    lower = toc_stem.lower()
    for suffix in ALL_FLAVOR_SUFFIXES:
        if lower.endswith(suffix.lower()) and len(toc_stem) > len(suffix):
            return toc_stem[:-len(suffix)]
    return toc_stem


def select_toc_file(addon_folder, toc_files, flavor='retail'):
    """Select the best TOC file for a folder and game flavor.

    Priority: exact flavor match (Foo-Retail.toc), base TOC (Foo.toc),
    then the first file alphabetically.

    Args:
        addon_folder: str - Folder name
        toc_files: list - TOC file names found in the folder
        flavor: str - Target game flavor

    Returns:
        tuple - (selected file name, confidence) where confidence is
        'exact', 'fallback' or 'ambiguous'
    """
    if not toc_files:
        raise ValueError(f'No TOC files found for addon: {addon_folder}')

    if len(toc_files) == 1:
        return toc_files[0], 'exact'

    by_lower = {name.lower(): name for name in toc_files}
    for suffix in FLAVOR_SUFFIXES.get(flavor, []):
        found = by_lower.get(f'{addon_folder}{suffix}.toc'.lower())
        if found:
            return found, 'exact'

    base = by_lower.get(f'{addon_folder}.toc'.lower())
    if base:
        return base, 'fallback'

    return sorted(toc_files, key=str.lower)[0], 'ambiguous'


class TocParser:
    def __init__(self, flavor='retail'):
        """Initialize TOC parser.

        Args:
            flavor: str - Game flavor used to pick between multiple TOC files
        """
        self.flavor = flavor

    def parse(self, folder_path):
        """Parse the best TOC file of an addon folder.

        Args:
            folder_path: str/Path - Addon folder

        Returns:
            TocMetadata - Parsed manifest, or None if the folder has no .toc file
        """
        folder_path = Path(folder_path)
        if not folder_path.is_dir():
            return None

        toc_files = [p.name for p in folder_path.iterdir() if p.is_file() and p.suffix.lower() == '.toc']
        if not toc_files:
            return None

        selected, confidence = select_toc_file(folder_path.name, toc_files, self.flavor)
        if confidence == 'ambiguous':
            logger.debug("Ambiguous TOC selection for %s, using %s", folder_path.name, selected)

        # utf-8-sig drops the BOM some editors write
        with open(folder_path / selected, 'r', encoding='utf-8-sig', errors='replace') as f:
            content = f.read()
        return self.parse_content(content, folder_path.name)

    def parse_content(self, content, fallback_title):
        """Parse TOC text. Missing or malformed fields become None / empty.

        Args:
            content: str - TOC file contents
            fallback_title: str - Title to use when ## Title is absent

        Returns:
            TocMetadata
        """
        fields = {}
        for line in content.splitlines():
            stripped = line.strip()

            # Metadata lines look like "## Key: Value"; everything else is a file list
            if not stripped.startswith('##'):
                continue
            key, sep, value = stripped[2:].partition(':')
            if not sep:
                continue
            key = key.strip().lower()
            # First occurrence wins
            fields.setdefault(key, value.strip())

        title = fields.get('title') or fallback_title
        title = COLOR_CODE.sub(r'\1', title).strip() or fallback_title

        required = fields.get('dependencies') or fields.get('requireddeps') or fields.get('dep')
        x_library = fields.get('x-library')

        return TocMetadata(
            title=title,
            version=fields.get('version') or None,
            author=fields.get('author') or None,
            interface=fields.get('interface') or None,
            required_deps=_parse_deps(required),
            optional_deps=_parse_deps(fields.get('optionaldeps')),
            explicit_library=None if x_library is None else x_library.lower() == 'true',
        )


def _parse_deps(raw):
    if not raw:
        return []
    deps = []
    for dep in DEP_SEPARATOR.split(raw):
        if dep and dep not in deps:
            deps.append(dep)
    return deps
