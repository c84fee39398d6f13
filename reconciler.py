"""
Reconciler
Scans the AddOns directory and brings the addon registry in line with it
"""

import logging
import re
from datetime import datetime
from pathlib import Path

from addon_errors import AddonManagerError
from addon_events import ErrorEvent, ScanComplete, ScanProgress, ScanStarted
from addon_registry import AddonKind, AddonRecord, AddonType
from folder_structure_detector import FolderStructureDetector
from git_client import GitClient
from library_detector import LibraryKindClassifier
from toc_parser import TocParser

logger = logging.getLogger(__name__)

# ElvUI_OptionsUI, DBM-Core, Foo.Bar
PARENT_SEPARATORS = '_-.'
_STEM_SPLIT = re.compile(r'[-_.\s]')
MIN_STEM_LENGTH = 3


def name_stem(name):
    """Leading token of a folder name ("DBM-Naxx" -> "dbm"), or None if too short."""
    stem = _STEM_SPLIT.split(name, 1)[0].lower()
    return stem if len(stem) >= MIN_STEM_LENGTH else None


def shares_stem(name, other):
    """True if two folder names share a leading stem.

    Either both names start with the same stem (DBM-Naxx / DBM-Core), or one
    name starts with the whole of the other (WeakAurasOptions / WeakAuras).
    """
    stem, other_stem = name_stem(name), name_stem(other)
    if stem and stem == other_stem:
        return True
    lower, other_lower = name.lower(), other.lower()
    if len(other_lower) >= MIN_STEM_LENGTH and lower.startswith(other_lower):
        return True
    return len(lower) >= MIN_STEM_LENGTH and other_lower.startswith(lower)


def derive_parents(manifests):
    """Derive parent links among a set of scanned folders.

    Prefix rule: a folder named <candidate><separator>... is a child of
    candidate (the longest matching candidate wins).
    Dependency rule: a folder declaring a dependency on another candidate is
    its child only if the two names share a stem. A dependency alone never
    links two folders.

    Args:
        manifests: dict - folder name -> TocMetadata

    Returns:
        dict - child folder -> parent folder
    """
    names = sorted(manifests, key=str.lower)
    by_lower = {name.lower(): name for name in names}
    parents = {}

    for name in names:
        best = None
        for candidate in names:
            if candidate == name or len(name) <= len(candidate) + 1:
                continue
            if name.startswith(candidate) and name[len(candidate)] in PARENT_SEPARATORS:
                if best is None or len(candidate) > len(best):
                    best = candidate
        if best:
            parents[name] = best

    for name in names:
        if name in parents:
            continue
        for dep in manifests[name].dependencies:
            target = by_lower.get(dep.lower())
            if not target or target == name:
                continue
            # Never create a two-node cycle
            if parents.get(target) == name:
                continue
            # WeakAuras is not a child of WeakAurasOptions
            if len(target) > len(name) and target.lower().startswith(name.lower()):
                continue
            if shares_stem(name, target):
                parents[name] = target
                break

    return parents


class Reconciler:
    def __init__(self, registry, addons_dir, toc_parser=None, classifier=None,
                 detector=None, git_client=None, flavor='retail'):
        """Initialize reconciler.

        Args:
            registry: AddonRegistry - Registry to upsert into
            addons_dir: str/Path - Interface/AddOns directory
            toc_parser: Optional TocParser - Manifest reader
            classifier: Optional object with classify() - Library heuristic
            detector: Optional FolderStructureDetector - Embedded library detection
            git_client: Optional GitClient - Reads commits of git checkouts
            flavor: str - Game flavor recorded on new records
        """
        self.registry = registry
        self.addons_dir = Path(addons_dir)
        self.flavor = flavor
        self.toc_parser = toc_parser or TocParser(flavor)
        self.classifier = classifier or LibraryKindClassifier()
        self.detector = detector or FolderStructureDetector()
        self.git_client = git_client or GitClient()

    def _enumerate(self, folders):
        if folders is None:
            return sorted(
                (d.name for d in self.addons_dir.iterdir() if d.is_dir() and not d.name.startswith('.')),
                key=str.lower,
            )
        targets = []
        for folder in folders:
            if folder not in targets and (self.addons_dir / folder).is_dir():
                targets.append(folder)
        return targets

    def reconcile(self, context, folders=None):
        """Scan folders and upsert their registry records.

        Args:
            context: CommandContext - Event channel
            folders: Optional list - Folder names to scan (default: every folder)

        Returns:
            int - Number of folders processed into the registry
        """
        context.emit(ScanStarted())

        if not self.addons_dir.is_dir():
            logger.info("Addons directory not found: %s", self.addons_dir)
            context.emit(ScanComplete(0))
            return 0

        manifests = {}
        for folder in self._enumerate(folders):
            context.emit(ScanProgress(folder))
            try:
                toc = self.toc_parser.parse(self.addons_dir / folder)
            except OSError as e:
                logger.warning("Could not read manifest of %s: %s", folder, e)
                context.emit(ErrorEvent(f'Scan:{folder}', str(e)))
                continue
            if toc is not None:
                manifests[folder] = toc

        parents = derive_parents(manifests)
        declared = {
            folder: {dep.lower() for dep in toc.dependencies}
            for folder, toc in manifests.items()
        }

        count = 0
        for folder, toc in manifests.items():
            owner = self.registry.get_owner_of(folder)
            if owner:
                logger.debug("Skipping %s, owned by %s", folder, owner.folder)
                continue

            has_dependents = any(
                folder.lower() in deps for other, deps in declared.items() if other != folder
            ) or bool(self.registry.get_dependents(folder))

            try:
                self._upsert(folder, toc, parents.get(folder), has_dependents)
            except (OSError, AddonManagerError) as e:
                logger.warning("Could not register %s: %s", folder, e)
                context.emit(ErrorEvent(f'Scan:{folder}', str(e)))
                continue
            count += 1

        context.emit(ScanComplete(count))
        return count

    def _upsert(self, folder, toc, parent, has_dependents):
        addon_path = self.addons_dir / folder
        embedded_libs = self.detector.detect_embedded_libs(addon_path)

        is_git = (addon_path / '.git').exists()
        git_commit = self.git_client.get_current_commit(addon_path) if is_git else None
        version = toc.version or (git_commit[:7] if git_commit else None)

        existing = self.registry.get_by_folder(folder)

        if existing and existing.kind_override:
            kind = existing.kind
        else:
            result = self.classifier.classify(
                folder,
                explicit_library=toc.explicit_library,
                has_dependents=has_dependents,
                has_dependencies=bool(toc.dependencies),
            )
            kind = AddonKind(result.kind)
            if kind == AddonKind.LIBRARY:
                logger.info("Classified %s as library (%s): %s", folder, result.confidence, result.reason)

        if existing is None:
            self.registry.add(AddonRecord(
                folder=folder,
                name=toc.title,
                version=version,
                author=toc.author,
                interface=toc.interface,
                type=AddonType.GITHUB if is_git else AddonType.MANUAL,
                kind=kind,
                flavor=self.flavor,
                parent=parent,
                required_deps=toc.required_deps,
                optional_deps=toc.optional_deps,
                embedded_libs=embedded_libs,
                git_commit=git_commit,
            ))
            return

        updates = {
            'parent': parent,
            'kind': kind,
            'required_deps': toc.required_deps,
            'optional_deps': toc.optional_deps,
            'embedded_libs': embedded_libs,
        }
        if toc.author:
            updates['author'] = toc.author
        if toc.interface:
            updates['interface'] = toc.interface
        # Marketplace records carry the provider's version label; keep it
        if version and existing.type in (AddonType.MANUAL, AddonType.GITHUB):
            updates['version'] = version
        if is_git and existing.type == AddonType.MANUAL:
            updates['type'] = AddonType.GITHUB
        if git_commit:
            updates['git_commit'] = git_commit

        changed = {key: value for key, value in updates.items() if getattr(existing, key) != value}
        if changed:
            changed['last_updated'] = datetime.now().isoformat()
            self.registry.update(folder, changed)
