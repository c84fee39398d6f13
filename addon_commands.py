"""
Addon Commands
Install, update and remove operations with transactional rollback
"""

import logging
import re
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional
from urllib.parse import urlparse

import requests

from addon_errors import (
    AddonManagerError, FilesystemError, NetworkError, NoArtifactsError,
    NotFoundError, ValidationError,
)
from addon_events import (
    CommandContext, ErrorEvent, FolderOwnership, InstallComplete, InstallCopying,
    InstallDownloading, InstallExtracting, InstallStarted, RemoveComplete,
    UpdateCheckComplete, UpdateCheckStarted,
)
from addon_registry import AddonType
from downloader import ArchiveFetcher
from file_ops import copy_folder, remove_directory_safe, scratch_directory
from folder_structure_detector import FolderStructureDetector, determine_parent_folder
from git_client import GitClient
from marketplace_clients import NO_API_KEY, NOT_FOUND, WoWInterfaceClient
from reconciler import Reconciler

logger = logging.getLogger(__name__)

# Transaction log actions
CREATED_FOLDER = 'created_folder'
REPLACED_FOLDER = 'replaced_folder'
REMOVED_FOLDER = 'removed_folder'
ADDED_RECORD = 'added_record'
UPDATED_RECORD = 'updated_record'
REMOVED_RECORD = 'removed_record'

# Failures that become a failed CommandResult; anything else is re-raised
EXPECTED_ERRORS = (AddonManagerError, OSError, requests.RequestException)

_ROLLBACK_ERRORS = (AddonManagerError, OSError, sqlite3.Error, ValueError)

MARKETPLACE_TYPES = (AddonType.WAGO, AddonType.TUKUI, AddonType.WOWINTERFACE)


def _now():
    return datetime.now().isoformat()


@dataclass
class TransactionEntry:
    action: str
    target: str
    # Backup folder path (folder actions) or AddonRecord snapshot (record actions)
    backup: Any = None


class TransactionLog:
    """Ordered record of the side effects of one command.

    Rollback replays the entries in reverse order. Each step is best-effort:
    a failing step is logged and the replay continues.
    """

    def __init__(self):
        self.entries: List[TransactionEntry] = []

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def record(self, action, target, backup=None):
        self.entries.append(TransactionEntry(action, target, backup))

    def actions(self):
        """Get (action, target) pairs in recorded order."""
        return [(entry.action, entry.target) for entry in self.entries]

    def rollback(self, registry, addons_dir):
        """Undo every recorded side effect, newest first.

        Args:
            registry: AddonRegistry - Registry the command wrote to
            addons_dir: str/Path - Live AddOns directory
        """
        addons_dir = Path(addons_dir)
        for entry in reversed(self.entries):
            try:
                self._undo(entry, registry, addons_dir)
            except _ROLLBACK_ERRORS:
                logger.exception("Rollback step failed: %s %s", entry.action, entry.target)

    def _undo(self, entry, registry, addons_dir):
        dest = addons_dir / entry.target

        if entry.action == CREATED_FOLDER:
            remove_directory_safe(dest)
        elif entry.action in (REPLACED_FOLDER, REMOVED_FOLDER):
            remove_directory_safe(dest)
            copy_folder(entry.backup, dest)
        elif entry.action == ADDED_RECORD:
            registry.remove(entry.target)
        elif entry.action == UPDATED_RECORD:
            registry.update(entry.target, entry.backup.to_patch())
        elif entry.action == REMOVED_RECORD:
            registry.add(entry.backup)
        else:
            raise ValueError(f'Unknown transaction action: {entry.action}')

        logger.info("Rolled back %s %s", entry.action, entry.target)


@dataclass
class CommandResult:
    success: bool
    message: str = ''
    installed: List[str] = field(default_factory=list)
    updated: bool = False
    transaction: Optional[TransactionLog] = None


@dataclass
class UpdateCheck:
    update_available: bool
    remote_version: str
    # Staging details for the update itself
    download_url: Optional[str] = None
    headers: dict = field(default_factory=dict)


def fetch_details(client, addon_id):
    """Fetch marketplace details, turning an error kind into an exception.

    Raises:
        ValidationError: the client has no API key
        NotFoundError: the addon does not exist
        NetworkError: any other failure
    """
    result = client.get_details(addon_id)
    if result.success:
        return result.addon
    if result.error == NO_API_KEY:
        raise ValidationError(f'{client.provider_name} API key is not configured')
    if result.error == NOT_FOUND:
        raise NotFoundError(f'{client.provider_name} addon "{addon_id}" not found')
    raise NetworkError(f'{client.provider_name} request failed ({result.error})')


def select_release(client, addon, channel='stable'):
    """Pick the download URL of a channel, falling back to the best available one.

    Returns:
        tuple - (channel, download URL)
    """
    url = client.resolve_download_url(addon, channel)
    if url is None:
        fallback = client.best_available_channel(addon)
        if fallback and fallback != channel:
            logger.info("No %s release for %s, using %s", channel, addon.display_name, fallback)
            channel = fallback
            url = client.resolve_download_url(addon, channel)
    if url is None:
        raise NotFoundError(f'No downloadable release for {addon.display_name}')
    return channel, url


def parse_github_url(url):
    """Split a GitHub URL into (clone URL, repo name, branch from /tree/<branch> or None)."""
    parsed = urlparse(url.strip())
    parts = [part for part in parsed.path.split('/') if part]
    if len(parts) < 2:
        raise ValidationError(f'Not a GitHub repository URL: {url}')

    owner, repo = parts[0], re.sub(r'\.git$', '', parts[1])
    branch = parts[3] if len(parts) >= 4 and parts[2] == 'tree' else None
    return f'https://github.com/{owner}/{repo}', repo, branch


def classify_source_url(url):
    """Get the install source of a URL: 'github' or 'wowinterface'.

    Raises:
        ValidationError: malformed URL or unsupported host
    """
    parsed = urlparse((url or '').strip())
    host = (parsed.hostname or '').lower()
    if parsed.scheme not in ('http', 'https') or not host:
        raise ValidationError(f'Invalid URL: {url}')

    if host == 'github.com' or host.endswith('.github.com'):
        return 'github'
    if host == 'wowinterface.com' or host.endswith('.wowinterface.com'):
        return 'wowinterface'
    if host == 'curseforge.com' or host.endswith('.curseforge.com'):
        raise ValidationError('CurseForge downloads are not supported')
    if host == 'wago.io' or host.endswith('.wago.io'):
        raise ValidationError('Wago addons are installed through the Wago marketplace, not by URL')
    raise ValidationError(f'Unsupported host: {host}')


def _error_forwarder(context):
    def forward(event):
        if isinstance(event, ErrorEvent):
            context.emit(event)
    return forward


class Command:
    """Base for operations that change the AddOns directory and the registry.

    Subclasses implement ``_execute(context, transaction, scratch)``; every
    side effect they perform must be recorded in ``transaction`` so a
    failure can be rolled back.
    """

    label = 'command'

    def __init__(self, registry, addons_dir, reconciler=None, detector=None):
        """Initialize command.

        Args:
            registry: AddonRegistry - Addon records
            addons_dir: str/Path - Live Interface/AddOns directory
            reconciler: Optional Reconciler - Registers deployed folders
            detector: Optional FolderStructureDetector - Package layout detection
        """
        self.registry = registry
        self.addons_dir = Path(addons_dir)
        self.detector = detector or FolderStructureDetector()
        self.reconciler = reconciler or Reconciler(registry, self.addons_dir, detector=self.detector)

    def execute(self, context):
        """Run the command.

        Args:
            context: CommandContext - Event channel

        Returns:
            CommandResult - Outcome with the transaction log attached
        """
        transaction = TransactionLog()
        try:
            with scratch_directory(self.label) as scratch:
                try:
                    result = self._execute(context, transaction, scratch)
                except EXPECTED_ERRORS as e:
                    logger.exception("%s failed", self.label)
                    self.undo(context, transaction)
                    context.emit(ErrorEvent(self.label, str(e)))
                    return CommandResult(False, str(e), transaction=transaction)
                except Exception:
                    self.undo(context, transaction)
                    raise
        except OSError as e:
            logger.exception("%s could not create a scratch directory", self.label)
            return CommandResult(False, str(e), transaction=transaction)

        result.transaction = transaction
        return result

    def undo(self, context, transaction):
        """Roll back a transaction. Folder backups only exist while execute() runs."""
        if len(transaction):
            logger.info("Rolling back %s (%d steps)", self.label, len(transaction))
            transaction.rollback(self.registry, self.addons_dir)

    def _execute(self, context, transaction, scratch):
        raise NotImplementedError

    def _require_addons_dir(self):
        if not self.addons_dir.is_dir():
            raise FilesystemError(f'AddOns directory does not exist: {self.addons_dir}')

    def _download(self, fetcher, url, scratch, headers=None):
        archive = scratch / 'download.zip'
        if not fetcher.download(url, archive, headers=headers):
            raise NetworkError(f'Download failed: {url}')
        return archive

    def _extract(self, fetcher, archive, scratch):
        extract_dir = scratch / 'extract'
        if not fetcher.extract(archive, extract_dir):
            raise FilesystemError(f'Could not extract {archive.name}')
        return extract_dir

    def _deploy(self, context, transaction, scratch, source_dir, display_name, provenance,
                repo_name=None, preferred_parent=None, previous_folders=(), fallback_version=None):
        """Copy staged addon folders into the AddOns directory and register them.

        Args:
            context: CommandContext - Event channel
            transaction: TransactionLog - Records every side effect
            scratch: Path - Scratch directory (holds backups)
            source_dir: Path - Cloned or extracted package
            display_name: str - Package display name
            provenance: dict - Fields written to the parent record
            repo_name: Optional str - Name for a package with TOC files at its root
            preferred_parent: Optional str - Parent to keep if still present
            previous_folders: iterable - Folders of the installation being replaced
            fallback_version: Optional str - Version if the manifest has none

        Returns:
            tuple - (parent folder, list of installed folder names)
        """
        folders = self.detector.detect_addon_folders(source_dir, repo_name or display_name)
        if not folders:
            raise NoArtifactsError(f'No addon folders with a .toc file found in {display_name}')

        names = [folder['name'] for folder in folders]
        context.emit(InstallCopying(display_name))

        backup_root = scratch / 'backup'
        for folder in folders:
            dest = self.addons_dir / folder['name']
            if dest.exists():
                backup = backup_root / folder['name']
                copy_folder(dest, backup)
                transaction.record(REPLACED_FOLDER, folder['name'], backup)
                remove_directory_safe(dest)
            else:
                transaction.record(CREATED_FOLDER, folder['name'])
            logger.info("Copying %s to %s", folder['path'], dest)
            copy_folder(folder['path'], dest)

        # Folders the new package no longer ships
        for stale in previous_folders:
            dest = self.addons_dir / stale
            if stale in names or not dest.exists():
                continue
            backup = backup_root / stale
            copy_folder(dest, backup)
            transaction.record(REMOVED_FOLDER, stale, backup)
            remove_directory_safe(dest)

        if preferred_parent in names:
            parent = preferred_parent
        else:
            parent = determine_parent_folder(names, display_name)
            old = self.registry.get_by_folder(preferred_parent) if preferred_parent else None
            if old:
                logger.info("Package no longer ships %s, moving its record to %s", preferred_parent, parent)
                transaction.record(REMOVED_RECORD, preferred_parent, old)
                self.registry.remove(preferred_parent)
                provenance = {'type': old.type, 'url': old.url, 'install_date': old.install_date, **provenance}
        owned = [name for name in names if name != parent]

        existing = self.registry.get_by_folder(parent)
        if existing:
            transaction.record(UPDATED_RECORD, parent, existing)

        self.reconciler.reconcile(CommandContext([_error_forwarder(context)]), [parent])
        record = self.registry.get_by_folder(parent)
        if record is None:
            raise NoArtifactsError(f'Could not register {parent}')
        if existing is None:
            transaction.record(ADDED_RECORD, parent)

        for name in owned:
            row = self.registry.get_by_folder(name)
            if row:
                transaction.record(REMOVED_RECORD, name, row)
                self.registry.remove(name)

        transaction.record(UPDATED_RECORD, parent, record)
        patch = {key: value for key, value in provenance.items() if value is not None}
        if fallback_version and not record.version:
            patch.setdefault('version', fallback_version)
        patch['owned_folders'] = owned
        patch['last_updated'] = _now()
        self.registry.update(parent, patch)

        if owned:
            context.emit(FolderOwnership(parent, tuple(owned)))
        return parent, names


class InstallFromUrlCommand(Command):
    label = 'InstallFromUrl'

    def __init__(self, url, registry, addons_dir, branch=None, git_client=None, fetcher=None,
                 wowinterface=None, reconciler=None, detector=None):
        """Initialize URL install.

        Args:
            url: str - GitHub repository or WoWInterface download page
            branch: Optional str - Git branch (None for the remote default)
            git_client: Optional GitClient
            fetcher: Optional ArchiveFetcher
            wowinterface: Optional WoWInterfaceClient
        """
        super().__init__(registry, addons_dir, reconciler=reconciler, detector=detector)
        self.url = url
        self.branch = branch
        self.git_client = git_client or GitClient()
        self.fetcher = fetcher or ArchiveFetcher()
        self.wowinterface = wowinterface or WoWInterfaceClient()

    def _execute(self, context, transaction, scratch):
        source = classify_source_url(self.url)
        self._require_addons_dir()
        if source == 'github':
            return self._install_github(context, transaction, scratch)
        return self._install_wowinterface(context, transaction, scratch)

    def _install_github(self, context, transaction, scratch):
        repo_url, repo_name, url_branch = parse_github_url(self.url)
        branch = self.branch or url_branch

        context.emit(InstallStarted(repo_name))
        context.emit(InstallDownloading(repo_name))
        clone_dir = scratch / 'clone'
        if not self.git_client.clone(repo_url, branch, clone_dir):
            raise NetworkError(f'Failed to clone {repo_url}')
        commit = self.git_client.get_current_commit(clone_dir)

        # Nothing to unpack for a clone; the stage is still reported
        context.emit(InstallExtracting(repo_name))
        parent, names = self._deploy(
            context, transaction, scratch, clone_dir, repo_name,
            {'type': AddonType.GITHUB, 'url': repo_url, 'git_commit': commit},
            repo_name=repo_name,
            fallback_version=commit[:7] if commit else None,
        )

        context.emit(InstallComplete(repo_name))
        return CommandResult(True, f'Installed {repo_name}', installed=names)

    def _install_wowinterface(self, context, transaction, scratch):
        addon_id = self.wowinterface.parse_addon_id(self.url)
        if not addon_id:
            raise ValidationError(f'Could not find a WoWInterface addon id in {self.url}')

        addon = fetch_details(self.wowinterface, addon_id)
        name = addon.display_name
        context.emit(InstallStarted(name))

        channel, download_url = select_release(self.wowinterface, addon)
        context.emit(InstallDownloading(name))
        archive = self._download(self.fetcher, download_url, scratch)

        context.emit(InstallExtracting(name))
        extract_dir = self._extract(self.fetcher, archive, scratch)

        version = addon.version_for(channel)
        parent, names = self._deploy(
            context, transaction, scratch, extract_dir, name,
            {
                'type': AddonType.WOWINTERFACE,
                'url': addon.page_url,
                'name': name,
                'author': addon.author,
                'version': version,
                'remote_version': version,
            },
        )

        context.emit(InstallComplete(name))
        return CommandResult(True, f'Installed {name}', installed=names)


class InstallFromMarketplaceCommand(Command):
    label = 'InstallFromMarketplace'

    def __init__(self, client, addon_id_or_url, registry, addons_dir, channel='stable',
                 fetcher=None, reconciler=None, detector=None):
        """Initialize marketplace install.

        Args:
            client: MarketplaceClient - Wago or TukUI client
            addon_id_or_url: str - Addon id, slug or page URL
            channel: str - Preferred release channel
            fetcher: Optional ArchiveFetcher
        """
        super().__init__(registry, addons_dir, reconciler=reconciler, detector=detector)
        self.client = client
        self.addon_id_or_url = addon_id_or_url
        self.channel = channel
        self.fetcher = fetcher or ArchiveFetcher()

    def _execute(self, context, transaction, scratch):
        if not self.client.has_credentials():
            raise ValidationError(f'{self.client.provider_name} API key is not configured')
        addon_id = self.client.parse_addon_id(self.addon_id_or_url)
        if not addon_id:
            raise ValidationError(f'Invalid {self.client.provider_name} addon: {self.addon_id_or_url}')
        self._require_addons_dir()

        addon = fetch_details(self.client, addon_id)
        name = addon.display_name
        context.emit(InstallStarted(name))

        channel, download_url = select_release(self.client, addon, self.channel)
        context.emit(InstallDownloading(name))
        archive = self._download(
            self.fetcher, download_url, scratch, headers=self.client.download_headers()
        )

        context.emit(InstallExtracting(name))
        extract_dir = self._extract(self.fetcher, archive, scratch)

        version = addon.version_for(channel)
        parent, names = self._deploy(
            context, transaction, scratch, extract_dir, name,
            {
                'type': self.client.provider_type,
                'url': addon.page_url,
                'name': name,
                'author': addon.author,
                'version': version,
                'remote_version': version,
            },
        )

        context.emit(InstallComplete(name))
        return CommandResult(True, f'Installed {name} ({channel})', installed=names)


class UpdateAddonCommand(Command):
    label = 'UpdateAddon'

    def __init__(self, record, registry, addons_dir, force=False, git_client=None, fetcher=None,
                 clients=None, reconciler=None, detector=None):
        """Initialize update.

        Args:
            record: AddonRecord - Installed addon to update
            force: bool - Reinstall even when up to date
            git_client: Optional GitClient
            fetcher: Optional ArchiveFetcher
            clients: Optional dict - AddonType -> MarketplaceClient
        """
        super().__init__(registry, addons_dir, reconciler=reconciler, detector=detector)
        self.record = record
        self.force = force
        self.git_client = git_client or GitClient()
        self.fetcher = fetcher or ArchiveFetcher()
        self.clients = clients or {}

    def check(self, context):
        """Check the remote source for a newer version.

        Args:
            context: CommandContext - Receives UpdateCheckStarted / UpdateCheckComplete

        Returns:
            UpdateCheck - Availability, remote version and staging details

        Raises:
            ValidationError: the addon has no update source
            NetworkError / NotFoundError: the remote check failed
        """
        record = self.record
        context.emit(UpdateCheckStarted(record.folder))

        if record.type == AddonType.GITHUB:
            if not record.url:
                raise ValidationError(f'{record.name} has no repository URL')
            remote = self.git_client.get_remote_revision(record.url)
            if not remote:
                raise NetworkError(f'Failed to get the remote revision of {record.url}')
            local = record.git_commit or record.version
            up_to_date = bool(local) and (remote.startswith(local) or local.startswith(remote))
            check = UpdateCheck(not up_to_date, remote)
        elif record.type in MARKETPLACE_TYPES:
            client = self.clients.get(record.type)
            if client is None:
                raise ValidationError(f'No {record.type.value} client configured')
            addon_id = client.parse_addon_id(record.url or record.folder)
            if not addon_id:
                raise ValidationError(f'Could not find the {client.provider_name} id of {record.name}')
            addon = fetch_details(client, addon_id)
            channel, download_url = select_release(client, addon)
            remote = addon.version_for(channel) or 'latest'
            check = UpdateCheck(
                remote == 'latest' or remote != record.version,
                remote,
                download_url=download_url,
                headers=client.download_headers(),
            )
        else:
            raise ValidationError(f'{record.name} is not managed by a remote source')

        context.emit(UpdateCheckComplete(record.folder, check.update_available, check.remote_version))
        return check

    def _execute(self, context, transaction, scratch):
        record = self.record
        check = self.check(context)

        if not check.update_available and not self.force:
            self.registry.update(record.folder, {'last_checked': _now(), 'remote_version': check.remote_version})
            return CommandResult(True, 'Up to date', updated=False)

        self._require_addons_dir()
        name = record.name
        context.emit(InstallStarted(name))
        context.emit(InstallDownloading(name))

        provenance = {'last_checked': _now(), 'remote_version': check.remote_version}
        fallback_version = None
        if record.type == AddonType.GITHUB:
            source_dir = scratch / 'clone'
            if not self.git_client.clone(record.url, None, source_dir):
                raise NetworkError(f'Failed to clone {record.url}')
            commit = self.git_client.get_current_commit(source_dir) or check.remote_version
            provenance['git_commit'] = commit
            fallback_version = commit[:7]
            context.emit(InstallExtracting(name))
        else:
            archive = self._download(self.fetcher, check.download_url, scratch, headers=check.headers)
            context.emit(InstallExtracting(name))
            source_dir = self._extract(self.fetcher, archive, scratch)
            provenance['version'] = check.remote_version

        parent, names = self._deploy(
            context, transaction, scratch, source_dir, name, provenance,
            repo_name=record.folder,
            preferred_parent=record.folder,
            previous_folders=[record.folder, *record.owned_folders],
            fallback_version=fallback_version,
        )

        context.emit(InstallComplete(name))
        return CommandResult(True, f'Updated to {check.remote_version[:7]}', installed=names, updated=True)


class RemoveAddonCommand(Command):
    label = 'RemoveAddon'

    def __init__(self, folder, registry, addons_dir, force=False, reconciler=None, detector=None):
        """Initialize removal.

        Args:
            folder: str - Folder of the addon record to remove
            force: bool - Remove even if other addons require it
        """
        super().__init__(registry, addons_dir, reconciler=reconciler, detector=detector)
        self.folder = folder
        self.force = force

    def _execute(self, context, transaction, scratch):
        record = self.registry.get_by_folder(self.folder)
        if record is None:
            owner = self.registry.get_owner_of(self.folder)
            if owner:
                raise ValidationError(
                    f'"{self.folder}" is part of "{owner.folder}"; remove that addon instead'
                )
            raise NotFoundError(f'Addon "{self.folder}" is not installed')

        if not self.force:
            dependents = self.registry.get_required_dependents(record.folder)
            if dependents:
                names = ', '.join(dependent.folder for dependent in dependents)
                raise ValidationError(f'{record.name} is required by: {names}')

        backup_root = scratch / 'backup'
        for folder in [record.folder, *record.owned_folders]:
            dest = self.addons_dir / folder
            if not dest.exists():
                logger.info("Folder %s already gone", dest)
                continue
            backup = backup_root / folder
            copy_folder(dest, backup)
            transaction.record(REMOVED_FOLDER, folder, backup)
            remove_directory_safe(dest)

        transaction.record(REMOVED_RECORD, record.folder, record)
        self.registry.remove(record.folder)

        context.emit(RemoveComplete(record.folder))
        return CommandResult(True, f'Removed {record.name}')
