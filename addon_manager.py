"""
Addon Manager
Entry point for installing, updating, scanning and removing WoW addons
"""

import logging
import re
from datetime import datetime
from pathlib import Path

import requests

from addon_commands import (
    EXPECTED_ERRORS, CommandResult, InstallFromMarketplaceCommand, InstallFromUrlCommand,
    RemoveAddonCommand, UpdateAddonCommand,
)
from addon_events import CommandContext
from addon_registry import AddonRegistry, AddonType
from addon_transfer import DEFAULT_EXPORT_PATH, analyze_import, export_addons, load_export
from debug_log import DEFAULT_LOG_FILE, configure_debug_log
from directory_locator import is_path_configured
from downloader import ArchiveFetcher
from folder_structure_detector import FolderStructureDetector
from git_client import GitClient
from marketplace_clients import TukUIClient, WagoClient, WoWInterfaceClient
from reconciler import Reconciler
from wtf_backup import DEFAULT_MIN_INTERVAL_MINUTES, backup_wtf, cleanup_backups

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = 'AddOns directory is not configured'


def _clean_source(value):
    return re.sub(r'\.git$', '', (value or '').rstrip('/')).lower()


class AddonManager:
    def __init__(self, settings, registry=None, git_client=None, fetcher=None, clients=None, detector=None):
        """Initialize addon manager.

        Args:
            settings: SettingsStore - Configuration (dest_dir, flavor, API keys)
            registry: Optional AddonRegistry - Defaults to addons.db in the config directory
            git_client: Optional GitClient
            fetcher: Optional ArchiveFetcher
            clients: Optional dict - AddonType -> MarketplaceClient
            detector: Optional FolderStructureDetector
        """
        self.settings = settings
        if settings.get_setting('debug_logging'):
            configure_debug_log(settings.get_setting('log_path') or settings.config_dir / DEFAULT_LOG_FILE)
        self.registry = registry or AddonRegistry(settings.db_path)
        self.context = CommandContext()

        user_agent = settings.get_setting('user_agent')
        session = requests.Session()
        session.headers['User-Agent'] = user_agent

        self.git_client = git_client or GitClient()
        self.fetcher = fetcher or ArchiveFetcher(session=session, user_agent=user_agent)
        self.detector = detector or FolderStructureDetector()
        self.clients = clients or {
            AddonType.WAGO: WagoClient(api_key=settings.get_setting('wago_api_key'), session=session),
            AddonType.TUKUI: TukUIClient(session=session),
            AddonType.WOWINTERFACE: WoWInterfaceClient(session=session),
        }

    @property
    def addons_dir(self):
        return Path(self.settings.get_setting('dest_dir'))

    @property
    def flavor(self):
        return self.settings.get_setting('flavor')

    def is_configured(self):
        return is_path_configured(self.settings.get_setting('dest_dir'))

    def add_listener(self, listener):
        self.context.add_listener(listener)

    def remove_listener(self, listener):
        self.context.remove_listener(listener)

    def close(self):
        self.registry.close()

    def _reconciler(self):
        return Reconciler(
            self.registry, self.addons_dir,
            detector=self.detector, git_client=self.git_client, flavor=self.flavor,
        )

    def _run(self, command):
        if not self.is_configured():
            return CommandResult(False, NOT_CONFIGURED_MESSAGE)
        return command.execute(self.context)

    # -- queries ------------------------------------------------------------

    def get_all_addons(self):
        return self.registry.get_all()

    def get_addon(self, folder):
        return self.registry.get_by_folder(folder)

    def update_addon_metadata(self, folder, updates):
        """Patch a record (e.g. pin kind with kind_override).

        Returns:
            bool - True if the record exists and was updated
        """
        return self.registry.update(folder, updates)

    def is_already_installed(self, url_or_folder):
        """Check by folder name or source URL, ignoring case, a trailing slash and .git."""
        target = _clean_source(url_or_folder)
        return any(
            _clean_source(record.folder) == target or (record.url and _clean_source(record.url) == target)
            for record in self.registry.get_all()
        )

    # -- operations ---------------------------------------------------------

    def scan(self, folders=None):
        """Reconcile the registry with the AddOns directory.

        Returns:
            int - Number of folders processed
        """
        if not self.is_configured():
            logger.warning("Scan skipped: %s", NOT_CONFIGURED_MESSAGE)
            return 0
        return self._reconciler().reconcile(self.context, folders)

    def install_from_url(self, url, branch=None):
        return self._run(InstallFromUrlCommand(
            url, self.registry, self.addons_dir,
            branch=branch,
            git_client=self.git_client,
            fetcher=self.fetcher,
            wowinterface=self.clients.get(AddonType.WOWINTERFACE),
            reconciler=self._reconciler(),
            detector=self.detector,
        ))

    def install_from_marketplace(self, provider, addon_id_or_url, channel='stable'):
        """Install from the Wago or TukUI marketplace.

        Args:
            provider: str - 'wago' or 'tukui'
            addon_id_or_url: str - Addon id, slug or page URL
            channel: str - 'stable', 'beta' or 'alpha'
        """
        try:
            client = self.clients.get(AddonType(provider))
        except ValueError:
            client = None
        if client is None or provider not in (AddonType.WAGO.value, AddonType.TUKUI.value):
            return CommandResult(False, f'Unknown marketplace: {provider}')

        return self._run(InstallFromMarketplaceCommand(
            client, addon_id_or_url, self.registry, self.addons_dir,
            channel=channel,
            fetcher=self.fetcher,
            reconciler=self._reconciler(),
            detector=self.detector,
        ))

    def _update_command(self, record, force=False):
        return UpdateAddonCommand(
            record, self.registry, self.addons_dir,
            force=force,
            git_client=self.git_client,
            fetcher=self.fetcher,
            clients=self.clients,
            reconciler=self._reconciler(),
            detector=self.detector,
        )

    def backup_wtf(self):
        """Back up the WTF folder when the backup_wtf setting is on.

        A failed backup is logged and does not block updates.

        Returns:
            BackupResult - or None when disabled, unconfigured or failed
        """
        if not self.is_configured() or not self.settings.get_setting('backup_wtf'):
            return None
        try:
            result = backup_wtf(self.addons_dir, min_interval_minutes=DEFAULT_MIN_INTERVAL_MINUTES)
            cleanup_backups(self.addons_dir, int(self.settings.get_setting('backup_retention')))
        except (OSError, ValueError) as e:
            logger.error("WTF backup failed: %s", e)
            return None
        return result

    def update_addon(self, record, force=False):
        self.backup_wtf()
        return self._run(self._update_command(record, force))

    def update_all(self, force=False, should_cancel=None):
        """Update every managed addon in name order; manual addons are skipped.

        The WTF folder is backed up once before the first update.

        Args:
            force: bool - Reinstall even when up to date
            should_cancel: Optional callable - Checked before each addon

        Returns:
            list - (AddonRecord, CommandResult) pairs
        """
        self.backup_wtf()
        results = []
        for record in self.registry.get_all():
            if record.type == AddonType.MANUAL:
                continue
            if should_cancel and should_cancel():
                logger.info("Update all cancelled after %d addons", len(results))
                break
            results.append((record, self._run(self._update_command(record, force))))
        return results

    def check_update(self, record):
        """Check one addon for an update without touching its files.

        Returns:
            dict - Check result with keys:
            - success: bool - whether the remote check succeeded
            - update_available: bool
            - remote_version: str
            - error: str - on failure
        """
        command = self._update_command(record)
        try:
            check = command.check(self.context)
        except EXPECTED_ERRORS as e:
            logger.error("Update check for %s failed: %s", record.folder, e)
            return {'success': False, 'update_available': False, 'remote_version': None, 'error': str(e)}

        self.registry.update(record.folder, {
            'last_checked': datetime.now().isoformat(),
            'remote_version': check.remote_version,
        })
        return {
            'success': True,
            'update_available': check.update_available,
            'remote_version': check.remote_version,
        }

    def remove_addon(self, folder, force=False):
        return self._run(RemoveAddonCommand(
            folder, self.registry, self.addons_dir, force=force, detector=self.detector,
        ))

    # -- catalogue ----------------------------------------------------------

    def search_wago(self, query):
        return self.clients[AddonType.WAGO].search_addons(query, game_version=self.flavor)

    def list_tukui_addons(self):
        return self.clients[AddonType.TUKUI].get_addons() or []

    # -- export / import ----------------------------------------------------

    def export_addons(self, output_path=DEFAULT_EXPORT_PATH):
        return export_addons(self.registry.get_all(), output_path)

    def load_export(self, file_path):
        """Read an export file and sort its addons against what is installed.

        Returns:
            dict - load_export() result, plus 'analysis' on success
        """
        result = load_export(file_path)
        if result['success']:
            result['analysis'] = analyze_import(result['data'], self.registry.get_all())
        return result
