"""
Settings Store
Manages the settings.json file holding the addon manager configuration
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path

from directory_locator import NOT_CONFIGURED, is_path_configured
from downloader import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / '.config' / 'wow-addon-manager'

DEFAULT_SETTINGS = {
    'dest_dir': NOT_CONFIGURED,
    'flavor': 'retail',
    'wago_api_key': '',
    'user_agent': DEFAULT_USER_AGENT,
    'debug_logging': False,
    'log_path': '',
    'backup_wtf': True,
    'backup_retention': 5,
}

# Settings that fall back to an environment variable when unset
ENV_FALLBACKS = {
    'wago_api_key': 'WAGO_API_KEY',
}


class SettingsStore:
    def __init__(self, config_dir=None):
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.settings_file = self.config_dir / 'settings.json'
        self.data = self._load_settings()

    def _load_settings(self):
        """Load settings from settings.json"""
        if not self.settings_file.exists():
            return self._create_empty_structure()
        try:
            with open(self.settings_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s, using defaults: %s", self.settings_file, e)
            return self._create_empty_structure()

        if not isinstance(data, dict) or not isinstance(data.get('settings'), dict):
            logger.warning("Malformed %s, using defaults", self.settings_file)
            return self._create_empty_structure()
        return data

    def _create_empty_structure(self):
        return {
            'version': '1.0',
            'last_updated': datetime.now().isoformat(),
            'settings': {}
        }

    @property
    def db_path(self):
        """Registry database location inside the config directory."""
        return self.config_dir / 'addons.db'

    def has_settings_file(self):
        return self.settings_file.exists()

    def is_first_launch(self):
        """True until an AddOns directory has been configured."""
        return not is_path_configured(self.get_setting('dest_dir'))

    def save_settings(self):
        """Save settings to settings.json

        Returns:
            bool - True if the file was written
        """
        self.data['last_updated'] = datetime.now().isoformat()
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.settings_file, 'w', encoding='utf-8') as f:
                json.dump(self.data, f, indent=2, ensure_ascii=False)
            return True
        except OSError as e:
            logger.error("Error saving settings: %s", e)
            return False

    def get_setting(self, key, default=None):
        """Get a setting value.

        Unset keys resolve to their environment variable (API keys) or
        built-in default before the default argument.
        """
        value = self.data['settings'].get(key)
        if value in (None, '') and key in ENV_FALLBACKS:
            value = os.environ.get(ENV_FALLBACKS[key]) or value
        if value is None:
            value = DEFAULT_SETTINGS.get(key, default)
        return value

    def set_setting(self, key, value):
        """Set a setting value and save"""
        self.data['settings'][key] = value
        return self.save_settings()

    def get_all_settings(self):
        """Get every setting with defaults applied"""
        keys = list(DEFAULT_SETTINGS) + [key for key in self.data['settings'] if key not in DEFAULT_SETTINGS]
        return {key: self.get_setting(key) for key in keys}
