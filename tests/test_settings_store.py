import json

from directory_locator import NOT_CONFIGURED
from settings_store import SettingsStore


def test_defaults_without_settings_file(tmp_path):
    store = SettingsStore(tmp_path)

    assert not store.has_settings_file()
    assert store.is_first_launch()
    assert store.get_setting('dest_dir') == NOT_CONFIGURED
    assert store.get_setting('flavor') == 'retail'
    assert store.get_setting('backup_wtf') is True
    assert store.get_setting('backup_retention') == 5
    assert store.get_setting('missing', 'fallback') == 'fallback'
    assert store.db_path == tmp_path / 'addons.db'


def test_set_setting_persists(tmp_path):
    store = SettingsStore(tmp_path / 'config')
    assert store.set_setting('dest_dir', '/games/AddOns')

    reloaded = SettingsStore(tmp_path / 'config')
    assert reloaded.get_setting('dest_dir') == '/games/AddOns'
    assert not reloaded.is_first_launch()

    on_disk = json.loads((tmp_path / 'config' / 'settings.json').read_text(encoding='utf-8'))
    assert on_disk['settings'] == {'dest_dir': '/games/AddOns'}
    assert on_disk['version'] == '1.0'


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    (tmp_path / 'settings.json').write_text('{not json', encoding='utf-8')
    assert SettingsStore(tmp_path).get_setting('flavor') == 'retail'

    (tmp_path / 'settings.json').write_text('{"settings": []}', encoding='utf-8')
    assert SettingsStore(tmp_path).data['settings'] == {}


def test_api_key_falls_back_to_environment(tmp_path, monkeypatch):
    monkeypatch.setenv('WAGO_API_KEY', 'env-key')
    store = SettingsStore(tmp_path)
    assert store.get_setting('wago_api_key') == 'env-key'

    store.set_setting('wago_api_key', 'stored-key')
    assert store.get_setting('wago_api_key') == 'stored-key'


def test_get_all_settings_applies_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv('WAGO_API_KEY', raising=False)
    store = SettingsStore(tmp_path)
    store.set_setting('custom', 1)

    settings = store.get_all_settings()

    assert settings['dest_dir'] == NOT_CONFIGURED
    assert settings['wago_api_key'] == ''
    assert settings['debug_logging'] is False
    assert settings['custom'] == 1
