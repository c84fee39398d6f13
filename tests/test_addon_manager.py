"""Tests for the AddonManager facade wired to fake collaborators."""

import pytest

from addon_events import InstallComplete, ScanComplete
from addon_manager import NOT_CONFIGURED_MESSAGE, AddonManager
from addon_registry import AddonRecord, AddonType
from marketplace_clients import MarketplaceAddon
from settings_store import SettingsStore
from tests.fakes import FakeArchiveFetcher, FakeGitClient, FakeMarketplaceClient, write_toc

REPO_URL = 'https://github.com/Jaliborc/Bagnon'


@pytest.fixture
def settings(tmp_path, addons_dir):
    store = SettingsStore(tmp_path / 'config')
    store.set_setting('dest_dir', str(addons_dir))
    return store


def make_manager(settings, registry, git=None, clients=None, fetcher=None):
    return AddonManager(
        settings,
        registry=registry,
        git_client=git or FakeGitClient(),
        fetcher=fetcher or FakeArchiveFetcher(),
        clients=clients or {AddonType.WAGO: FakeMarketplaceClient()},
    )


def test_unconfigured_manager_refuses_operations(tmp_path, registry):
    manager = make_manager(SettingsStore(tmp_path / 'config'), registry)

    assert not manager.is_configured()
    assert manager.scan() == 0
    result = manager.install_from_url(REPO_URL)
    assert not result.success
    assert result.message == NOT_CONFIGURED_MESSAGE


def test_scan_emits_to_listeners(settings, registry, addons_dir):
    write_toc(addons_dir / 'Bagnon')
    manager = make_manager(settings, registry)
    events = []
    manager.add_listener(events.append)

    assert manager.scan() == 1
    assert events[-1] == ScanComplete(1)
    assert manager.get_addon('Bagnon') is not None

    manager.remove_listener(events.append)
    manager.scan()
    assert len(events) == 3


def test_install_from_url_and_is_already_installed(settings, registry, tmp_path):
    source = write_toc(tmp_path / 'src' / 'Bagnon')
    manager = make_manager(settings, registry, git=FakeGitClient(repos={REPO_URL: source}))
    events = []
    manager.add_listener(events.append)

    result = manager.install_from_url(REPO_URL)

    assert result.success, result.message
    assert isinstance(events[-1], InstallComplete)
    assert manager.is_already_installed('https://github.com/jaliborc/bagnon.git/')
    assert manager.is_already_installed('bagnon')
    assert not manager.is_already_installed('https://github.com/other/Thing')


def test_unknown_marketplace_is_rejected(settings, registry):
    manager = make_manager(settings, registry)
    assert manager.install_from_marketplace('curseforge', 'details').message == 'Unknown marketplace: curseforge'
    assert not manager.install_from_marketplace('wowinterface', '123').success


def test_install_from_marketplace_uses_provider_client(settings, registry):
    client = FakeMarketplaceClient(addons={'bagnon': MarketplaceAddon(
        'bagnon', 'Bagnon', page_url='https://addons.wago.io/addons/bagnon',
        releases={'stable': {'version': '10.2', 'download_url': 'https://addons.wago.io/dl/bagnon.zip'}},
    )})
    fetcher = FakeArchiveFetcher({'https://addons.wago.io/dl/bagnon.zip': {'Bagnon/Bagnon.toc': '## Title: Bagnon\n'}})
    manager = make_manager(settings, registry, clients={AddonType.WAGO: client}, fetcher=fetcher)

    result = manager.install_from_marketplace('wago', 'bagnon')

    assert result.success, result.message
    assert result.message == 'Installed Bagnon (stable)'
    assert manager.get_addon('Bagnon').type == AddonType.WAGO


def test_update_all_skips_manual_addons_and_honours_cancel(settings, registry):
    registry.add(AddonRecord(folder='Manual'))
    registry.add(AddonRecord(folder='A', type=AddonType.GITHUB, url='https://github.com/x/A', git_commit='1' * 40))
    registry.add(AddonRecord(folder='B', type=AddonType.GITHUB, url='https://github.com/x/B', git_commit='2' * 40))
    git = FakeGitClient(remote_revisions={
        'https://github.com/x/A': '1' * 40,
        'https://github.com/x/B': '2' * 40,
    })
    manager = make_manager(settings, registry, git=git)

    results = manager.update_all()
    assert [(record.folder, result.message) for record, result in results] == [
        ('A', 'Up to date'), ('B', 'Up to date'),
    ]

    calls = []
    cancelled = manager.update_all(should_cancel=lambda: calls.append(1) or len(calls) > 1)
    assert [record.folder for record, _ in cancelled] == ['A']


def test_updates_back_up_wtf_once_per_window(settings, registry, addons_dir):
    retail = addons_dir.parent.parent
    (retail / 'WTF' / 'Account').mkdir(parents=True)
    (retail / 'WTF' / 'Config.wtf').write_text('SET x "1"', encoding='utf-8')
    registry.add(AddonRecord(folder='A', type=AddonType.GITHUB, url='https://github.com/x/A', git_commit='1' * 40))
    git = FakeGitClient(remote_revisions={'https://github.com/x/A': '1' * 40})
    manager = make_manager(settings, registry, git=git)

    manager.update_all()
    manager.update_addon(registry.get_by_folder('A'))

    assert len(list((retail / 'Backups' / 'WTF').glob('WTF-*.zip'))) == 1


def test_wtf_backup_can_be_disabled(settings, registry, addons_dir):
    retail = addons_dir.parent.parent
    (retail / 'WTF').mkdir()
    settings.set_setting('backup_wtf', False)
    manager = make_manager(settings, registry)

    assert manager.backup_wtf() is None
    manager.update_all()

    assert not (retail / 'Backups').exists()


def test_check_update_records_remote_version(settings, registry):
    record = AddonRecord(folder='A', type=AddonType.GITHUB, url='https://github.com/x/A', git_commit='1' * 40)
    registry.add(record)
    manager = make_manager(settings, registry, git=FakeGitClient(remote_revisions={'https://github.com/x/A': '9' * 40}))

    check = manager.check_update(record)

    assert check == {'success': True, 'update_available': True, 'remote_version': '9' * 40}
    stored = manager.get_addon('A')
    assert stored.remote_version == '9' * 40
    assert stored.last_checked is not None


def test_check_update_failure_is_reported(settings, registry):
    record = AddonRecord(folder='Manual')
    registry.add(record)

    check = make_manager(settings, registry).check_update(record)

    assert check['success'] is False
    assert 'not managed' in check['error']


def test_remove_and_metadata_update(settings, registry, addons_dir):
    write_toc(addons_dir / 'Bagnon')
    manager = make_manager(settings, registry)
    manager.scan()

    assert manager.update_addon_metadata('Bagnon', {'kind': 'library', 'kind_override': True})
    assert manager.get_addon('Bagnon').kind_override is True

    assert manager.remove_addon('Bagnon').success
    assert manager.get_all_addons() == []
    assert not (addons_dir / 'Bagnon').exists()


def test_export_then_load_export_includes_analysis(settings, registry, tmp_path):
    registry.add(AddonRecord(folder='A', type=AddonType.GITHUB, url='https://github.com/x/A'))
    manager = make_manager(settings, registry)
    output = tmp_path / 'export.json'

    assert manager.export_addons(output)['count'] == 1
    loaded = manager.load_export(output)

    assert loaded['success']
    assert [a['folder'] for a in loaded['analysis']['already_installed']] == ['A']
