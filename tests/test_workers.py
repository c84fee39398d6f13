"""Worker threads are driven synchronously by calling run() directly."""

import pytest

pytest.importorskip('PyQt6.QtCore')

from PyQt6.QtCore import QCoreApplication  # noqa: E402

from addon_events import InstallComplete, ScanComplete  # noqa: E402
from addon_manager import AddonManager  # noqa: E402
from addon_registry import AddonRecord, AddonType  # noqa: E402
from directory_locator import DirectoryLocator  # noqa: E402
from settings_store import SettingsStore  # noqa: E402
from tests.fakes import FakeArchiveFetcher, FakeGitClient, FakeMarketplaceClient, write_toc  # noqa: E402
from workers import BatchUpdateWorker, InstallWorker, ScanWorker, SearchWorker, UpdateWorker  # noqa: E402

REPO_URL = 'https://github.com/Jaliborc/Bagnon'


@pytest.fixture(scope='module', autouse=True)
def qt_app():
    return QCoreApplication.instance() or QCoreApplication([])


@pytest.fixture
def manager(tmp_path, addons_dir, registry):
    settings = SettingsStore(tmp_path / 'config')
    settings.set_setting('dest_dir', str(addons_dir))
    source = write_toc(tmp_path / 'src' / 'Bagnon')
    git = FakeGitClient(repos={REPO_URL: source}, remote_revisions={REPO_URL: 'b' * 40})
    return AddonManager(
        settings, registry=registry, git_client=git,
        fetcher=FakeArchiveFetcher(), clients={AddonType.WAGO: FakeMarketplaceClient()},
    )


def collect(signal):
    received = []
    signal.connect(lambda *args: received.append(args))
    return received


def test_install_worker_forwards_events_and_result(manager):
    worker = InstallWorker(manager, REPO_URL)
    finished = collect(worker.finished)
    events = collect(worker.event)

    worker.run()

    assert finished == [(True, 'Installed Bagnon')]
    assert isinstance(events[-1][0], InstallComplete)
    # The bridge detaches once the worker is done
    manager.scan()
    assert not any(isinstance(args[0], ScanComplete) for args in events)


def test_install_worker_reports_failure(manager):
    worker = InstallWorker(manager, 'https://www.curseforge.com/wow/addons/x')
    finished = collect(worker.finished)

    worker.run()

    assert finished[0][0] is False


def test_update_worker_reports_updated_flag(manager, registry):
    registry.add(AddonRecord(folder='Bagnon', type=AddonType.GITHUB, url=REPO_URL, git_commit='a' * 40))
    worker = UpdateWorker(manager, registry.get_by_folder('Bagnon'))
    finished = collect(worker.finished)

    worker.run()

    assert finished == [(True, 'Updated to bbbbbbb', True)]


def test_batch_update_worker_counts(manager, registry):
    registry.add(AddonRecord(folder='Bagnon', type=AddonType.GITHUB, url=REPO_URL, git_commit='b' * 40))
    registry.add(AddonRecord(folder='Broken', type=AddonType.GITHUB, url='https://github.com/x/Broken'))
    worker = BatchUpdateWorker(manager)
    finished = collect(worker.finished)
    log = collect(worker.log)

    worker.run()

    assert finished == [(0, 1, 1)]
    assert ('Bagnon already up-to-date',) in log


def test_scan_worker(manager, addons_dir):
    write_toc(addons_dir / 'Details')
    worker = ScanWorker(manager)
    finished = collect(worker.finished)

    worker.run()

    assert finished == [(1, '')]


def test_search_worker_quick_check_and_error(tmp_path, wow_root):
    locator = DirectoryLocator(platform_name='win32')
    worker = SearchWorker(locator, str(tmp_path))
    finished = collect(worker.finished)
    worker.run()
    assert finished == [(str(wow_root / '_retail_' / 'Interface' / 'AddOns'), '')]

    missing = SearchWorker(locator, str(tmp_path / 'missing'))
    finished = collect(missing.finished)
    missing.run()
    assert finished[0][0] is None
    assert 'Cannot read directory' in finished[0][1]


def test_search_worker_cancel(tmp_path):
    worker = SearchWorker(DirectoryLocator(platform_name='linux', home=tmp_path), str(tmp_path))
    finished = collect(worker.finished)
    worker.cancel()

    worker.run()

    assert finished == [(None, '')]
