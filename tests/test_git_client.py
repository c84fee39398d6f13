import subprocess

from git_client import GitClient


class RecordingRun:
    """Replaces subprocess.run, answering every call with one result."""

    def __init__(self, returncode=0, stdout='', stderr='', raises=None):
        self.result = subprocess.CompletedProcess([], returncode, stdout, stderr)
        self.raises = raises
        self.calls = []

    def __call__(self, args, **kwargs):
        self.calls.append((args, kwargs))
        if self.raises:
            raise self.raises
        return self.result


def test_clone_is_shallow_and_passes_branch(monkeypatch, tmp_path):
    run = RecordingRun()
    monkeypatch.setattr(subprocess, 'run', run)

    assert GitClient().clone('https://github.com/a/b', 'dev', tmp_path / 'b')

    args = run.calls[0][0]
    assert args[:5] == ['git', 'clone', '--quiet', '--depth', '1']
    assert args[-4:] == ['--branch', 'dev', 'https://github.com/a/b', str(tmp_path / 'b')]


def test_clone_failure_returns_false(monkeypatch, tmp_path):
    monkeypatch.setattr(subprocess, 'run', RecordingRun(returncode=128, stderr='not found'))
    assert not GitClient().clone('https://github.com/a/b', None, tmp_path / 'b')

    monkeypatch.setattr(subprocess, 'run', RecordingRun(raises=FileNotFoundError('git')))
    assert not GitClient().clone('https://github.com/a/b', None, tmp_path / 'b')


def test_get_remote_revision_parses_ls_remote(monkeypatch):
    run = RecordingRun(stdout='0123456789abcdef0123456789abcdef01234567\tHEAD\n')
    monkeypatch.setattr(subprocess, 'run', run)

    assert GitClient().get_remote_revision('https://github.com/a/b') == '0123456789abcdef0123456789abcdef01234567'
    assert run.calls[0][0][-1] == 'HEAD'

    GitClient().get_remote_revision('https://github.com/a/b', 'main')
    assert run.calls[1][0][-1] == 'refs/heads/main'


def test_get_remote_revision_failures(monkeypatch):
    monkeypatch.setattr(subprocess, 'run', RecordingRun(stdout=''))
    assert GitClient().get_remote_revision('https://github.com/a/b') is None

    monkeypatch.setattr(subprocess, 'run', RecordingRun(raises=subprocess.TimeoutExpired('git', 30)))
    assert GitClient().get_remote_revision('https://github.com/a/b') is None


def test_get_current_commit(monkeypatch, tmp_path):
    monkeypatch.setattr(subprocess, 'run', RecordingRun(stdout='abc123\n'))
    assert GitClient().get_current_commit(tmp_path) == 'abc123'

    monkeypatch.setattr(subprocess, 'run', RecordingRun(returncode=128))
    assert GitClient().get_current_commit(tmp_path) is None
