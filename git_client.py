"""
Git Client
Thin wrapper around the git command line
"""

import logging
import os
import re
import subprocess

logger = logging.getLogger(__name__)

_HASH_LINE = re.compile(r'^([0-9a-f]{7,40})\s')


class GitClient:
    def __init__(self, git_executable='git', timeout=120):
        """Initialize git client.

        Args:
            git_executable: str - git binary to run
            timeout: int - Seconds before a network command is abandoned
        """
        self.git_executable = git_executable
        self.timeout = timeout

    def _run_command(self, args, cwd=None, timeout=None):
        """Run git while avoiding a new console window on Windows.

        Args:
            args: list - git arguments
            cwd: Optional str/Path - Working directory
            timeout: Optional int - Seconds, defaults to self.timeout

        Returns:
            subprocess.CompletedProcess - Process result with returncode, stdout, stderr
        """
        kwargs = {}
        if os.name == 'nt':
            kwargs['creationflags'] = subprocess.CREATE_NO_WINDOW
        return subprocess.run(
            [self.git_executable, *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout or self.timeout,
            **kwargs
        )

    def clone(self, url, branch, dest_path):
        """Shallow-clone a repository.

        Args:
            url: str - Repository URL
            branch: Optional str - Branch to clone (None for the remote default)
            dest_path: str/Path - Target directory

        Returns:
            bool - True if the clone succeeded
        """
        args = ['clone', '--quiet', '--depth', '1', '--recurse-submodules']
        if branch:
            args.extend(['--branch', branch])
        args.extend([url, str(dest_path)])

        try:
            result = self._run_command(args)
        except (OSError, subprocess.SubprocessError) as e:
            logger.error("Git clone of %s failed: %s", url, e)
            return False

        if result.returncode != 0:
            logger.error("Git clone of %s failed: %s", url, result.stderr.strip())
            return False
        return True

    def get_remote_revision(self, url, branch=None):
        """Get the latest commit hash of a remote branch (git ls-remote).

        Args:
            url: str - Repository URL
            branch: Optional str - Branch name (None for the remote HEAD)

        Returns:
            str - Commit hash, or None if retrieval failed
        """
        ref = f'refs/heads/{branch}' if branch else 'HEAD'
        try:
            result = self._run_command(['ls-remote', url, ref], timeout=30)
        except (OSError, subprocess.SubprocessError) as e:
            logger.error("git ls-remote %s failed: %s", url, e)
            return None

        if result.returncode != 0 or not result.stdout.strip():
            logger.error("git ls-remote %s %s returned nothing: %s", url, ref, result.stderr.strip())
            return None

        match = _HASH_LINE.match(result.stdout)
        return match.group(1) if match else None

    def get_current_commit(self, repo_path):
        """Get HEAD of a local repository.

        Args:
            repo_path: str/Path - Repository working tree

        Returns:
            str - Commit hash, or None if not a git repository
        """
        try:
            result = self._run_command(['rev-parse', 'HEAD'], cwd=repo_path, timeout=5)
        except (OSError, subprocess.SubprocessError):
            return None
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
        return None
