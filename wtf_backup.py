"""
WTF Backup
Zips the game's saved-variables folder (WTF) before addon updates
"""

import logging
import os
import time
import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

CREATED = 'created'
SKIPPED_RECENT = 'skipped_recent'
NO_WTF = 'no_wtf'

DEFAULT_MIN_INTERVAL_MINUTES = 15
DEFAULT_RETENTION = 5

BACKUP_PREFIX = 'WTF-'
# Lexical order of names is chronological order
TIMESTAMP_FORMAT = '%Y-%m-%dT%H-%M-%S-%f'


@dataclass(frozen=True)
class BackupResult:
    status: str
    path: Optional[Path] = None


def retail_dir_for(addons_dir):
    """_retail_/Interface/AddOns -> _retail_"""
    return Path(addons_dir).parent.parent


def backups_dir_for(addons_dir):
    return retail_dir_for(addons_dir) / 'Backups' / 'WTF'


def list_backups(backups_dir):
    """Backup archives in a folder, newest first."""
    backups_dir = Path(backups_dir)
    if not backups_dir.is_dir():
        return []
    archives = [
        p for p in backups_dir.iterdir()
        if p.is_file() and p.name.startswith(BACKUP_PREFIX) and p.suffix.lower() == '.zip'
    ]
    return sorted(archives, key=lambda p: p.name, reverse=True)


def backup_wtf(addons_dir, min_interval_minutes=0, now=None):
    """Zip _retail_/WTF into _retail_/Backups/WTF/WTF-<timestamp>.zip.

    Args:
        addons_dir: str/Path - The _retail_/Interface/AddOns directory
        min_interval_minutes: int - Skip when the newest backup is younger than this
        now: Optional datetime - Timestamp used for the archive name

    Returns:
        BackupResult - status is CREATED (with path), SKIPPED_RECENT (with the
        newest existing archive) or NO_WTF

    Raises:
        OSError: the archive could not be written
    """
    retail_dir = retail_dir_for(addons_dir)
    wtf_dir = retail_dir / 'WTF'
    if not wtf_dir.is_dir():
        logger.info("No WTF folder at %s, nothing to back up", wtf_dir)
        return BackupResult(NO_WTF)

    backups_dir = backups_dir_for(addons_dir)
    backups_dir.mkdir(parents=True, exist_ok=True)

    if min_interval_minutes > 0:
        existing = list_backups(backups_dir)
        if existing:
            age_minutes = (time.time() - existing[0].stat().st_mtime) / 60
            if age_minutes < min_interval_minutes:
                logger.info("Skipping WTF backup, %s is %.1f minutes old", existing[0].name, age_minutes)
                return BackupResult(SKIPPED_RECENT, existing[0])

    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    archive = backups_dir / f'{BACKUP_PREFIX}{stamp}.zip'
    partial = archive.with_name(archive.name + '.part')

    logger.info("Backing up %s to %s", wtf_dir, archive)
    try:
        with zipfile.ZipFile(partial, 'w', compression=zipfile.ZIP_DEFLATED) as zip_ref:
            for dirpath, dirnames, filenames in os.walk(wtf_dir):
                dirnames.sort()
                current = Path(dirpath)
                rel_dir = current.relative_to(retail_dir)
                if not filenames and not dirnames:
                    zip_ref.write(current, rel_dir.as_posix() + '/')
                for filename in sorted(filenames):
                    zip_ref.write(current / filename, (rel_dir / filename).as_posix())
        os.replace(partial, archive)
    except OSError:
        partial.unlink(missing_ok=True)
        raise

    return BackupResult(CREATED, archive)


def cleanup_backups(addons_dir, retention_count):
    """Delete old WTF backups, keeping the newest retention_count archives.

    Returns:
        list - Paths that were deleted
    """
    if retention_count < 1:
        return []

    removed = []
    for archive in list_backups(backups_dir_for(addons_dir))[retention_count:]:
        try:
            archive.unlink()
            removed.append(archive)
        except OSError as e:
            logger.warning("Could not delete old backup %s: %s", archive, e)
    if removed:
        logger.info("Removed %d old WTF backups", len(removed))
    return removed
