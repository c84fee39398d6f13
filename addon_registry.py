"""
Addon Registry
Persistent SQLite store of installed addon records
"""

import json
import logging
import sqlite3
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

from addon_errors import DuplicateFolderError

logger = logging.getLogger(__name__)


class AddonType(str, Enum):
    GITHUB = 'github'
    WAGO = 'wago'
    TUKUI = 'tukui'
    WOWINTERFACE = 'wowinterface'
    MANUAL = 'manual'


class AddonKind(str, Enum):
    ADDON = 'addon'
    LIBRARY = 'library'


LIST_FIELDS = ('owned_folders', 'required_deps', 'optional_deps', 'embedded_libs')


@dataclass
class AddonRecord:
    folder: str
    name: str = ''
    version: Optional[str] = None
    author: Optional[str] = None
    interface: Optional[str] = None
    url: Optional[str] = None
    type: AddonType = AddonType.MANUAL
    kind: AddonKind = AddonKind.ADDON
    kind_override: bool = False
    flavor: str = 'retail'
    parent: Optional[str] = None
    owned_folders: List[str] = field(default_factory=list)
    required_deps: List[str] = field(default_factory=list)
    optional_deps: List[str] = field(default_factory=list)
    embedded_libs: List[str] = field(default_factory=list)
    git_commit: Optional[str] = None
    install_date: str = ''
    last_updated: str = ''
    last_checked: Optional[str] = None
    remote_version: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            self.name = self.folder
        self.type = AddonType(self.type)
        self.kind = AddonKind(self.kind)
        self.kind_override = bool(self.kind_override)
        for list_field in LIST_FIELDS:
            setattr(self, list_field, _unique(getattr(self, list_field)))
        now = datetime.now().isoformat()
        if not self.install_date:
            self.install_date = now
        if not self.last_updated:
            self.last_updated = self.install_date

    def to_patch(self):
        """Return every field except the key, suitable for AddonRegistry.update()."""
        patch = asdict(self)
        del patch['folder']
        return patch


RECORD_FIELDS = tuple(f.name for f in fields(AddonRecord))


def _unique(values):
    """De-duplicate a name list, keeping first-seen order."""
    seen = []
    for value in values or []:
        if value not in seen:
            seen.append(value)
    return seen


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS addons (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    folder          TEXT NOT NULL,
    name            TEXT NOT NULL,
    version         TEXT,
    author          TEXT,
    interface       TEXT,
    url             TEXT,
    type            TEXT NOT NULL,
    kind            TEXT NOT NULL DEFAULT 'addon',
    kind_override   INTEGER NOT NULL DEFAULT 0,
    flavor          TEXT NOT NULL DEFAULT 'retail',
    parent          TEXT,
    owned_folders   TEXT NOT NULL DEFAULT '[]',   -- JSON array
    required_deps   TEXT NOT NULL DEFAULT '[]',   -- JSON array
    optional_deps   TEXT NOT NULL DEFAULT '[]',   -- JSON array
    embedded_libs   TEXT NOT NULL DEFAULT '[]',   -- JSON array
    git_commit      TEXT,
    install_date    TEXT NOT NULL,
    last_updated    TEXT NOT NULL,
    last_checked    TEXT,
    remote_version  TEXT
);
"""

_INDEX_SQL = "CREATE UNIQUE INDEX IF NOT EXISTS idx_addons_folder ON addons(folder);"

# Columns added after the first release, with their ALTER TABLE definitions
_MIGRATED_COLUMNS = {
    'git_commit': 'TEXT',
    'kind': "TEXT NOT NULL DEFAULT 'addon'",
    'kind_override': 'INTEGER NOT NULL DEFAULT 0',
    'flavor': "TEXT NOT NULL DEFAULT 'retail'",
    'parent': 'TEXT',
    'owned_folders': "TEXT NOT NULL DEFAULT '[]'",
    'required_deps': "TEXT NOT NULL DEFAULT '[]'",
    'optional_deps': "TEXT NOT NULL DEFAULT '[]'",
    'embedded_libs': "TEXT NOT NULL DEFAULT '[]'",
    'last_checked': 'TEXT',
    'remote_version': 'TEXT',
}


class AddonRegistry:
    def __init__(self, db_path):
        """Open (or create) the registry database.

        Args:
            db_path: str/Path - SQLite file, or ':memory:'
        """
        self.db_path = str(db_path)
        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        logger.info("Opening addon registry at %s", self.db_path)
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        with self._conn:
            self._conn.executescript(_SCHEMA_SQL)
            existing = {row['name'] for row in self._conn.execute("PRAGMA table_info(addons)")}
            for column, definition in _MIGRATED_COLUMNS.items():
                if column not in existing:
                    logger.info("Migrating registry: adding column %s", column)
                    self._conn.execute(f"ALTER TABLE addons ADD COLUMN {column} {definition}")
            self._conn.execute(_INDEX_SQL)

    def close(self):
        self._conn.close()

    # -- row conversion ---------------------------------------------------

    def _row_to_record(self, row):
        data = {key: row[key] for key in RECORD_FIELDS}
        for list_field in LIST_FIELDS:
            data[list_field] = _load_list(row[list_field])
        return AddonRecord(**data)

    def _to_columns(self, values):
        columns = {}
        for key, value in values.items():
            if key in LIST_FIELDS:
                value = json.dumps(_unique(value))
            elif key == 'kind_override':
                value = 1 if value else 0
            elif isinstance(value, Enum):
                value = value.value
            columns[key] = value
        return columns

    # -- queries ----------------------------------------------------------

    def get_all(self):
        """Get all records ordered by display name."""
        rows = self._conn.execute("SELECT * FROM addons ORDER BY name COLLATE NOCASE ASC")
        return [self._row_to_record(row) for row in rows]

    def get_by_folder(self, folder):
        """Get the record keyed by folder, or None."""
        row = self._conn.execute("SELECT * FROM addons WHERE folder = ?", (folder,)).fetchone()
        return self._row_to_record(row) if row else None

    def get_dependents(self, folder):
        """Get records listing folder in their required or optional deps.

        Args:
            folder: str - Dependency name (matched case-insensitively)

        Returns:
            list - AddonRecord objects, the folder's own record excluded
        """
        target = folder.lower()
        return [
            record for record in self.get_all()
            if record.folder != folder
            and target in {dep.lower() for dep in record.required_deps + record.optional_deps}
        ]

    def get_required_dependents(self, folder):
        """Get records listing folder in their required deps only."""
        target = folder.lower()
        return [
            record for record in self.get_all()
            if record.folder != folder
            and target in {dep.lower() for dep in record.required_deps}
        ]

    def get_owner_of(self, folder):
        """Get the record whose owned_folders contains folder, or None."""
        for record in self.get_all():
            if record.folder != folder and folder in record.owned_folders:
                return record
        return None

    # -- mutations --------------------------------------------------------

    def add(self, record):
        """Insert a new record.

        Raises:
            DuplicateFolderError: the folder already has a row or is owned by another record
        """
        owner = self.get_owner_of(record.folder)
        if owner:
            raise DuplicateFolderError(
                record.folder,
                f'Addon folder "{record.folder}" is owned by "{owner.folder}"'
            )

        columns = self._to_columns(asdict(record))
        names = ', '.join(columns)
        placeholders = ', '.join(f':{name}' for name in columns)
        try:
            with self._conn:
                self._conn.execute(f"INSERT INTO addons ({names}) VALUES ({placeholders})", columns)
        except sqlite3.IntegrityError as e:
            raise DuplicateFolderError(record.folder) from e

    def update(self, folder, updates):
        """Merge-patch a record. List fields are replaced wholesale.

        Args:
            folder: str - Record key
            updates: dict - Field values to set ('folder' and 'id' are ignored)

        Returns:
            bool - True if a row was updated
        """
        patch = {key: value for key, value in updates.items() if key not in ('folder', 'id')}
        unknown = set(patch) - set(RECORD_FIELDS)
        if unknown:
            raise ValueError(f"Unknown addon record fields: {', '.join(sorted(unknown))}")
        if not patch:
            return False

        if 'owned_folders' in patch:
            for owned in patch['owned_folders']:
                if owned != folder and self.get_by_folder(owned):
                    raise DuplicateFolderError(
                        owned,
                        f'Addon folder "{owned}" is tracked independently; remove its record before claiming it'
                    )

        columns = self._to_columns(patch)
        set_clause = ', '.join(f'{name} = :{name}' for name in columns)
        columns['_folder'] = folder
        with self._conn:
            cursor = self._conn.execute(
                f"UPDATE addons SET {set_clause} WHERE folder = :_folder", columns
            )
        return cursor.rowcount > 0

    def remove(self, folder):
        """Delete a record. Files on disk are the caller's responsibility."""
        with self._conn:
            cursor = self._conn.execute("DELETE FROM addons WHERE folder = ?", (folder,))
        return cursor.rowcount > 0


def _load_list(raw):
    try:
        value = json.loads(raw or '[]')
    except ValueError:
        logger.warning("Discarding malformed list column value: %r", raw)
        return []
    return value if isinstance(value, list) else []
