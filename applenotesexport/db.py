"""SQLite read layer for the Apple Notes database."""

import logging
import shutil
import sqlite3
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

# Apple Notes group container
NOTES_FOLDER_PATH = Path("~/Library/Group Containers/group.com.apple.notes").expanduser()
NOTES_DB = "NoteStore.sqlite"

REQUIRED_ENTITIES = ("ICAccount", "ICFolder", "ICNote", "ICAttachment", "ICMedia")


class NotesDBError(Exception):
    """Base exception for Notes database errors."""
    pass


class DatabaseNotFoundError(NotesDBError):
    """Notes database file not found."""
    pass


class DatabaseLockedError(NotesDBError):
    """Notes database is locked by another process."""
    pass


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Get a read-only connection to a Notes database file."""
    if not db_path.exists():
        raise DatabaseNotFoundError(f"Notes database not found at {db_path}")

    try:
        # Connect in read-only mode with timeout for locked database
        conn = sqlite3.connect(
            f"file:{db_path}?mode=ro",
            uri=True,
            timeout=5.0
        )
        conn.row_factory = sqlite3.Row
        return conn
    except sqlite3.OperationalError as e:
        error_msg = str(e).lower()
        if "database is locked" in error_msg:
            raise DatabaseLockedError(
                "Notes database is locked. Please close Notes app and try again."
            ) from e
        if "unable to open database file" in error_msg:
            raise NotesDBError(
                "Cannot access Notes database. Please grant Full Disk Access to Terminal:\n"
                "System Settings > Privacy & Security > Full Disk Access > Enable Terminal"
            ) from e
        raise NotesDBError(f"Database error: {e}") from e


def clone_database(notes_folder: Path, destination: Path) -> Path:
    """Copy NoteStore.sqlite and its WAL/SHM sidecars into ``destination``.

    Notes keeps the live database open, so the export reads from a copy.
    """
    if not notes_folder.is_dir():
        raise DatabaseNotFoundError(
            f"Cannot access Apple Notes data folder at {notes_folder}"
        )

    source = notes_folder / NOTES_DB
    if not source.exists():
        raise DatabaseNotFoundError(f"Notes database not found at {source}")

    cloned = destination / NOTES_DB
    try:
        shutil.copyfile(source, cloned)
        for suffix in ("-wal", "-shm"):
            sidecar = source.with_name(source.name + suffix)
            if sidecar.exists():
                shutil.copyfile(sidecar, cloned.with_name(cloned.name + suffix))
    except PermissionError as e:
        raise NotesDBError(
            "Cannot read Notes database. Please grant Full Disk Access to Terminal:\n"
            "System Settings > Privacy & Security > Full Disk Access > Enable Terminal"
        ) from e

    return cloned


class NotesDatabase:
    """Read-only handle on a private copy of the Notes database.

    Use as a context manager: the connection is closed and the copy removed
    on exit, whether or not the export succeeded.
    """

    def __init__(self, notes_folder: Path = NOTES_FOLDER_PATH):
        self.notes_folder = notes_folder
        self._tempdir = tempfile.mkdtemp(prefix="notes-export-")
        try:
            db_path = clone_database(notes_folder, Path(self._tempdir))
            self.conn = get_connection(db_path)
        except Exception:
            shutil.rmtree(self._tempdir, ignore_errors=True)
            raise

    def __enter__(self) -> "NotesDatabase":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def all(self, query: str, params=()) -> list[sqlite3.Row]:
        """Run a query and return every row."""
        return self.conn.execute(query, params).fetchall()

    def get(self, query: str, params=()) -> sqlite3.Row | None:
        """Run a query and return the first row, if any."""
        return self.conn.execute(query, params).fetchone()

    def close(self) -> None:
        if self.conn is None:
            return
        self.conn.close()
        self.conn = None
        shutil.rmtree(self._tempdir, ignore_errors=True)
        logger.debug("Closed Notes database copy in %s", self._tempdir)

    def entity_keys(self) -> dict[str, int]:
        """Map Core Data entity names (ICNote, ICFolder, ...) to Z_ENT values.

        The numbers differ between macOS versions, so they are read from
        Z_PRIMARYKEY rather than hardcoded.
        """
        try:
            rows = self.all("SELECT z_ent, z_name FROM z_primarykey")
        except sqlite3.DatabaseError as e:
            raise NotesDBError(f"Database error: {e}") from e

        keys = {row["z_name"]: row["z_ent"] for row in rows}
        missing = [name for name in REQUIRED_ENTITIES if name not in keys]
        if missing:
            raise NotesDBError(
                f"Unsupported Notes database, missing entities: {', '.join(missing)}"
            )
        return keys
