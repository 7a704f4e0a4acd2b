"""Export of an Apple Notes database to a folder of Markdown files.

The importer walks accounts, then folders, then notes. Notes pull in the
notes they link to and their attachments while being converted. Every entity
is resolved at most once per run: results are kept in a ResolutionContext
and looked up before any work is done.
"""

import logging
import os
import sqlite3
import zlib

from . import proto
from .attachments import source_plan
from .config import ExportConfig
from .convert import NoteConverter
from .converters import markdown_to_html
from .db import NotesDatabase, NotesDBError
from .files import (
    OutputFolderError,
    OutputVault,
    create_folders,
    sanitize_file_name,
    set_file_times,
)
from .models import (
    Account,
    FileStats,
    FolderType,
    OutputFile,
    OutputFolder,
    ResolutionContext,
)
from .report import ImportReporter
from .timestamps import decode_time

logger = logging.getLogger(__name__)

NOTE_QUERY = """
    SELECT
        nd.z_pk, hex(nd.zdata) AS zhexdata, zcso.ztitle1, zcso.zfolder,
        zcreationdate1, zcreationdate2, zcreationdate3, zmodificationdate1, zispasswordprotected
    FROM
        zicnotedata AS nd,
        (SELECT
            *, NULL AS zcreationdate3, NULL AS zcreationdate2,
            NULL AS zispasswordprotected FROM ziccloudsyncingobject
        ) AS zcso
    WHERE
        zcso.z_pk = nd.znote
        AND zcso.z_pk = ?
"""


class FolderCycleError(Exception):
    """A folder is listed as one of its own ancestors."""
    pass


class AppleNotesImporter:
    """Exports every account, folder, note and attachment of a Notes store."""

    def __init__(self, config: ExportConfig | None = None, reporter: ImportReporter | None = None):
        config = config or ExportConfig()
        self.notes_folder = config.notes_folder
        self.output_dir = config.output_dir
        self.import_trashed = config.import_trashed
        self.include_handwriting = config.include_handwriting
        self.omit_first_line = config.omit_first_line
        self.output_format = config.output_format

        self.reporter = reporter or ImportReporter()
        self.context = ResolutionContext()
        self.vault: OutputVault | None = None
        self.root_folder: OutputFolder | None = None
        self.database: NotesDatabase | None = None
        self.keys: dict[str, int] = {}

    def import_notes(self) -> bool:
        """Run the export.

        Returns False when the run could not start: the Notes data or the
        export location is unusable. Failures of single entities are sent to
        the reporter and do not stop the run.
        """
        self.context = ResolutionContext()
        self.vault = OutputVault(str(self.output_dir))

        try:
            self.root_folder = self.vault.open_root()
            database = NotesDatabase(self.notes_folder)
        except (OutputFolderError, NotesDBError) as e:
            logger.error("Export aborted: %s", e)
            return False

        try:
            with database:
                self.database = database
                self.keys = database.entity_keys()
                self._import_all()
        except (NotesDBError, sqlite3.DatabaseError) as e:
            logger.error("Export aborted: %s", e)
            return False
        finally:
            self.database = None

        return True

    def _import_all(self) -> None:
        ctx = self.context

        accounts = self.database.all(
            "SELECT z_pk FROM ziccloudsyncingobject WHERE z_ent = ? ORDER BY z_pk",
            (self.keys["ICAccount"],),
        )
        folders = self.database.all(
            "SELECT z_pk, ztitle2 FROM ziccloudsyncingobject WHERE z_ent = ? ORDER BY z_pk",
            (self.keys["ICFolder"],),
        )

        for a in accounts:
            try:
                self.resolve_account(a["z_pk"])
            except Exception as e:
                self.reporter.report_failed(f"Account {a['z_pk']}", str(e))
                logger.debug("Account %s failed", a["z_pk"], exc_info=True)

        for f in folders:
            try:
                self.resolve_folder(f["z_pk"])
            except Exception as e:
                self.reporter.report_failed(f["ztitle2"] or f"Folder {f['z_pk']}", str(e))
                logger.debug("Folder %s failed", f["z_pk"], exc_info=True)

        trashed = sorted(ctx.trash_folders)
        placeholders = ", ".join("?" for _ in trashed)
        notes = self.database.all(
            f"""
            SELECT z_pk, zfolder, ztitle1 FROM ziccloudsyncingobject
            WHERE
                z_ent = ?
                AND ztitle1 IS NOT NULL
                AND (zfolder IS NULL OR zfolder NOT IN ({placeholders}))
            ORDER BY z_pk
            """,
            (self.keys["ICNote"], *trashed),
        )
        ctx.note_count = len(notes)
        ctx.listed_notes = {n["z_pk"] for n in notes}

        for n in notes:
            try:
                self.resolve_note(n["z_pk"])
            except Exception as e:
                self.reporter.report_failed(n["ztitle1"], str(e))
                logger.debug("Note %s failed", n["z_pk"], exc_info=True)

    def resolve_account(self, id: int) -> Account:
        ctx = self.context
        if id in ctx.accounts:
            return ctx.accounts[id]

        row = self.database.get(
            """
            SELECT zname, zidentifier FROM ziccloudsyncingobject
            WHERE z_ent = ? AND z_pk = ?
            """,
            (self.keys["ICAccount"], id),
        )
        if row is None:
            raise LookupError(f"Account {id} not found")

        # Folders at the top of each account get a directory named after it
        # as soon as there is more than one account
        if ctx.accounts:
            ctx.multi_account = True

        account = Account(
            name=row["zname"],
            uuid=row["zidentifier"],
            path=os.path.join(self.notes_folder, "Accounts", row["zidentifier"]),
        )
        ctx.accounts[id] = account
        return account

    def resolve_folder(self, id: int) -> OutputFolder | None:
        """Create the directory of a folder, after its ancestors.

        Returns None for folders that are not exported: smart folders, the
        trash (unless trashed notes are imported) and anything inside them.
        """
        ctx = self.context
        if id in ctx.folders:
            return ctx.folders[id]
        if id in ctx.trash_folders:
            return None
        if id in ctx.folders_in_progress:
            raise FolderCycleError(f"Folder {id} is its own ancestor")

        row = self.database.get(
            """
            SELECT ztitle2, zparent, zidentifier, zfoldertype, zowner
            FROM ziccloudsyncingobject
            WHERE z_ent = ? AND z_pk = ?
            """,
            (self.keys["ICFolder"], id),
        )
        if row is None:
            raise LookupError(f"Folder {id} not found")

        if row["zfoldertype"] == FolderType.SMART:
            return None
        if row["zfoldertype"] == FolderType.TRASH and not self.import_trashed:
            ctx.trash_folders.add(id)
            return None

        ctx.folders_in_progress.add(id)
        try:
            if row["zparent"] is not None:
                parent = self.resolve_folder(row["zparent"])
                if parent is None:
                    if row["zparent"] in ctx.trash_folders:
                        ctx.trash_folders.add(id)
                    return None
                prefix = parent.path + "/"
            elif ctx.multi_account and row["zowner"] in ctx.accounts:
                account = ctx.accounts[row["zowner"]]
                prefix = f"{self.root_folder.path}/{sanitize_file_name(account.name)}/"
            else:
                prefix = f"{self.root_folder.path}/"
        finally:
            ctx.folders_in_progress.discard(id)

        if not (row["zidentifier"] or "").startswith("DefaultFolder"):
            # Notes in the default "Notes" folder go straight into the prefix
            prefix += sanitize_file_name(row["ztitle2"] or "")

        folder = create_folders(prefix)
        ctx.folders[id] = folder
        ctx.owners[id] = row["zowner"]
        return folder

    def resolve_note(self, id: int) -> OutputFile | None:
        ctx = self.context
        if id in ctx.files:
            return ctx.files[id]

        row = self.database.get(NOTE_QUERY, (id,))
        if row is None:
            raise LookupError(f"Note {id} has no content")

        title = row["ztitle1"] or "Untitled"
        if row["zispasswordprotected"]:
            self.reporter.report_skipped(title, "note is password protected")
            return None
        if row["zfolder"] in ctx.trash_folders:
            self.reporter.report_skipped(title, "note is in Recently Deleted")
            return None

        folder = ctx.folders.get(row["zfolder"]) or self.root_folder
        file = self.vault.save_note_file(folder, title, self.output_format)

        logger.info("Importing note %s", file.name)
        # Notes may link to each other, so this one has to be cached before
        # its content is converted
        ctx.files[id] = file
        ctx.owners[id] = ctx.owners.get(row["zfolder"])

        converter = self.decode_data(row["zhexdata"], NoteConverter)
        content = converter.format(folder)
        if self.output_format == "html":
            content = markdown_to_html(content, title)

        with open(file.path, "w", encoding="utf-8") as f:
            f.write(content)

        created = decode_time(
            row["zcreationdate3"]
            or row["zcreationdate2"]
            or row["zcreationdate1"]
            or row["zmodificationdate1"]
        )
        modified = decode_time(row["zmodificationdate1"])
        set_file_times(file.path, created, modified)
        file.stat = FileStats(ctime=created, mtime=modified, size=len(content.encode("utf-8")))

        if id in ctx.listed_notes:
            ctx.parsed_notes += 1
            self.reporter.report_progress(ctx.parsed_notes, ctx.note_count)
        return file

    def resolve_note_by_identifier(self, identifier: str) -> OutputFile | None:
        """Resolve the note a link points to.

        A linked note that cannot be exported is reported and gives None,
        leaving the linking note intact.
        """
        row = self.database.get(
            "SELECT z_pk, ztitle1 FROM ziccloudsyncingobject WHERE z_ent = ? AND zidentifier = ?",
            (self.keys["ICNote"], identifier),
        )
        if row is None:
            return None

        try:
            return self.resolve_note(row["z_pk"])
        except Exception as e:
            self.reporter.report_failed(row["ztitle1"] or identifier, str(e))
            logger.debug("Linked note %s failed", identifier, exc_info=True)
            return None

    def resolve_attachment(self, id: int, uti: str) -> OutputFile | None:
        """Copy an attachment's binary into the attachments folder.

        ``id`` is the media row for plain files and the attachment row for
        scans and drawings. Returns None if the attachment cannot be exported.
        """
        ctx = self.context
        if id in ctx.files:
            return ctx.files[id]

        entity, query, build_source = source_plan(uti)
        source = None

        try:
            row = self.database.get(query, {"ent": self.keys[entity], "id": id})
            if row is None:
                raise LookupError(f"Attachment {id} not found")
            source = build_source(row)

            account = ctx.accounts.get(ctx.owners.get(row["znote"]))
            binary = self.get_attachment_source(account, source.source_path)

            path = self.vault.available_attachment_path(source.name, source.extension)
            with open(path, "wb") as f:
                f.write(binary)

            created = decode_time(row["zcreationdate"])
            modified = decode_time(row["zmodificationdate"])
            set_file_times(path, created, modified)
        except Exception as e:
            self.reporter.report_failed(source.source_path if source else f"Attachment {id}", str(e))
            logger.debug("Attachment %s failed", id, exc_info=True)
            return None

        file = OutputFile(
            path=path,
            name=os.path.basename(path),
            basename=source.name,
            extension=source.extension,
            parent=OutputFolder(path=os.path.dirname(path), name=os.path.basename(os.path.dirname(path))),
            stat=FileStats(ctime=created, mtime=modified, size=len(binary)),
            summary=source.summary,
        )
        ctx.files[id] = file
        self.reporter.report_attachment_success(file.path)
        return file

    def get_attachment_source(self, account: Account | None, source_path: str) -> bytes:
        """Read an attachment from its account's folder, else from the shared container."""
        if account is not None:
            try:
                with open(os.path.join(account.path, source_path), "rb") as f:
                    return f.read()
            except OSError:
                logger.debug("%s not in account %s, trying shared folder", source_path, account.name)

        with open(os.path.join(self.notes_folder, source_path), "rb") as f:
            return f.read()

    def decode_data(self, hexdata: str | None, converter_type):
        """Decompress and parse a note payload, wrapped in ``converter_type``."""
        if not hexdata:
            raise ValueError("note has no content")

        unzipped = zlib.decompress(bytes.fromhex(hexdata), zlib.MAX_WBITS | 32)
        message_type = proto.lookup_type(converter_type.protobuf_type)
        decoded = message_type.FromString(unzipped)

        return converter_type(self, decoded)
