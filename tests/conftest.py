import gzip
import sqlite3
import uuid
from pathlib import Path

import pytest

from applenotesexport import proto
from applenotesexport.config import ExportConfig

ENTITIES = {
    "ICAttachment": 5,
    "ICMedia": 11,
    "ICNote": 12,
    "ICAccount": 13,
    "ICFolder": 15,
}

# The columns the exporter reads; ZCREATIONDATE2 is left out on purpose, as
# on databases from older macOS versions
COLUMNS = [
    "Z_ENT INTEGER",
    "ZNAME TEXT",
    "ZIDENTIFIER TEXT",
    "ZTITLE TEXT",
    "ZTITLE1 TEXT",
    "ZTITLE2 TEXT",
    "ZPARENT INTEGER",
    "ZFOLDERTYPE INTEGER",
    "ZOWNER INTEGER",
    "ZFOLDER INTEGER",
    "ZNOTE INTEGER",
    "ZMEDIA INTEGER",
    "ZCREATIONDATE REAL",
    "ZCREATIONDATE1 REAL",
    "ZCREATIONDATE3 REAL",
    "ZMODIFICATIONDATE REAL",
    "ZMODIFICATIONDATE1 REAL",
    "ZISPASSWORDPROTECTED INTEGER",
    "ZFILENAME TEXT",
    "ZGENERATION1 TEXT",
    "ZFALLBACKPDFGENERATION TEXT",
    "ZFALLBACKIMAGEGENERATION TEXT",
    "ZSIZEWIDTH INTEGER",
    "ZSIZEHEIGHT INTEGER",
    "ZHANDWRITINGSUMMARY TEXT",
    "ZTYPEUTI TEXT",
    "ZALTTEXT TEXT",
    "ZTOKENCONTENTIDENTIFIER TEXT",
    "ZURLSTRING TEXT",
]


def utf16_len(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


def make_payload(text: str, runs=None) -> bytes:
    """Gzipped NoteStoreProto for ``text``.

    ``runs`` is a list of ``(text, attributes)`` pairs covering ``text`` in
    order; by default one plain run covers everything.
    """
    message = proto.lookup_type("notes.NoteStoreProto")()
    note = message.document.note
    note.note_text = text

    for run_text, attributes in runs or [(text, {})]:
        run = note.attribute_run.add(length=utf16_len(run_text))
        for name, value in attributes.items():
            if name == "paragraph_style":
                run.paragraph_style.CopyFrom(value)
            elif name == "attachment_info":
                run.attachment_info.CopyFrom(value)
            else:
                setattr(run, name, value)

    return gzip.compress(message.SerializeToString())


def paragraph(style_type: int, **fields):
    style = proto.lookup_type("notes.ParagraphStyle")(style_type=style_type, **fields)
    return style


def attachment(identifier: str, uti: str):
    return proto.lookup_type("notes.AttachmentInfo")(
        attachment_identifier=identifier, type_uti=uti
    )


class NoteStore:
    """A minimal Apple Notes group container on disk."""

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(root / "NoteStore.sqlite")
        self.conn.executescript(
            f"""
            CREATE TABLE Z_PRIMARYKEY (Z_ENT INTEGER PRIMARY KEY, Z_NAME TEXT);
            CREATE TABLE ZICCLOUDSYNCINGOBJECT (Z_PK INTEGER PRIMARY KEY, {", ".join(COLUMNS)});
            CREATE TABLE ZICNOTEDATA (Z_PK INTEGER PRIMARY KEY, ZNOTE INTEGER, ZDATA BLOB);
            """
        )
        self.conn.executemany(
            "INSERT INTO Z_PRIMARYKEY (Z_ENT, Z_NAME) VALUES (?, ?)",
            [(ent, name) for name, ent in ENTITIES.items()],
        )
        self.conn.commit()

    def _insert(self, entity: str, **values) -> int:
        values["Z_ENT"] = ENTITIES[entity]
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        cursor = self.conn.execute(
            f"INSERT INTO ZICCLOUDSYNCINGOBJECT ({columns}) VALUES ({placeholders})",
            tuple(values.values()),
        )
        self.conn.commit()
        return cursor.lastrowid

    def add_account(self, name: str = "iCloud", identifier: str | None = None) -> int:
        return self._insert("ICAccount", ZNAME=name, ZIDENTIFIER=identifier or str(uuid.uuid4()).upper())

    def account_path(self, account: int) -> Path:
        row = self.conn.execute(
            "SELECT ZIDENTIFIER FROM ZICCLOUDSYNCINGOBJECT WHERE Z_PK = ?", (account,)
        ).fetchone()
        return self.root / "Accounts" / row[0]

    def add_folder(
        self,
        title: str,
        owner: int,
        parent: int | None = None,
        folder_type: int = 0,
        identifier: str | None = None,
    ) -> int:
        return self._insert(
            "ICFolder",
            ZTITLE2=title,
            ZOWNER=owner,
            ZPARENT=parent,
            ZFOLDERTYPE=folder_type,
            ZIDENTIFIER=identifier or str(uuid.uuid4()).upper(),
        )

    def add_note(
        self,
        title: str,
        folder: int | None,
        text: str | None = None,
        runs=None,
        identifier: str | None = None,
        created: float | None = 700000000.0,
        modified: float | None = 710000000.0,
        password: bool = False,
        data: bytes | None = None,
    ) -> int:
        pk = self._insert(
            "ICNote",
            ZTITLE1=title,
            ZFOLDER=folder,
            ZIDENTIFIER=identifier or str(uuid.uuid4()).upper(),
            ZCREATIONDATE1=created,
            ZMODIFICATIONDATE1=modified,
            ZISPASSWORDPROTECTED=1 if password else 0,
        )
        if data is None:
            data = make_payload(text if text is not None else title, runs)
        self.conn.execute("INSERT INTO ZICNOTEDATA (ZNOTE, ZDATA) VALUES (?, ?)", (pk, data))
        self.conn.commit()
        return pk

    def add_attachment(self, note: int, uti: str, identifier: str | None = None, **values) -> int:
        values.setdefault("ZCREATIONDATE", 700000000.0)
        values.setdefault("ZMODIFICATIONDATE", 710000000.0)
        return self._insert(
            "ICAttachment",
            ZNOTE=note,
            ZTYPEUTI=uti,
            ZIDENTIFIER=identifier or str(uuid.uuid4()).upper(),
            **values,
        )

    def add_media(
        self,
        note: int,
        filename: str,
        content: bytes,
        uti: str = "public.jpeg",
        account: int | None = None,
        generation: str | None = None,
    ) -> tuple[str, int, int]:
        """Add a media file and the attachment pointing at it.

        The binary goes under the account folder, or the shared container
        when ``account`` is None. Returns ``(attachment identifier,
        attachment pk, media pk)``.
        """
        media_identifier = str(uuid.uuid4()).upper()
        media = self._insert("ICMedia", ZIDENTIFIER=media_identifier, ZFILENAME=filename, ZGENERATION1=generation)
        identifier = str(uuid.uuid4()).upper()
        pk = self.add_attachment(note, uti, identifier=identifier, ZMEDIA=media)

        base = self.account_path(account) if account is not None else self.root
        target = base / "Media" / media_identifier
        if generation:
            target = target / generation
        target.mkdir(parents=True, exist_ok=True)
        (target / filename).write_bytes(content)
        return identifier, pk, media

    def set_payload(self, note: int, text: str, runs=None) -> None:
        self.conn.execute(
            "UPDATE ZICNOTEDATA SET ZDATA = ? WHERE ZNOTE = ?", (make_payload(text, runs), note)
        )
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()


@pytest.fixture
def store(tmp_path: Path):
    notes_store = NoteStore(tmp_path / "group.com.apple.notes")
    yield notes_store
    notes_store.close()


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "export"


@pytest.fixture
def config(store: NoteStore, output_dir: Path) -> ExportConfig:
    return ExportConfig(notes_folder=store.root, output_dir=output_dir)
