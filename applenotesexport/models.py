"""Data models for Apple Notes export."""

from dataclasses import dataclass, field
from enum import Enum, IntEnum


class FolderType(IntEnum):
    """Values of ZFOLDERTYPE."""

    DEFAULT = 0
    TRASH = 1
    SMART = 3


class AttachmentType(str, Enum):
    """Type UTIs of attachments embedded in a note."""

    DRAWING = "com.apple.paper"
    DRAWING_LEGACY = "com.apple.drawing"
    DRAWING_LEGACY2 = "com.apple.drawing.2"
    HASHTAG = "com.apple.notes.inlinetextattachment.hashtag"
    MENTION = "com.apple.notes.inlinetextattachment.mention"
    INTERNAL_LINK = "com.apple.notes.inlinetextattachment.link"
    MODIFIED_SCAN = "com.apple.paper.doc.scan"
    SCAN_PDF = "com.apple.paper.doc.pdf"
    SCAN = "com.apple.notes.gallery"
    TABLE = "com.apple.notes.table"
    URL_CARD = "public.url"


@dataclass
class Account:
    """A Notes account and the directory holding its binary files."""

    name: str
    uuid: str
    path: str


@dataclass
class FileStats:
    """Timestamps in Unix milliseconds, size in bytes."""

    ctime: int
    mtime: int
    size: int


@dataclass
class OutputFolder:
    """A directory created under the export root."""

    path: str
    name: str


@dataclass
class OutputFile:
    """A note or attachment written under the export root."""

    path: str
    name: str
    basename: str
    extension: str
    parent: OutputFolder | None = None
    stat: FileStats | None = None
    # Handwriting transcription of a drawing
    summary: str | None = None


@dataclass
class ResolutionContext:
    """Run-scoped state shared by the resolvers.

    A fresh context is built for every import. ``files`` and ``folders`` are
    the identity cache: an id present there has already been written and must
    not be resolved again.
    """

    files: dict[int, OutputFile] = field(default_factory=dict)
    folders: dict[int, OutputFolder] = field(default_factory=dict)
    owners: dict[int, int | None] = field(default_factory=dict)
    accounts: dict[int, Account] = field(default_factory=dict)
    trash_folders: set[int] = field(default_factory=set)
    folders_in_progress: set[int] = field(default_factory=set)
    multi_account: bool = False
    note_count: int = 0
    # Notes of the top-level listing; only these count towards progress
    listed_notes: set[int] = field(default_factory=set)
    parsed_notes: int = 0
