"""Filesystem layer for the export destination."""

import logging
import os
import re
import time

from .models import FileStats, OutputFile, OutputFolder

logger = logging.getLogger(__name__)

ATTACHMENTS_FOLDER = "attachments"

ILLEGAL_RE = re.compile(r'[/?<>\\:*|"]')
CONTROL_RE = re.compile(r"[\x00-\x1f\x80-\x9f]")
RESERVED_RE = re.compile(r"^\.+$")
WINDOWS_RESERVED_RE = re.compile(r"^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$", re.IGNORECASE)
WINDOWS_TRAILING_RE = re.compile(r"[. ]+$")
STARTS_WITH_DOT_RE = re.compile(r"^\.+")
# Characters that break Markdown and wiki links
BAD_LINK_RE = re.compile(r"[\[\]#|^]")


class OutputFolderError(Exception):
    """The export destination cannot be used."""
    pass


def sanitize_file_name(name: str) -> str:
    """Strip characters that are illegal in file names or break links."""
    name = ILLEGAL_RE.sub("", name)
    name = CONTROL_RE.sub("", name)
    name = RESERVED_RE.sub("", name)
    name = WINDOWS_RESERVED_RE.sub("", name)
    name = WINDOWS_TRAILING_RE.sub("", name)
    name = STARTS_WITH_DOT_RE.sub("", name)
    return BAD_LINK_RE.sub("", name)


def split_ext(name: str) -> tuple[str, str]:
    """Split ``name`` at its last dot; the extension is lowercased.

    A leading dot does not start an extension.
    """
    dot = name.rfind(".")
    if dot > 0:
        return name[:dot], name[dot + 1:].lower()
    return name, ""


def create_folders(path: str) -> OutputFolder:
    """Create ``path`` and its parents if needed.

    Leading dots are removed from every segment so no hidden directories are
    created. Raises NotADirectoryError when something else is in the way.
    """
    segments = [re.sub(r"^\.+", "", segment) for segment in path.split("/")]
    normalized = os.path.normpath("/".join(segments))

    if os.path.exists(normalized) and not os.path.isdir(normalized):
        raise NotADirectoryError(f"Not a directory: {normalized}")
    os.makedirs(normalized, exist_ok=True)

    return OutputFolder(path=normalized, name=os.path.basename(normalized))


def set_file_times(path: str, created: int, modified: int) -> None:
    """Set access time from ``created`` and modification time from ``modified`` (ms)."""
    os.utime(path, (created / 1000, modified / 1000))


class OutputVault:
    """The export root and the paths claimed in it during one run."""

    def __init__(self, root: str):
        self.root = root
        self.claimed: set[str] = set()

    def open_root(self) -> OutputFolder:
        """Create the export root, raising OutputFolderError if unusable."""
        try:
            folder = create_folders(os.path.abspath(os.path.expanduser(self.root)))
        except OSError as e:
            raise OutputFolderError(f"Cannot use {self.root} as export location: {e}") from e
        self.root = folder.path
        return folder

    def save_note_file(
        self, folder: OutputFolder, title: str, extension: str, content: str = ""
    ) -> OutputFile:
        """Write a note file named after ``title`` into ``folder``.

        The name is sanitized; if another note already claimed it during
        this run a numeric suffix is added.
        """
        basename = sanitize_file_name(title) or "Untitled"
        suffix = f".{extension}"

        path = os.path.join(folder.path, f"{basename}{suffix}")
        i = 1
        while path in self.claimed:
            path = os.path.join(folder.path, f"{basename} {i}{suffix}")
            i += 1
        self.claimed.add(path)

        with open(path, "w", encoding="utf-8") as f:
            f.write(content)

        now = int(time.time() * 1000)
        return OutputFile(
            path=path,
            name=os.path.basename(path),
            basename=os.path.splitext(os.path.basename(path))[0],
            extension=extension,
            parent=folder,
            stat=FileStats(ctime=now, mtime=now, size=len(content.encode("utf-8"))),
        )

    def available_attachment_path(self, name: str, extension: str = "") -> str:
        """Return a free path for ``name`` in the attachments folder.

        The name is sanitized like a note title, whitespace becomes
        underscores and an empty name becomes "attachment". ``_1``, ``_2``,
        ... is appended while the path exists on disk or was claimed earlier
        in this run. The returned path is claimed.
        """
        basename = re.sub(r"\s+", "_", sanitize_file_name(name)) or "attachment"
        extension = sanitize_file_name(extension).lower()
        folder = create_folders(os.path.join(self.root, ATTACHMENTS_FOLDER))

        suffix = f".{extension}" if extension else ""
        path = os.path.join(folder.path, f"{basename}{suffix}")
        i = 1
        while path in self.claimed or os.path.exists(path):
            path = os.path.join(folder.path, f"{basename}_{i}{suffix}")
            i += 1

        self.claimed.add(path)
        return path
