"""Conversion of decoded Apple Notes payloads to Markdown."""

import itertools
import logging
import os
import re
from dataclasses import dataclass, field
from urllib.parse import quote

from .attachments import source_plan
from .models import AttachmentType

logger = logging.getLogger(__name__)

NOTE_LINK_RE = re.compile(r"applenotes:note/([-0-9A-Fa-f]+)")
EDGE_WHITESPACE_RE = re.compile(r"^(\s*)(.*?)(\s*)$", re.DOTALL)

IMAGE_EXTENSIONS = {"bmp", "gif", "heic", "jpeg", "jpg", "png", "svg", "tif", "tiff", "webp"}

# ParagraphStyle.style_type
TITLE = 0
HEADING = 1
SUBHEADING = 2
MONOSPACED = 4
DOTTED_LIST = 100
DASHED_LIST = 101
NUMBERED_LIST = 102
CHECKBOX = 103

HEADING_PREFIXES = {TITLE: "# ", HEADING: "## ", SUBHEADING: "### "}
LIST_STYLES = (DOTTED_LIST, DASHED_LIST, NUMBERED_LIST, CHECKBOX)

# AttributeRun.font_weight
BOLD = 1
ITALIC = 2
BOLD_ITALIC = 3


@dataclass
class Line:
    pieces: list = field(default_factory=list)
    style: object = None

    @property
    def style_type(self) -> int:
        return self.style.style_type if self.style is not None else -1


class NoteConverter:
    """Formats a NoteStoreProto message as Markdown.

    Linked notes and attachments are resolved through ``importer`` while
    formatting, so they are written out before this note.
    """

    protobuf_type = "notes.NoteStoreProto"

    def __init__(self, importer, message):
        self.importer = importer
        self.note = message.document.note
        self.parent = None

    def format(self, parent=None) -> str:
        """Return the note as Markdown with links relative to ``parent``."""
        self.parent = parent
        lines = split_lines(self.fragments())

        if self.importer.omit_first_line and len(lines) > 1:
            lines = lines[1:]

        text = self.render(lines).strip()
        return f"{text}\n" if text else ""

    def fragments(self):
        """Yield ``(text, run)`` for every attribute run.

        Run lengths count UTF-16 code units, not Python characters.
        """
        encoded = self.note.note_text.encode("utf-16-le")
        runs = list(self.note.attribute_run)
        if not runs:
            yield self.note.note_text, None
            return

        pos = 0
        for run in runs:
            end = pos + run.length * 2
            yield encoded[pos:end].decode("utf-16-le", errors="replace"), run
            pos = end
        if pos < len(encoded):
            yield encoded[pos:].decode("utf-16-le", errors="replace"), None

    def render(self, lines: list[Line]) -> str:
        output = []
        in_code = False
        numbers: dict[int, int] = {}

        for line in lines:
            style_type = line.style_type

            if style_type == MONOSPACED:
                if not in_code:
                    output.append("```")
                    in_code = True
                output.append("".join(text for text, _ in line.pieces).replace("\ufffc", ""))
                continue
            if in_code:
                output.append("```")
                in_code = False

            indent_amount = line.style.indent_amount if line.style is not None else 0
            if style_type in LIST_STYLES:
                for level in [level for level in numbers if level > indent_amount]:
                    del numbers[level]
            else:
                numbers.clear()

            body = self.format_pieces(line.pieces)
            indent = "\t" * indent_amount

            if style_type in HEADING_PREFIXES:
                prefix = HEADING_PREFIXES[style_type] if body.strip() else ""
            elif style_type in (DOTTED_LIST, DASHED_LIST):
                prefix = f"{indent}- "
            elif style_type == NUMBERED_LIST:
                numbers[indent_amount] = numbers.get(indent_amount, 0) + 1
                prefix = f"{indent}{numbers[indent_amount]}. "
            elif style_type == CHECKBOX:
                done = line.style.HasField("checklist") and line.style.checklist.done
                prefix = f"{indent}- [x] " if done else f"{indent}- [ ] "
            else:
                prefix = ""

            if line.style is not None and line.style.block_quote:
                prefix = "> " + prefix
            output.append(prefix + body)

        if in_code:
            output.append("```")
        return "\n".join(output)

    def format_pieces(self, pieces) -> str:
        out = []
        for key, group in itertools.groupby(pieces, key=format_key):
            group = list(group)
            if key is None:
                out.extend(self.format_attachment(run.attachment_info) for _, run in group)
            else:
                out.append(self.format_text("".join(text for text, _ in group), group[0][1]))
        return "".join(out)

    def format_text(self, text: str, run) -> str:
        text = text.replace("\ufffc", "")
        if run is None or not text.strip():
            return text

        lead, core, trail = EDGE_WHITESPACE_RE.match(text).groups()
        if run.font_weight == BOLD:
            core = f"**{core}**"
        elif run.font_weight == ITALIC:
            core = f"*{core}*"
        elif run.font_weight == BOLD_ITALIC:
            core = f"***{core}***"
        if run.strikethrough:
            core = f"~~{core}~~"
        if run.link:
            core = self.format_link(core, run.link)
        return f"{lead}{core}{trail}"

    def format_link(self, text: str, url: str) -> str:
        match = NOTE_LINK_RE.match(url)
        if not match:
            return f"[{text}]({url})"

        linked = self.importer.resolve_note_by_identifier(match.group(1))
        if linked is None:
            return text
        return f"[{text}]({self.relative_link(linked.path)})"

    def format_attachment(self, info) -> str:
        uti = info.type_uti
        identifier = info.attachment_identifier
        database = self.importer.database

        if uti in (AttachmentType.HASHTAG, AttachmentType.MENTION):
            row = database.get(
                "SELECT zalttext FROM ziccloudsyncingobject WHERE zidentifier = ?",
                (identifier,),
            )
            return (row["zalttext"] or "") if row else ""

        if uti == AttachmentType.INTERNAL_LINK:
            row = database.get(
                "SELECT zalttext, ztokencontentidentifier FROM ziccloudsyncingobject WHERE zidentifier = ?",
                (identifier,),
            )
            if row is None:
                return ""
            match = NOTE_LINK_RE.search(row["ztokencontentidentifier"] or "")
            linked = self.importer.resolve_note_by_identifier(match.group(1)) if match else None
            if linked is None:
                return row["zalttext"] or ""
            return f"[{row['zalttext'] or linked.basename}]({self.relative_link(linked.path)})"

        if uti == AttachmentType.TABLE:
            self.importer.reporter.report_skipped(f"Table {identifier}", "tables are not supported")
            return ""

        if uti == AttachmentType.URL_CARD:
            row = database.get(
                "SELECT ztitle, zurlstring FROM ziccloudsyncingobject WHERE zidentifier = ?",
                (identifier,),
            )
            if row is None or not row["zurlstring"]:
                return ""
            return f"[{row['ztitle'] or row['zurlstring']}]({row['zurlstring']})"

        row = database.get(
            "SELECT z_pk, zmedia FROM ziccloudsyncingobject WHERE zidentifier = ?",
            (identifier,),
        )
        if row is None:
            self.importer.reporter.report_failed(identifier, f"no attachment of type {uti}")
            return ""

        entity, _, _ = source_plan(uti)
        attachment_id = row["zmedia"] if entity == "ICMedia" else row["z_pk"]
        if attachment_id is None:
            self.importer.reporter.report_skipped(identifier, f"attachment of type {uti} has no file")
            return ""

        file = self.importer.resolve_attachment(attachment_id, uti)
        if file is None:
            return ""

        link = self.relative_link(file.path)
        if file.extension in IMAGE_EXTENSIONS:
            embed = f"![{file.basename}]({link})"
        else:
            embed = f"[{file.basename}]({link})"

        if self.importer.include_handwriting and file.summary:
            quoted = "\n".join(f"> {line}" for line in file.summary.splitlines())
            embed += f"\n\n{quoted}\n"
        return embed

    def relative_link(self, path: str) -> str:
        """URL-quoted path of ``path`` relative to the note's folder."""
        base = self.parent.path if self.parent is not None else self.importer.root_folder.path
        return quote(os.path.relpath(path, base).replace(os.sep, "/"))


def format_key(piece):
    """Group key for runs that can share one set of Markdown markers.

    Attachments are never merged and get None.
    """
    _, run = piece
    if run is None:
        return (0, 0, "")
    if run.HasField("attachment_info"):
        return None
    return (run.font_weight, run.strikethrough, run.link)


def split_lines(fragments) -> list[Line]:
    """Break ``(text, run)`` fragments into paragraphs.

    A paragraph takes its style from the run holding its newline, or from
    its last run when the note does not end with one.
    """
    lines = []
    current = Line()

    for text, run in fragments:
        parts = text.split("\n")
        for i, part in enumerate(parts):
            if part:
                current.pieces.append((part, run))
            if i < len(parts) - 1:
                current.style = paragraph_style(run)
                lines.append(current)
                current = Line()

    if current.pieces:
        current.style = paragraph_style(current.pieces[-1][1])
        lines.append(current)
    return lines


def paragraph_style(run):
    if run is None or not run.HasField("paragraph_style"):
        return None
    return run.paragraph_style
