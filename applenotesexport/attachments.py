"""Where each kind of attachment keeps its binary.

Every attachment type stores its file under a different convention, which
also changed between macOS versions. Each builder turns the attachment's row
into the path of the binary relative to an account (or the shared container)
plus the name and extension to export it under.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass

from .files import split_ext
from .models import AttachmentType


@dataclass(frozen=True)
class AttachmentSource:
    source_path: str
    name: str
    extension: str
    # Handwriting transcription, drawings only
    summary: str | None = None


# A PDF only exists once the scan has been edited
SCAN_PDF_QUERY = """
    SELECT
        zidentifier, ztitle, zfallbackpdfgeneration, zcreationdate, zmodificationdate, znote
    FROM
        (SELECT *, NULL AS zfallbackpdfgeneration FROM ziccloudsyncingobject)
    WHERE
        z_ent = :ent
        AND z_pk = :id
"""

SCAN_PAGE_QUERY = """
    SELECT
        zidentifier, zsizeheight, zsizewidth, zcreationdate, zmodificationdate, znote
    FROM ziccloudsyncingobject
    WHERE
        z_ent = :ent
        AND z_pk = :id
"""

DRAWING_QUERY = """
    SELECT
        zidentifier, zfallbackimagegeneration, zcreationdate, zmodificationdate,
        znote, zhandwritingsummary
    FROM
        (SELECT *, NULL AS zfallbackimagegeneration, NULL AS zhandwritingsummary
         FROM ziccloudsyncingobject)
    WHERE
        z_ent = :ent
        AND z_pk = :id
"""

# Media rows hold the file, the attachment row pointing at them holds the dates
MEDIA_QUERY = """
    SELECT
        a.zidentifier, a.zfilename,
        a.zgeneration1, b.zcreationdate, b.zmodificationdate, b.znote
    FROM
        (SELECT *, NULL AS zgeneration1 FROM ziccloudsyncingobject) AS a,
        ziccloudsyncingobject AS b
    WHERE
        a.z_ent = :ent
        AND a.z_pk = :id
        AND a.z_pk = b.zmedia
"""


def scan_pdf_source(row) -> AttachmentSource:
    return AttachmentSource(
        source_path=os.path.join(
            "FallbackPDFs",
            row["zidentifier"],
            row["zfallbackpdfgeneration"] or "",
            "FallbackPDF.pdf",
        ),
        name=row["ztitle"] or "Scan",
        extension="pdf",
    )


def scan_page_source(row) -> AttachmentSource:
    filename = f"{row['zidentifier']}-1-{row['zsizewidth']}x{row['zsizeheight']}-0.jpeg"
    return AttachmentSource(
        source_path=os.path.join("Previews", filename),
        name="Scan Page",
        extension="jpg",
    )


def drawing_source(row) -> AttachmentSource:
    """Drawings are always exported as PNG, whatever the fallback image is."""
    if row["zfallbackimagegeneration"]:
        # macOS 14 / iOS 17 and above
        source_path = os.path.join(
            "FallbackImages",
            row["zidentifier"],
            row["zfallbackimagegeneration"],
            "FallbackImage.png",
        )
    else:
        source_path = os.path.join("FallbackImages", f"{row['zidentifier']}.jpg")
    return AttachmentSource(
        source_path=source_path,
        name="Drawing",
        extension="png",
        summary=row["zhandwritingsummary"],
    )


def media_source(row) -> AttachmentSource:
    name, extension = split_ext(row["zfilename"])
    return AttachmentSource(
        source_path=os.path.join(
            "Media",
            row["zidentifier"],
            row["zgeneration1"] or "",
            row["zfilename"],
        ),
        name=name,
        extension=extension,
    )


DRAWING_TYPES = (
    AttachmentType.DRAWING,
    AttachmentType.DRAWING_LEGACY,
    AttachmentType.DRAWING_LEGACY2,
)


def source_plan(uti: str) -> tuple[str, str, Callable[..., AttachmentSource]]:
    """Pick the entity, row query and path builder for an attachment type.

    Returns ``(entity name, query, builder)``. Unknown types are treated as
    plain media files.
    """
    if uti in (AttachmentType.MODIFIED_SCAN, AttachmentType.SCAN_PDF):
        return "ICAttachment", SCAN_PDF_QUERY, scan_pdf_source
    if uti == AttachmentType.SCAN:
        return "ICAttachment", SCAN_PAGE_QUERY, scan_page_source
    if uti in DRAWING_TYPES:
        return "ICAttachment", DRAWING_QUERY, drawing_source
    return "ICMedia", MEDIA_QUERY, media_source
