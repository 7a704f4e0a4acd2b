"""Export settings."""

from dataclasses import dataclass
from pathlib import Path

from .db import NOTES_FOLDER_PATH

DEFAULT_OUTPUT_DIR = Path("~/Documents/AppleNotes").expanduser()
OUTPUT_FORMATS = ("md", "html")


@dataclass
class ExportConfig:
    """Settings for one export run."""

    notes_folder: Path = NOTES_FOLDER_PATH
    output_dir: Path = DEFAULT_OUTPUT_DIR
    # Also export notes in Recently Deleted
    import_trashed: bool = False
    # Add the handwriting transcription below drawings
    include_handwriting: bool = False
    # The first line of a note is its title, already used as the file name
    omit_first_line: bool = True
    output_format: str = "md"

    def __post_init__(self):
        self.notes_folder = Path(self.notes_folder).expanduser()
        self.output_dir = Path(self.output_dir).expanduser()
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unknown output format: {self.output_format}")
