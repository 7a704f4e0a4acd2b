"""CLI entry point for Apple Notes export."""

import logging
from pathlib import Path

import click

from . import __version__
from .config import DEFAULT_OUTPUT_DIR, OUTPUT_FORMATS, ExportConfig
from .db import NOTES_FOLDER_PATH
from .importer import AppleNotesImporter
from .report import ImportReporter


@click.group()
@click.version_option(version=__version__, prog_name="notes-export")
@click.option("--verbose", "-v", is_flag=True, help="Log every exported item")
def cli(verbose: bool):
    """Export Apple Notes to Markdown files."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option(
    "--source", "-s",
    type=click.Path(file_okay=False, path_type=Path),
    default=NOTES_FOLDER_PATH,
    show_default=True,
    envvar="NOTES_EXPORT_SOURCE",
    help="Apple Notes group container holding NoteStore.sqlite",
)
@click.option(
    "--output", "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_OUTPUT_DIR,
    show_default=True,
    envvar="NOTES_EXPORT_OUTPUT",
    help="Folder to export into",
)
@click.option("--include-trashed", is_flag=True, envvar="NOTES_EXPORT_INCLUDE_TRASHED",
              help="Also export Recently Deleted")
@click.option("--include-handwriting", is_flag=True, envvar="NOTES_EXPORT_INCLUDE_HANDWRITING",
              help="Add handwriting transcriptions below drawings")
@click.option("--keep-first-line", is_flag=True, help="Keep the title line in the note body")
@click.option(
    "--format", "output_format",
    type=click.Choice(OUTPUT_FORMATS),
    default="md",
    show_default=True,
    help="Write notes as Markdown or HTML",
)
def export(
    source: Path,
    output: Path,
    include_trashed: bool,
    include_handwriting: bool,
    keep_first_line: bool,
    output_format: str,
):
    """Export every note, folder and attachment."""
    config = ExportConfig(
        notes_folder=source,
        output_dir=output,
        import_trashed=include_trashed,
        include_handwriting=include_handwriting,
        omit_first_line=not keep_first_line,
        output_format=output_format,
    )
    reporter = ImportReporter()
    importer = AppleNotesImporter(config, reporter)

    click.echo(f"Exporting {config.notes_folder} to {config.output_dir}")
    if not importer.import_notes():
        raise click.ClickException(
            "Export aborted. Check that the Notes data folder is readable "
            "(Full Disk Access) and the output folder is writable."
        )

    click.echo(f"Exported {importer.context.parsed_notes} of {importer.context.note_count} notes")
    click.echo(f"Progress: {reporter.progress or '0.0%'}, {reporter.summary()}")

    for name, reason in reporter.failed:
        click.echo(f"  failed: {name}" + (f" ({reason})" if reason else ""), err=True)


def main():
    cli()


if __name__ == "__main__":
    main()
