"""Command line interface for dive-importer"""

import dataclasses
import json
import logging
import sys

import click

from .config import DEFAULT_GAP_MINUTES, ScanSettings
from .errors import DiveLogError
from .matcher import DiveMatcher, create_import_preview
from .photo_scanner import PhotoScanner
from .router import parse_dive_file


def setup_logging(verbose: bool) -> logging.Logger:
    """Setup logging configuration"""
    logger = logging.getLogger('dive_importer')
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Replace handlers left by an earlier call
    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    handler = logging.StreamHandler()
    formatter = logging.Formatter(
        '%(levelname)s: %(message)s' if not verbose
        else '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


def _load_dive_log(path: str):
    logger = logging.getLogger('dive_importer')
    logger.info(f"Parsing dive log: {path}")
    try:
        return parse_dive_file(path)
    except DiveLogError as e:
        logger.error(str(e))
        sys.exit(1)


def _format_duration(seconds: int) -> str:
    return f"{seconds // 60}:{seconds % 60:02d}"


@click.group()
@click.option('--verbose', '-v', is_flag=True,
              help='Enable verbose logging')
def main(verbose: bool):
    """Import dive computer logs and match underwater photos to dives."""
    setup_logging(verbose)


@main.command('import-log')
@click.argument('dive_log', type=click.Path(exists=True, dir_okay=False))
@click.option('--json', 'as_json', is_flag=True,
              help='Print the parsed dives as JSON')
def import_log(dive_log: str, as_json: bool):
    """Parse a dive log (.ssrf, .xml, .json or .fit) and summarise its dives."""
    result = _load_dive_log(dive_log)

    if as_json:
        click.echo(json.dumps(dataclasses.asdict(result), indent=2))
        return

    date_range = result.date_start
    if result.date_end and result.date_end != result.date_start:
        date_range = f"{result.date_start} - {result.date_end}"

    click.echo(f"Trip: {result.trip_name}")
    click.echo(f"  Dates: {date_range or 'unknown'}")
    click.echo(f"  Dives: {len(result.dives)}")

    for imported in result.dives:
        dive = imported.dive
        click.echo(
            f"  Dive #{dive.dive_number}: {dive.date} {dive.time}"
            f"  {_format_duration(dive.duration_seconds)}"
            f"  max {dive.max_depth_m:.1f} m"
            f"  {len(imported.samples)} samples"
        )


@main.command('match-photos')
@click.option('--dive-log', '-d', required=True, type=click.Path(exists=True, dir_okay=False),
              help='Dive log whose dives the photos are matched to')
@click.argument('paths', nargs=-1, required=True, type=click.Path(exists=True))
@click.option('--gap-minutes', '-g', type=int, default=DEFAULT_GAP_MINUTES, show_default=True,
              help='Pause between photos that starts a new group')
@click.option('--recursive/--no-recursive', default=True,
              help='Search folders recursively')
@click.option('--exclude-folders', '-e', multiple=True,
              help='Folder names to exclude from recursive search (can be specified multiple times)')
def match_photos(dive_log: str, paths: tuple, gap_minutes: int, recursive: bool, exclude_folders: tuple):
    """Preview which photos would be assigned to which dive.

    Photos are grouped by pauses of at least --gap-minutes and the groups
    are assigned to the dives of the log in dive number order.
    """
    logger = logging.getLogger('dive_importer')
    result = _load_dive_log(dive_log)
    dives = [imported.dive for imported in result.dives]

    if not dives:
        logger.error("No dives found in dive log")
        sys.exit(1)

    settings = ScanSettings(
        gap_minutes=gap_minutes,
        recursive=recursive,
        excluded_folders=tuple(exclude_folders)
    )
    preview = create_import_preview(
        paths,
        dives,
        gap_minutes=settings.gap_minutes,
        scanner=PhotoScanner(settings)
    )

    matcher = DiveMatcher(dives)
    for group in preview.groups:
        click.echo(matcher.format_group_info(group))

    click.echo("\nSUMMARY:")
    click.echo(f"  Photo groups matched: {len(preview.groups)}")
    click.echo(f"  Photos without a dive: {len(preview.unmatched_photos)}")
    click.echo(f"  Photos without capture time: {len(preview.photos_without_time)}")


if __name__ == '__main__':
    main()
