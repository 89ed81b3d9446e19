"""Command line entry point for reelforge."""

import argparse
import asyncio
import json
import logging
import sys

from rich.console import Console
from rich.table import Table

from assembly.engine import AssemblyEngine
from assembly.errors import AssemblyError, ValidationFailure
from assembly.manifest_builder import ManifestBuilder
from models.manifest import ExportSettings
from services.context_store import ContextStore
from services.object_storage import create_storage
from services.status_store import ProjectStatusStore
from utils.config import load_config, setup_logging, validate_config

logger = logging.getLogger(__name__)
console = Console()


def _store(config: dict) -> ContextStore:
    return ContextStore(create_storage(config), prefix=config["projects_prefix"])


def _print_failure(error: AssemblyError) -> None:
    console.print(f"[bold red]✗ {error}[/bold red]")
    if isinstance(error, ValidationFailure):
        for issue in error.issues:
            console.print(f"  - {issue}")
        if error.insufficient_scenes:
            console.print(f"  Insufficient scenes: {error.insufficient_scenes}")


def cmd_build(args: argparse.Namespace, config: dict) -> int:
    builder = ManifestBuilder(
        _store(config),
        audio_tolerance=config["audio_tolerance_seconds"],
        export=ExportSettings(
            resolution=config["output_resolution"],
            fps=config["output_fps"],
            codec=config["video_codec"],
            preset=config["video_preset"],
        ),
        max_retries=config["max_retries"],
        retry_base_delay=config["retry_base_delay"],
    )
    try:
        manifest = builder.build(args.project_id, args.min_visuals, args.allow_placeholders)
    except ValidationFailure as e:
        _print_failure(e)
        return 2

    table = Table(title=f"Manifest {args.project_id}")
    table.add_column("Scene", justify="right")
    table.add_column("Title")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Visuals", justify="right")
    for scene in manifest.scenes:
        table.add_row(
            str(scene.scene_number),
            scene.title,
            f"{scene.start_time or 0:.2f}",
            f"{scene.end_time or 0:.2f}",
            str(len(scene.ready_media)),
        )
    console.print(table)
    console.print(f"Quality score: {manifest.kpis.quality_score:.2f}")
    state = "[green]ready[/green]" if manifest.ready_for_rendering else "[yellow]not ready[/yellow]"
    console.print(f"Rendering: {state}")
    return 0


async def _assemble(project_id: str, config: dict) -> dict:
    async with ProjectStatusStore(config["status_db_path"]) as status_store:
        engine = AssemblyEngine(_store(config), status_store, config=config)
        result = await engine.assemble(project_id)
    return result.to_dict()


def cmd_assemble(args: argparse.Namespace, config: dict) -> int:
    try:
        result = asyncio.run(_assemble(args.project_id, config))
    except AssemblyError as e:
        _print_failure(e)
        return 2 if isinstance(e, ValidationFailure) else 1

    if result["fallback"]:
        console.print(f"[yellow]Render instructions written to {result['videoPath']}[/yellow]")
    else:
        console.print(f"[green]✓ Video uploaded to {result['videoPath']}[/green]")
    console.print(json.dumps(result, indent=2))
    return 0


async def _status(project_id: str, config: dict) -> dict | None:
    async with ProjectStatusStore(config["status_db_path"]) as status_store:
        return await status_store.get_status(project_id)


def cmd_status(args: argparse.Namespace, config: dict) -> int:
    record = asyncio.run(_status(args.project_id, config))
    if record is None:
        console.print(f"No status recorded for {args.project_id}")
        return 1
    console.print(f"{record['project_id']}: [bold]{record['status']}[/bold] {record['message']} ({record['updated_at']})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reelforge manifest builder and video assembler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  reelforge build proj-123 --min-visuals 3
  reelforge assemble proj-123
  reelforge status proj-123
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    build = sub.add_parser("build", help="Validate contexts and write the manifest")
    build.add_argument("project_id")
    build.add_argument("--min-visuals", type=int, default=None, help="Ready visuals required per scene")
    build.add_argument("--allow-placeholders", action="store_true", help="Fill gaps instead of failing")
    build.set_defaults(func=cmd_build)

    assemble = sub.add_parser("assemble", help="Render the final video from the manifest")
    assemble.add_argument("project_id")
    assemble.set_defaults(func=cmd_assemble)

    status = sub.add_parser("status", help="Show the last assembly status")
    status.add_argument("project_id")
    status.set_defaults(func=cmd_status)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = load_config()
    setup_logging(config["log_level"])

    errors = validate_config(config)
    if errors:
        for error in errors:
            console.print(f"[red]Config error:[/red] {error}")
        return 1

    if args.command == "build" and args.min_visuals is None:
        args.min_visuals = config["min_visuals_per_scene"]

    try:
        return args.func(args, config)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
