"""CLI interface for memsync."""

import dataclasses
import logging
import uuid
from typing import Any, Optional

import click
from rich.progress import Progress, SpinnerColumn, TextColumn

from .api import DriveClient
from .auth import require_access_token, static_token_provider
from .config import config
from .exceptions import DriveAPIError, MemSyncError
from .file_gateway import RemoteFileGateway
from .models import Note
from .output import OutputFormatter
from .store import JsonNoteStore
from .sync import (
    SyncController,
    SyncMode,
    SyncPlanner,
    SyncStateManager,
    classify_error,
)
from .sync.controller import SINGLE_NOTE_ERROR_MESSAGE, classify_errors
from .utils import format_epoch_ms, now_ms, parse_iso_timestamp

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--token", "-t", envvar="MEMSYNC_ACCESS_TOKEN", help="Google Drive access token"
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="memsync")
@click.pass_context
def main(
    ctx: Any,
    token: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """memsync - Offline-first note sync with a Google Drive app folder."""
    ctx.ensure_object(dict)
    ctx.obj["token"] = token
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("memsync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


def _create_state_manager() -> SyncStateManager:
    return SyncStateManager(config.state_dir, api_url=config.api_url)


def _create_controller(
    token: str, workers: Optional[int] = None
) -> tuple[SyncController, RemoteFileGateway]:
    """Wire the client, gateway, store and snapshot into a controller."""
    token_provider = static_token_provider(token)
    client = DriveClient(token_provider, api_url=config.api_url)
    gateway = RemoteFileGateway(client, max_workers=workers or config.batch_concurrency)
    controller = SyncController(
        gateway,
        JsonNoteStore(config.data_dir),
        _create_state_manager(),
        token_provider,
        debounce_seconds=config.debounce_seconds,
    )
    return controller, gateway


@main.command()
@click.option(
    "--token",
    "-t",
    prompt="Enter your Google Drive access token",
    hide_input=True,
    help="Google Drive access token",
)
@click.pass_context
def init(ctx: Any, token: str) -> None:
    """Initialize memsync configuration.

    Stores your access token in ~/.config/memsync/config for future use.
    """
    out: OutputFormatter = ctx.obj["out"]

    out.info("Validating access token...")
    client = DriveClient(static_token_provider(token), api_url=config.api_url)
    try:
        client.list_files(page_size=1)
        out.success("✓ Access token is valid")
    except DriveAPIError as e:
        out.error(f"Access token validation failed: {e}")
        if not click.confirm("Save access token anyway?", default=False):
            out.warning("Configuration cancelled.")
            ctx.exit(1)
    finally:
        client.close()

    try:
        config.save_access_token(token)
    except OSError as e:
        out.error(f"Initialization failed: {e}")
        ctx.exit(1)

    out.print_summary(
        "Initialization Complete",
        [
            ("Status", "✓ Configuration saved successfully"),
            ("Config file", str(config.get_config_path())),
        ],
    )


@main.command()
@click.option("--full", is_flag=True, help="Ignore the snapshot and compare every note")
@click.option(
    "--dry-run", is_flag=True, help="Show what would be synced without syncing"
)
@click.option(
    "--workers",
    "-j",
    type=click.IntRange(min=1),
    default=None,
    help="Number of parallel transfers (default: 6)",
)
@click.pass_context
def sync(ctx: Any, full: bool, dry_run: bool, workers: Optional[int]) -> None:
    """Synchronize local notes with Google Drive.

    Uses a delta comparison against the last successful sync when possible,
    and a full comparison otherwise or with --full.
    """
    out: OutputFormatter = ctx.obj["out"]
    token = require_access_token(ctx, out)
    controller, gateway = _create_controller(token, workers)

    try:
        if dry_run:
            _show_plan(out, controller, full)
            return

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            disable=out.quiet or out.json_output,
        ) as progress:
            progress.add_task("Syncing notes...", total=None)
            result = controller.sync_now(force_full=full)
    except MemSyncError as e:
        out.error(classify_error(e).message)
        logger.debug(f"Sync failed: {e}")
        ctx.exit(1)
    finally:
        gateway.client.close()

    if result is None:
        out.warning("Sync skipped")
        return

    if out.json_output:
        out.output_json(
            {
                "mode": result.mode.value,
                "success": result.success,
                "applied": result.applied_count,
                "stats": result.stats,
                "failed": result.failed_ids,
            }
        )
    else:
        out.print_summary(
            "Sync Complete" if result.success else "Sync Incomplete",
            [
                ("Mode", result.mode.value),
                ("Downloaded", result.stats["downloads"]),
                ("Uploaded", result.stats["uploads"]),
                ("Deleted remotely", result.stats["deletes_remote"]),
                ("Deleted locally", result.stats["deletes_local"]),
                ("Unchanged", result.stats["skips"]),
            ],
        )

    if not result.success:
        out.error(classify_errors(result.errors.values()).message)
        for note_id in result.failed_ids:
            out.warning(f"{note_id}: {result.errors[note_id]}")
        ctx.exit(1)


def _show_plan(out: OutputFormatter, controller: SyncController, full: bool) -> None:
    """Print the plan of the next pass without applying it."""
    snapshot = None if full else controller.state_manager.load()
    mode = SyncMode.DELTA if snapshot is not None else SyncMode.FULL
    plan = SyncPlanner().plan(
        mode,
        controller.store.get_all(),
        controller.gateway.list_files(),
        snapshot,
    )

    rows = (
        [{"action": "download", "note": i.note_id} for i in plan.to_download]
        + [{"action": "upload", "note": i.note_id} for i in plan.to_upload]
        + [
            {"action": "delete remote", "note": i.note_id}
            for i in plan.to_delete_remote
        ]
        + [{"action": "delete local", "note": i} for i in plan.to_hard_delete_local]
    )

    if out.json_output:
        out.output_json({"summary": plan.summary(), "actions": rows})
        return

    out.info(f"Dry run ({mode.value}): no changes will be made")
    if plan.is_empty:
        out.success("Everything is up to date")
        return
    out.output_table(rows, ["action", "note"], {"action": "Action", "note": "Note"})
    out.info(f"{plan.total_actions} action(s), {plan.skipped} unchanged")


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Show local store and sync state."""
    out: OutputFormatter = ctx.obj["out"]

    notes = JsonNoteStore(config.data_dir).get_all()
    snapshot = _create_state_manager().load()
    last_sync = snapshot.last_sync_time if snapshot else 0

    syncable = [n for n in notes if not n.is_excluded]
    tombstones = [n for n in syncable if n.is_deleted]
    pending = [n for n in syncable if n.is_deleted or n.timestamp > last_sync]

    items = [
        ("Linked", "yes" if (ctx.obj.get("token") or config.is_configured()) else "no"),
        ("Local notes", len(notes) - len(tombstones)),
        ("Tombstones", len(tombstones)),
        ("Pending changes", len(pending)),
        ("Snapshot entries", len(snapshot.modified_times) if snapshot else 0),
        ("Last sync", format_epoch_ms(last_sync)),
    ]
    out.print_summary("Sync Status", items)


def _format_modified(modified_time: str) -> str:
    parsed = parse_iso_timestamp(modified_time)
    return parsed.strftime("%Y-%m-%d %H:%M:%S") if parsed else modified_time


@main.command(name="ls")
@click.pass_context
def ls(ctx: Any) -> None:
    """List note files stored in Google Drive."""
    out: OutputFormatter = ctx.obj["out"]
    token = require_access_token(ctx, out)
    _, gateway = _create_controller(token)

    try:
        remote_files = gateway.list_files()
    except MemSyncError as e:
        out.error(classify_error(e).message)
        ctx.exit(1)
    finally:
        gateway.client.close()

    rows = [
        {
            "note": f.note_id,
            "id": f.remote_id,
            "modified": _format_modified(f.modified_time),
        }
        for f in remote_files
        if f.note_id is not None
    ]
    if not rows:
        out.info("No notes in Google Drive")
        return
    out.output_table(
        rows,
        ["note", "id", "modified"],
        {"note": "Note", "id": "Drive ID", "modified": "Modified"},
    )


def _push_note(ctx: Any, out: OutputFormatter, note: Note) -> None:
    """Sync one note right away when a token is available."""
    token = ctx.obj.get("token") or config.access_token
    if not token:
        out.info("Not linked to Google Drive, change kept locally")
        return

    controller, gateway = _create_controller(token)
    try:
        if controller.sync_file(note):
            out.success("✓ Synced to Google Drive")
    except MemSyncError as e:
        out.error(classify_error(e, SINGLE_NOTE_ERROR_MESSAGE).message)
        logger.debug(f"Single note sync failed: {e}")
        ctx.exit(1)
    finally:
        gateway.client.close()


@main.command()
@click.argument("text")
@click.option("--tag", "tags", multiple=True, help="Tag to attach (repeatable)")
@click.pass_context
def add(ctx: Any, text: str, tags: tuple[str, ...]) -> None:
    """Create a note and push it to Google Drive."""
    out: OutputFormatter = ctx.obj["out"]
    store = JsonNoteStore(config.data_dir)

    note = Note(
        id=str(uuid.uuid4()),
        timestamp=now_ms(),
        payload={"content": text, "tags": list(tags)},
    )
    store.save(note)
    if out.json_output:
        out.output_json(note.to_dict())
    else:
        out.info(f"Created note {note.id}")

    _push_note(ctx, out, note)


@main.command()
@click.argument("note_id")
@click.pass_context
def rm(ctx: Any, note_id: str) -> None:
    """Delete a note locally and from Google Drive."""
    out: OutputFormatter = ctx.obj["out"]
    store = JsonNoteStore(config.data_dir)

    try:
        note = store.get(note_id)
    except ValueError as e:
        out.error(str(e))
        ctx.exit(1)
    if note is None or note.is_deleted:
        out.error(f"Note not found: {note_id}")
        ctx.exit(1)

    tombstone = dataclasses.replace(note, is_deleted=True, timestamp=now_ms())
    store.save(tombstone)
    out.info(f"Deleted note {note_id}")

    _push_note(ctx, out, tombstone)


if __name__ == "__main__":
    main()
