"""Command-line interface for the Inky Notes store."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import click

from .config import Config, load_config
from .models.note import Note, SearchNotesParams, SortField, SortOrder, UpdateNoteParams
from .services.note_service import NoteService
from .utils.logging import setup_logging
from .utils.results import DatabaseResult

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config: Optional[Path], debug: bool) -> None:
    """Inky Notes - inspect and maintain the local note store."""
    ctx.ensure_object(dict)

    app_config = load_config(config)
    if debug:
        app_config.logging.level = "DEBUG"

    setup_logging(app_config.logging)
    logger.debug(f"Configuration loaded from: {config or 'defaults'}")

    ctx.obj["config"] = app_config


def _run(config: Config, action: Callable[[NoteService], Awaitable[Any]]) -> Any:
    """Run ``action`` against a service that is closed afterwards."""

    async def runner():
        service = NoteService(config)
        try:
            return await action(service)
        finally:
            await service.close()

    return asyncio.run(runner())


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _note_to_json(note: Note) -> Dict[str, Any]:
    return note.model_dump(mode="json", by_alias=True)


def _note_summary(note: Note) -> Dict[str, Any]:
    return {
        "id": note.id,
        "title": note.title,
        "preview": note.get_preview(80),
        "word_count": note.word_count,
        "folder_id": note.folder_id,
        "tags": note.tags,
        "is_pinned": note.is_pinned,
        "is_deleted": note.is_deleted,
        "last_modified": note.last_modified.isoformat(),
    }


def _check(result: DatabaseResult) -> Any:
    """Return the result's data or fail the command with its error."""
    if result.success:
        return result.data
    error = result.error
    message = error.message if error else "Operation failed"
    code = error.code.value if error else "UNKNOWN"
    raise click.ClickException(f"[{code}] {message}")


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create or migrate the notes table."""
    config = ctx.obj["config"]

    async def action(service: NoteService):
        _check(await service.initialize())
        count = _check(await service.count_notes(include_deleted=True))
        report = service.db_manager.schema_report
        return {
            "database": config.database.url,
            "sqlite_version": service.db_manager.sqlite_version,
            "created_table": report.created_table,
            "added_columns": report.added_columns,
            "failed_indexes": report.failed_indexes,
            "notes": count,
        }

    _echo_json(_run(config, action))


@cli.command("list")
@click.option("--query", "-q", default=None, help="Substring to find in title or text")
@click.option("--folder", default=None, help="Only notes in this folder")
@click.option("--no-folder", is_flag=True, help="Only notes outside every folder")
@click.option("--tag", "tags", multiple=True, help="Required tag (repeatable)")
@click.option("--include-deleted", is_flag=True, help="Include soft-deleted notes")
@click.option(
    "--sort",
    type=click.Choice([f.value for f in SortField]),
    default=SortField.LAST_MODIFIED.value,
    show_default=True,
)
@click.option(
    "--order",
    type=click.Choice([o.value for o in SortOrder]),
    default=SortOrder.DESC.value,
    show_default=True,
)
@click.option("--limit", type=int, default=100, show_default=True)
@click.option("--offset", type=int, default=0, show_default=True)
@click.pass_context
def list_notes(
    ctx: click.Context,
    query: Optional[str],
    folder: Optional[str],
    no_folder: bool,
    tags: Tuple[str, ...],
    include_deleted: bool,
    sort: str,
    order: str,
    limit: int,
    offset: int,
) -> None:
    """Search notes."""
    if folder and no_folder:
        raise click.UsageError("--folder and --no-folder are mutually exclusive")

    params: Dict[str, Any] = {
        "query": query,
        "tags": list(tags),
        "include_deleted": include_deleted,
        "sort_by": SortField(sort),
        "sort_order": SortOrder(order),
        "limit": limit,
        "offset": offset,
    }
    if folder:
        params["folder_id"] = folder
    elif no_folder:
        params["folder_id"] = None
    search = SearchNotesParams(**params)

    async def action(service: NoteService):
        return _check(await service.search_notes(search))

    notes = _run(ctx.obj["config"], action)
    _echo_json([_note_summary(note) for note in notes])


@cli.command()
@click.argument("note_id")
@click.option("--include-deleted", is_flag=True, help="Show a soft-deleted note too")
@click.pass_context
def show(ctx: click.Context, note_id: str, include_deleted: bool) -> None:
    """Show one note."""

    async def action(service: NoteService):
        return _check(await service.get_note(note_id, include_deleted=include_deleted))

    _echo_json(_note_to_json(_run(ctx.obj["config"], action)))


@cli.command()
@click.option("--title", default=None, help="Note title")
@click.option("--content", default=None, help="Note content (HTML)")
@click.option("--folder", default=None, help="Folder id")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.pass_context
def create(
    ctx: click.Context,
    title: Optional[str],
    content: Optional[str],
    folder: Optional[str],
    tags: Tuple[str, ...],
) -> None:
    """Create a note."""

    async def action(service: NoteService):
        return _check(
            await service.create_new_note(
                title=title, content=content, folder_id=folder, tags=list(tags)
            )
        )

    _echo_json(_note_to_json(_run(ctx.obj["config"], action)))


@cli.command()
@click.argument("note_id")
@click.option("--title", default=None, help="New title")
@click.option("--content", default=None, help="New content (HTML)")
@click.option("--pin/--unpin", default=None, help="Pin or unpin the note")
@click.pass_context
def update(
    ctx: click.Context,
    note_id: str,
    title: Optional[str],
    content: Optional[str],
    pin: Optional[bool],
) -> None:
    """Update a note's title, content or pin state."""
    fields: Dict[str, Any] = {}
    if title is not None:
        fields["title"] = title
    if content is not None:
        fields["content"] = content
    if pin is not None:
        fields["is_pinned"] = pin
    if not fields:
        raise click.UsageError("Nothing to update")

    async def action(service: NoteService):
        return _check(await service.save_note(UpdateNoteParams(id=note_id, **fields)))

    _echo_json(_note_to_json(_run(ctx.obj["config"], action)))


@cli.command()
@click.argument("note_id")
@click.pass_context
def delete(ctx: click.Context, note_id: str) -> None:
    """Move a note to the trash (soft delete)."""

    async def action(service: NoteService):
        return _check(await service.delete_note(note_id))

    _run(ctx.obj["config"], action)
    click.echo(f"Deleted note {note_id}")


@cli.command()
@click.argument("note_id")
@click.pass_context
def restore(ctx: click.Context, note_id: str) -> None:
    """Restore a soft-deleted note."""

    async def action(service: NoteService):
        return _check(await service.restore_note(note_id))

    _run(ctx.obj["config"], action)
    click.echo(f"Restored note {note_id}")


@cli.command()
@click.argument("note_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def purge(ctx: click.Context, note_id: str, yes: bool) -> None:
    """Permanently delete a note."""
    if not yes:
        click.confirm(f"Permanently delete note {note_id}?", abort=True)

    async def action(service: NoteService):
        return _check(await service.purge_note(note_id))

    _run(ctx.obj["config"], action)
    click.echo(f"Purged note {note_id}")


@cli.command("reset-db")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def reset_db(ctx: click.Context, yes: bool) -> None:
    """Delete the database file and its journal files."""
    config = ctx.obj["config"]
    db_path = config.database_path
    if db_path is None:
        raise click.UsageError(f"Not a file database: {config.database.url}")

    if not yes:
        click.confirm(f"Delete {db_path} and all notes in it?", abort=True)

    removed = []
    for path in (db_path, Path(f"{db_path}-wal"), Path(f"{db_path}-shm")):
        if path.exists():
            path.unlink()
            removed.append(str(path))
            logger.info(f"Removed {path}")

    if removed:
        click.echo(f"Removed: {', '.join(removed)}")
    else:
        click.echo("No database files found")


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
