"""CLI command implementations"""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer

from tsumugi.config import Settings, load_config
from tsumugi.core.gateway import ConversionGateway, PersistenceError
from tsumugi.core.utils.diff import unified_diff
from tsumugi.store.base import DocumentNotFoundError
from tsumugi.store.factory import make_store
from tsumugi.store.memory import MemoryStore


def _fail(msg: str, cause: Exception = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _settings(overrides: dict = None) -> Settings:
    """Load config with standard CLI error handling."""
    try:
        return load_config(overrides=overrides)
    except ValueError as e:
        _fail(str(e))


def _read(path: str) -> str:
    try:
        with open(path, encoding="utf-8", newline="") as f:
            return f.read()
    except OSError as e:
        _fail(f"Cannot read {path}", e)


def _emit(text: str, out: Optional[str]) -> None:
    if out is None:
        typer.echo(text)
        return
    Path(out).write_text(text, encoding="utf-8", newline="")
    typer.echo(f"Wrote {out}")


def _gateway(backend: Optional[str], docs_dir: Optional[str], db_url: Optional[str]) -> ConversionGateway:
    settings = _settings(overrides={"store_backend": backend, "docs_dir": docs_dir, "db_url": db_url})
    return ConversionGateway(make_store(settings), settings)


Backend = Annotated[Optional[str], typer.Option("--backend", help="Store backend: file, sql or memory")]
DocsDir = Annotated[Optional[str], typer.Option("--docs-dir", help="Root directory for the file store")]
DbUrl = Annotated[Optional[str], typer.Option("--db-url", help="Database URL for the sql store")]


def render_cmd(
    path: Annotated[str, typer.Argument(help="Markdown file to render")],
    out: Annotated[Optional[str], typer.Option("--out", help="Write HTML here instead of stdout")] = None,
    ):
    """Render a Markdown file to sanitized, editable HTML."""
    gateway = ConversionGateway(MemoryStore(), _settings())
    _emit(gateway.render(_read(path)), out)


def commit_cmd(
    path: Annotated[str, typer.Argument(help="HTML file to convert")],
    out: Annotated[Optional[str], typer.Option("--out", help="Write Markdown here instead of stdout")] = None,
    ):
    """Convert edited HTML back to Markdown with ruby syntax."""
    gateway = ConversionGateway(MemoryStore(), _settings())
    _emit(gateway.commit(_read(path)), out)


def roundtrip_cmd(
    path: Annotated[str, typer.Argument(help="Markdown file to check")],
    ):
    """Render then commit a file and show what the round trip changes. Exits 1 on any difference."""
    gateway = ConversionGateway(MemoryStore(), _settings())
    source = _read(path)
    result = gateway.commit(gateway.render(source))
    lines = unified_diff(source, result, from_label=path, to_label=f"{path} (round trip)")
    if not lines:
        typer.echo("Round trip is stable.")
        return
    typer.echo("".join(lines), nl=False)
    raise typer.Exit(1)


def load_cmd(
    doc_id: Annotated[str, typer.Argument(help="Document id in the configured store")],
    backend: Backend = None,
    docs_dir: DocsDir = None,
    db_url: DbUrl = None,
    ):
    """Load a stored document and print its editable HTML."""
    gateway = _gateway(backend, docs_dir, db_url)
    try:
        html = asyncio.run(gateway.load(doc_id))
    except DocumentNotFoundError as e:
        _fail(str(e))
    except ValueError as e:
        _fail("Invalid document id", e)
    typer.echo(html)


def save_cmd(
    doc_id: Annotated[str, typer.Argument(help="Document id in the configured store")],
    html_path: Annotated[str, typer.Argument(help="HTML file holding the edited document")],
    backend: Backend = None,
    docs_dir: DocsDir = None,
    db_url: DbUrl = None,
    ):
    """Convert edited HTML and save it to the configured store."""
    gateway = _gateway(backend, docs_dir, db_url)
    html = _read(html_path)
    try:
        asyncio.run(gateway.save(doc_id, html))
    except PersistenceError as e:
        _fail("Save failed", e.__cause__)
    typer.echo(f"Saved {doc_id}")


def history_cmd(
    doc_id: Annotated[str, typer.Argument(help="Document id in the sql store")],
    diff: Annotated[Optional[int], typer.Option("--diff", help="Show changes from this version to the current text")] = None,
    db_url: DbUrl = None,
    ):
    """List stored versions of a document (sql store only)."""
    from tsumugi.store.sql import SqlStore

    settings = _settings(overrides={"db_url": db_url})
    store = SqlStore.from_url(settings.db_url, max_versions=settings.max_versions)

    if diff is not None:
        try:
            lines = store.diff_versions(doc_id, diff)
        except (ValueError, DocumentNotFoundError) as e:
            _fail(str(e))
        typer.echo("".join(lines), nl=False)
        return

    versions = store.list_versions(doc_id)
    if not versions:
        typer.echo(f"No versions stored for {doc_id}.")
        raise typer.Exit(1)
    for v in versions:
        typer.echo(f"  v{v.version_num}  {v.hash[:12]}  {v.created_at:%Y-%m-%d %H:%M:%S}")
