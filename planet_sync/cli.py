"""
Command-line interface for planet-sync.

Uses Typer for commands and Rich for output. A ``.env`` file is loaded
before configuration so ``PLANET_SYNC_DB`` and ``PLANET_SYNC_IPFS_API`` can
live there.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
import typer

from .config import AppConfig, load_config
from .core.types import PublicGateway, PublishResult
from .engine import Engine
from .errors import InvalidSourceError, SourceNotFoundError
from .logging_utils import setup_logging

app = typer.Typer(add_completion=False)
console = Console()

ConfigOption = typer.Option(None, "--config", "-c", exists=True, help="YAML config file.")
LogLevelOption = typer.Option(None, "--log-level", help="Logging level.")


def _load(config: Path | None, log_level: str | None = None) -> AppConfig:
    load_dotenv()
    cfg = load_config(str(config) if config else None)
    if log_level:
        cfg.logging.level = log_level
    setup_logging(cfg.logging)
    return cfg


def _run(cfg: AppConfig, action):
    async def _main():
        async with Engine.from_config(cfg) as engine:
            return await action(engine)

    return asyncio.run(_main())


def _print_publish(result: PublishResult) -> None:
    if result.ok:
        console.print(f"[green]Published[/green] {result.source_id}: /ipfs/{result.cid} -> /ipns/{result.ipns}")
    elif result.status == "skipped":
        console.print(f"[yellow]Skipped[/yellow] {result.source_id}: not a self-owned planet")
    else:
        console.print(f"[red]{result.status}[/red] {result.source_id}: {result.error}")


@app.command()
def sync(config: Path | None = ConfigOption, log_level: str | None = LogLevelOption):
    """Check every followed planet once."""
    cfg = _load(config, log_level)
    results = _run(cfg, lambda engine: engine.sync_all())
    for result in results:
        if result.status == "ok":
            console.print(f"{result.source_id}: {result.created} new, {result.known} known")
        elif result.status != "unchanged":
            console.print(f"[yellow]{result.source_id}: {result.status}[/yellow] {result.error or ''}")
    console.print(f"Checked {len(results)} planets")


@app.command()
def watch(
    interval: float | None = typer.Option(None, "--interval", help="Seconds between cycles."),
    config: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
):
    """Check followed planets periodically until interrupted."""
    cfg = _load(config, log_level)
    try:
        _run(cfg, lambda engine: engine.watch(interval))
    except KeyboardInterrupt:
        console.print("Stopped")


@app.command()
def follow(
    endpoint: str = typer.Argument(..., help="ENS name (*.eth), feed URL, or IPNS name with --ipns."),
    ipns: bool = typer.Option(False, "--ipns", help="Treat the endpoint as an IPNS name."),
    check: bool = typer.Option(True, "--check/--no-check", help="Fetch the planet right away."),
    config: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
):
    """Follow a planet."""
    cfg = _load(config, log_level)

    async def _follow(engine: Engine):
        source = engine.follow_ipns(endpoint) if ipns else engine.follow(endpoint)
        result = await engine.check_source(source.id) if check else None
        return source, result

    try:
        source, result = _run(cfg, _follow)
    except InvalidSourceError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    console.print(f"Following {source.name} ({source.kind.value}) as {source.id}")
    if result is not None and result.status not in ("ok", "unchanged"):
        console.print(f"[yellow]First check: {result.status}[/yellow] {result.error or ''}")


@app.command()
def create(
    name: str = typer.Argument(...),
    key_name: str = typer.Option(..., "--key-name", help="Kubo key used to publish."),
    key_id: str = typer.Option(..., "--key-id", help="Id of the Kubo key."),
    about: str = typer.Option("", "--about"),
    ipns: str | None = typer.Option(None, "--ipns", help="IPNS name of the key, if known."),
    config: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
):
    """Create a self-owned planet for an existing IPNS key."""
    cfg = _load(config, log_level)

    async def _create(engine: Engine):
        return engine.create_planet(name, about, key_name, key_id, ipns=ipns)

    source = _run(cfg, _create)
    console.print(f"Created planet {source.name} as {source.id}")


@app.command()
def post(
    planet_id: str = typer.Argument(...),
    title: str = typer.Option(..., "--title", "-t"),
    content: str | None = typer.Option(None, "--content"),
    file: Path | None = typer.Option(None, "--file", "-f", exists=True, readable=True),
    publish: bool = typer.Option(True, "--publish/--no-publish"),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Wait for gateway propagation."),
    config: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
):
    """Write an article into a planet and publish it."""
    cfg = _load(config, log_level)
    body = file.read_text(encoding="utf-8") if file else (content or "")

    async def _post(engine: Engine):
        article, follow_ups = engine.create_article(planet_id, title, body)
        results = await engine.run_follow_ups(follow_ups) if publish else []
        pending = [r.propagation for r in results if isinstance(r, PublishResult) and r.propagation is not None]
        if wait and pending:
            await asyncio.gather(*pending)
        return article, results

    try:
        article, results = _run(cfg, _post)
    except SourceNotFoundError as exc:
        console.print(f"[red]Unknown planet: {exc}[/red]")
        raise typer.Exit(code=1)
    console.print(f"Article created: {article.id}")
    for result in results:
        if isinstance(result, PublishResult):
            _print_publish(result)


@app.command()
def publish(
    planet_id: str | None = typer.Argument(None, help="Planet to publish; all owned planets if omitted."),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Wait for gateway probes."),
    config: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
):
    """Publish self-owned planets to IPFS."""
    cfg = _load(config, log_level)

    async def _publish(engine: Engine):
        results = [await engine.publish(planet_id)] if planet_id else await engine.publish_all()
        probes = [r.propagation for r in results if r.propagation is not None]
        if wait and probes:
            await asyncio.gather(*probes)
        return results

    for result in _run(cfg, _publish):
        _print_publish(result)


@app.command("list")
def list_planets(
    planet_id: str | None = typer.Argument(None, help="List this planet's articles instead."),
    config: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
):
    """List planets, or the articles of one planet."""
    cfg = _load(config, log_level)

    async def _list(engine: Engine):
        if planet_id:
            return engine.store.list_for_source(planet_id)
        return [(source, engine.article_status(source.id)) for source in engine.registry.all()]

    rows = _run(cfg, _list)
    if planet_id:
        table = Table("id", "title", "created", "read")
        for article in rows:
            table.add_row(article.id, article.title, article.created.isoformat(), "yes" if article.read else "")
    else:
        table = Table("id", "name", "kind", "unread", "total")
        for source, (unread, total) in rows:
            table.add_row(source.id, source.name, source.kind.value, str(unread), str(total))
    console.print(table)


@app.command()
def link(
    item_id: str = typer.Argument(..., help="Article id, or planet id for its root."),
    gateway: PublicGateway = typer.Option(PublicGateway.DWEB, "--gateway", "-g"),
    config: Path | None = ConfigOption,
):
    """Print the public URL of an article or planet."""
    cfg = _load(config)

    async def _link(engine: Engine):
        return engine.link(item_id, gateway)

    try:
        console.print(_run(cfg, _link))
    except SourceNotFoundError:
        console.print(f"[red]Nothing found for {item_id}[/red]")
        raise typer.Exit(code=1)


@app.command()
def remove(
    planet_id: str = typer.Argument(...),
    config: Path | None = ConfigOption,
    log_level: str | None = LogLevelOption,
):
    """Remove a planet and all of its articles."""
    cfg = _load(config, log_level)

    async def _remove(engine: Engine):
        return engine.remove_source(planet_id)

    try:
        removed = _run(cfg, _remove)
    except SourceNotFoundError:
        console.print(f"[red]Unknown planet: {planet_id}[/red]")
        raise typer.Exit(code=1)
    console.print(f"Removed planet {planet_id} and {removed} articles")


@app.command()
def status(config: Path | None = ConfigOption):
    """Print database counts."""
    cfg = _load(config)

    async def _status(engine: Engine):
        return engine.report_database_status()

    sources, articles = _run(cfg, _status)
    console.print(f"{sources} planets, {articles} articles ({cfg.storage.resolved_database_path()})")


if __name__ == "__main__":
    app()
