#!/usr/bin/env python3
import asyncio
import click
from rich.console import Console
from rich.table import Table
from typing import Optional

from schoolnews.config import load_config
from schoolnews.errors import ConfigurationError, StoreError, format_error
from schoolnews.services import build_store
from schoolnews.utils.sanitize import get_sanitizer, linkify, prepare_comment

console = Console()


def _run(coro):
    try:
        return asyncio.run(coro)
    except (StoreError, ConfigurationError) as e:
        console.print(f"[red]Error:[/red] {format_error(e)}")
        raise SystemExit(1)


@click.group()
def cli():
    """St.Josef News CLI"""
    pass


@cli.command("init-db")
def init_db():
    """Create tables and the default settings row"""
    async def _init():
        config = load_config()
        store = await build_store(config)
        try:
            ok = await store.check_connection()
        finally:
            await store.close()
        return config, ok

    config, ok = _run(_init())
    if ok:
        console.print(f"[green]✓[/green] {config.backend} store ready")
    else:
        console.print(f"[red]Error:[/red] {config.backend} store is unreachable")
        raise SystemExit(1)


@cli.command("create-admin")
@click.option('--email', prompt=True)
@click.option('--name', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
def create_admin(email: str, name: str, password: str):
    """Register a user and grant the ADMIN role"""
    async def _create():
        store = await build_store(load_config())
        try:
            session = await store.register(email.strip().lower(), password, name.strip())
            if not session.user.is_admin:
                await store.update_user_role(session.user.id, "ADMIN")
            return session.user
        finally:
            await store.close()

    user = _run(_create())
    console.print(f"[green]✓[/green] Admin created: {user.email}")
    console.print(f"  ID: {user.id}")


@cli.command()
@click.argument('text', required=False)
@click.option('--sanitizer', type=click.Choice(['regex', 'bleach']), default='regex', help='Sanitizer to use')
@click.option('--links-only', is_flag=True, help='Only linkify, skip sanitizing')
def render(text: Optional[str], sanitizer: str, links_only: bool):
    """Show how a comment would be stored (reads stdin without TEXT)"""
    if text is None:
        text = click.get_text_stream('stdin').read()
    if links_only:
        console.print(linkify(text), markup=False)
    else:
        console.print(prepare_comment(text, get_sanitizer(sanitizer)), markup=False)


@cli.command()
@click.option('--level', help='Filter by educational level')
@click.option('--search', help='Search titles and content')
@click.option('--sort-by', type=click.Choice(['date', 'comments']), default='date')
@click.option('--limit', default=20, help='Number of results')
@click.option('--all', 'include_scheduled', is_flag=True, help='Include scheduled posts')
def posts(level: Optional[str], search: Optional[str], sort_by: str, limit: int, include_scheduled: bool):
    """List posts"""
    async def _list():
        store = await build_store(load_config())
        try:
            return await store.list_posts(
                level=level,
                search=search,
                sort_by=sort_by,
                include_scheduled=include_scheduled,
                limit=limit,
            )
        finally:
            await store.close()

    results = _run(_list())
    if not results:
        console.print("[yellow]No posts found[/yellow]")
        return

    table = Table(title="Posts")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Published", style="magenta")
    table.add_column("Levels", style="blue")
    table.add_column("Comments", style="green")

    for post in results:
        table.add_row(
            post.id[:8],
            post.title[:50] + "..." if len(post.title) > 50 else post.title,
            post.published_at.strftime("%Y-%m-%d %H:%M"),
            ", ".join(post.educational_level),
            str(len(post.comments)),
        )

    console.print(table)


@cli.command()
@click.option('--host', default='127.0.0.1')
@click.option('--port', default=8000, type=int)
@click.option('--reload', is_flag=True)
def serve(host: str, port: int, reload: bool):
    """Run the API server"""
    import uvicorn

    uvicorn.run("schoolnews.main:create_app", factory=True, host=host, port=port, reload=reload)


if __name__ == '__main__':
    cli()
