"""CLI entry point for the choreography services."""

from __future__ import annotations

import click

from .core.enums import ServiceRole

_SERVICE_ROLES = [r.value for r in ServiceRole if r is not ServiceRole.BUS]


def _load(config: str | None):
    from .core.config import load_settings
    from .core.errors import ConfigError

    try:
        return load_settings(config_path=config)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
def main() -> None:
    """Event-choreographed blog services."""


@main.command()
@click.option("--config", default=None, help="Config file path (TOML)")
@click.option("--port", default=None, type=int, help="Port override")
def bus(config: str | None, port: int | None) -> None:
    """Run the event bus."""
    from .services.runner import run_service

    settings = _load(config)
    if port is not None:
        settings.bus.port = port
    run_service(ServiceRole.BUS, settings)


@main.command()
@click.argument("role", type=click.Choice(_SERVICE_ROLES))
@click.option("--config", default=None, help="Config file path (TOML)")
@click.option("--port", default=None, type=int, help="Port override")
def service(role: str, config: str | None, port: int | None) -> None:
    """Run one of the services (posts, comments, query, moderation)."""
    from .core.errors import ReplayError
    from .services.runner import run_service

    settings = _load(config)
    service_role = ServiceRole(role)
    if port is not None:
        settings.server_for(service_role).port = port
    try:
        run_service(service_role, settings)
    except ReplayError as exc:
        raise click.ClickException(f"Refusing to start {role}: {exc}") from exc


@main.command()
@click.option("--config", default=None, help="Config file path (TOML)")
def replay(config: str | None) -> None:
    """Rebuild a projection from the bus history and print a summary."""
    import asyncio

    from .core.errors import ReplayError
    from .services.runner import replay_once

    settings = _load(config)
    try:
        state, client = asyncio.run(replay_once(settings))
    except ReplayError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"Replayed through sequence {client.last_sequence}")
    click.echo(f"Posts: {len(state.posts)}  Comments: {len(state.comments)}")
    for post in state.posts.values():
        comments = state.comments_for(post.id)
        click.echo(f"  {post.id}  {post.title!r}  ({len(comments)} comments)")
        for comment in comments:
            click.echo(f"    {comment.id}  [{comment.status.value}]  {comment.content!r}")


if __name__ == "__main__":
    main()
