"""Main CLI entry point for commitdock."""

import logging
from dataclasses import replace
from importlib import metadata
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from ..config import BuildSettings, default_image_name, parse_duration, parse_tags
from ..exceptions import CommitdockError
from ..models import BuildRequest
from ..progress import ConsoleObserver


def get_version() -> str:
    """Get the package version from metadata."""
    try:
        return metadata.version("commitdock")
    except metadata.PackageNotFoundError:
        return "unknown"


console = Console()

# command: commitdock
app = typer.Typer(
    name="commitdock",
    help="Build a Docker image from one git commit and push it to a registry",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.command("build")
def build_cmd(
    git_repo: str = typer.Option(..., "--git-repo", help="Git repository to check out"),
    commit: str = typer.Option(
        ..., "--commit", help="Commit to check out and tag the image with"
    ),
    image: Optional[str] = typer.Option(
        None, "--image", help="Image name (defaults to the repository name)"
    ),
    tags: Optional[str] = typer.Option(
        None, "--tags", help="Additional comma-separated tags to push"
    ),
    docker_registry: Optional[str] = typer.Option(
        None, "--docker-registry", help="Docker registry to push to"
    ),
    username: Optional[str] = typer.Option(
        None, "--username", "-u", help="Registry user to push with"
    ),
    password: Optional[str] = typer.Option(
        None, "--password", "-p", help="Registry password to push with"
    ),
    timeout: Optional[str] = typer.Option(
        None, "--timeout", help="Budget for the whole job, e.g. 300, 5m, 1m30s"
    ),
    transport: Optional[str] = typer.Option(
        None, "--transport", help="Git transport: https or ssh"
    ),
    ssh_key: Optional[str] = typer.Option(
        None, "--ssh-key", help="Private key for ssh transport"
    ),
    no_cache: Optional[bool] = typer.Option(
        None, "--no-cache/--cache", help="Build without reusing layer cache"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    Fetch one commit, build its Dockerfile, and push every tag.

    Tags pushed are the extra --tags followed by [bold]latest[/bold] and the
    commit id.

    Examples:
      commitdock build --git-repo github.com/example/app --commit 3f2a9c1
      commitdock build --git-repo github.com/example/app --commit 3f2a9c1 --tags v1,v2
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        settings = BuildSettings.from_environment()
        overrides = {
            "git_transport": transport.lower() if transport else None,
            "git_ssh_key": ssh_key,
            "docker_registry": docker_registry,
            "docker_username": username,
            "docker_password": password,
            "no_cache": no_cache,
            "timeout": parse_duration(timeout) if timeout is not None else None,
        }
        settings = replace(
            settings, **{k: v for k, v in overrides.items() if v is not None}
        )

        request = BuildRequest(
            repository=git_repo,
            commit=commit,
            image=image or default_image_name(git_repo, settings.docker_registry),
            tags=parse_tags(tags, commit),
            timeout=settings.timeout,
        )
    except CommitdockError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)

    _display_build_config(request, settings)

    from ..build import build_and_publish

    try:
        result = build_and_publish(
            request, settings=settings, observer=ConsoleObserver(console)
        )
    except CommitdockError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(
        f"[green]✓[/green] Pushed {len(result.references)} tag(s) "
        f"in {result.elapsed:.1f}s"
    )
    for reference in result.references:
        console.print(f"  {reference}")


def _display_build_config(request: BuildRequest, settings: BuildSettings) -> None:
    """Show what is about to be built."""
    lines = [
        f"[bold]Repository:[/bold] {request.repository}",
        f"[bold]Commit:[/bold] {request.commit}",
        f"[bold]Image:[/bold] {request.image}",
        f"[bold]Tags:[/bold] {', '.join(request.tags)}",
        f"[bold]Timeout:[/bold] {request.timeout:g}s",
        f"[bold]Cache:[/bold] {'disabled' if settings.no_cache else 'enabled'}",
    ]
    console.print(Panel("\n".join(lines), title="commitdock build", expand=False))


@app.command("version")
def version_cmd():
    """Show the commitdock version."""
    console.print(f"commitdock {get_version()}")


if __name__ == "__main__":
    app()
