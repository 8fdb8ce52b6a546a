"""CLI entry point for ghkit (Click-based).

Commands:
    commit   Commit one file to a branch through the Git Data API
    cat      Print a file from a repository
    head     Print the commit a branch points at
    oauth    OAuth web-flow helpers (authorization link, code exchange)
    config   Manage ghkit configuration
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from ghkit import __version__
from ghkit.github.client import GitHubClient
from ghkit.github.commit import update_and_commit
from ghkit.github.errors import CommitStepError, GitHubClientError
from ghkit.github.oauth import authorize_url, exchange_code
from ghkit.models import AuthToken, Branch, Owner
from ghkit.utils.config import ENV_MAP, Settings
from ghkit.utils.formatting import (
    print_commit_failure,
    print_commit_result,
    print_error,
    print_info,
    print_success,
)

console = Console()

_SECRET_KEYS = {"github_token", "oauth_client_secret"}


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _mask(value: str) -> str:
    if not value:
        return ""
    return value[:4] + "…" + value[-4:] if len(value) > 8 else "****"


def _parse_repository(value: str) -> tuple[Owner, str]:
    """Split ``OWNER/REPO`` into its parts."""
    owner, sep, repo = value.partition("/")
    if not sep or not owner or not repo or "/" in repo:
        raise click.BadParameter(f"expected OWNER/REPO, got {value!r}", param_hint="REPOSITORY")
    return Owner(owner), repo


def _require_token(ctx: click.Context) -> AuthToken:
    settings: Settings = ctx.obj["settings"]
    if not settings.github_token:
        print_error("No GitHub token configured. Set GITHUB_TOKEN or run `ghkit config set github_token`.")
        ctx.exit(1)
    return AuthToken(settings.github_token)


def _optional_token(ctx: click.Context) -> AuthToken | None:
    settings: Settings = ctx.obj["settings"]
    return AuthToken(settings.github_token) if settings.github_token else None


def _make_client(settings: Settings) -> GitHubClient:
    return GitHubClient.from_settings(settings)


@click.group(invoke_without_command=True)
@click.option(
    "--config-dir", "-C", default=".",
    help="Directory holding the local .ghkit.toml (default: current directory).",
)
@click.option("--log-level", "-l", default=None, help="Logging level.")
@click.option("--api-url", default=None, help="GitHub REST API root.")
@click.version_option(__version__, prog_name="ghkit")
@click.pass_context
def main(ctx: click.Context, config_dir: str, log_level: str | None, api_url: str | None) -> None:
    """ghkit — typed GitHub REST client and single-file committer."""
    overrides: dict[str, str | None] = {"log_level": log_level, "api_url": api_url}
    settings = Settings.load(overrides, base_path=config_dir)
    _configure_logging(settings.log_level)

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["config_dir"] = Path(config_dir).resolve()

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        token_ok = bool(settings.github_token)
        console.print(
            f"\n  GitHub token: [{('green' if token_ok else 'red')}]"
            f"{'✓ configured' if token_ok else '✗ not set'}[/]"
            f"  |  API: [cyan]{settings.api_url}[/]"
        )


# ── commit ───────────────────────────────────────────────────────────


@main.command()
@click.argument("repository")
@click.argument("path")
@click.option("--message", "-m", required=True, help="Commit message.")
@click.option("--content", "-c", default=None, help="New file content.")
@click.option(
    "--file", "-f", "source",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read the new file content from a local file.",
)
@click.option("--branch", "-b", default=None, help="Target branch (default: configured default_branch).")
@click.option(
    "--force/--no-force", default=True,
    help="Force-move the branch (default) or refuse non-fast-forward updates.",
)
@click.option(
    "--refetch-tree/--no-refetch-tree", default=True,
    help="Re-read the base tree before building the new one.",
)
@click.pass_context
def commit(
    ctx: click.Context,
    repository: str,
    path: str,
    message: str,
    content: str | None,
    source: Path | None,
    branch: str | None,
    force: bool,
    refetch_tree: bool,
) -> None:
    """Commit PATH with new content to a branch of REPOSITORY (OWNER/REPO)."""
    if (content is None) == (source is None):
        raise click.UsageError("Pass exactly one of --content or --file.")

    settings: Settings = ctx.obj["settings"]
    owner, repo = _parse_repository(repository)
    auth = _require_token(ctx)
    data: bytes = source.read_bytes() if source is not None else content.encode("utf-8")  # type: ignore[union-attr]

    async def _run():
        async with _make_client(settings) as client:
            return await update_and_commit(
                client,
                auth=auth,
                owner=owner,
                repo=repo,
                path=path,
                content=data,
                message=message,
                branch=Branch(branch or settings.default_branch),
                force=force,
                refetch_tree=refetch_tree,
            )

    try:
        record = asyncio.run(_run())
    except CommitStepError as exc:
        print_commit_failure(exc)
        ctx.exit(1)
    print_commit_result(record)
    if record.head_url:
        print_info(f"Parent commit: {record.head_url}")


# ── cat ──────────────────────────────────────────────────────────────


@main.command()
@click.argument("repository")
@click.argument("path")
@click.option("--ref", "-r", default=None, help="Branch, tag or commit to read from.")
@click.pass_context
def cat(ctx: click.Context, repository: str, path: str, ref: str | None) -> None:
    """Print PATH from REPOSITORY (OWNER/REPO)."""
    settings: Settings = ctx.obj["settings"]
    owner, repo = _parse_repository(repository)
    auth = _optional_token(ctx)

    async def _run():
        async with _make_client(settings) as client:
            return await client.get_file_contents(owner, repo, path, ref=ref, auth=auth)

    try:
        contents = asyncio.run(_run())
    except GitHubClientError as exc:
        print_error(exc.message)
        ctx.exit(1)
    click.echo(contents.decoded(), nl=False)


# ── head ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("repository")
@click.option("--branch", "-b", default=None, help="Branch name (default: configured default_branch).")
@click.pass_context
def head(ctx: click.Context, repository: str, branch: str | None) -> None:
    """Print the commit SHA a branch of REPOSITORY currently points at."""
    settings: Settings = ctx.obj["settings"]
    owner, repo = _parse_repository(repository)
    auth = _optional_token(ctx)
    name = Branch(branch or settings.default_branch)

    async def _run():
        async with _make_client(settings) as client:
            return await client.get_branch(owner, repo, name, auth=auth)

    try:
        info = asyncio.run(_run())
    except GitHubClientError as exc:
        print_error(exc.message)
        ctx.exit(1)
    click.echo(str(info.commit.sha))


# ── oauth ────────────────────────────────────────────────────────────


@main.group()
def oauth() -> None:
    """OAuth web-flow helpers."""


@oauth.command(name="url")
@click.option("--client-id", default=None, help="OAuth app client id (default: configured).")
@click.option("--redirect-uri", default=None, help="Callback URL registered with the app.")
@click.option("--scope", "scopes", multiple=True, help="Requested scope (repeatable).")
@click.option("--state", default=None, help="Opaque value echoed back to the callback.")
@click.pass_context
def oauth_url(
    ctx: click.Context,
    client_id: str | None,
    redirect_uri: str | None,
    scopes: tuple[str, ...],
    state: str | None,
) -> None:
    """Print the authorization URL to send a user to."""
    settings: Settings = ctx.obj["settings"]
    resolved = client_id or settings.oauth_client_id
    if not resolved:
        raise click.UsageError("No client id: pass --client-id or set oauth_client_id.")
    click.echo(
        authorize_url(
            resolved,
            redirect_uri=redirect_uri,
            scopes=scopes,
            state=state,
            base_url=settings.oauth_url,
        )
    )


@oauth.command(name="exchange")
@click.argument("code")
@click.option("--client-id", default=None, help="OAuth app client id (default: configured).")
@click.option("--client-secret", default=None, help="OAuth app client secret (default: configured).")
@click.option("--state", default=None, help="The state value sent with the authorization URL.")
@click.pass_context
def oauth_exchange(
    ctx: click.Context,
    code: str,
    client_id: str | None,
    client_secret: str | None,
    state: str | None,
) -> None:
    """Exchange an authorization CODE for a token.

    Prints the resulting ``Authorization`` header line, e.g. for
    ``curl -H "$(ghkit oauth exchange CODE)"``.
    """
    settings: Settings = ctx.obj["settings"]
    resolved_id = client_id or settings.oauth_client_id
    resolved_secret = client_secret or settings.oauth_client_secret
    if not resolved_id or not resolved_secret:
        raise click.UsageError("Both a client id and a client secret are required.")

    try:
        token = asyncio.run(
            exchange_code(
                resolved_id,
                resolved_secret,
                code,
                state=state,
                base_url=settings.oauth_url,
                timeout=settings.timeout,
            )
        )
    except GitHubClientError as exc:
        print_error(exc.message)
        ctx.exit(1)
    click.echo(f"Authorization: {token.access_token.header()}")
    scopes = ", ".join(token.scopes) or "none"
    click.echo(f"# token_type={token.token_type} scopes={scopes}", err=True)


# ── config ───────────────────────────────────────────────────────────


@main.group()
def config() -> None:
    """Manage ghkit configuration.

    View and edit `.ghkit.toml` settings files.
    """


@config.command(name="show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Display the current resolved configuration and where each value came from."""
    from ghkit.utils.config import _parse_toml, config_path, global_config_path

    settings: Settings = ctx.obj["settings"]
    local_cfg = config_path(ctx.obj["config_dir"])
    global_cfg = global_config_path()
    local_vals = _parse_toml(local_cfg) if local_cfg.is_file() else {}
    global_vals = _parse_toml(global_cfg) if global_cfg.is_file() else {}
    env_by_field = {field: env for env, field in ENV_MAP.items()}
    defaults = Settings()

    table = Table(title="ghkit Configuration", show_lines=True)
    table.add_column("Setting", style="bold cyan")
    table.add_column("Value")
    table.add_column("Source", style="dim")

    for field_name in Settings.model_fields:
        val = getattr(settings, field_name)
        env_key = env_by_field.get(field_name)
        if env_key and os.environ.get(env_key) is not None:
            source = f"env ({env_key})"
        elif field_name in local_vals:
            source = f"file ({local_cfg.name})"
        elif field_name in global_vals:
            source = f"file ({global_cfg})"
        elif val == getattr(defaults, field_name):
            source = "default"
        else:
            source = "CLI flag"

        display_val = _mask(val) if field_name in _SECRET_KEYS else str(val)
        table.add_row(field_name, display_val, source)

    console.print()
    console.print(table)
    console.print()


@config.command(name="set")
@click.option("--global", "global_scope", is_flag=True, help="Write to the global user config.")
@click.argument("key")
@click.argument("value", required=False)
@click.pass_context
def config_set(ctx: click.Context, global_scope: bool, key: str, value: str | None) -> None:
    """Set a single configuration value.

    Example:
        ghkit config set default_branch trunk
        ghkit config set log_level DEBUG
    """
    from ghkit.utils.config import config_path, global_config_path, update_config_key

    if key not in Settings.model_fields:
        console.print(
            f"[red]Invalid key:[/] {key}\n"
            f"Valid keys: {', '.join(sorted(Settings.model_fields))}"
        )
        ctx.exit(1)

    if value is None or not value.strip():
        value = click.prompt(f"Value for {key}", hide_input=key in _SECRET_KEYS)

    target = global_config_path() if global_scope else config_path(ctx.obj["config_dir"])
    update_config_key(key, value, target)
    shown = _mask(value) if key in _SECRET_KEYS else value
    print_success(f"Set {key} = {shown} in {target}")


@config.command(name="path")
@click.option("--global", "global_scope", is_flag=True, help="Show global user config path.")
@click.pass_context
def config_path_cmd(ctx: click.Context, global_scope: bool) -> None:
    """Print the path to the configuration file."""
    from ghkit.utils.config import config_path, global_config_path

    p = global_config_path() if global_scope else config_path(ctx.obj["config_dir"])
    exists = "✓ exists" if p.is_file() else "not found"
    click.echo(f"{p}  ({exists})")
