"""CLI entry point for prfeedback.

Commands:
  fetch   gather every review comment, review body and conversation comment
          of a pull request into one JSON document
  reply   post a batch of replies back into the right threads
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prfeedback_cli.commands.fetch import fetch_cmd
from prfeedback_cli.commands.reply import reply_cmd

console = Console(stderr=True)


def _build_client(config: dict):
    """Instantiate the GitHub client selected by ``transport``.

    Client selection:
      transport: api  → GitHubApiClient (PyGithub, requires a token)
      transport: gh   → GhCliClient     (shells out to `gh api`)
      transport: auto → api when a token was resolved, gh otherwise
    """
    transport = config.get("transport", "auto")
    token = config.get("github_token")

    if transport == "api" or (transport == "auto" and token):
        if not token:
            raise click.UsageError("No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.")
        from prfeedback_core.gh.api import GitHubApiClient

        return GitHubApiClient(
            token=token,
            per_page=config["per_page"],
            payload_chars=config["error_payload_chars"],
            base_url=config.get("api_url"),
        )

    from prfeedback_core.gh.cli import GhCliClient

    return GhCliClient(
        gh_path=config["gh_path"],
        per_page=config["per_page"],
        payload_chars=config["error_payload_chars"],
    )


def get_client(ctx: click.Context):
    """Build the client on first use and close it when the command ends."""
    obj = ctx.find_object(dict)
    if obj.get("client") is None:
        client = _build_client(obj["config"])
        obj["client"] = client
        ctx.find_root().call_on_close(client.close)
    return obj["client"]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("prfeedback"),
    prog_name="prfeedback",
)
@click.option(
    "--config",
    "config_path",
    default=".prfeedback.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRFEEDBACK_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Log API pagination and threading details to stderr.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Collect pull request review feedback and reply to it in bulk."""
    from prfeedback_core.config import load_config
    from prfeedback_cli.auth import resolve_github_token

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ValueError as e:
        raise click.UsageError(str(e))

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    ctx.obj["config"] = config
    ctx.obj["client"] = None


main.add_command(fetch_cmd)
main.add_command(reply_cmd)
