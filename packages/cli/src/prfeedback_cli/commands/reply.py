"""reply command: post replies to pull request feedback in bulk."""

from __future__ import annotations

import json

import click
from rich.console import Console
from rich.markup import escape

from prfeedback_core.dispatcher import ReplyOutcome, dispatch_replies, load_reply_requests
from prfeedback_core.errors import InputShapeError

console = Console(stderr=True)


def _read_input(file_path: str | None) -> str:
    if file_path:
        with click.open_file(file_path, encoding="utf-8") as f:
            return f.read()
    return click.get_text_stream("stdin").read()


def _print_progress(index: int, total: int, outcome: ReplyOutcome) -> None:
    prefix = f"[{index}/{total}]"
    if outcome.success:
        status = "WOULD POST" if outcome.dry_run else "POSTED"
        console.print(escape(f"{prefix} {status}: {outcome.description}"))
        if outcome.dry_run:
            console.print(escape(f"    Command: {outcome.command}"), soft_wrap=True)
        elif outcome.url:
            console.print(f"    URL: {outcome.url}")
    elif outcome.skipped:
        console.print(escape(f"{prefix} SKIP - {outcome.error}"), style="yellow")
    else:
        console.print(escape(f"{prefix} FAILED: {outcome.description}"), style="red")
        console.print(escape(f"    Error: {outcome.error}"))


@click.command("reply")
@click.option(
    "--file",
    "file_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Read replies from this JSON file instead of stdin.",
)
@click.option("--repo", default=None, help="GitHub repository (owner/name). Auto-detected from git remote.")
@click.option("--pr", "pr_number", type=int, default=None, help="Pull request number.")
@click.option("--branch", default=None, help="Use the PR opened from this branch.")
@click.option(
    "--delay",
    "delay_ms",
    type=click.IntRange(min=0),
    default=None,
    help="Delay between requests in milliseconds. Overrides config file (default: 100).",
)
@click.option("--dry-run", is_flag=True, help="Show what would be posted without posting anything.")
@click.pass_context
def reply_cmd(
    ctx,
    file_path: str | None,
    repo: str | None,
    pr_number: int | None,
    branch: str | None,
    delay_ms: int | None,
    dry_run: bool,
):
    """Post replies to review feedback, one at a time.

    Input is a JSON array, from --file or stdin:

    \b
      [
        {"id": 12345, "body": "Fixed in abc123", "type": "inline"},
        {"id": "review-body-111", "body": "Thanks!", "type": "review-body"},
        {"id": 99999, "body": "Addressed", "type": "conversation"}
      ]

    Inline comments and inline replies are answered in their review thread;
    review bodies and conversation comments get a new conversation comment.
    The result JSON is written to stdout; the exit status is 1 if any reply
    failed.
    """
    from prfeedback_cli.auth import detect_pr_number, detect_repo
    from prfeedback_cli.cli import get_client

    config = ctx.obj["config"]
    delay = delay_ms if delay_ms is not None else config.get("reply_delay_ms", 100)

    repo = repo or detect_repo()
    if repo is None:
        raise click.UsageError("Could not detect the GitHub repository. Use --repo owner/name.")

    if pr_number is None:
        pr_number = detect_pr_number(branch=branch, repo=repo)
    if pr_number is None:
        raise click.UsageError("Could not determine PR number. Use --pr or --branch option.")

    console.print(f"Replying to PR #{pr_number} in {repo}")
    if dry_run:
        console.print("[yellow]DRY RUN - no comments will be posted[/yellow]\n")

    try:
        requests = load_reply_requests(_read_input(file_path))
    except InputShapeError as e:
        raise click.ClickException(f"Error reading input: {e}")

    if not requests:
        console.print("No replies to post")
    else:
        console.print(f"Processing {len(requests)} replies...\n")

    client = None if dry_run or not requests else get_client(ctx)
    result = dispatch_replies(
        client,
        repo,
        pr_number,
        requests,
        delay_ms=delay,
        dry_run=dry_run,
        on_outcome=_print_progress,
    )

    failed = result.failed
    console.print("\n[bold]=== Summary ===[/bold]")
    console.print(f"Success: {len(result.succeeded)}")
    console.print(f"Failed: {len(failed)}")
    if failed:
        console.print("\nFailed replies:")
        for outcome in failed:
            console.print(escape(f"  - ID {outcome.request.id}: {outcome.error}"))

    click.echo(json.dumps(result.to_dict(), indent=2))

    if not result.ok:
        ctx.exit(1)
