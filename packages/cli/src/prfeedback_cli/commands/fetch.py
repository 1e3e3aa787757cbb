"""fetch command: gather all feedback on a pull request."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from prfeedback_core.aggregator import fetch_feedback
from prfeedback_core.errors import FeedbackError
from prfeedback_core.summary import print_summary

console = Console(stderr=True)


def _resolve_target(target: tuple[str, ...]) -> tuple[str, int]:
    """Map the positional arguments to ``(repo, pr_number)``.

    \b
      ()                  current repo, current branch's PR
      (NUMBER,)           current repo, PR NUMBER
      (BRANCH,)           current repo, PR opened from BRANCH
      (OWNER/REPO, NUMBER)
    """
    from prfeedback_cli.auth import detect_pr_number, detect_repo

    if len(target) > 2:
        raise click.UsageError("Expected at most two arguments: [OWNER/REPO] [PR_NUMBER | BRANCH].")

    if len(target) == 2:
        repo, number = target
        if "/" not in repo:
            raise click.UsageError(f"Repository must be in owner/name format, got {repo!r}.")
        if not number.isdigit():
            raise click.UsageError(f"Invalid PR number: {number!r}.")
        return repo, int(number)

    repo = detect_repo()
    if repo is None:
        raise click.UsageError("Could not detect the GitHub repository. Pass OWNER/REPO and a PR number.")

    if not target:
        pr_number = detect_pr_number(repo=repo)
        if pr_number is None:
            raise click.UsageError("No PR found for current branch. Please specify a PR number or branch name.")
        return repo, pr_number

    (arg,) = target
    if arg.isdigit():
        return repo, int(arg)

    console.print(escape(f"Looking up PR for branch '{arg}'..."))
    pr_number = detect_pr_number(branch=arg, repo=repo)
    if pr_number is None:
        raise click.UsageError(f"No PR found for branch '{arg}'.")
    return repo, pr_number


@click.command("fetch")
@click.argument("target", nargs=-1)
@click.option(
    "--output",
    "-o",
    "output_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the JSON report to this file instead of stdout.",
)
@click.option("--quiet", "-q", is_flag=True, help="Do not print the summary to stderr.")
@click.pass_context
def fetch_cmd(ctx, target: tuple[str, ...], output_path: str | None, quiet: bool):
    """Fetch every comment on a pull request as one JSON document.

    TARGET is empty (PR of the current branch), a PR number, a branch name,
    or OWNER/REPO followed by a PR number. The report nests inline comments
    under their review and reply threads under their first comment, and
    lists every item once in ``allComments`` in chronological order.
    """
    from prfeedback_cli.cli import get_client

    repo, pr_number = _resolve_target(target)
    client = get_client(ctx)

    console.print(f"Fetching PR #{pr_number} from {repo}...")
    try:
        report = fetch_feedback(client, repo, pr_number)
    except FeedbackError as e:
        raise click.ClickException(str(e))

    if not quiet:
        print_summary(report, console)

    text = json.dumps(report.to_dict(), indent=2)
    if output_path:
        Path(output_path).write_text(text + "\n", encoding="utf-8")
        console.print(f"[green]Wrote {report.stats.total_all_comments} item(s) to {output_path}[/green]")
    else:
        click.echo(text)
