"""Human-readable fetch summary, printed to stderr next to the JSON report."""

from __future__ import annotations

from collections import Counter

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from prfeedback_core.models import FeedbackReport, ReviewState

_STATE_STYLE = {
    ReviewState.APPROVED: "green",
    ReviewState.CHANGES_REQUESTED: "red",
    ReviewState.COMMENTED: "yellow",
    ReviewState.PENDING: "dim",
    ReviewState.DISMISSED: "dim",
}


def feedback_by_author(report: FeedbackReport) -> list[tuple[str, int]]:
    """Count flat-list entries per author, excluding the PR author, busiest first."""
    counts: Counter[str] = Counter()
    for entry in report.all_comments:
        if entry.author != report.pr.author:
            counts[entry.author or "unknown"] += 1
    return counts.most_common()


def print_summary(report: FeedbackReport, console: Console | None = None) -> None:
    console = console or Console(stderr=True)
    pr = report.pr
    stats = report.stats

    console.print(f"\n[bold]PR #{pr.number}: {escape(pr.title or '')}[/bold]")
    console.print(f"URL: {pr.url}")
    console.print(f"State: {pr.state} | Author: {escape(pr.author or '')}")
    console.print(f"Head SHA: {(pr.head_sha or '')[:7]}\n")

    console.print("Stats:")
    console.print(f"  Reviews: {stats.total_reviews} ({stats.total_review_bodies} with body text)")
    console.print(f"  Inline comments: {stats.total_review_comments}")
    console.print(f"  Reply threads: {stats.total_replies}")
    console.print(f"  Conversation comments: {stats.total_issue_comments}")
    console.print(f"  Orphaned comments: {stats.total_orphaned_comments}")
    if stats.total_unresolved_parents:
        console.print(f"  [yellow]Replies to unfetched comments: {stats.total_unresolved_parents}[/yellow]")
    console.print(f"  [bold]TOTAL ITEMS: {stats.total_all_comments}[/bold]\n")

    if report.reviews:
        table = Table(title="Reviews", show_header=True, header_style="bold cyan")
        table.add_column("Reviewer")
        table.add_column("State")
        table.add_column("Comments", justify="right")
        table.add_column("Replies", justify="right")
        table.add_column("Notes")
        for review in report.reviews.values():
            style = _STATE_STYLE.get(review.review_state, "white")
            replies = sum(len(c.replies) for c in review.comments.values())
            notes = []
            if review.has_body:
                notes.append("has body")
            if not review.is_on_current_commit:
                notes.append("old commit")
            table.add_row(
                escape(f"@{review.author}"),
                f"[{style}]{review.state}[/{style}]",
                str(len(review.comments)),
                str(replies),
                ", ".join(notes),
            )
        console.print(table)

    by_author = feedback_by_author(report)
    if by_author:
        console.print("Feedback by reviewer:")
        for author, count in by_author:
            console.print(escape(f"  @{author}: {count} comments"))
        console.print()
