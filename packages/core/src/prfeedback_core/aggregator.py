"""Merge reviews, inline comments and conversation comments into one model.

fetch_feedback() pulls the four sources through a BaseClient; build_report()
is the pure merge and is what the tests drive directly.

Threading is two-pass: replies can be fetched before their parents, so every
comment is indexed by id first and attached to its thread root second.
Replies to replies collapse onto the thread root, which is also the comment
a reply to any of them has to be posted against.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from prfeedback_core.errors import AggregationError, DecodeError
from prfeedback_core.gh.base import (
    SOURCE_ISSUE_COMMENTS,
    SOURCE_REVIEW_COMMENTS,
    SOURCE_REVIEWS,
    BaseClient,
    reply_endpoints,
)
from prfeedback_core.models import (
    EntryKind,
    FeedbackEntry,
    FeedbackReport,
    FeedbackStats,
    InlineComment,
    IssueComment,
    PullRequestSummary,
    Review,
    ReviewBodyId,
)

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _login(raw: dict) -> str | None:
    return (raw.get("user") or {}).get("login")


def _require_id(raw, source: str) -> int:
    if not isinstance(raw, dict) or not isinstance(raw.get("id"), int):
        raise DecodeError(source, raw)
    return raw["id"]


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a GitHub ISO-8601 timestamp; None when absent or malformed."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _chronological_key(entry: FeedbackEntry) -> tuple[bool, datetime]:
    # Undated entries (pending reviews) go last; sorted() keeps fetch order on ties.
    ts = parse_timestamp(entry.created_at)
    return (ts is None, ts or _EPOCH)


def _summarize_pull(overview: dict) -> PullRequestSummary:
    head = overview.get("head") or {}
    base = overview.get("base") or {}
    return PullRequestSummary(
        number=overview.get("number"),
        title=overview.get("title"),
        body=overview.get("body") or "",
        url=overview.get("html_url"),
        state=overview.get("state"),
        author=_login(overview),
        head_sha=head.get("sha"),
        base_branch=base.get("ref"),
        head_branch=head.get("ref"),
        created_at=overview.get("created_at"),
        updated_at=overview.get("updated_at"),
        changed_files=overview.get("changed_files"),
        additions=overview.get("additions"),
        deletions=overview.get("deletions"),
    )


class FeedbackBuilder:
    """Accumulates one pull request's feedback; owned by a single build call.

    Call the ``add_*`` steps in order, then ``build()`` once. The builder
    must not be reused after ``build()``.
    """

    def __init__(self, repo: str, pr_number: int, overview: dict):
        self.repo = repo
        self.pr_number = pr_number
        self.pr = _summarize_pull(overview)
        self.head_sha = self.pr.head_sha

        self._comments: dict[int, InlineComment] = {}
        self._top_level: list[int] = []
        self._reviews: dict[int, Review] = {}
        self._issue_comments: dict[int, IssueComment] = {}
        self._orphans: dict[int, InlineComment] = {}
        self._entries: list[FeedbackEntry] = []

        self._review_bodies = 0
        self._replies = 0
        self._unresolved = 0
        self._built = False

    # ------------------------------------------------------------------ #
    # Reply routing                                                        #
    # ------------------------------------------------------------------ #

    def thread_reply_api(self, comment_id: int) -> str:
        return f'gh api repos/{self.repo}/pulls/{self.pr_number}/comments/{comment_id}/replies -f body="YOUR_REPLY"'

    def issue_comment_api(self) -> str:
        return f'gh api repos/{self.repo}/issues/{self.pr_number}/comments -f body="YOUR_REPLY"'

    # ------------------------------------------------------------------ #
    # Inline comments                                                      #
    # ------------------------------------------------------------------ #

    def add_review_comments(self, raw_comments: list[dict]) -> None:
        fetch_order: list[int] = []
        for raw in raw_comments:
            comment_id = _require_id(raw, SOURCE_REVIEW_COMMENTS)
            if comment_id in self._comments:
                logger.debug("Skipping duplicate review comment %d", comment_id)
                continue
            fetch_order.append(comment_id)
            commit_id = raw.get("commit_id")
            self._comments[comment_id] = InlineComment(
                id=comment_id,
                path=raw.get("path"),
                line=raw.get("line") or raw.get("original_line"),
                original_line=raw.get("original_line"),
                side=raw.get("side"),
                diff_hunk=raw.get("diff_hunk"),
                body=raw.get("body") or "",
                author=_login(raw),
                author_association=raw.get("author_association"),
                created_at=raw.get("created_at"),
                updated_at=raw.get("updated_at"),
                html_url=raw.get("html_url"),
                in_reply_to_id=raw.get("in_reply_to_id") or None,
                pull_request_review_id=raw.get("pull_request_review_id"),
                commit_id=commit_id,
                is_on_current_commit=commit_id is not None and commit_id == self.head_sha,
            )

        # Second pass, in fetch order: every comment is now indexed.
        for comment_id in fetch_order:
            comment = self._comments[comment_id]
            if comment.in_reply_to_id is None:
                self._top_level.append(comment.id)
                continue

            root = self._thread_root(comment)
            if root is None or root is comment:
                comment.parent_unresolved = True
                self._unresolved += 1
                self._top_level.append(comment.id)
                logger.warning(
                    "Comment %d replies to %d, which was not fetched; keeping it as a thread root.",
                    comment.id,
                    comment.in_reply_to_id,
                )
                continue

            root.replies[comment.id] = comment
            self._replies += 1

    def _thread_root(self, comment: InlineComment) -> InlineComment | None:
        """Follow ``in_reply_to_id`` up to the comment that anchors the thread.

        Returns the first ancestor with no parent, or the first one whose
        parent is missing. Returns None if the chain loops.
        """
        seen = {comment.id}
        current = comment
        while current.in_reply_to_id is not None:
            parent = self._comments.get(current.in_reply_to_id)
            if parent is None:
                return current
            if parent.id in seen:
                return None
            seen.add(parent.id)
            current = parent
        return current

    # ------------------------------------------------------------------ #
    # Reviews                                                              #
    # ------------------------------------------------------------------ #

    def add_reviews(self, raw_reviews: list[dict]) -> None:
        for raw in raw_reviews:
            review_id = _require_id(raw, SOURCE_REVIEWS)
            if review_id in self._reviews:
                logger.debug("Skipping duplicate review %d", review_id)
                continue
            commit_id = raw.get("commit_id")
            review = Review(
                id=review_id,
                author=_login(raw),
                author_association=raw.get("author_association"),
                state=raw.get("state"),
                body=raw.get("body") or "",
                submitted_at=raw.get("submitted_at"),
                commit_id=commit_id,
                html_url=raw.get("html_url"),
                is_on_current_commit=commit_id is not None and commit_id == self.head_sha,
            )
            self._reviews[review_id] = review

            if not review.has_body:
                continue
            self._review_bodies += 1
            self._entries.append(
                FeedbackEntry(
                    id=ReviewBodyId(review_id),
                    kind=EntryKind.REVIEW_BODY,
                    review_id=review_id,
                    author=review.author,
                    author_association=review.author_association,
                    body=review.body,
                    location="general",
                    created_at=review.submitted_at,
                    html_url=review.html_url,
                    is_on_current_commit=review.is_on_current_commit,
                    reply_method="issue-comment",
                    reply_api=self.issue_comment_api(),
                    review_state=review.state,
                )
            )

    def place_comments(self) -> None:
        """Nest top-level comments under their review and flatten each thread."""
        for comment_id in self._top_level:
            comment = self._comments[comment_id]
            review_id = comment.pull_request_review_id
            if review_id and review_id in self._reviews:
                self._reviews[review_id].comments[comment_id] = comment
            else:
                self._orphans[comment_id] = comment

            self._entries.append(self._inline_entry(comment))
            for reply in comment.replies.values():
                self._entries.append(
                    FeedbackEntry(
                        id=reply.id,
                        kind=EntryKind.INLINE_REPLY,
                        review_id=reply.pull_request_review_id,
                        author=reply.author,
                        author_association=reply.author_association,
                        body=reply.body,
                        location=reply.location,
                        path=reply.path,
                        line=reply.line,
                        created_at=reply.created_at,
                        html_url=reply.html_url,
                        is_reply=True,
                        parent_id=comment.id,
                        is_on_current_commit=reply.is_on_current_commit,
                        reply_api=self.thread_reply_api(comment.id),
                    )
                )

    def _inline_entry(self, comment: InlineComment) -> FeedbackEntry:
        if comment.parent_unresolved:
            return FeedbackEntry(
                id=comment.id,
                kind=EntryKind.INLINE_REPLY,
                review_id=comment.pull_request_review_id,
                author=comment.author,
                author_association=comment.author_association,
                body=comment.body,
                location=comment.location,
                path=comment.path,
                line=comment.line,
                created_at=comment.created_at,
                html_url=comment.html_url,
                is_reply=True,
                parent_id=comment.in_reply_to_id,
                parent_unresolved=True,
                is_on_current_commit=comment.is_on_current_commit,
                reply_api=self.thread_reply_api(comment.id),
            )
        return FeedbackEntry(
            id=comment.id,
            kind=EntryKind.INLINE,
            review_id=comment.pull_request_review_id,
            author=comment.author,
            author_association=comment.author_association,
            body=comment.body,
            location=comment.location,
            path=comment.path,
            line=comment.line,
            diff_hunk=comment.diff_hunk,
            created_at=comment.created_at,
            html_url=comment.html_url,
            is_on_current_commit=comment.is_on_current_commit,
            reply_api=self.thread_reply_api(comment.id),
            reply_count=len(comment.replies),
        )

    # ------------------------------------------------------------------ #
    # Conversation comments                                                #
    # ------------------------------------------------------------------ #

    def add_issue_comments(self, raw_comments: list[dict]) -> None:
        for raw in raw_comments:
            comment_id = _require_id(raw, SOURCE_ISSUE_COMMENTS)
            if comment_id in self._issue_comments:
                logger.debug("Skipping duplicate issue comment %d", comment_id)
                continue
            comment = IssueComment(
                id=comment_id,
                body=raw.get("body") or "",
                author=_login(raw),
                author_association=raw.get("author_association"),
                created_at=raw.get("created_at"),
                updated_at=raw.get("updated_at"),
                html_url=raw.get("html_url"),
            )
            self._issue_comments[comment_id] = comment
            self._entries.append(
                FeedbackEntry(
                    id=comment_id,
                    kind=EntryKind.CONVERSATION,
                    author=comment.author,
                    author_association=comment.author_association,
                    body=comment.body,
                    location="general",
                    created_at=comment.created_at,
                    html_url=comment.html_url,
                    is_on_current_commit=True,
                    reply_method="issue-comment",
                    reply_api=self.issue_comment_api(),
                )
            )

    # ------------------------------------------------------------------ #
    # Finalize                                                             #
    # ------------------------------------------------------------------ #

    def build(self, fetched_at: str) -> FeedbackReport:
        if self._built:
            raise RuntimeError("FeedbackBuilder.build() may only be called once.")
        self._built = True

        entries = sorted(self._entries, key=_chronological_key)
        stats = FeedbackStats(
            total_reviews=len(self._reviews),
            total_review_bodies=self._review_bodies,
            total_review_comments=len(self._top_level),
            total_replies=self._replies,
            total_issue_comments=len(self._issue_comments),
            total_orphaned_comments=len(self._orphans),
            total_unresolved_parents=self._unresolved,
            total_all_comments=len(entries),
        )
        if stats.total_all_comments != stats.expected_total:
            raise AggregationError(
                f"Flat list has {stats.total_all_comments} entries but sources account for {stats.expected_total}."
            )

        return FeedbackReport(
            repo=self.repo,
            pr_number=self.pr_number,
            fetched_at=fetched_at,
            reply_endpoints=reply_endpoints(self.repo, self.pr_number),
            pr=self.pr,
            reviews=self._reviews,
            issue_comments=self._issue_comments,
            orphaned_comments=self._orphans,
            all_comments=tuple(entries),
            stats=stats,
        )


def build_report(
    repo: str,
    pr_number: int,
    overview: dict,
    reviews: list[dict],
    review_comments: list[dict],
    issue_comments: list[dict],
    fetched_at: str,
) -> FeedbackReport:
    """Merge already-fetched payloads into a FeedbackReport."""
    builder = FeedbackBuilder(repo, pr_number, overview)
    builder.add_review_comments(review_comments)
    builder.add_reviews(reviews)
    builder.place_comments()
    builder.add_issue_comments(issue_comments)
    return builder.build(fetched_at)


def fetch_feedback(
    client: BaseClient,
    repo: str,
    pr_number: int,
    clock: Callable[[], datetime] | None = None,
) -> FeedbackReport:
    """Fetch every feedback source for a pull request and merge them.

    Any fetch or decode failure propagates; no partial report is returned.
    """
    overview = client.get_pull_request(repo, pr_number)
    reviews = client.list_reviews(repo, pr_number)
    review_comments = client.list_review_comments(repo, pr_number)
    issue_comments = client.list_issue_comments(repo, pr_number)
    logger.info(
        "Raw counts: %d reviews, %d review comments, %d issue comments",
        len(reviews),
        len(review_comments),
        len(issue_comments),
    )

    now = clock() if clock is not None else datetime.now(timezone.utc)
    return build_report(repo, pr_number, overview, reviews, review_comments, issue_comments, now.isoformat())
