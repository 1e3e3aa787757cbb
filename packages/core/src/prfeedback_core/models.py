"""Data models for aggregated pull request feedback.

The Aggregator builds these from raw API payloads; ``FeedbackReport.to_dict``
emits the JSON document the reply workflow consumes. JSON keys are camelCase
to match that contract, attributes are snake_case.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Union

REVIEW_BODY_PREFIX = "review-body-"


class ReviewState(str, enum.Enum):
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    PENDING = "PENDING"
    DISMISSED = "DISMISSED"

    @classmethod
    def parse(cls, value: str | None) -> ReviewState | None:
        """Return the matching state, or None for values GitHub may add later."""
        try:
            return cls(value)
        except ValueError:
            return None


class EntryKind(str, enum.Enum):
    REVIEW_BODY = "review-body"
    INLINE = "inline"
    INLINE_REPLY = "inline-reply"
    CONVERSATION = "conversation"


@dataclass(frozen=True, order=True)
class ReviewBodyId:
    """Identity of a review body projected into the flat list.

    Review ids and comment ids share no namespace, so a review body is keyed
    by this tagged type rather than by a bare number or string.
    """

    review_id: int

    def __str__(self) -> str:
        return f"{REVIEW_BODY_PREFIX}{self.review_id}"

    @classmethod
    def parse(cls, value) -> ReviewBodyId | None:
        """Parse ``review-body-<n>``; anything else returns None."""
        if not isinstance(value, str) or not value.startswith(REVIEW_BODY_PREFIX):
            return None
        suffix = value[len(REVIEW_BODY_PREFIX) :]
        if not suffix.isdigit():
            return None
        return cls(int(suffix))


EntryId = Union[int, ReviewBodyId]


@dataclass
class InlineComment:
    id: int
    path: str | None
    line: int | None
    original_line: int | None
    side: str | None
    diff_hunk: str | None
    body: str
    author: str | None
    author_association: str | None
    created_at: str | None
    updated_at: str | None
    html_url: str | None
    in_reply_to_id: int | None
    pull_request_review_id: int | None
    commit_id: str | None
    is_on_current_commit: bool
    replies: dict[int, InlineComment] = field(default_factory=dict)
    parent_unresolved: bool = False

    @property
    def location(self) -> str:
        return f"{self.path}:{self.line or self.original_line or '?'}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "path": self.path,
            "line": self.line,
            "originalLine": self.original_line,
            "side": self.side,
            "diffHunk": self.diff_hunk,
            "body": self.body,
            "author": self.author,
            "authorAssociation": self.author_association,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "htmlUrl": self.html_url,
            "inReplyToId": self.in_reply_to_id,
            "pullRequestReviewId": self.pull_request_review_id,
            "commitId": self.commit_id,
            "isOnCurrentCommit": self.is_on_current_commit,
            "parentUnresolved": self.parent_unresolved,
            "replies": {str(rid): reply.to_dict() for rid, reply in self.replies.items()},
        }


@dataclass
class Review:
    id: int
    author: str | None
    author_association: str | None
    state: str | None
    body: str
    submitted_at: str | None
    commit_id: str | None
    html_url: str | None
    is_on_current_commit: bool
    comments: dict[int, InlineComment] = field(default_factory=dict)

    @property
    def has_body(self) -> bool:
        return bool(self.body.strip())

    @property
    def review_state(self) -> ReviewState | None:
        return ReviewState.parse(self.state)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "author": self.author,
            "authorAssociation": self.author_association,
            "state": self.state,
            "body": self.body,
            "submittedAt": self.submitted_at,
            "commitId": self.commit_id,
            "htmlUrl": self.html_url,
            "isOnCurrentCommit": self.is_on_current_commit,
            "comments": {str(cid): c.to_dict() for cid, c in self.comments.items()},
        }


@dataclass
class IssueComment:
    id: int
    body: str
    author: str | None
    author_association: str | None
    created_at: str | None
    updated_at: str | None
    html_url: str | None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "body": self.body,
            "author": self.author,
            "authorAssociation": self.author_association,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "htmlUrl": self.html_url,
        }


@dataclass(frozen=True)
class FeedbackEntry:
    """One item of the flat, chronologically ordered feedback list."""

    id: EntryId
    kind: EntryKind
    author: str | None
    body: str
    location: str
    created_at: str | None
    html_url: str | None
    is_on_current_commit: bool
    reply_api: str
    review_id: int | None = None
    author_association: str | None = None
    path: str | None = None
    line: int | None = None
    diff_hunk: str | None = None
    is_reply: bool = False
    parent_id: int | None = None
    parent_unresolved: bool = False
    reply_method: str = "thread-reply"
    reply_count: int | None = None
    review_state: str | None = None

    def to_dict(self) -> dict:
        data = {
            "id": str(self.id) if isinstance(self.id, ReviewBodyId) else self.id,
            "type": self.kind.value,
            "reviewId": self.review_id,
            "author": self.author,
            "authorAssociation": self.author_association,
            "body": self.body,
            "location": self.location,
            "path": self.path,
            "line": self.line,
            "createdAt": self.created_at,
            "htmlUrl": self.html_url,
            "isReply": self.is_reply,
            "parentId": self.parent_id,
            "isOnCurrentCommit": self.is_on_current_commit,
            "replyMethod": self.reply_method,
            "replyApi": self.reply_api,
        }
        if self.kind is EntryKind.INLINE:
            data["diffHunk"] = self.diff_hunk
            data["replyCount"] = self.reply_count
        if self.kind is EntryKind.REVIEW_BODY:
            data["reviewState"] = self.review_state
        if self.parent_unresolved:
            data["parentUnresolved"] = True
        return data


@dataclass(frozen=True)
class FeedbackStats:
    total_reviews: int = 0
    total_review_bodies: int = 0
    total_review_comments: int = 0
    total_replies: int = 0
    total_issue_comments: int = 0
    total_orphaned_comments: int = 0
    total_unresolved_parents: int = 0
    total_all_comments: int = 0

    @property
    def expected_total(self) -> int:
        return self.total_review_bodies + self.total_review_comments + self.total_replies + self.total_issue_comments

    def to_dict(self) -> dict:
        return {
            "totalReviews": self.total_reviews,
            "totalReviewBodies": self.total_review_bodies,
            "totalReviewComments": self.total_review_comments,
            "totalReplies": self.total_replies,
            "totalIssueComments": self.total_issue_comments,
            "totalOrphanedComments": self.total_orphaned_comments,
            "totalUnresolvedParents": self.total_unresolved_parents,
            "totalAllComments": self.total_all_comments,
        }


@dataclass(frozen=True)
class PullRequestSummary:
    number: int
    title: str | None
    body: str
    url: str | None
    state: str | None
    author: str | None
    head_sha: str | None
    base_branch: str | None
    head_branch: str | None
    created_at: str | None
    updated_at: str | None
    changed_files: int | None
    additions: int | None
    deletions: int | None

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "title": self.title,
            "body": self.body,
            "url": self.url,
            "state": self.state,
            "author": self.author,
            "headSha": self.head_sha,
            "baseBranch": self.base_branch,
            "headBranch": self.head_branch,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "changedFiles": self.changed_files,
            "additions": self.additions,
            "deletions": self.deletions,
        }


@dataclass(frozen=True)
class FeedbackReport:
    """Everything fetched for one pull request, merged and threaded.

    Built once by the Aggregator and read-only afterwards: the mappings are
    exposed as read-only proxies and the flat list as a tuple.
    """

    repo: str
    pr_number: int
    fetched_at: str
    reply_endpoints: Mapping[str, str]
    pr: PullRequestSummary
    reviews: Mapping[int, Review]
    issue_comments: Mapping[int, IssueComment]
    orphaned_comments: Mapping[int, InlineComment]
    all_comments: tuple[FeedbackEntry, ...]
    stats: FeedbackStats

    def __post_init__(self):
        for name in ("reply_endpoints", "reviews", "issue_comments", "orphaned_comments"):
            value = getattr(self, name)
            if not isinstance(value, MappingProxyType):
                object.__setattr__(self, name, MappingProxyType(dict(value)))
        object.__setattr__(self, "all_comments", tuple(self.all_comments))

    def to_dict(self) -> dict:
        return {
            "meta": {
                "repo": self.repo,
                "prNumber": self.pr_number,
                "fetchedAt": self.fetched_at,
                "replyEndpoints": dict(self.reply_endpoints),
            },
            "pr": self.pr.to_dict(),
            "reviews": {str(rid): r.to_dict() for rid, r in self.reviews.items()},
            "issueComments": {str(cid): c.to_dict() for cid, c in self.issue_comments.items()},
            "orphanedComments": {str(cid): c.to_dict() for cid, c in self.orphaned_comments.items()},
            "allComments": [entry.to_dict() for entry in self.all_comments],
            "stats": self.stats.to_dict(),
        }
