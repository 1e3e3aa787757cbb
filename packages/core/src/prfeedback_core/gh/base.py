"""Abstract GitHub client interface.

The Aggregator and the Reply Dispatcher only talk to ``BaseClient``: four
reads that return decoded JSON and two writes that return the created
resource. Authentication, transport and retries belong to the concrete
client. Both implementations hit the same REST paths defined here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

PULL_PATH = "repos/{repo}/pulls/{pr_number}"
REVIEWS_PATH = "repos/{repo}/pulls/{pr_number}/reviews"
REVIEW_COMMENTS_PATH = "repos/{repo}/pulls/{pr_number}/comments"
ISSUE_COMMENTS_PATH = "repos/{repo}/issues/{pr_number}/comments"
REVIEW_COMMENT_REPLY_PATH = "repos/{repo}/pulls/{pr_number}/comments/{comment_id}/replies"

# Source names carried by RemoteFetchError / DecodeError.
SOURCE_PULL = "pull request"
SOURCE_REVIEWS = "reviews"
SOURCE_REVIEW_COMMENTS = "review comments"
SOURCE_ISSUE_COMMENTS = "issue comments"


def reply_endpoints(repo: str, pr_number: int) -> dict[str, str]:
    """Write-endpoint templates published in the report ``meta`` block."""
    return {
        "reviewComment": REVIEW_COMMENT_REPLY_PATH.format(repo=repo, pr_number=pr_number, comment_id="{comment_id}"),
        "issueComment": ISSUE_COMMENTS_PATH.format(repo=repo, pr_number=pr_number),
    }


class BaseClient(ABC):
    """Remote collaborator for one GitHub host.

    List methods must exhaust pagination. Reads raise ``RemoteFetchError`` or
    ``DecodeError``; writes raise ``RemoteWriteError``.
    """

    @abstractmethod
    def get_pull_request(self, repo: str, pr_number: int) -> dict:
        """Return the pull request object (includes ``head.sha``)."""

    @abstractmethod
    def list_reviews(self, repo: str, pr_number: int) -> list[dict]:
        """Return every review submitted on the pull request."""

    @abstractmethod
    def list_review_comments(self, repo: str, pr_number: int) -> list[dict]:
        """Return every inline review comment, replies included."""

    @abstractmethod
    def list_issue_comments(self, repo: str, pr_number: int) -> list[dict]:
        """Return every conversation comment."""

    @abstractmethod
    def create_review_comment_reply(self, repo: str, pr_number: int, comment_id: int, body: str) -> dict:
        """Reply in the thread rooted at ``comment_id``."""

    @abstractmethod
    def create_issue_comment(self, repo: str, pr_number: int, body: str) -> dict:
        """Post a new conversation comment on the pull request."""

    def close(self) -> None:
        """Release any resources held by the client.

        Default is a no-op so callers can always call close() safely.
        """
