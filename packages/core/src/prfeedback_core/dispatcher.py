"""Bulk replies to pull request feedback.

Each request names the feedback item it answers (an ``allComments`` id from
the fetch report), the reply body and the item type. Inline comments are
answered in their review thread; review bodies and conversation comments
get a new conversation comment, since GitHub has no thread to reply into.

Requests are sent one at a time in input order with a pause between
network calls. A failed reply never stops the rest of the batch.
"""

from __future__ import annotations

import enum
import json
import logging
import shlex
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from prfeedback_core.errors import InputShapeError, RemoteWriteError
from prfeedback_core.gh.base import ISSUE_COMMENTS_PATH, REVIEW_COMMENT_REPLY_PATH, BaseClient
from prfeedback_core.models import ReviewBodyId

logger = logging.getLogger(__name__)

DEFAULT_DELAY_MS = 100
MISSING_FIELD_ERROR = "Missing id or body"
SKIPPED = "Skipped"


class ReplyKind(str, enum.Enum):
    INLINE = "inline"
    INLINE_REPLY = "inline-reply"
    CONVERSATION = "conversation"
    REVIEW_BODY = "review-body"
    # Unknown ``type`` values: answered like an inline comment, as older
    # reply files without a type column expect.
    LEGACY_DEFAULT = "legacy-default"

    @classmethod
    def parse(cls, value) -> ReplyKind:
        if value is None or value == "":
            return cls.INLINE
        try:
            return cls(value)
        except ValueError:
            return cls.LEGACY_DEFAULT


class ReplyTarget(str, enum.Enum):
    THREAD_REPLY = "thread-reply"
    CONVERSATION = "conversation"


_TARGETS: dict[ReplyKind, ReplyTarget] = {
    ReplyKind.INLINE: ReplyTarget.THREAD_REPLY,
    ReplyKind.INLINE_REPLY: ReplyTarget.THREAD_REPLY,
    ReplyKind.LEGACY_DEFAULT: ReplyTarget.THREAD_REPLY,
    ReplyKind.CONVERSATION: ReplyTarget.CONVERSATION,
    ReplyKind.REVIEW_BODY: ReplyTarget.CONVERSATION,
}


def target_for(kind: ReplyKind) -> ReplyTarget:
    return _TARGETS[kind]


@dataclass(frozen=True)
class ReplyRequest:
    """One reply to post. ``raw`` is the input item, echoed in results."""

    id: Any
    body: Any
    type: Any = None
    raw: Any = None

    @property
    def kind(self) -> ReplyKind:
        return ReplyKind.parse(self.type)

    @property
    def is_complete(self) -> bool:
        return self.id not in (None, "") and isinstance(self.body, str) and self.body != ""


@dataclass(frozen=True)
class ReplyRoute:
    target: ReplyTarget
    path: str
    description: str
    command: str
    comment_id: int | None = None


@dataclass
class ReplyOutcome:
    request: ReplyRequest
    success: bool
    description: str
    error: str | None = None
    url: str | None = None
    raw: Any = None
    command: str | None = None
    dry_run: bool = False

    @property
    def skipped(self) -> bool:
        """Rejected before anything was sent."""
        return not self.success and self.description == SKIPPED

    def to_dict(self) -> dict:
        if not self.success:
            return {"reply": self.request.raw, "success": False, "description": self.description, "error": self.error}
        result: dict = {"success": True, "description": self.description}
        if self.dry_run:
            result["dryRun"] = True
            result["cmd"] = self.command
        elif self.url:
            result["url"] = self.url
        else:
            result["raw"] = self.raw
        return {"reply": self.request.raw, "result": result}


@dataclass
class DispatchResult:
    """Per-request outcomes, in input order."""

    outcomes: list[ReplyOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> list[ReplyOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> list[ReplyOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "succeeded": [o.to_dict() for o in self.succeeded],
            "failed": [o.to_dict() for o in self.failed],
        }


# ---------------------------------------------------------------------- #
# Input                                                                    #
# ---------------------------------------------------------------------- #


def parse_reply_requests(data) -> list[ReplyRequest]:
    """Turn a decoded JSON array into requests.

    Non-object items are kept as empty requests so they fail validation and
    still get an outcome.
    """
    if not isinstance(data, list):
        raise InputShapeError("Input must be a JSON array of replies")
    requests = []
    for item in data:
        if isinstance(item, dict):
            requests.append(ReplyRequest(id=item.get("id"), body=item.get("body"), type=item.get("type"), raw=item))
        else:
            requests.append(ReplyRequest(id=None, body=None, raw=item))
    return requests


def load_reply_requests(text: str) -> list[ReplyRequest]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InputShapeError(f"Failed to parse JSON input: {e}") from e
    return parse_reply_requests(data)


# ---------------------------------------------------------------------- #
# Routing                                                                  #
# ---------------------------------------------------------------------- #


def thread_comment_id(identifier) -> int | None:
    """Return the numeric thread id, dropping a ``review-body-`` prefix."""
    if isinstance(identifier, bool):
        return None
    if isinstance(identifier, int):
        return identifier if identifier > 0 else None
    if not isinstance(identifier, str):
        return None
    text = identifier.strip()
    body_id = ReviewBodyId.parse(text)
    if body_id is not None:
        return body_id.review_id or None
    if not text.isdigit():
        return None
    return int(text) or None


def gh_command(path: str, body: str) -> str:
    """The ``gh api`` call equivalent to a write, safe to paste in a shell."""
    return f"gh api {path} -f body={shlex.quote(body)}"


def route_reply(repo: str, pr_number: int, request: ReplyRequest) -> ReplyRoute:
    """Resolve where a reply goes. Raises ValueError for an unusable thread id."""
    kind = request.kind
    target = target_for(kind)

    if target is ReplyTarget.THREAD_REPLY:
        comment_id = thread_comment_id(request.id)
        if comment_id is None:
            raise ValueError(f"Invalid comment id: {request.id!r}")
        path = REVIEW_COMMENT_REPLY_PATH.format(repo=repo, pr_number=pr_number, comment_id=comment_id)
        if kind is ReplyKind.LEGACY_DEFAULT:
            description = f"Reply to comment #{comment_id}"
        else:
            description = f"Reply to inline comment #{comment_id}"
        return ReplyRoute(target, path, description, gh_command(path, request.body), comment_id)

    if target is ReplyTarget.CONVERSATION:
        path = ISSUE_COMMENTS_PATH.format(repo=repo, pr_number=pr_number)
        description = f"New conversation comment (re: {kind.value} #{request.id})"
        return ReplyRoute(target, path, description, gh_command(path, request.body))

    raise AssertionError(f"Unhandled reply target: {target!r}")


# ---------------------------------------------------------------------- #
# Dispatch                                                                 #
# ---------------------------------------------------------------------- #


def _post(client: BaseClient, repo: str, pr_number: int, request: ReplyRequest, route: ReplyRoute) -> dict:
    if route.target is ReplyTarget.THREAD_REPLY:
        return client.create_review_comment_reply(repo, pr_number, route.comment_id, request.body)
    return client.create_issue_comment(repo, pr_number, request.body)


def dispatch_replies(
    client: BaseClient | None,
    repo: str,
    pr_number: int,
    requests: list[ReplyRequest],
    delay_ms: int = DEFAULT_DELAY_MS,
    dry_run: bool = False,
    sleep: Callable[[float], None] = time.sleep,
    on_outcome: Callable[[int, int, ReplyOutcome], None] | None = None,
) -> DispatchResult:
    """Post every reply in order and account for each one.

    ``client`` may be None in dry-run mode. ``on_outcome(index, total,
    outcome)`` is called after each request, 1-based, for progress output.
    """
    result = DispatchResult()
    total = len(requests)
    sent_any = False

    for index, request in enumerate(requests, 1):
        if not request.is_complete:
            outcome = ReplyOutcome(request, success=False, description=SKIPPED, error=MISSING_FIELD_ERROR)
        else:
            try:
                route = route_reply(repo, pr_number, request)
            except ValueError as e:
                outcome = ReplyOutcome(request, success=False, description=SKIPPED, error=str(e))
            else:
                if dry_run:
                    outcome = ReplyOutcome(
                        request, success=True, description=route.description, command=route.command, dry_run=True
                    )
                else:
                    if sent_any and delay_ms > 0:
                        sleep(delay_ms / 1000)
                    sent_any = True
                    outcome = _send(client, repo, pr_number, request, route)

        result.outcomes.append(outcome)
        if on_outcome is not None:
            on_outcome(index, total, outcome)

    return result


def _send(client: BaseClient, repo: str, pr_number: int, request: ReplyRequest, route: ReplyRoute) -> ReplyOutcome:
    try:
        response = _post(client, repo, pr_number, request, route)
    except RemoteWriteError as e:
        logger.debug("%s failed: %s", route.description, e)
        return ReplyOutcome(request, success=False, description=route.description, error=str(e), command=route.command)
    url = response.get("html_url") if isinstance(response, dict) else None
    if url:
        return ReplyOutcome(request, success=True, description=route.description, url=url)
    return ReplyOutcome(request, success=True, description=route.description, raw=response)
