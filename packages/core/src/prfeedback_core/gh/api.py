"""GitHubApiClient: REST access through PyGithub's requester.

Responses are kept as the decoded JSON GitHub returns rather than PyGithub
model objects: items of a PaginatedList are lazily completed, so reading an
attribute the list payload omits (``in_reply_to_id`` on a thread root) would
issue one extra request per comment. PyGithub's default retry policy covers
transient transport failures. A connection error that outlasts the retries
is reported the same way as an HTTP error status.
"""

from __future__ import annotations

import logging

import requests
from github import Auth, Github, GithubException

from prfeedback_core.errors import DecodeError, RemoteFetchError, RemoteWriteError
from prfeedback_core.gh.base import (
    ISSUE_COMMENTS_PATH,
    PULL_PATH,
    REVIEW_COMMENT_REPLY_PATH,
    REVIEW_COMMENTS_PATH,
    REVIEWS_PATH,
    SOURCE_ISSUE_COMMENTS,
    SOURCE_PULL,
    SOURCE_REVIEW_COMMENTS,
    SOURCE_REVIEWS,
    BaseClient,
)

logger = logging.getLogger(__name__)


def _describe(e: GithubException) -> str:
    message = e.data.get("message") if isinstance(e.data, dict) else None
    return f"{e.status} {message or e.data}"


class GitHubApiClient(BaseClient):
    def __init__(self, token: str, per_page: int = 100, payload_chars: int = 500, base_url: str | None = None):
        kwargs = {"auth": Auth.Token(token), "per_page": per_page}
        if base_url:
            kwargs["base_url"] = base_url
        self._gh = Github(**kwargs)
        self._per_page = per_page
        self._payload_chars = payload_chars

    def _get(self, source: str, path: str, parameters: dict | None = None):
        try:
            _, data = self._gh.requester.requestJsonAndCheck("GET", "/" + path, parameters=parameters)
        except GithubException as e:
            raise RemoteFetchError(source, _describe(e)) from e
        except requests.RequestException as e:
            raise RemoteFetchError(source, str(e)) from e
        return data

    def _get_all(self, source: str, path: str) -> list[dict]:
        """Walk ``page`` until GitHub returns a short page."""
        items: list[dict] = []
        page = 1
        while True:
            data = self._get(source, path, {"per_page": self._per_page, "page": page})
            if not isinstance(data, list):
                raise DecodeError(source, data, self._payload_chars)
            logger.debug("Fetched %d %s from page %d", len(data), source, page)
            items.extend(data)
            if len(data) < self._per_page:
                return items
            page += 1

    def _post(self, path: str, body: str) -> dict:
        try:
            _, data = self._gh.requester.requestJsonAndCheck("POST", "/" + path, input={"body": body})
        except GithubException as e:
            raise RemoteWriteError(_describe(e)) from e
        except requests.RequestException as e:
            raise RemoteWriteError(str(e)) from e
        return data if isinstance(data, dict) else {"data": data}

    def get_pull_request(self, repo: str, pr_number: int) -> dict:
        data = self._get(SOURCE_PULL, PULL_PATH.format(repo=repo, pr_number=pr_number))
        if not isinstance(data, dict) or "number" not in data:
            raise DecodeError(SOURCE_PULL, data, self._payload_chars)
        return data

    def list_reviews(self, repo: str, pr_number: int) -> list[dict]:
        return self._get_all(SOURCE_REVIEWS, REVIEWS_PATH.format(repo=repo, pr_number=pr_number))

    def list_review_comments(self, repo: str, pr_number: int) -> list[dict]:
        return self._get_all(SOURCE_REVIEW_COMMENTS, REVIEW_COMMENTS_PATH.format(repo=repo, pr_number=pr_number))

    def list_issue_comments(self, repo: str, pr_number: int) -> list[dict]:
        return self._get_all(SOURCE_ISSUE_COMMENTS, ISSUE_COMMENTS_PATH.format(repo=repo, pr_number=pr_number))

    def create_review_comment_reply(self, repo: str, pr_number: int, comment_id: int, body: str) -> dict:
        path = REVIEW_COMMENT_REPLY_PATH.format(repo=repo, pr_number=pr_number, comment_id=comment_id)
        return self._post(path, body)

    def create_issue_comment(self, repo: str, pr_number: int, body: str) -> dict:
        return self._post(ISSUE_COMMENTS_PATH.format(repo=repo, pr_number=pr_number), body)

    def close(self) -> None:
        self._gh.close()
