"""GhCliClient: GitHub access through the ``gh api`` command.

Used when no token is available to PyGithub but the developer is logged in
with the GitHub CLI. Arguments are passed as a list, never through a shell,
so reply bodies reach ``gh`` byte for byte.
"""

from __future__ import annotations

import json
import logging
import subprocess

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


def decode_pages(output: str) -> list:
    """Decode ``gh api --paginate`` output into one flat list.

    With more than one page ``gh`` prints the JSON arrays back to back
    (``[...][...]``), which ``json.loads`` rejects.
    """
    decoder = json.JSONDecoder()
    items: list = []
    pos = 0
    end = len(output)
    while True:
        while pos < end and output[pos].isspace():
            pos += 1
        if pos >= end:
            return items
        page, pos = decoder.raw_decode(output, pos)
        if not isinstance(page, list):
            raise ValueError(f"expected a JSON array page, got {type(page).__name__}")
        items.extend(page)


class GhCliClient(BaseClient):
    def __init__(self, gh_path: str = "gh", per_page: int = 100, payload_chars: int = 500):
        self._gh_path = gh_path
        self._per_page = per_page
        self._payload_chars = payload_chars

    def _run(self, args: list[str]) -> subprocess.CompletedProcess:
        return subprocess.run(
            [self._gh_path, "api", *args],
            capture_output=True,
            text=True,
            check=True,
        )

    def _read(self, source: str, args: list[str]) -> str:
        try:
            return self._run(args).stdout
        except subprocess.CalledProcessError as e:
            raise RemoteFetchError(source, (e.stderr or str(e)).strip()) from e
        except FileNotFoundError as e:
            raise RemoteFetchError(source, f"{self._gh_path} is not installed") from e

    def _get_all(self, source: str, path: str) -> list[dict]:
        output = self._read(source, [f"{path}?per_page={self._per_page}", "--paginate"])
        try:
            items = decode_pages(output)
        except ValueError as e:
            logger.debug("Undecodable %s output: %s", source, e)
            raise DecodeError(source, output, self._payload_chars) from e
        logger.debug("Fetched %d %s", len(items), source)
        return items

    def _post(self, path: str, body: str) -> dict:
        try:
            output = self._run([path, "--method", "POST", "-f", f"body={body}"]).stdout
        except subprocess.CalledProcessError as e:
            raise RemoteWriteError((e.stderr or str(e)).strip()) from e
        except FileNotFoundError as e:
            raise RemoteWriteError(f"{self._gh_path} is not installed") from e
        try:
            data = json.loads(output)
        except json.JSONDecodeError:
            return {"raw": output}
        return data if isinstance(data, dict) else {"raw": output}

    def get_pull_request(self, repo: str, pr_number: int) -> dict:
        output = self._read(SOURCE_PULL, [PULL_PATH.format(repo=repo, pr_number=pr_number)])
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise DecodeError(SOURCE_PULL, output, self._payload_chars) from e
        if not isinstance(data, dict):
            raise DecodeError(SOURCE_PULL, output, self._payload_chars)
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
