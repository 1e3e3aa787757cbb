"""Tests for the PyGithub and gh CLI clients."""

import json
import subprocess

import pytest
import requests
from github import GithubException

from prfeedback_core.errors import DecodeError, RemoteFetchError, RemoteWriteError
from prfeedback_core.gh.api import GitHubApiClient
from prfeedback_core.gh.base import reply_endpoints
from prfeedback_core.gh.cli import GhCliClient, decode_pages


def _completed(stdout):
    return subprocess.CompletedProcess(args=[], returncode=0, stdout=stdout, stderr="")


def test_reply_endpoints():
    assert reply_endpoints("o/r", 7) == {
        "reviewComment": "repos/o/r/pulls/7/comments/{comment_id}/replies",
        "issueComment": "repos/o/r/issues/7/comments",
    }


class TestDecodePages:
    def test_single_page(self):
        assert decode_pages('[{"id": 1}]') == [{"id": 1}]

    def test_concatenated_pages(self):
        assert decode_pages('[{"id": 1}, {"id": 2}]\n[{"id": 3}]\n') == [{"id": 1}, {"id": 2}, {"id": 3}]

    def test_empty_output(self):
        assert decode_pages("  \n") == []

    def test_non_array_page(self):
        with pytest.raises(ValueError):
            decode_pages('{"message": "Not Found"}')

    def test_garbage(self):
        with pytest.raises(ValueError):
            decode_pages("[1][")


class TestGhCliClient:
    def test_list_paginates(self, mocker):
        run = mocker.patch("prfeedback_core.gh.cli.subprocess.run", return_value=_completed('[{"id": 1}][{"id": 2}]'))

        items = GhCliClient(per_page=50).list_review_comments("o/r", 7)

        assert [i["id"] for i in items] == [1, 2]
        cmd = run.call_args.args[0]
        assert cmd == ["gh", "api", "repos/o/r/pulls/7/comments?per_page=50", "--paginate"]

    def test_get_pull_request(self, mocker):
        mocker.patch(
            "prfeedback_core.gh.cli.subprocess.run",
            return_value=_completed(json.dumps({"number": 7, "head": {"sha": "abc"}})),
        )
        assert GhCliClient().get_pull_request("o/r", 7)["head"]["sha"] == "abc"

    def test_command_failure(self, mocker):
        mocker.patch(
            "prfeedback_core.gh.cli.subprocess.run",
            side_effect=subprocess.CalledProcessError(1, ["gh"], stderr="HTTP 404: Not Found\n"),
        )
        with pytest.raises(RemoteFetchError) as exc:
            GhCliClient().list_reviews("o/r", 7)
        assert exc.value.source == "reviews"
        assert str(exc.value) == "Failed to fetch reviews: HTTP 404: Not Found"

    def test_gh_missing(self, mocker):
        mocker.patch("prfeedback_core.gh.cli.subprocess.run", side_effect=FileNotFoundError())
        with pytest.raises(RemoteFetchError, match="not installed"):
            GhCliClient().list_issue_comments("o/r", 7)

    def test_undecodable_output(self, mocker):
        mocker.patch("prfeedback_core.gh.cli.subprocess.run", return_value=_completed("x" * 2000))
        with pytest.raises(DecodeError) as exc:
            GhCliClient(payload_chars=100).list_issue_comments("o/r", 7)
        assert exc.value.source == "issue comments"
        assert exc.value.payload == "x" * 100 + "... [truncated]"

    def test_pull_request_not_an_object(self, mocker):
        mocker.patch("prfeedback_core.gh.cli.subprocess.run", return_value=_completed("[]"))
        with pytest.raises(DecodeError):
            GhCliClient().get_pull_request("o/r", 7)

    def test_reply_body_passed_as_argument(self, mocker):
        run = mocker.patch(
            "prfeedback_core.gh.cli.subprocess.run",
            return_value=_completed('{"id": 5, "html_url": "https://x"}'),
        )

        data = GhCliClient().create_review_comment_reply("o/r", 7, 111, "It's $done")

        assert data["html_url"] == "https://x"
        assert run.call_args.args[0] == [
            "gh",
            "api",
            "repos/o/r/pulls/7/comments/111/replies",
            "--method",
            "POST",
            "-f",
            "body=It's $done",
        ]

    def test_write_failure(self, mocker):
        mocker.patch(
            "prfeedback_core.gh.cli.subprocess.run",
            side_effect=subprocess.CalledProcessError(1, ["gh"], stderr="HTTP 422: Validation Failed"),
        )
        with pytest.raises(RemoteWriteError, match="422"):
            GhCliClient().create_issue_comment("o/r", 7, "hi")

    def test_non_json_write_response(self, mocker):
        mocker.patch("prfeedback_core.gh.cli.subprocess.run", return_value=_completed("created"))
        assert GhCliClient().create_issue_comment("o/r", 7, "hi") == {"raw": "created"}


class TestGitHubApiClient:
    def _client(self, mocker, per_page=2):
        gh_cls = mocker.patch("prfeedback_core.gh.api.Github")
        requester = gh_cls.return_value.requester
        return GitHubApiClient("tok", per_page=per_page), requester

    def test_walks_pages_until_short_page(self, mocker):
        client, requester = self._client(mocker)
        requester.requestJsonAndCheck.side_effect = [
            ({}, [{"id": 1}, {"id": 2}]),
            ({}, [{"id": 3}]),
        ]

        items = client.list_reviews("o/r", 7)

        assert [i["id"] for i in items] == [1, 2, 3]
        calls = requester.requestJsonAndCheck.call_args_list
        assert calls[0].args == ("GET", "/repos/o/r/pulls/7/reviews")
        assert calls[0].kwargs["parameters"] == {"per_page": 2, "page": 1}
        assert calls[1].kwargs["parameters"] == {"per_page": 2, "page": 2}

    def test_exact_multiple_ends_on_empty_page(self, mocker):
        client, requester = self._client(mocker)
        requester.requestJsonAndCheck.side_effect = [({}, [{"id": 1}, {"id": 2}]), ({}, [])]
        assert len(client.list_issue_comments("o/r", 7)) == 2
        assert requester.requestJsonAndCheck.call_count == 2

    def test_http_error(self, mocker):
        client, requester = self._client(mocker)
        requester.requestJsonAndCheck.side_effect = GithubException(404, {"message": "Not Found"}, None)

        with pytest.raises(RemoteFetchError) as exc:
            client.list_review_comments("o/r", 7)
        assert exc.value.source == "review comments"
        assert "404 Not Found" in str(exc.value)

    def test_non_list_page(self, mocker):
        client, requester = self._client(mocker)
        requester.requestJsonAndCheck.return_value = ({}, {"unexpected": True})
        with pytest.raises(DecodeError):
            client.list_reviews("o/r", 7)

    def test_pull_request_without_number(self, mocker):
        client, requester = self._client(mocker)
        requester.requestJsonAndCheck.return_value = ({}, {"title": "x"})
        with pytest.raises(DecodeError):
            client.get_pull_request("o/r", 7)

    def test_post_reply(self, mocker):
        client, requester = self._client(mocker)
        requester.requestJsonAndCheck.return_value = ({}, {"id": 9, "html_url": "https://x"})

        data = client.create_review_comment_reply("o/r", 7, 111, "Fixed")

        assert data["html_url"] == "https://x"
        requester.requestJsonAndCheck.assert_called_once_with(
            "POST", "/repos/o/r/pulls/7/comments/111/replies", input={"body": "Fixed"}
        )

    def test_post_failure(self, mocker):
        client, requester = self._client(mocker)
        requester.requestJsonAndCheck.side_effect = GithubException(403, {"message": "Forbidden"}, None)
        with pytest.raises(RemoteWriteError, match="403 Forbidden"):
            client.create_issue_comment("o/r", 7, "hi")

    def test_connection_error_on_read(self, mocker):
        client, requester = self._client(mocker)
        requester.requestJsonAndCheck.side_effect = requests.exceptions.ConnectionError("connection reset")

        with pytest.raises(RemoteFetchError) as exc:
            client.list_reviews("o/r", 7)
        assert exc.value.source == "reviews"
        assert "connection reset" in str(exc.value)

    def test_timeout_on_write(self, mocker):
        client, requester = self._client(mocker)
        requester.requestJsonAndCheck.side_effect = requests.exceptions.Timeout("read timed out")
        with pytest.raises(RemoteWriteError, match="read timed out"):
            client.create_review_comment_reply("o/r", 7, 111, "Fixed")

    def test_close(self, mocker):
        client, _ = self._client(mocker)
        client.close()
        client._gh.close.assert_called_once()
