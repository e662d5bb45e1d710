"""Tests for the command-line interface."""

import json
from collections.abc import Iterator
from typing import Any
from unittest import mock

import httpx
import pytest

from basecamp_cli.__main__ import build_parser, main
from basecamp_cli.client import BasecampClient
from basecamp_cli.integration import IntegrationStore, SessionContext, SessionData

REDIRECT_URI = "http://127.0.0.1:45455/callback"


@pytest.fixture(autouse=True)
def cli_store(store: IntegrationStore) -> Iterator[IntegrationStore]:
    with (
        mock.patch("basecamp_cli.__main__._open_store", return_value=store),
        mock.patch("basecamp_cli.__main__.configure_logging"),
    ):
        yield store


@pytest.fixture
def api_requests() -> Iterator[list[httpx.Request]]:
    """Route API calls to an in-memory Basecamp."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path
        if path == "/999/my/profile.json":
            return httpx.Response(
                200, json={"id": 5, "name": "Ada", "email_address": "ada@example.com"}
            )
        if path == "/999/search.json":
            return httpx.Response(
                200,
                json=[
                    {
                        "id": 11,
                        "type": "Todo",
                        "content": "Write docs",
                        "completed": False,
                        "bucket": {"id": 7, "name": "HQ"},
                    }
                ],
            )
        if path.endswith("/completion.json"):
            return httpx.Response(204)
        if path == "/999/projects.json":
            return httpx.Response(
                200,
                json=[{"id": 7, "name": "HQ", "dock": [{"id": 3, "name": "todoset"}]}],
            )
        if path == "/999/buckets/7/todosets/3/todolists.json":
            return httpx.Response(200, json=[{"id": 21, "title": "Launch"}])
        if request.method == "POST" and path == "/999/buckets/7/todolists/21/todos.json":
            body = json.loads(request.content)
            return httpx.Response(201, json={"id": 31, "content": body["content"]})
        if path == "/999/buckets/7/todos/11.json":
            if request.method == "PUT":
                body = json.loads(request.content)
                return httpx.Response(200, json={"id": 11, **body})
            return httpx.Response(
                200,
                json={"id": 11, "content": "Write docs", "description": "Old notes"},
            )
        return httpx.Response(404)

    def api_client(session: SessionContext) -> BasecampClient:
        return BasecampClient(
            session.account_id,
            session.access_token,
            transport=httpx.MockTransport(handler),
        )

    with mock.patch("basecamp_cli.__main__._api_client", side_effect=api_client):
        yield requests


def _logged_in(store: IntegrationStore) -> None:
    store.save_session(
        SessionData(
            access_token="access-1",
            refresh_token="refresh-1",
            account_id=999,
            account_name="Acme",
            account_href="https://3.basecampapi.com/999",
        )
    )


def _json_output(capsys: pytest.CaptureFixture[str]) -> Any:
    return json.loads(capsys.readouterr().out)


class TestIntegrationCommands:
    """Tests for integration set/show/clear."""

    def test_set_with_flags(
        self, cli_store: IntegrationStore, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """All flags given saves without prompting."""
        code = main(
            [
                "integration",
                "set",
                "--client-id",
                "client-abcdef",
                "--client-secret",
                "shh",
                "--redirect-uri",
                REDIRECT_URI,
            ]
        )

        assert code == 0
        captured = capsys.readouterr()
        assert "Integration credentials saved." in captured.out
        assert "using secret store: keyring service=basecamp-cli" in captured.err
        assert "shh" not in captured.out + captured.err
        assert cli_store.show_integration().has_client_secret

    def test_set_missing_flags_non_interactive(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Missing flags without a terminal is invalid input."""
        with mock.patch("basecamp_cli.__main__._is_interactive", return_value=False):
            code = main(["integration", "set", "--client-id", "cid"])

        assert code == 2
        assert (
            "Missing required arguments: --client-secret, --redirect-uri."
            in capsys.readouterr().err
        )

    def test_set_prompts(self, cli_store: IntegrationStore) -> None:
        """Interactive set prompts for missing values with defaults."""
        with (
            mock.patch("basecamp_cli.__main__._is_interactive", return_value=True),
            mock.patch("builtins.input", side_effect=["client-abcdef", ""]),
            mock.patch("getpass.getpass", return_value="shh"),
        ):
            code = main(["integration", "set"])

        assert code == 0
        defaults = cli_store.integration_defaults()
        assert defaults.client_id == "client-abcdef"
        assert defaults.redirect_uri == REDIRECT_URI

    def test_show(self, cli_store: IntegrationStore, capsys: pytest.CaptureFixture[str]) -> None:
        """show prints presence and the redacted client id."""
        cli_store.set_integration("client-abcdef", "shh", REDIRECT_URI)

        assert main(["integration", "show"]) == 0

        out = capsys.readouterr().out
        assert "client_id: configured" in out
        assert "client_secret: configured" in out
        assert "client_id (redacted): cl***ef" in out
        assert "shh" not in out

    def test_show_json(
        self, cli_store: IntegrationStore, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """show --json emits the status object."""
        assert main(["integration", "show", "--json"]) == 0
        assert _json_output(capsys) == {
            "has_client_id": False,
            "has_client_secret": False,
            "has_redirect_uri": False,
            "client_id": None,
            "redirect_uri": None,
        }

    def test_clear_cancelled(
        self, cli_store: IntegrationStore, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Declining the confirmation keeps everything."""
        cli_store.set_integration("client-abcdef", "shh", REDIRECT_URI)
        with mock.patch("builtins.input", return_value="n"):
            assert main(["integration", "clear"]) == 0

        assert "Cancelled." in capsys.readouterr().out
        assert cli_store.show_integration().has_client_id

    def test_clear_force(self, cli_store: IntegrationStore) -> None:
        """--force clears integration and session without asking."""
        cli_store.set_integration("client-abcdef", "shh", REDIRECT_URI)
        _logged_in(cli_store)

        assert main(["integration", "clear", "--force"]) == 0

        assert not cli_store.show_integration().has_client_id


class TestSessionCommands:
    """Tests for login, logout and whoami."""

    def test_login_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        """login --json prints the selected account."""
        result = mock.Mock(ok=True, account_id=999, account_name="Acme")
        with mock.patch("basecamp_cli.__main__.run_login", return_value=result) as run:
            assert main(["login", "--json", "--account-id", "999", "--no-browser"]) == 0

        options = run.call_args.args[0]
        assert options.account_id == 999
        assert options.no_browser is True
        assert _json_output(capsys) == {"ok": True, "account_id": 999, "account_name": "Acme"}

    def test_login_missing_credentials(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Missing credentials exit with status 2."""
        assert main(["login"]) == 2
        assert "Missing client_id" in capsys.readouterr().err

    def test_logout(self, cli_store: IntegrationStore, capsys: pytest.CaptureFixture[str]) -> None:
        """logout clears the session but keeps the integration."""
        cli_store.set_integration("client-abcdef", "shh", REDIRECT_URI)
        _logged_in(cli_store)

        assert main(["logout", "--json"]) == 0

        assert _json_output(capsys) == {"ok": True}
        assert cli_store.show_integration().has_client_id
        assert main(["whoami"]) == 3

    def test_logout_forget_client(self, cli_store: IntegrationStore) -> None:
        """--forget-client also clears the integration."""
        cli_store.set_integration("client-abcdef", "shh", REDIRECT_URI)

        assert main(["logout", "--forget-client"]) == 0

        assert not cli_store.show_integration().has_client_id

    def test_whoami_not_logged_in(self, capsys: pytest.CaptureFixture[str]) -> None:
        """whoami without a session exits with the OAuth status."""
        assert main(["whoami"]) == 3
        assert "Not logged in" in capsys.readouterr().err

    def test_whoami(
        self,
        cli_store: IntegrationStore,
        api_requests: list[httpx.Request],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """whoami prints the profile and account."""
        _logged_in(cli_store)

        assert main(["whoami"]) == 0

        assert (
            'Current user: Ada <ada@example.com> (person 5) on account "Acme" (999).'
            in capsys.readouterr().out
        )

    def test_whoami_json(
        self,
        cli_store: IntegrationStore,
        api_requests: list[httpx.Request],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """whoami --json merges session and profile."""
        _logged_in(cli_store)

        assert main(["whoami", "--json"]) == 0

        output = _json_output(capsys)
        assert output["account_id"] == 999
        assert output["id"] == 5
        assert output["name"] == "Ada"


class TestTodoCommands:
    """Tests for todo search/complete/reopen."""

    def test_search_json(
        self,
        cli_store: IntegrationStore,
        api_requests: list[httpx.Request],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """search --json lists matches."""
        _logged_in(cli_store)

        assert main(["todo", "search", "docs", "--project-id", "7", "--json"]) == 0

        output = _json_output(capsys)
        assert output["count"] == 1
        assert output["todos"][0] == {
            "todo_id": 11,
            "project_id": 7,
            "project_name": "HQ",
            "content": "Write docs",
        }
        assert api_requests[0].url.params["bucket_id"] == "7"

    def test_search_completed_filter(
        self,
        cli_store: IntegrationStore,
        api_requests: list[httpx.Request],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """--completed hides open to-dos."""
        _logged_in(cli_store)

        assert main(["todo", "search", "docs", "--completed"]) == 0

        assert 'No to-dos matched "docs".' in capsys.readouterr().out

    def test_complete(
        self,
        cli_store: IntegrationStore,
        api_requests: list[httpx.Request],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """complete posts the completion."""
        _logged_in(cli_store)

        assert main(["todo", "complete", "--id", "11", "--project-id", "7"]) == 0

        assert api_requests[0].method == "POST"
        assert api_requests[0].url.path == "/999/buckets/7/todos/11/completion.json"
        assert "Completed todo (id: 11, project: 7)." in capsys.readouterr().out

    def test_reopen_json(
        self,
        cli_store: IntegrationStore,
        api_requests: list[httpx.Request],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """reopen deletes the completion."""
        _logged_in(cli_store)

        assert main(["todo", "reopen", "--id", "11", "--project-id", "7", "--json"]) == 0

        assert api_requests[0].method == "DELETE"
        assert _json_output(capsys)["action"] == "reopen"

    def test_complete_requires_ids(self) -> None:
        """--id and --project-id are required."""
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["todo", "complete", "--id", "11"])
        assert exc_info.value.code == 2

    def test_add(
        self,
        cli_store: IntegrationStore,
        api_requests: list[httpx.Request],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """add creates the to-do in the project's only list."""
        _logged_in(cli_store)

        assert (
            main(
                [
                    "todo",
                    "add",
                    "Write release notes",
                    "--project-id",
                    "7",
                    "--due-on",
                    "2024-02-29",
                    "--notify-id",
                    "5",
                    "--notify-id",
                    "6",
                ]
            )
            == 0
        )

        create = api_requests[-1]
        assert json.loads(create.content) == {
            "content": "Write release notes",
            "completion_subscriber_ids": [5, 6],
            "due_on": "2024-02-29",
        }
        assert (
            'Created todo "Write release notes" in project "HQ" / list "Launch" (id: 31).'
            in capsys.readouterr().out
        )

    def test_add_invalid_due_date(
        self,
        cli_store: IntegrationStore,
        api_requests: list[httpx.Request],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """A malformed due date exits 2 before any API call."""
        _logged_in(cli_store)

        assert (
            main(["todo", "add", "Task", "--project-id", "7", "--due-on", "2023-02-29"])
            == 2
        )

        assert "Invalid day in due date." in capsys.readouterr().err
        assert api_requests == []

    def test_edit_json(
        self,
        cli_store: IntegrationStore,
        api_requests: list[httpx.Request],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """edit keeps unchanged fields and prints the result."""
        _logged_in(cli_store)

        assert (
            main(
                [
                    "todo",
                    "edit",
                    "--id",
                    "11",
                    "--project-id",
                    "7",
                    "--due-on",
                    "2025-01-31",
                    "--json",
                ]
            )
            == 0
        )

        update = api_requests[-1]
        assert update.method == "PUT"
        assert json.loads(update.content) == {
            "content": "Write docs",
            "description": "Old notes",
            "due_on": "2025-01-31",
        }
        assert _json_output(capsys) == {
            "ok": True,
            "project_id": 7,
            "todo_id": 11,
            "content": "Write docs",
            "description": "Old notes",
            "due_on": "2025-01-31",
        }

    def test_edit_without_changes(
        self,
        cli_store: IntegrationStore,
        api_requests: list[httpx.Request],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """edit with nothing to change is invalid input."""
        _logged_in(cli_store)

        assert main(["todo", "edit", "--id", "11", "--project-id", "7"]) == 2

        assert "Nothing to change" in capsys.readouterr().err
        assert api_requests == []
