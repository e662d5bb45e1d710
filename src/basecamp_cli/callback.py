"""One-shot loopback HTTP listener for the OAuth redirect.

``CallbackServer.bind`` opens the listener, ``wait_for_code`` accepts exactly
one request and closes it. The server cannot be reused; log in again to get a
new one.
"""

from __future__ import annotations

import socket
import sys
import time
import urllib.parse
from dataclasses import dataclass
from types import TracebackType

from loguru import logger

from basecamp_cli.errors import CallbackTimeoutError, InvalidInputError, OAuthError

DEFAULT_CALLBACK_TIMEOUT = 180.0
POLL_INTERVAL = 0.05
READ_BUFFER_SIZE = 8192
LOOPBACK_HOSTS = ("localhost", "127.0.0.1")

SUCCESS_BODY = (
    "<html><body><h1>Basecamp login complete</h1>"
    "<p>You can close this window.</p></body></html>"
)
FAILURE_BODY = (
    "<html><body><h1>Basecamp login failed</h1>"
    "<p>You can return to the terminal and retry.</p></body></html>"
)


@dataclass(frozen=True)
class CallbackPayload:
    """The ``code`` and ``state`` query parameters from the redirect."""

    code: str
    state: str


class CallbackServer:
    """Loopback listener that serves a single OAuth redirect."""

    def __init__(
        self, listener: socket.socket, callback_path: str, timeout: float
    ) -> None:
        self._listener: socket.socket | None = listener
        self._callback_path = callback_path
        self._timeout = timeout

    @classmethod
    def bind(
        cls, redirect_uri: str, timeout: float = DEFAULT_CALLBACK_TIMEOUT
    ) -> CallbackServer:
        """Validate ``redirect_uri`` and start listening on its port.

        Raises:
            InvalidInputError: If the URI is not ``http://localhost:<port>`` or
                ``http://127.0.0.1:<port>``. No socket is opened in that case.
            OAuthError: If the port cannot be bound.
        """
        callback_path, port = parse_loopback_redirect_uri(redirect_uri)

        bind_addr = ("127.0.0.1", port)
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            if sys.platform != "win32":
                # The served connection lingers in TIME_WAIT on this port
                listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.bind(bind_addr)
            listener.listen(1)
            listener.setblocking(False)
        except OSError as e:
            listener.close()
            raise OAuthError(
                f"Failed to bind callback server on 127.0.0.1:{port}: {e}"
            ) from e

        logger.debug("Callback server listening on 127.0.0.1:{}{}", port, callback_path)
        return cls(listener, callback_path, timeout)

    @property
    def callback_path(self) -> str:
        return self._callback_path

    @property
    def port(self) -> int:
        if self._listener is None:
            raise OAuthError("Callback server is closed.")
        port: int = self._listener.getsockname()[1]
        return port

    def wait_for_code(self) -> CallbackPayload:
        """Block until one request arrives or the timeout passes.

        The listener is closed before this returns, whatever the outcome.

        Raises:
            CallbackTimeoutError: If no connection arrives in time.
            OAuthError: If the request is malformed or the server was used.
        """
        listener = self._listener
        if listener is None:
            raise OAuthError("Callback server has already been used.")
        self._listener = None

        try:
            deadline = time.monotonic() + self._timeout
            while time.monotonic() < deadline:
                try:
                    conn, _addr = listener.accept()
                except BlockingIOError:
                    time.sleep(POLL_INTERVAL)
                    continue
                except OSError as e:
                    raise OAuthError(f"Failed to receive callback request: {e}") from e

                with conn:
                    conn.setblocking(True)
                    conn.settimeout(max(deadline - time.monotonic(), 1.0))
                    return _handle_callback_request(conn, self._callback_path)

            raise CallbackTimeoutError(
                "Timed out waiting for OAuth callback. Try login again."
            )
        finally:
            listener.close()

    def close(self) -> None:
        if self._listener is not None:
            self._listener.close()
            self._listener = None

    def __enter__(self) -> CallbackServer:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def parse_loopback_redirect_uri(redirect_uri: str) -> tuple[str, int]:
    """Return (callback path, port) for a loopback redirect URI.

    Raises:
        InvalidInputError: If the URI is not a loopback http URI with a port.
    """
    try:
        parsed = urllib.parse.urlsplit(redirect_uri)
        port = parsed.port
    except ValueError as e:
        raise InvalidInputError(f"Invalid redirect_uri: {e}") from e

    if parsed.scheme != "http":
        raise InvalidInputError(
            "redirect_uri for CLI login must use http loopback "
            "(for example http://127.0.0.1:45455/callback)."
        )

    host = parsed.hostname
    if not host:
        raise InvalidInputError("redirect_uri must include a host.")

    if host not in LOOPBACK_HOSTS:
        raise InvalidInputError(
            "redirect_uri host must be localhost or 127.0.0.1 for CLI login."
        )

    if port is None:
        raise InvalidInputError(
            "redirect_uri must include an explicit port for local callback handling."
        )

    return parsed.path or "/", port


def _handle_callback_request(conn: socket.socket, expected_path: str) -> CallbackPayload:
    try:
        raw = conn.recv(READ_BUFFER_SIZE)
    except OSError as e:
        raise OAuthError(f"Failed to read callback request: {e}") from e

    request = raw.decode("utf-8", errors="replace")
    lines = request.splitlines()
    if not lines or not lines[0].strip():
        raise OAuthError("Received malformed callback request.")

    parts = lines[0].split()
    method = parts[0] if parts else ""
    target = parts[1] if len(parts) > 1 else ""

    if method != "GET":
        _write_response(conn, "405 Method Not Allowed", FAILURE_BODY)
        raise OAuthError("Callback request used unsupported HTTP method.")

    path, _, query = target.partition("?")
    if path != expected_path:
        _write_response(conn, "404 Not Found", FAILURE_BODY)
        raise OAuthError(
            f"Callback path mismatch. Expected {expected_path}, got {path}."
        )

    code: str | None = None
    state: str | None = None
    for key, value in urllib.parse.parse_qsl(query, keep_blank_values=True):
        if key == "code":
            code = value
        elif key == "state":
            state = value

    if code is None:
        _write_response(conn, "400 Bad Request", FAILURE_BODY)
        raise OAuthError("OAuth callback did not include code parameter.")
    if state is None:
        _write_response(conn, "400 Bad Request", FAILURE_BODY)
        raise OAuthError("OAuth callback did not include state parameter.")

    _write_response(conn, "200 OK", SUCCESS_BODY)
    return CallbackPayload(code=code, state=state)


def _write_response(conn: socket.socket, status: str, body: str) -> None:
    encoded = body.encode("utf-8")
    head = (
        f"HTTP/1.1 {status}\r\n"
        "Content-Type: text/html; charset=utf-8\r\n"
        f"Content-Length: {len(encoded)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    try:
        conn.sendall(head.encode("ascii") + encoded)
    except OSError as e:
        raise OAuthError(f"Failed to write callback response: {e}") from e
