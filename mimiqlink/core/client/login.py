"""Local web server capturing an interactive browser login.

The server serves the static login page from the package `public/`
directory and accepts `POST /api/login` with `{email, password}`. The
credentials are forwarded to the remote sign-in endpoint; the first
successful answer resolves a one-shot future and the waiting caller shuts
the server down. Failed attempts are returned to the browser verbatim and
leave the server running so the user can try again.
"""

import json
import logging
import mimetypes
import re
import subprocess
import sys
import threading
import urllib.parse
from concurrent.futures import Future
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Optional, Union

import requests
from pydantic import ValidationError

from .config import DEFAULT_PUBLIC_DIR, MIMIQ_API_ROOT
from .models import Tokens
from .utils import JSON_HEADERS, join_url
from mimiqlink.vis.terminal import TerminalPrinter

logger = logging.getLogger(__name__)

_KNOWN_TYPES = {
    ".js": "application/javascript",
    ".html": "text/html",
    ".css": "text/css",
}

# Leading bytes of common asset formats
_SIGNATURES = [
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\x00\x00\x01\x00", "image/x-icon"),
    (b"wOFF", "font/woff"),
    (b"wOF2", "font/woff2"),
    (b"%PDF-", "application/pdf"),
]


def sniff_content_type(data: bytes) -> str:
    for signature, mime in _SIGNATURES:
        if data.startswith(signature):
            return mime
    head = data[:256].lstrip().lower()
    if head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head):
        return "image/svg+xml"
    if head.startswith(b"<!doctype html") or head.startswith(b"<html"):
        return "text/html"
    return "application/octet-stream"


def content_type_for(path: Path, data: bytes) -> str:
    """Infer a content type from the extension, falling back to the content."""
    ext = path.suffix.lower()
    if ext in _KNOWN_TYPES:
        return _KNOWN_TYPES[ext]
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or sniff_content_type(data)


def detect_wsl() -> bool:
    if not sys.platform.startswith("linux"):
        return False
    try:
        with open("/proc/sys/kernel/osrelease", "r") as f:
            release = f.read()
    except OSError:
        return False
    return re.search(r"microsoft|wsl", release, re.IGNORECASE) is not None


def open_in_default_browser(url: str) -> bool:
    """Try to open `url` in the user's browser; return False on failure."""
    if sys.platform == "darwin":
        cmd = ["open", url]
    elif sys.platform == "win32" or detect_wsl():
        cmd = ["powershell.exe", "Start", f"'{url}'"]
    elif sys.platform.startswith("linux"):
        cmd = ["xdg-open", url]
    else:
        return False
    try:
        subprocess.run(cmd, check=True, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug("Could not open browser with %s: %s", cmd[0], e)
        return False
    return True


class LoginServer:
    """One-shot loopback server capturing MIMIQ tokens from a browser login."""

    def __init__(
        self,
        uri: str,
        public_dir: Union[str, Path, None] = None,
        session: Optional[requests.Session] = None,
        host: str = "127.0.0.1",
        port: int = 0,
    ):
        self.uri = uri
        self.public_dir = Path(public_dir or DEFAULT_PUBLIC_DIR).resolve()
        self.session = session or requests.Session()
        self._tokens: "Future[Tokens]" = Future()
        self._lock = threading.Lock()
        self._server = ThreadingHTTPServer((host, port), self._create_handler_class())
        self._server.daemon_threads = True
        self._thread: Optional[threading.Thread] = None
        self._closed = False

    @property
    def port(self) -> int:
        return self._server.server_address[1]

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.port}/"

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="mimiq-login-server", daemon=True
        )
        self._thread.start()

    def wait(self, timeout: Optional[float] = None) -> Tokens:
        """Block until a login succeeded and return its tokens."""
        return self._tokens.result(timeout=timeout)

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._thread is not None:
            self._server.shutdown()
            self._thread.join()
        self._server.server_close()

    def run(self, open_browser: bool = True) -> Tokens:
        """Serve the login page until the user logged in, then shut down."""
        self.start()
        logger.info("Please login in your browser at %s", self.url)
        if open_browser and not open_in_default_browser(self.url):
            logger.warning("Could not open a browser, please navigate to %s", self.url)
        printer = TerminalPrinter()
        printer.start_wait("waiting for browser login")
        try:
            tokens = self.wait()
            printer.finish_wait(success=True)
            return tokens
        except BaseException:
            printer.finish_wait(success=False)
            raise
        finally:
            self.shutdown()

    def __enter__(self) -> "LoginServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # --- request handling --------------------------------------------------

    def handle_login(self, body: bytes) -> tuple[int, dict[str, Any]]:
        """Forward a login form to the remote sign-in endpoint."""
        try:
            data = json.loads(body or b"{}")
            email, password = data["email"], data["password"]
        except (ValueError, KeyError, TypeError):
            return 400, {"message": "Request body must be JSON with email and password."}

        try:
            response = self.session.post(
                join_url(self.uri, MIMIQ_API_ROOT, "sign-in"),
                json={"email": email, "password": password},
                headers=JSON_HEADERS,
            )
        except requests.exceptions.RequestException as e:
            logger.warning("Sign-in request failed: %s", e)
            return 502, {"message": f"Sign-in request failed: {e}"}

        try:
            payload = response.json()
        except ValueError:
            payload = {"message": f"Server responded with code {response.status_code}"}

        if response.status_code >= 300:
            reason = payload.get("message") if isinstance(payload, dict) else None
            logger.warning(
                'Failed with status code %d and reason: "%s".', response.status_code, reason
            )
            return response.status_code, payload

        try:
            tokens = Tokens.model_validate(payload)
        except ValidationError:
            logger.warning("Sign-in answered without tokens")
            return 502, {"message": "Sign-in answered without tokens."}

        with self._lock:
            if not self._tokens.done():
                self._tokens.set_result(tokens)
        return 200, {"message": "Login successful."}

    def resolve_static(self, target: str) -> tuple[int, Optional[Path]]:
        """Map a request target onto a file below `public_dir`."""
        path = urllib.parse.urlsplit(target).path
        rel = urllib.parse.unquote(path).lstrip("/") or "index.html"
        candidate = (self.public_dir / rel).resolve()
        if candidate != self.public_dir and self.public_dir not in candidate.parents:
            return 403, None
        if not candidate.is_file():
            return 404, None
        return 200, candidate

    def _create_handler_class(self) -> type:
        server = self

        class LoginHandler(BaseHTTPRequestHandler):
            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("login server: " + format, *args)

            def do_GET(self) -> None:
                status, path = server.resolve_static(self.path)
                if path is None:
                    self.send_response(status)
                    self.send_header("Content-Length", "0")
                    self.end_headers()
                    return
                data = path.read_bytes()
                self.send_response(200)
                self.send_header("Content-Type", content_type_for(path, data))
                self.send_header("Content-Length", str(len(data)))
                self.end_headers()
                self.wfile.write(data)

            def do_POST(self) -> None:
                if urllib.parse.urlsplit(self.path).path != "/api/login":
                    self._send_json(404, {"message": "Not found"})
                    return
                length = int(self.headers.get("Content-Length") or 0)
                body = self.rfile.read(length) if length else b""
                status, payload = server.handle_login(body)
                self._send_json(status, payload)

            def _send_json(self, status: int, payload: Any) -> None:
                data = json.dumps(payload).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(data)))
                self.end_headers()
                self.wfile.write(data)

        return LoginHandler


def get_token_from_login_page(
    uri: str,
    public_dir: Union[str, Path, None] = None,
    session: Optional[requests.Session] = None,
    open_browser: bool = True,
) -> Tokens:
    """Run the login page once and return the captured tokens."""
    server = LoginServer(uri, public_dir=public_dir, session=session)
    return server.run(open_browser=open_browser)

