"""Browser-facing pieces of the authorization round trip.

``BrowserLocation`` stands in for the page location: the authorize
navigation opens the system browser, and a successful exchange rewrites
the location back to the bare redirect URI so a later run does not try to
exchange the same code twice.

``CallbackListener`` receives the browser when Spotify redirects it back
to the redirect URI. Requests are handled one at a time on the calling
thread.
"""

import http.server
import logging
import time
import urllib.parse
import webbrowser
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

CALLBACK_SUCCESS_PAGE = (
    b"<html><body><h3>Spotify authorization received.</h3>"
    b"<p>You can close this window and return to the terminal.</p></body></html>"
)
CALLBACK_ERROR_PAGE = (
    b"<html><body><h3>Spotify authorization was not completed.</h3>"
    b"<p>Check the terminal for details.</p></body></html>"
)


class BrowserLocation:
    def __init__(self, href: str = "", *, opener: Callable[[str], bool] = webbrowser.open):
        self.href = href
        self._opener = opener

    def query_params(self) -> Dict[str, str]:
        qs = urllib.parse.parse_qs(urllib.parse.urlparse(self.href).query)
        return {k: v[0] for k, v in qs.items() if v}

    def has_callback_code(self) -> bool:
        return bool(self.query_params().get("code"))

    def assign(self, url: str) -> None:
        """Navigate the browser to ``url``."""
        self.href = url
        opened = False
        try:
            opened = bool(self._opener(url))
        except webbrowser.Error as e:
            logger.warning("Could not open a browser: %s", e)

        if not opened:
            logger.warning("Open this URL in your browser to continue:\n%s", url)

    def replace_state(self, url: str) -> None:
        """Rewrite the current location without navigating."""
        self.href = url


class _CallbackHandler(http.server.BaseHTTPRequestHandler):
    # An idle connection (browser preconnect) must not hold handle_request().
    timeout = 5

    def log_message(self, format, *args):
        logger.debug("callback listener: " + format, *args)

    def do_GET(self):
        parsed = urllib.parse.urlparse(self.path)
        server = self.server
        if parsed.path != server.callback_path:
            self.send_response(404)
            self.end_headers()
            return

        params = urllib.parse.parse_qs(parsed.query)
        server.callback_url = urllib.parse.urlunparse(
            (server.scheme, server.netloc, parsed.path, "", parsed.query, "")
        )

        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.end_headers()
        self.wfile.write(CALLBACK_SUCCESS_PAGE if params.get("code") else CALLBACK_ERROR_PAGE)


class CallbackListener:
    """Waits for the browser to load the redirect URI."""

    def __init__(self, redirect_uri: str, *, timeout: float = 300.0, poll_interval: float = 0.5):
        parsed = urllib.parse.urlparse(redirect_uri)
        if not parsed.hostname or not parsed.port:
            raise ValueError(f"Redirect URI must include a host and port for the local listener: {redirect_uri}")

        self.redirect_uri = redirect_uri
        self.host = parsed.hostname
        self.port = parsed.port
        self.scheme = parsed.scheme or "http"
        self.netloc = parsed.netloc
        self.path = parsed.path or "/"
        self.timeout = float(timeout)
        self.poll_interval = float(poll_interval)
        self._server: Optional[http.server.HTTPServer] = None

    def _make_server(self) -> http.server.HTTPServer:
        server = http.server.HTTPServer((self.host, self.port), _CallbackHandler)
        server.timeout = self.poll_interval
        server.callback_path = self.path
        server.scheme = self.scheme
        server.netloc = self.netloc
        server.callback_url = None
        return server

    def open(self) -> None:
        """Bind the listening socket. Call before sending the browser away."""
        if self._server is None:
            self._server = self._make_server()

    def close(self) -> None:
        if self._server is not None:
            self._server.server_close()
            self._server = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def wait_for_callback(self) -> Optional[str]:
        """Return the full callback URL, or None if the browser never came back."""

        self.open()
        server = self._server
        deadline = time.monotonic() + self.timeout
        logger.info("Waiting for the Spotify redirect on %s (up to %ss)", self.redirect_uri, int(self.timeout))
        while server.callback_url is None and time.monotonic() < deadline:
            server.handle_request()

        if server.callback_url is None:
            logger.warning("No callback received within %ss", int(self.timeout))
        return server.callback_url
