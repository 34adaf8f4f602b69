"""セカンダリブラウザコンテキストとローカルコールバック受信。"""

from __future__ import annotations

import asyncio
import logging
import threading
import webbrowser
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Optional, Protocol
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

RedirectCallback = Callable[[str], None]


class BrowserContext(Protocol):
    """認可画面を表示するセカンダリコンテキスト"""

    async def open(self, url: str) -> bool: ...

    def is_closed(self) -> bool: ...

    async def close(self) -> None: ...


class SystemBrowserContext:
    """OSの既定ブラウザで認可画面を開く

    外部ブラウザのタブが閉じられたことは検知できないため、
    生存確認はハンドシェイク側のタイムアウトに委ねる。
    """

    def __init__(self, opener: Optional[Callable[[str], bool]] = None) -> None:
        self._opener = opener or webbrowser.open
        self._closed = False

    async def open(self, url: str) -> bool:
        opened = await asyncio.to_thread(self._opener, url)
        if not opened:
            logger.warning("No browser could be opened for the authorization page.")
            self._closed = True
        return bool(opened)

    def is_closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        self._closed = True


class _CallbackServer(HTTPServer):
    def __init__(self, server_address: tuple[str, int], expected_path: str, on_redirect: RedirectCallback) -> None:
        super().__init__(server_address, _CallbackHandler)
        self.expected_path = expected_path
        self.on_redirect = on_redirect


class _CallbackHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        server = self.server
        if not isinstance(server, _CallbackServer) or parsed.path != server.expected_path:
            self.send_response(404)
            self.end_headers()
            self.wfile.write(b"Not Found")
            return

        host, port = server.server_address[:2]
        redirect_url = f"http://{host}:{port}{self.path}"
        server.on_redirect(redirect_url)

        self.send_response(200)
        self.send_header("Content-type", "text/html")
        self.end_headers()
        self.wfile.write(
            b"<html><body style=\"font-family: sans-serif; text-align: center; padding-top: 50px;\">"
            b"<h2>Authorization received. You can close this window.</h2>"
            b"<script>setTimeout(function() { window.close(); }, 2000);</script>"
            b"</body></html>"
        )

    def log_message(self, format: str, *args: object) -> None:  # noqa: A003
        return


class CallbackReceiver:
    """プロバイダからのリダイレクトをローカルHTTPサーバーで受け取る

    受信したURLはサーバースレッドから on_redirect に渡される。
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0, path: str = "/auth/callback") -> None:
        self._host = host
        self._port = port
        self._path = path
        self._server: Optional[_CallbackServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def redirect_uri(self) -> str:
        if self._server is None:
            raise RuntimeError("コールバックサーバーが起動していません。")
        host, port = self._server.server_address[:2]
        return f"http://{host}:{port}{self._path}"

    def start(self, on_redirect: RedirectCallback) -> str:
        """サーバーを起動し、リダイレクトURIを返す。"""
        if self._server is not None:
            self._server.on_redirect = on_redirect
            return self.redirect_uri

        self._server = _CallbackServer((self._host, self._port), self._path, on_redirect)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.debug(f"Callback receiver listening on {self.redirect_uri}")
        return self.redirect_uri

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=1)
        self._server = None
        self._thread = None

    def __enter__(self) -> "CallbackReceiver":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.stop()
