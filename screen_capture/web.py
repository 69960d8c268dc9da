"""Flask application and threaded HTTP server for browsing captured images."""

import socket  # Explicit bind so port conflicts surface as BindError
import threading
from typing import Optional

import flask  # Web framework and templating
from werkzeug.serving import (  # Threaded WSGI server
    BaseWSGIServer,
    get_sockaddr,
    make_server,
    select_address_family,
)

from .config import Config  # App configuration
from .errors import BindError, NotFoundError
from .log import get_logger
from .store import ArtifactStore

log = get_logger(__name__)

NOT_FOUND_BODY = "File not found"


def create_app(store: ArtifactStore, title: str = Config.PAGE_TITLE) -> flask.Flask:
    """Create and configure the Flask application.

    Args:
      store: Artifact store whose directory is listed and served.
      title: Heading shown above the listing.

    Returns:
      A Flask app with the listing page and per-artifact routes.
    """
    # No static route: every path below / names an artifact
    app = flask.Flask(__name__, static_folder=None)

    @app.route("/")
    def index():
        """List every artifact currently in the content directory."""
        # Re-scan on every request so the page reflects the disk right now
        files = store.list_artifacts()
        return flask.render_template_string(_INDEX_TEMPLATE, title=title, files=files)

    @app.route("/<filename>")
    def artifact(filename: str):
        """Stream one artifact by exact name."""
        try:
            f, size = store.open(filename)
        except NotFoundError:
            log.debug("Artifact not found: %r", filename)
            flask.abort(404)
        rv = flask.send_file(f, mimetype="image/png", conditional=False, max_age=0)
        rv.content_length = size
        return rv

    @app.errorhandler(404)
    def not_found(_error):
        return flask.Response(NOT_FOUND_BODY, status=404, mimetype="text/plain")

    return app


class ArtifactServer:
    """Serves a Flask app on one fixed address from a background thread.

    Each connection is handled on its own thread. `stop()` stops accepting
    new connections; responses already in flight run to completion.
    """

    def __init__(
        self,
        store: ArtifactStore,
        host: str = Config.HOST,
        port: int = Config.PORT,
        app: Optional[flask.Flask] = None,
    ) -> None:
        self.store = store
        self.host = host
        self.port = port
        self.app = app or create_app(store)
        self._server: Optional[BaseWSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually bound (differs from `port` only when port 0 was requested)."""
        if self._server is None:
            return None
        return int(self._server.server_address[1])

    def start(self) -> None:
        """Bind the configured address and start serving.

        Raises:
          BindError: If the address cannot be bound. No other port is tried.
          RuntimeError: If the server is already running.
        """
        if self._server is not None:
            raise RuntimeError("artifact server is already running")
        sock = self._bind()
        try:
            # werkzeug adopts a duplicate of the listening socket's descriptor
            server = make_server(self.host, self.port, self.app, threaded=True, fd=sock.fileno())
        finally:
            sock.close()
        self._server = server
        self._thread = threading.Thread(target=server.serve_forever, name="artifact-server", daemon=True)
        self._thread.start()
        log.info("Serving %s on http://%s:%d/", self.store.root, self.host, self.bound_port)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop accepting connections and close the socket. Idempotent."""
        server, self._server = self._server, None
        thread, self._thread = self._thread, None
        if server is None:
            return
        port = int(server.server_address[1])
        server.shutdown()  # Returns once serve_forever has exited
        server.server_close()
        if thread is not None:
            thread.join(timeout=timeout)
        log.info("Artifact server on port %d stopped", port)

    def _bind(self) -> socket.socket:
        """Create a listening socket on exactly `host:port`."""
        # Same family and address werkzeug uses when it adopts the socket
        family = select_address_family(self.host, self.port)
        try:
            addr = get_sockaddr(self.host, int(self.port), family)
            sock = socket.socket(family, socket.SOCK_STREAM)
        except OSError as e:
            raise BindError(f"cannot resolve {self.host}:{self.port}: {e}") from e
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(addr)
            sock.listen(128)
        except OSError as e:
            sock.close()
            raise BindError(f"cannot bind {self.host}:{self.port}: {e}") from e
        return sock


_INDEX_TEMPLATE = """<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>{{ title }}</title>
  <style>
    body { font-family: system-ui, Arial, sans-serif; margin: 16px; background: #111; color: #eee; }
    a { color: #9eeaff; text-decoration: none; }
    .meta { color: #9aa; font-size: 12px; }
  </style>
</head>
<body>
  <h3>{{ title }}</h3>
  <ul>
  {% for f in files %}
    <li><a href="{{ f|urlencode }}">{{ f }}</a></li>
  {% endfor %}
  </ul>
  {% if not files %}<div class="meta">No captures yet.</div>{% endif %}
</body>
</html>
"""
