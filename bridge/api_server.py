"""
Runner Bridge API Server

HTTP front end for the runner bridge: POST a JSON body, it is handed to
the runner script on stdin and the runner's JSON comes back as the
response.
"""

import hmac
import json
import logging
import uuid
from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from typing import Any, Optional
from urllib.parse import urlparse

from bridge.relay import RunnerBridge
from bridge.config import BridgeConfig
from bridge.errors import BadRequest

logger = logging.getLogger(__name__)

SERVICE_NAME = "runner-bridge"
VERSION = "1.0.0"


class BridgeHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the runner bridge."""

    server: "BridgeServer"

    def log_message(self, format, *args):
        """Override to use our logger."""
        logger.info(f"{self.address_string()} - {format % args}")

    def _check_auth(self) -> bool:
        """
        Check API key authentication if enabled.

        Returns:
            True if authenticated or auth not required
        """
        api_key = self.server.config.api_key
        if not api_key:
            return True

        auth_header = self.headers.get('X-API-Key', '')
        if hmac.compare_digest(auth_header.encode('utf-8'), api_key.encode('utf-8')):
            return True

        logger.warning(f"Authentication failed from {self.client_address[0]}")
        return False

    def _send_security_headers(self):
        """Send security headers with response."""
        self.send_header('X-Content-Type-Options', 'nosniff')
        self.send_header('X-Frame-Options', 'DENY')
        self.send_header('Content-Security-Policy', "default-src 'none'; frame-ancestors 'none'")
        self.send_header('Referrer-Policy', 'strict-origin-when-cross-origin')

    def _send_json_response(self, data: Any, status: int = 200):
        """Send JSON response."""
        body = json.dumps(data).encode('utf-8')
        self.send_response(status)
        self.send_header('Content-Type', 'application/json; charset=utf-8')
        self.send_header('Access-Control-Allow-Origin', '*')
        request_id = getattr(self, "request_id", None)
        if request_id:
            self.send_header("X-Request-ID", request_id)
        self._send_security_headers()
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)
        self.wfile.flush()

    def _send_error(self, message: str, status: int = 400):
        """Send error response."""
        logger.warning(f"Error {status}: {message}")
        self._send_json_response({"error": message}, status)

    def _read_body(self) -> bytes:
        """
        Read the raw request body.

        Raises:
            BadRequest: If Content-Length is malformed or the body is cut short
        """
        header = self.headers.get('Content-Length')
        if header is None:
            return b""
        try:
            content_length = int(header)
        except ValueError:
            raise BadRequest("Invalid Content-Length") from None
        if content_length < 0:
            raise BadRequest("Invalid Content-Length")
        if content_length == 0:
            return b""

        try:
            body = self.rfile.read(content_length)
        except OSError as e:
            raise BadRequest(f"No input: {e}") from e
        if len(body) != content_length:
            raise BadRequest("No input")
        return body

    def do_OPTIONS(self):
        """Handle CORS preflight requests."""
        self.send_response(204)
        self.send_header('Access-Control-Allow-Origin', '*')
        self.send_header('Access-Control-Allow-Methods', 'GET, POST, OPTIONS')
        self.send_header('Access-Control-Allow-Headers', 'Content-Type, X-API-Key, X-Request-ID')
        self._send_security_headers()
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_GET(self):
        """Handle GET requests."""
        self.request_id = self.headers.get("X-Request-ID", str(uuid.uuid4()))

        if not self._check_auth():
            self._send_error("Unauthorized", 401)
            return

        path = urlparse(self.path).path

        if path == '/health':
            self._send_json_response({
                "status": "healthy",
                "service": SERVICE_NAME,
                "version": VERSION
            })
        elif path == '/packs':
            status, payload = self.server.bridge.packs()
            self._send_json_response(payload, status)
        else:
            self._send_error("Not found", 404)

    def do_POST(self):
        """Handle POST requests."""
        self.request_id = self.headers.get("X-Request-ID", str(uuid.uuid4()))

        if not self._check_auth():
            self._send_error("Unauthorized", 401)
            return

        path = urlparse(self.path).path
        routes = {
            '/run': self.server.bridge.run,
            '/packs/run': self.server.bridge.run_pack,
            '/packs/install': self.server.bridge.install_pack,
        }
        if path not in routes:
            self._send_error("Not found", 404)
            return

        try:
            body = self._read_body()
        except BadRequest as e:
            self._send_error(e.message, e.status)
            return

        try:
            status, payload = routes[path](body)
        except Exception as e:
            logger.exception(f"Request {self.request_id} failed: {e}")
            self._send_error("Internal error", 500)
            return

        self._send_json_response(payload, status)


class BridgeServer(ThreadingHTTPServer):
    """Threaded HTTP server, one handler thread per request."""

    daemon_threads = True

    def __init__(self, config: BridgeConfig, bridge: Optional[RunnerBridge] = None):
        self.config = config
        self.bridge = bridge or RunnerBridge(config)
        super().__init__((config.host, config.port), BridgeHandler)


def start_server(config: Optional[BridgeConfig] = None):
    """
    Start the runner bridge API server.

    Args:
        config: Bridge configuration, read from the environment if omitted
    """
    config = config or BridgeConfig.from_env()
    server = BridgeServer(config)
    logger.info(f"Runner bridge started on {config.host}:{config.port} (runner: {config.runner_path})")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down server...")
    finally:
        server.server_close()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    start_server()
