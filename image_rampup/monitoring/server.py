"""HTTP status server for resolution monitoring."""

from __future__ import annotations

import json
import logging
import socket
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from io import BytesIO
from urllib.parse import parse_qs, urlparse

from ..web import create_app
from .registry import ResolutionRegistry

logger = logging.getLogger(__name__)


class MonitoringRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler for monitoring endpoints.

    Registry endpoints are served here; everything else goes to the Flask
    application built around the resolver.
    """

    server: "MonitoringServer"

    def log_message(self, format, *args):
        """Override to use our logger."""
        logger.debug("%s - %s", self.address_string(), format % args)

    def do_GET(self):
        """Handle GET requests."""
        try:
            parsed_path = urlparse(self.path)
            path = parsed_path.path.rstrip("/")

            if path == "/api/v1/status":
                self._handle_status()
            elif path == "/api/v1/resolutions":
                self._handle_list_resolutions(parsed_path.query)
            elif path.startswith("/api/v1/resolutions/"):
                record_id = path.split("/")[-1]
                if not record_id.isdigit():
                    self._send_error(400, "Bad Request", f"Invalid record id: {record_id}")
                    return
                self._handle_resolution_details(int(record_id))
            else:
                self._handle_flask_request()

        except Exception as exc:
            logger.error("Error handling request: %s", exc, exc_info=True)
            self._send_error(500, "Internal Server Error", str(exc))

    def _handle_status(self):
        """Handle GET /api/v1/status."""
        registry = self.server.registry
        registry.cleanup_old_entries()

        catalog = self._check_catalog_health()
        records = registry.list_records()
        status_data = {
            "service_id": self.server.service_id,
            "uptime_seconds": int(time.time() - self.server.started_at),
            "status": "healthy" if catalog["status"] == "healthy" else "degraded",
            "catalog": catalog,
            "plan_order": self.server.resolver.plan_order,
            "resolutions": registry.counts(),
            "last_resolution_time": records[0].recorded_at.isoformat() if records else None,
        }
        self._send_json(200, status_data)

    def _handle_list_resolutions(self, query_string: str):
        """Handle GET /api/v1/resolutions."""
        params = parse_qs(query_string)
        try:
            limit = int(params.get("limit", ["50"])[0])
        except ValueError:
            self._send_error(400, "Bad Request", "limit must be an integer")
            return

        records = self.server.registry.list_records(
            operation=params.get("operation", [None])[0],
            flow=params.get("flow", [None])[0],
            failed_only=params.get("failed", ["false"])[0].lower() in ("1", "true", "yes"),
        )
        data = [
            {
                "record_id": r.record_id,
                "operation": r.operation,
                "status": r.status,
                "flow": r.flow,
                "bucket": r.bucket,
                "unresolved": r.unresolved,
                "error_type": r.error_type,
                "recorded_at": r.recorded_at.isoformat(),
            }
            for r in records[:limit]
        ]
        self._send_json(200, {"resolutions": data, "total": len(records)})

    def _handle_resolution_details(self, record_id: int):
        """Handle GET /api/v1/resolutions/<id>."""
        entry = self.server.registry.get(record_id)
        if not entry:
            self._send_error(404, "Not Found", f"Resolution not found: {record_id}")
            return
        self._send_json(200, entry.to_dict())

    def _check_catalog_health(self) -> dict:
        """Check that the image type catalog answers."""
        try:
            image_types = self.server.resolver.type_catalog.list_all_image_types()
            return {"status": "healthy", "image_types": len(image_types)}
        except Exception as exc:
            logger.warning("Image type catalog health check failed: %s", exc)
            return {"status": "unavailable", "message": f"Health check failed: {exc}"}

    def _send_json(self, status_code: int, data: dict):
        """Send JSON response."""
        json_data = json.dumps(data, indent=2).encode("utf-8")
        self.send_response(status_code)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(json_data)))
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()
        self.wfile.write(json_data)

    def _send_error(self, status_code: int, error: str, message: str):
        """Send error JSON response."""
        error_data = {"error": error, "error_code": error.upper().replace(" ", "_"), "message": message}
        self._send_json(status_code, error_data)

    def _handle_flask_request(self):
        """Handle request via the Flask WSGI application."""
        parsed = urlparse(self.path)
        environ = {
            "REQUEST_METHOD": self.command,
            "SCRIPT_NAME": "",
            "PATH_INFO": parsed.path,
            "QUERY_STRING": parsed.query,
            "CONTENT_TYPE": self.headers.get("Content-Type", ""),
            "CONTENT_LENGTH": "0",
            "SERVER_NAME": self.server.server_address[0],
            "SERVER_PORT": str(self.server.server_address[1]),
            "SERVER_PROTOCOL": self.protocol_version,
            "wsgi.version": (1, 0),
            "wsgi.url_scheme": "http",
            "wsgi.input": BytesIO(b""),
            "wsgi.errors": BytesIO(),
            "wsgi.multithread": True,
            "wsgi.multiprocess": False,
            "wsgi.run_once": False,
        }
        for key, value in self.headers.items():
            key = key.replace("-", "_").upper()
            if key not in ("CONTENT_TYPE", "CONTENT_LENGTH"):
                environ[f"HTTP_{key}"] = value

        response_data = {}

        def start_response(status, response_headers, exc_info=None):
            response_data["status"] = status
            response_data["headers"] = response_headers

        app_iter = self.server.flask_app(environ, start_response)
        try:
            status_code, _, status_message = response_data["status"].partition(" ")
            self.send_response(int(status_code), status_message)
            for header, value in response_data["headers"]:
                self.send_header(header, value)
            self.end_headers()
            for chunk in app_iter:
                if chunk:
                    self.wfile.write(chunk)
        finally:
            if hasattr(app_iter, "close"):
                app_iter.close()


class MonitoringServer(ThreadingHTTPServer):
    """HTTP server for resolution monitoring and version metadata."""

    def __init__(
        self,
        bind_address: str,
        port: int,
        service_id: str,
        resolver,
        registry: ResolutionRegistry,
    ):
        """Initialize monitoring server.

        Args:
            bind_address: IP address to bind to
            port: Port number (0 for random port)
            service_id: Identifier reported by the status endpoint
            resolver: VersionResolver backing the metadata endpoints
            registry: Resolution registry backing the history endpoints
        """
        self.bind_address = bind_address
        self.port = port
        self.service_id = service_id
        self.resolver = resolver
        self.registry = registry
        self.started_at = time.time()
        self.flask_app = create_app(resolver)

        super().__init__((bind_address, port), MonitoringRequestHandler)

        # Set socket options for reuse
        self.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # If port was 0, get the actual assigned port
        if port == 0:
            self.port = self.server_address[1]

    def serve_forever(self, poll_interval: float = 0.5):
        """Start serving requests."""
        logger.info("Monitoring server listening on %s:%d", self.bind_address, self.port)
        try:
            super().serve_forever(poll_interval=poll_interval)
        except Exception as exc:
            logger.error("Monitoring server error: %s", exc, exc_info=True)
        finally:
            logger.info("Monitoring server stopped")

    def shutdown(self):
        """Shutdown server gracefully."""
        logger.info("Shutting down monitoring server...")
        super().shutdown()
        self.server_close()
