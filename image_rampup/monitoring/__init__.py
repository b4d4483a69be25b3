"""Operational monitoring for image version resolution.

Provides the resolution registry and an HTTP server exposing it together with
the image version metadata API.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from .. import config as rampup_config
from .registry import ResolutionRecord, ResolutionRegistry
from .server import MonitoringServer

logger = logging.getLogger(__name__)

__all__ = [
    "MonitoringServer",
    "ResolutionRecord",
    "ResolutionRegistry",
    "registry_from_config",
    "start_monitoring_server",
    "start_monitoring_from_config",
    "stop_monitoring_server",
]


def registry_from_config() -> ResolutionRegistry:
    """Build a ResolutionRegistry with TTL and size limit from config."""
    return ResolutionRegistry(
        history_ttl=rampup_config.rampup_monitoring_history_ttl(),
        history_limit=rampup_config.rampup_monitoring_history_limit(),
    )


def start_monitoring_server(
    bind_address: str,
    port: int,
    service_id: str,
    resolver,
    registry: ResolutionRegistry,
) -> Optional[MonitoringServer]:
    """Start monitoring HTTP server in background thread.

    Args:
        bind_address: IP address to bind to (e.g., "127.0.0.1")
        port: Port number to listen on
        service_id: Identifier reported by the status endpoint
        resolver: VersionResolver backing the metadata API
        registry: Registry the resolver records into

    Returns:
        MonitoringServer instance if started successfully, None otherwise
    """
    try:
        server = MonitoringServer(
            bind_address=bind_address,
            port=port,
            service_id=service_id,
            resolver=resolver,
            registry=registry,
        )
    except OSError as exc:
        logger.error("Failed to start monitoring server: %s", exc, exc_info=True)
        return None

    server_thread = threading.Thread(
        target=server.serve_forever,
        name="monitoring-server",
        daemon=True,
    )
    server_thread.start()

    logger.info(
        "Monitoring server started on %s:%d (service_id=%s)",
        bind_address,
        server.port,
        service_id,
    )
    return server


def start_monitoring_from_config(resolver, service_id: str) -> Optional[MonitoringServer]:
    """Start the monitoring server when enabled in config.

    The resolver's registry is used when it has one; otherwise a registry is
    built from config and attached to the resolver.
    """
    if not rampup_config.rampup_monitoring_enabled():
        logger.debug("Monitoring disabled")
        return None

    if resolver.registry is None:
        resolver.registry = registry_from_config()

    host, _, port = rampup_config.rampup_monitoring_bind().rpartition(":")
    try:
        port_number = int(port)
    except ValueError:
        logger.error("Invalid monitoring port %r", port)
        return None
    return start_monitoring_server(host, port_number, service_id, resolver, resolver.registry)


def stop_monitoring_server(server: Optional[MonitoringServer]) -> None:
    """Stop monitoring server and clear its registry."""
    if server is None:
        return
    server.shutdown()
    server.registry.clear()
    logger.info("Monitoring server stopped")
