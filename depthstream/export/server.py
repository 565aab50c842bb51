"""Background HTTP server exposing recorded datasets on the local network."""

from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI
from zeroconf import NonUniqueNameException, ServiceInfo, Zeroconf

from depthstream.core.config import ServerConfig
from depthstream.core.errors import TransportError

logger = logging.getLogger(__name__)


SERVICE_TYPE = "_http._tcp.local."
SERVER_ERROR_STATUS = "Server error (network not connected?)"


def local_ip_address() -> Optional[str]:
    """Address of the interface used for outbound traffic, or None offline."""
    probe = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No packet is sent; connect() only selects a route
        probe.connect(("10.255.255.255", 1))
        return probe.getsockname()[0]
    except OSError:
        return None
    finally:
        probe.close()


class ExportServer:
    """Runs the export app with uvicorn on a background thread.

    Usage:
        server = ExportServer(create_app(manager), port=8080)
        server.start()
        print(server.status)     # http://192.168.1.20:8080/
        server.stop()
    """

    def __init__(
        self,
        app: FastAPI,
        host: str = "0.0.0.0",
        port: int = 8080,
        service_name: str = "DepthStream Web Server",
        advertise: bool = True,
        startup_timeout_s: float = 5.0,
    ):
        self.app = app
        self.host = host
        self.port = port
        self.service_name = service_name
        self.advertise = advertise
        self.startup_timeout_s = startup_timeout_s

        self._socket: Optional[socket.socket] = None
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self._zeroconf: Optional[Zeroconf] = None
        self._service: Optional[ServiceInfo] = None
        self._address: Optional[str] = None
        self.error: Optional[TransportError] = None

    @classmethod
    def from_config(cls, app: FastAPI, config: ServerConfig) -> ExportServer:
        return cls(
            app,
            host=config.host,
            port=config.port,
            service_name=config.service_name,
            advertise=config.advertise,
        )

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def url(self) -> Optional[str]:
        """Reachable URL of the server, None if not running or offline."""
        if not self.running or self._address is None:
            return None
        return f"http://{self._address}:{self.port}/"

    @property
    def status(self) -> str:
        """URL when reachable, otherwise an error message for display."""
        return self.url or SERVER_ERROR_STATUS

    def start(self) -> bool:
        """Bind the port and start serving.

        Returns:
            True if the server is up; on failure error holds the reason
        """
        if self.running:
            return True
        self.error = None

        try:
            self._socket = self._bind()
        except TransportError as e:
            self.error = e
            logger.error("%s", e)
            return False

        # Port 0 binds an ephemeral port
        self.port = self._socket.getsockname()[1]
        self._address = self._resolve_address()

        config = uvicorn.Config(self.app, log_level="warning", access_log=False)
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [self._socket]},
            name="depthstream-http",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + self.startup_timeout_s
        while not self._server.started and self._thread.is_alive():
            if time.monotonic() > deadline:
                break
            time.sleep(0.01)

        if not self._server.started:
            self.error = TransportError("HTTP server did not start")
            logger.error("%s", self.error)
            self.stop()
            return False

        if self._address is None:
            self.error = TransportError("No reachable network address")
            logger.warning("Export server listening on port %d but no network is connected", self.port)
        else:
            logger.info("Visit %s in your web browser", self.url)
            if self.advertise:
                self._register_service()
        return True

    def stop(self) -> None:
        """Stop serving. Safe to call when never started."""
        self._unregister_service()

        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=self.startup_timeout_s)
            self._thread = None
            logger.info("Export server stopped")
        self._server = None

        if self._socket is not None:
            self._socket.close()
            self._socket = None

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
            sock.listen(128)
        except OSError as e:
            sock.close()
            raise TransportError(f"Cannot bind {self.host}:{self.port}: {e}") from e
        return sock

    def _resolve_address(self) -> Optional[str]:
        if self.host not in ("0.0.0.0", ""):
            return self.host
        return local_ip_address()

    def _register_service(self) -> None:
        info = ServiceInfo(
            SERVICE_TYPE,
            f"{self.service_name}.{SERVICE_TYPE}",
            addresses=[socket.inet_aton(self._address)],
            port=self.port,
            properties={"path": "/"},
            server=f"{socket.gethostname()}.local.",
        )
        zc = Zeroconf()
        try:
            zc.register_service(info)
        except (OSError, NonUniqueNameException) as e:
            logger.warning("Could not advertise %s: %s", self.service_name, e)
            zc.close()
            return
        self._zeroconf = zc
        self._service = info
        logger.info("Advertised %s as %s", self.url, self.service_name)

    def _unregister_service(self) -> None:
        if self._zeroconf is None:
            return
        try:
            if self._service is not None:
                self._zeroconf.unregister_service(self._service)
        finally:
            self._zeroconf.close()
            self._zeroconf = None
            self._service = None

    def __enter__(self) -> ExportServer:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
