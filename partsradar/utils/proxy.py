# partsradar/utils/proxy.py
import asyncio
import logging
from typing import Optional

from partsradar.config import settings

logger = logging.getLogger(__name__)


class ProxyRotator:
    """Hands out the Tor SOCKS proxy and asks for a fresh circuit every N requests."""

    def __init__(
        self,
        enabled: bool = False,
        host: str = "127.0.0.1",
        port: int = 9050,
        control_port: int = 9051,
        control_password: str = "",
        rotation_interval: int = 10,
        control_timeout: float = 5.0,
    ):
        self.enabled = enabled
        self.host = host
        self.port = port
        self.control_port = control_port
        self.control_password = control_password
        self.rotation_interval = max(1, rotation_interval)
        self.control_timeout = control_timeout
        self.request_count = 0
        self.rotations = 0
        self.failed_rotations = 0

    @classmethod
    def from_settings(cls) -> "ProxyRotator":
        return cls(
            enabled=settings.PROXY_ENABLED,
            host=settings.PROXY_HOST,
            port=settings.PROXY_PORT,
            control_port=settings.PROXY_CONTROL_PORT,
            control_password=settings.PROXY_CONTROL_PASSWORD,
            rotation_interval=settings.PROXY_ROTATION_INTERVAL,
        )

    @property
    def proxy_url(self) -> str:
        return f"socks5://{self.host}:{self.port}"

    async def next_proxy(self) -> Optional[str]:
        if not self.enabled:
            return None
        self.request_count += 1
        if self.request_count % self.rotation_interval == 0:
            await self.rotate()
        return self.proxy_url

    async def rotate(self) -> bool:
        """Send NEWNYM to the control port. Never raises."""
        if not self.enabled:
            return False
        try:
            await asyncio.wait_for(self._signal_newnym(), timeout=self.control_timeout)
        except (OSError, asyncio.TimeoutError, RuntimeError) as e:
            self.failed_rotations += 1
            logger.warning("Failed to rotate Tor circuit: %s", e)
            return False
        self.rotations += 1
        logger.debug("Requested new Tor circuit (rotation #%d)", self.rotations)
        return True

    async def _signal_newnym(self):
        reader, writer = await asyncio.open_connection(self.host, self.control_port)
        try:
            writer.write(f'AUTHENTICATE "{self.control_password}"\r\n'.encode())
            await writer.drain()
            reply = (await reader.readline()).decode().strip()
            if not reply.startswith("250"):
                raise RuntimeError(f"control port refused authentication: {reply}")
            writer.write(b"SIGNAL NEWNYM\r\n")
            await writer.drain()
            reply = (await reader.readline()).decode().strip()
            if not reply.startswith("250"):
                raise RuntimeError(f"NEWNYM rejected: {reply}")
        finally:
            writer.close()

    def stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "proxy": self.proxy_url if self.enabled else None,
            "requests": self.request_count,
            "rotation_interval": self.rotation_interval,
            "rotations": self.rotations,
            "failed_rotations": self.failed_rotations,
        }
