"""External debugging-session driver.

The coordinator only needs the ``ResourceDriver`` surface. ``CDPDriver`` is
the stock implementation: it finds a Chrome DevTools endpoint on the local
port range and tracks which page targets it is attached to. What happens
inside those pages is up to the automation scripts that run there.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from .config import CDP_BASE_PORT, CDP_HOST, CDP_PORT_SPREAD
from .exceptions import ResourceUnavailable
from .models import DriverConfig

logger = logging.getLogger(__name__)


class ResourceDriver(Protocol):
    async def is_available(self) -> bool: ...

    async def start(self, config: DriverConfig) -> None: ...

    async def stop(self) -> None: ...

    def get_connection_count(self) -> int: ...

    async def set_focus_state(self, focused: bool) -> None: ...

    async def get_away_actions(self) -> int: ...

    async def set_pro_status(self, is_pro: bool) -> None: ...

    async def hide_overlay(self) -> None: ...


def candidate_ports(base: int = CDP_BASE_PORT, spread: int = CDP_PORT_SPREAD) -> list[int]:
    """Base port first, then alternating outward: 9000, 9001, 8999, ..."""
    ports = [base]
    for offset in range(1, spread + 1):
        ports.extend([base + offset, base - offset])
    return ports


class CDPDriver:
    def __init__(
        self,
        *,
        host: str = CDP_HOST,
        ports: list[int] | None = None,
        timeout: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.host = host
        self.ports = ports or candidate_ports()
        self.timeout = timeout
        self._transport = transport
        self._port: int | None = None
        self._targets: dict[str, dict] = {}
        self._config: DriverConfig | None = None
        self._focused = True
        self._away_actions = 0
        self._is_pro = False
        self._overlay_visible = False

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    @property
    def config(self) -> DriverConfig | None:
        return self._config

    @property
    def overlay_visible(self) -> bool:
        return self._overlay_visible

    async def _find_port(self, client: httpx.AsyncClient) -> int | None:
        for port in self.ports:
            try:
                resp = await client.get(f"http://{self.host}:{port}/json/version")
                if resp.status_code == 200:
                    return port
            except httpx.HTTPError:
                continue
        return None

    async def is_available(self) -> bool:
        try:
            async with self._client() as client:
                port = await self._find_port(client)
        except Exception:
            logger.debug("CDP probe failed", exc_info=True)
            return False
        if port is None:
            logger.debug("CDP not found on %s ports %s", self.host, self.ports)
            return False
        self._port = port
        return True

    async def start(self, config: DriverConfig) -> None:
        """Attach to page targets for ``config``. Safe to call repeatedly.

        Raises ``ResourceUnavailable`` when no endpoint answers. Pages picked
        up while the window is unfocused count as away actions.
        """
        self._config = config
        async with self._client() as client:
            port = self._port if self._port is not None else await self._find_port(client)
            if port is None:
                self._targets = {}
                raise ResourceUnavailable(f"no CDP endpoint on {self.host} ports {self.ports}")
            try:
                resp = await client.get(f"http://{self.host}:{port}/json/list")
                resp.raise_for_status()
                listing = resp.json()
            except (httpx.HTTPError, ValueError) as e:
                self._port = None
                self._targets = {}
                raise ResourceUnavailable(f"CDP target listing failed on port {port}") from e
        self._port = port
        pages = [t for t in listing if isinstance(t, dict) and t.get("type") == "page" and t.get("id")]
        if not config.is_background_mode:
            pages = pages[:1]
        if not self._focused:
            self._away_actions += sum(1 for t in pages if t["id"] not in self._targets)
        self._targets = {t["id"]: t for t in pages}
        self._overlay_visible = config.is_background_mode and bool(pages)
        self._is_pro = config.is_pro
        logger.debug(
            "CDP attached to %d target(s) on port %d (background=%s)",
            len(self._targets), port, config.is_background_mode,
        )

    async def stop(self) -> None:
        self._targets = {}
        self._overlay_visible = False

    def get_connection_count(self) -> int:
        return len(self._targets)

    async def set_focus_state(self, focused: bool) -> None:
        self._focused = focused

    async def get_away_actions(self) -> int:
        count, self._away_actions = self._away_actions, 0
        return count

    async def set_pro_status(self, is_pro: bool) -> None:
        self._is_pro = is_pro

    async def hide_overlay(self) -> None:
        self._overlay_visible = False
