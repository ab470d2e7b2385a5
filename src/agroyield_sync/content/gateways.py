"""Resolution of content addresses through public storage gateways."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from ..cache import SingleFlight
from ..constants import fallback_image
from ..exceptions import FetchError
from ..utils import is_valid_content_address
from .config import GatewayConfig

logger = logging.getLogger(__name__)


class ContentGatewayResolver:
    """Resolve content addresses to image URLs and JSON documents.

    Content addresses are immutable, so successful resolutions are cached for
    the lifetime of the resolver. Gateway exhaustion is not an error for
    callers: images fall back to a category placeholder and JSON to ``None``.
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or GatewayConfig()
        self._client = client
        self._owns_client = client is None
        self._image_urls: dict[tuple[str, str | None], str] = {}
        self._documents: dict[str, Any] = {}
        self._flights = SingleFlight()

    @property
    def config(self) -> GatewayConfig:
        return self._config

    def get_gateway_urls(self, ref: str) -> list[str]:
        if not is_valid_content_address(ref):
            return []
        return [f"{gateway}{ref}" for gateway in self._config.image_gateways]

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------
    def optimistic_image_url(self, ref: str | None, category: str | None = None) -> str:
        """Return a URL usable immediately: cached, most reliable gateway, or fallback."""

        if not is_valid_content_address(ref):
            return fallback_image(category)
        assert ref is not None
        cached = self._image_urls.get((ref, category))
        if cached is not None:
            return cached
        return f"{self._config.image_gateways[0]}{ref}"

    async def resolve_image_url(self, ref: str | None, category: str | None = None) -> str:
        """Return the first gateway URL that answers for ``ref``, or the category fallback."""

        if not is_valid_content_address(ref):
            logger.debug("Invalid content address %r, using fallback image", ref)
            return fallback_image(category)
        assert ref is not None

        key = (ref, category)
        cached = self._image_urls.get(key)
        if cached is not None:
            return cached

        try:
            return await self._flights.run(
                ("image", ref, category), lambda: self._probe_image(ref, category)
            )
        except FetchError as exc:
            logger.warning("All image gateways failed for %s: %s", ref, exc.message)
            return fallback_image(category)

    def watch_image(
        self,
        ref: str | None,
        category: str | None = None,
        on_change: Callable[[str], None] | None = None,
    ) -> ImageSource:
        return ImageSource(self, ref, category, on_change)

    async def _probe_image(self, ref: str, category: str | None) -> str:
        client = self._http()
        for gateway in self._config.image_gateways:
            url = f"{gateway}{ref}"
            try:
                response = await client.head(
                    url, timeout=self._config.probe_timeout, follow_redirects=True
                )
            except httpx.HTTPError as exc:
                logger.debug("Image gateway %s failed: %s", gateway, exc)
                continue
            if response.is_success:
                logger.debug("Image gateway %s succeeded for %s", gateway, ref)
                self._image_urls[(ref, category)] = url
                return url
            logger.debug("Image gateway %s answered %s for %s", gateway, response.status_code, ref)

        raise FetchError(
            "No image gateway answered",
            content_ref=ref,
            gateways=tuple(self._config.image_gateways),
        )

    # ------------------------------------------------------------------
    # JSON documents
    # ------------------------------------------------------------------
    async def resolve_json(self, ref: str | None) -> Any | None:
        """Fetch and parse the JSON document at ``ref``; ``None`` if unreachable."""

        if not is_valid_content_address(ref):
            logger.debug("Invalid content address %r, skipping JSON fetch", ref)
            return None
        assert ref is not None

        if ref in self._documents:
            logger.debug("Using cached JSON for %s", ref)
            return self._documents[ref]

        try:
            return await self._flights.run(("json", ref), lambda: self._fetch_json(ref))
        except FetchError as exc:
            logger.warning("Failed to fetch JSON from all gateways for %s: %s", ref, exc.message)
            return None

    async def _fetch_json(self, ref: str) -> Any:
        client = self._http()
        errors: dict[str, str] = {}
        for gateway in self._config.json_gateways:
            url = f"{gateway}{ref}"
            try:
                response = await client.get(
                    url,
                    headers={"Accept": "application/json"},
                    timeout=self._config.json_timeout,
                    follow_redirects=True,
                )
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.debug("JSON gateway %s failed: %s", gateway, exc)
                errors[gateway] = str(exc)
                continue

            logger.debug("Fetched JSON for %s from %s", ref, gateway)
            self._documents[ref] = data
            return data

        raise FetchError(
            "No JSON gateway answered",
            content_ref=ref,
            gateways=tuple(self._config.json_gateways),
            details={"errors": errors},
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def clear(self) -> None:
        self._image_urls.clear()
        self._documents.clear()

    async def aclose(self) -> None:
        self._flights.cancel_all()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client


class ImageSource:
    """Image URL that starts optimistic and is upgraded once a gateway answers."""

    def __init__(
        self,
        resolver: ContentGatewayResolver,
        ref: str | None,
        category: str | None = None,
        on_change: Callable[[str], None] | None = None,
    ) -> None:
        self._resolver = resolver
        self._ref = ref
        self._category = category
        self._on_change = on_change
        self._alive = True
        self.url = resolver.optimistic_image_url(ref, category)

    @property
    def closed(self) -> bool:
        return not self._alive

    async def refresh(self) -> str:
        url = await self._resolver.resolve_image_url(self._ref, self._category)
        if not self._alive:
            return self.url
        if url != self.url:
            self.url = url
            if self._on_change is not None:
                self._on_change(url)
        return self.url

    def close(self) -> None:
        self._alive = False
