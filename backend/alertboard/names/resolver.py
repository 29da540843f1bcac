"""Cache-aside resolution of numeric cluster/tenant ids to display names."""

import asyncio

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from alertboard.config import settings
from alertboard.errors import NameResolutionError

logger = structlog.get_logger()


class NameInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = ""
    id: str = ""
    name: str = ""
    tenant_id: str = Field("", alias="tenantId")
    tenant_name: str = Field("", alias="tenantName")


class _NameApiResponse(BaseModel):
    success: bool = False
    data: NameInfo = Field(default_factory=NameInfo)


class NameResolver:
    """Resolve ids through the name service, memoizing successes for the process lifetime.

    Reads are plain dict lookups. A miss takes a lock scoped to that id only, so
    concurrent lookups of the same id share one request and unrelated ids never
    wait on each other. Failed lookups are not cached; the next call retries.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport
        self._cache: dict[str, NameInfo] = {}
        self._inflight: dict[str, asyncio.Lock] = {}

    @classmethod
    def from_settings(cls) -> "NameResolver":
        return cls(settings.NAME_SERVICE_URL, timeout=settings.NAME_SERVICE_TIMEOUT_SECONDS)

    def cached(self, id_: str) -> NameInfo | None:
        return self._cache.get(id_)

    async def resolve(self, id_: str) -> NameInfo:
        if not id_:
            raise NameResolutionError("empty id", fallback=NameInfo())

        if not id_.isascii() or not id_.isdigit():
            return NameInfo(id=id_, name=id_)

        info = self._cache.get(id_)
        if info is not None:
            return info

        lock = self._inflight.setdefault(id_, asyncio.Lock())
        try:
            async with lock:
                info = self._cache.get(id_)
                if info is not None:
                    return info
                info = await self._fetch(id_)
                self._cache[id_] = info
        finally:
            self._inflight.pop(id_, None)
        return info

    async def resolve_or_fallback(self, id_: str) -> NameInfo:
        try:
            return await self.resolve(id_)
        except NameResolutionError as exc:
            logger.debug("name_resolution_failed", id=id_, error=str(exc))
            return exc.fallback

    async def _fetch(self, id_: str) -> NameInfo:
        fallback = NameInfo(id=id_, name=id_)
        if not self.base_url:
            raise NameResolutionError("name service not configured", fallback=fallback)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(self.base_url, params={"id": id_})
        except httpx.HTTPError as exc:
            raise NameResolutionError(f"name service request failed: {exc}", fallback=fallback) from exc

        if resp.status_code != 200:
            raise NameResolutionError(f"name service returned status {resp.status_code}", fallback=fallback)

        try:
            payload = _NameApiResponse.model_validate_json(resp.content)
        except ValidationError as exc:
            raise NameResolutionError("malformed name service response", fallback=fallback) from exc

        if not payload.success:
            raise NameResolutionError("name service returned success=false", fallback=fallback)

        return payload.data
