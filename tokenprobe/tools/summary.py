"""Token summary lookup used for the closing ``done`` event."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from tokenprobe.timeline.events import TokenInfo


@dataclass
class TokenSummary:
    info: TokenInfo
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def placeholder(cls, address: str) -> TokenSummary:
        return cls(info=TokenInfo(address=address))


class SummarySource(ABC):
    @abstractmethod
    async def fetch(self, token_address: str) -> TokenSummary: ...


class HttpSummarySource(SummarySource):
    """Reads ``{base_url}/api/tokens/{address}``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    async def fetch(self, token_address: str) -> TokenSummary:
        url = f"{self._base_url}/api/tokens/{token_address}"
        if self._client is not None:
            resp = await self._client.get(url, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url)
        resp.raise_for_status()
        data = resp.json()
        return TokenSummary(
            info=TokenInfo(
                address=data.get("address") or token_address,
                name=data.get("name") or "",
                symbol=data.get("symbol") or "",
                image_url=data.get("imageUrl") or "",
            ),
            data=data,
        )
