"""Provider contract and the guarded call wrapper used for fan-out."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, TypeVar

from ..models import ProviderHit, ProviderPage

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MovieProvider(ABC):
    """Adapter over one external or static movie catalog.

    Implementations must be safe to call concurrently.
    """

    name: str

    @abstractmethod
    async def search(self, query: str, page: int, page_size: int) -> ProviderPage:
        """Return hits matching ``query`` for the 1-indexed ``page``."""

    @abstractmethod
    async def popular(self, page: int, page_size: int) -> ProviderPage:
        """Return the provider's most popular hits."""

    @abstractmethod
    async def get_by_id(self, external_id: str) -> ProviderHit | None:
        """Return a single hit or ``None`` when the provider does not know it."""


@dataclass(slots=True)
class ProviderOutcome(Generic[T]):
    """Result of one provider call: a value or a degraded marker."""

    provider: str
    value: T | None = None
    error: str | None = None

    @property
    def degraded(self) -> bool:
        return self.error is not None

    def unwrap_or(self, default: T) -> T:
        if self.degraded or self.value is None:
            return default
        return self.value


@dataclass(slots=True)
class FanOutResult:
    """Merged hits from a set of provider page calls."""

    hits: list[ProviderHit] = field(default_factory=list)
    total: int = 0
    degraded: list[str] = field(default_factory=list)


async def guarded_call(
    provider: MovieProvider,
    operation: str,
    call: Callable[[], Awaitable[T]],
    *,
    timeout: float | None = None,
) -> ProviderOutcome[T]:
    """Run ``call`` and convert any failure into a degraded outcome."""

    try:
        if timeout is not None:
            value = await asyncio.wait_for(call(), timeout=timeout)
        else:
            value = await call()
    except asyncio.TimeoutError:
        logger.warning("Provider %s %s timed out after %ss", provider.name, operation, timeout)
        return ProviderOutcome(provider=provider.name, error="timeout")
    except Exception as exc:
        logger.warning("Provider %s %s failed: %s", provider.name, operation, exc)
        return ProviderOutcome(provider=provider.name, error=str(exc) or type(exc).__name__)
    return ProviderOutcome(provider=provider.name, value=value)


async def fan_out_pages(
    providers: list[MovieProvider],
    operation: str,
    call: Callable[[MovieProvider], Awaitable[ProviderPage]],
    *,
    timeout: float | None = None,
) -> FanOutResult:
    """Call every provider concurrently and merge pages in provider order."""

    outcomes = await asyncio.gather(
        *(
            guarded_call(provider, operation, lambda p=provider: call(p), timeout=timeout)
            for provider in providers
        )
    )
    merged = FanOutResult()
    for outcome in outcomes:
        if outcome.degraded:
            merged.degraded.append(outcome.provider)
        page = outcome.unwrap_or(ProviderPage())
        merged.hits.extend(page.items)
        merged.total += page.total
    return merged
