"""Ordered provider fallback chain.

Tries providers strictly in priority order and returns the first response
that passes schema validation. Per-provider failures are logged and absorbed;
only exhaustion of the whole chain is reported to the caller.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

from convograph.core.errors import (
    AllProvidersExhausted,
    MalformedReply,
    ProviderConfigurationError,
    ProviderFailure,
)
from convograph.core.logging import get_logger

logger = get_logger(__name__)

ReqT = TypeVar("ReqT", bound=BaseModel)
RespT = TypeVar("RespT", bound=BaseModel)


class Provider(ABC, Generic[ReqT, RespT]):
    """Uniform adapter around one external backend."""

    name: str = "provider"
    response_model: type[BaseModel]

    @abstractmethod
    async def call(self, request: ReqT) -> Any:
        """Perform the raw call. Returns a payload to be schema-checked."""


@dataclass(frozen=True)
class ChainResult(Generic[RespT]):
    """Validated response and the provider that produced it."""

    result: RespT
    provider_used: str


class ProviderChain(Generic[ReqT, RespT]):
    """Invoke providers in order until one returns a valid response."""

    def __init__(
        self,
        providers: Sequence[Provider[ReqT, RespT]],
        name: str = "chain",
        timeout: float = 15.0,
    ):
        if not providers:
            raise ProviderConfigurationError(f"No providers configured for chain '{name}'")
        self.providers = list(providers)
        self.name = name
        self.timeout = timeout

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self.providers]

    async def _attempt(self, provider: Provider[ReqT, RespT], request: ReqT) -> RespT:
        try:
            raw = await asyncio.wait_for(provider.call(request), timeout=self.timeout)
        except TimeoutError as e:
            raise ProviderFailure(provider.name, f"timed out after {self.timeout}s") from e
        except ProviderFailure:
            raise
        except Exception as e:
            raise ProviderFailure(provider.name, f"{type(e).__name__}: {e}") from e

        if isinstance(raw, provider.response_model):
            return raw
        try:
            return provider.response_model.model_validate(raw)
        except ValidationError as e:
            raise MalformedReply(provider.name, f"schema validation failed: {e.error_count()} errors") from e

    async def invoke(self, request: ReqT) -> ChainResult[RespT]:
        """
        Run the chain.

        Args:
            request: Provider request model

        Returns:
            ChainResult with the first valid response

        Raises:
            AllProvidersExhausted: If every provider failed
        """
        failures: list[ProviderFailure] = []

        for provider in self.providers:
            try:
                result = await self._attempt(provider, request)
            except ProviderFailure as failure:
                logger.warning(f"Provider {failure.provider} failed in chain '{self.name}': {failure.reason}")
                failures.append(failure)
                continue

            if failures:
                logger.info(f"Chain '{self.name}' recovered via {provider.name} after {len(failures)} failure(s)")
            return ChainResult(result=result, provider_used=provider.name)

        raise AllProvidersExhausted(self.name, failures)
