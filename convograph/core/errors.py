"""Error taxonomy for provider calls and derivations."""


class ProviderFailure(Exception):
    """A single provider call failed (network, non-2xx, timeout, bad payload)."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider}: {reason}")


class MalformedReply(ProviderFailure):
    """Provider answered at the transport level but the payload failed its schema."""


class AllProvidersExhausted(Exception):
    """Every provider in a chain failed. Callers substitute a default value."""

    def __init__(self, chain: str, failures: list[ProviderFailure]):
        self.chain = chain
        self.failures = failures
        names = ", ".join(f.provider for f in failures) or "none"
        super().__init__(f"All providers exhausted for chain '{chain}' (tried: {names})")


class ProviderConfigurationError(Exception):
    """A chain cannot be built because no provider is configured for it."""
