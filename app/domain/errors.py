"""Domain exceptions shared by the pool, the sources and the refill client."""


class PoolStoreError(Exception):
    """The backing store rejected a pool or interaction operation."""


class PoolExhaustedError(Exception):
    """No tracks are left to sample for the caller."""


class SourceError(Exception):
    """A transient failure talking to an external catalogue provider."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class SourceThrottledError(SourceError):
    """The provider explicitly asked us to slow down (HTTP 429)."""


class SourceTimeoutError(SourceError):
    """The provider did not answer within the request timeout."""


class RetryExhaustedError(Exception):
    """Raised after every attempt of a retried call has failed."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed after {attempts} attempts. Last error: {last_error}")
