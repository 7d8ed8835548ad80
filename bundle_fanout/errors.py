class BundleFanoutError(Exception):
    """Base class for errors raised by the bundle fan-out client."""

    reason = "error"

class InvalidBundleError(BundleFanoutError, ValueError):
    """The bundle handed to the submitter is malformed."""

class BlockhashUnavailableError(BundleFanoutError):
    """The ledger could not supply a reference blockhash for the bundle."""

    reason = "blockhash_unavailable"

class EndpointError(BundleFanoutError):
    """A relay endpoint refused or failed to answer a bundle submission.

    These are captured inside an endpoint outcome and never propagate out
    of the submitter.
    """

    reason = "endpoint_error"

    def __init__(self, url: str, message: str):
        super().__init__(f"{url}: {message}")
        self.url = url

class RateLimitedError(EndpointError):
    reason = "rate_limited"

class RelayHTTPError(EndpointError):
    reason = "http_error"

    def __init__(self, url: str, status: int, body: str = ""):
        super().__init__(url, f"HTTP {status} {body[:200]}".rstrip())
        self.status = status

class RelayTransportError(EndpointError):
    reason = "transport_error"

class RelayRPCError(EndpointError):
    reason = "rpc_error"
