"""Error taxonomy shared by the pipeline, camera client and web layer."""


class RingProxyError(Exception):
    """Base class for every failure the proxy reports."""


class ConfigError(RingProxyError):
    """A required setting is missing or invalid. Fatal at startup."""


class UpstreamError(RingProxyError):
    """A camera-cloud call failed (listing, snapshot, stream start)."""


class CameraNotFoundError(UpstreamError):
    """The configured camera ID is not in the account's camera list."""


class StageTimeoutError(RingProxyError, TimeoutError):
    """A bounded pipeline stage ran out of time.

    Raised when the playlist never appears or the frame extractor does not
    finish. Also a builtin `TimeoutError`, so generic handlers catch it.
    """


class ExtractionError(RingProxyError):
    """The frame extractor exited non-zero or produced no bytes."""


class ResourceError(RingProxyError):
    """Temporary directory creation failed."""
