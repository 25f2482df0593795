"""Ring snapshot proxy package.

This package serves JPEG stills from a single Ring camera over HTTP: a cheap
low-res snapshot passthrough and a high-res frame grabbed from the live stream
behind a single-flight cache. Modules cover configuration, the camera client,
frame extraction, the pipeline, token persistence and the Flask app.
"""

# Nothing to export at package import time; modules provide the functionality.
__all__ = []
