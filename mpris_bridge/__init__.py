"""mpris-bridge: MPRIS media players over HTTP and Server-Sent Events."""

__version__ = "0.1.0"
