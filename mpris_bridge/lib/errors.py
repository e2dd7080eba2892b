"""
Error taxonomy for the bridge.

Every error carries the HTTP status it maps to; ``error_middleware`` in
``lib.http_utils`` turns them into plain-text responses.  Streaming routes
never raise these to the client; they become a single ``error`` event.
"""


class BridgeError(Exception):
    status = 500


# -- Client errors (4xx) --

class NotFound(BridgeError):
    status = 404


class MissingParameter(BridgeError):
    status = 400


class InvalidParameter(BridgeError):
    status = 400


class MissingOffset(MissingParameter):
    def __init__(self):
        super().__init__("missing offset")


class InvalidOffset(InvalidParameter):
    def __init__(self):
        super().__init__("invalid offset")


class MissingTrackId(MissingParameter):
    def __init__(self):
        super().__init__("missing track id")


class MissingPosition(MissingParameter):
    def __init__(self):
        super().__init__("missing position")


class InvalidPosition(InvalidParameter):
    def __init__(self):
        super().__init__("invalid position")


class InvalidTrackId(InvalidParameter):
    pass


# -- Server errors (5xx) --

class RemoteUnavailable(BridgeError):
    pass


class ProxyUnavailable(RemoteUnavailable):
    """The destination does not exist or does not implement the Player interface."""


class RemoteCallFailed(BridgeError):
    pass


class SeekFailed(RemoteCallFailed):
    pass


class ProtocolShapeViolation(BridgeError):
    """The remote side sent data outside the published MPRIS schema.

    This is a contract breach, not a user error: it aborts the call path
    instead of being papered over with defaults.
    """


class IOFailure(BridgeError):
    pass


class VolumeFailed(IOFailure):
    pass
