"""
Tenjin error taxonomy.

Only AcquisitionError (and a stream that never opens) moves a session into
the Error state. Everything else is logged and swallowed where it happens.
"""


class TenjinError(Exception):
    """Base class for all engine errors."""


class AcquisitionError(TenjinError):
    """Camera or microphone unavailable or denied."""


class StreamError(TenjinError):
    """The streaming collaborator failed to open or dropped the session."""


class AnalysisError(TenjinError):
    """The deep-analysis call failed or returned an invalid audit."""


class InvalidToolCallError(TenjinError):
    """Inbound tool-call arguments did not match the declared schema."""

    def __init__(self, name: str, detail: str):
        super().__init__(f"Invalid arguments for {name}: {detail}")
        self.name = name
        self.detail = detail
