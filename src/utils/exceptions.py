"""
Custom exceptions for the streaming bot.

Every failure the orchestrator can observe maps onto one of these types so
that the advance-or-stop decision is made from the type, not from the text.
"""


class StreamBotException(Exception):
    """
    Base exception for every streaming bot error.

    Attributes:
        message (str): Detailed error message
        code (int): Optional error code
    """
    def __init__(self, message: str, code: int = None):
        self.message = message
        self.code = code
        super().__init__(self.message)


class QueueError(StreamBotException):
    """
    Raised for invalid queue operations requested by the command layer.

    Examples:
        >>> raise QueueError("No queue item with id 42")
    """
    pass


class SinkConnectionError(StreamBotException):
    """
    Raised when the voice sink cannot be reached.

    Fatal for the current attempt: reported, the queue does not advance.
    """
    pass


class ResolutionError(StreamBotException):
    """
    Raised when a source cannot be resolved or prepared for playback.

    The item is marked failed and the queue moves on.
    """
    pass


class ProtectedContentError(ResolutionError):
    """
    Raised when a source turns out to be a webpage rather than a stream,
    either up front or because FFmpeg could not read it.

    Reported distinctly so the requester knows to watch it in a browser.
    """
    pass


class PipelineError(StreamBotException):
    """
    Raised when FFmpeg or the voice transport fails mid-stream.

    Examples:
        >>> raise PipelineError("ffmpeg exited with status 1")
    """
    pass
