"""
Exceptions raised by the transcoding stages.

Every failure surfaces to the caller as a ``TranscodeError`` subclass.
``DrainError`` and ``FlushedError`` are not failures: they are the
signals a codec raises from ``receive_frame`` / ``receive_packet`` to say
"nothing ready yet, send more input" and "fully drained, stop".
"""


class TranscodeError(Exception):
    """Base exception for all transcode job failures."""

    pass


class TranscodeIOError(TranscodeError):
    """Opening, reading or writing a container (or buffering samples) failed."""

    pass


class StreamNotFoundError(TranscodeError):
    """The input container has no audio stream."""

    pass


class CodecError(TranscodeError):
    """A decoder or encoder failed outside the expected drain signals."""

    pass


class ResamplerError(TranscodeError):
    """Sample format, rate or layout conversion failed."""

    pass


class FifoUnderrunError(TranscodeError):
    """Fewer samples are buffered than were requested."""

    pass


class MuxError(TranscodeError):
    """The output container rejected a header, packet or trailer."""

    pass


class CodecSignal(Exception):
    """Base class for codec control signals (not errors)."""

    pass


class DrainError(CodecSignal):
    """No output is ready yet; the codec needs more input."""

    pass


class FlushedError(CodecSignal):
    """The codec has been fully drained and will produce no more output."""

    pass
