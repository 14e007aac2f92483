"""
Elastic sample queue between the resampler and the encoder.

The resampler produces frames of whatever length the decoder emitted,
while the encoder wants exactly ``frame_size`` samples per call. The
FIFO absorbs the difference: frames are appended as they come and popped
in exact encoder-sized chunks. Backed by PyAV's ``AudioFifo``, which
grows as needed.
"""

import logging

import av
from av.audio.fifo import AudioFifo

from oms_audio.transcoder.errors import FifoUnderrunError, TranscodeIOError

logger = logging.getLogger(__name__)


class SampleFifo:
    """
    FIFO of PCM samples already in the encoder's format.

    Frames that do not match the configured format, layout and rate are
    rejected, so the queue never holds partially converted data.
    """

    def __init__(self, sample_format: str, layout: str, sample_rate: int) -> None:
        self._format = sample_format
        self._layout = layout
        self._rate = sample_rate
        self._fifo = AudioFifo()

    @property
    def size(self) -> int:
        """Number of samples (per channel) currently buffered."""
        return self._fifo.samples

    def __len__(self) -> int:
        return self.size

    def append(self, frame: av.AudioFrame) -> None:
        """Append every sample of ``frame`` to the end of the queue."""
        if frame.samples == 0:
            return
        if frame.format.name != self._format or frame.layout.name != self._layout or frame.sample_rate != self._rate:
            raise TranscodeIOError(
                f"Frame {frame.format.name}/{frame.layout.name}/{frame.sample_rate}Hz does not match "
                f"FIFO {self._format}/{self._layout}/{self._rate}Hz"
            )
        # AudioFifo validates pts continuity; timestamps are assigned on pop instead
        frame.pts = None
        try:
            self._fifo.write(frame)
        except (av.error.FFmpegError, ValueError) as e:
            raise TranscodeIOError(f"Could not write data to FIFO: {e}") from e

    def pop_exact(self, count: int) -> av.AudioFrame:
        """
        Remove and return exactly ``count`` samples from the front.

        Raises:
            FifoUnderrunError: Fewer than ``count`` samples are buffered.
        """
        if count <= 0:
            raise ValueError(f"count must be positive, got {count}")
        available = self._fifo.samples
        if available < count:
            raise FifoUnderrunError(f"Could not read {count} samples from FIFO holding {available}")
        frame = self._fifo.read(count)
        if frame is None or frame.samples != count:
            raise FifoUnderrunError(f"Could not read {count} samples from FIFO")
        return frame
