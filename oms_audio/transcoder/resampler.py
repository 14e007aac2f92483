"""
Sample format / rate / layout conversion between decoder and encoder.

Wraps PyAV's ``AudioResampler`` (FFmpeg's aresample filter). The filter
graph is configured from the first frame it sees and keeps interpolation
history between calls, so one instance must only ever be fed the frames
of a single stream, in arrival order.
"""

import logging

import av
from av.audio.resampler import AudioResampler

from oms_audio.transcoder.container_reader import StreamDescriptor
from oms_audio.transcoder.errors import ResamplerError

logger = logging.getLogger(__name__)


class FrameResampler:
    """Converts decoded frames into the encoder's format, layout and rate."""

    def __init__(self, source: StreamDescriptor, sample_format: str, layout: str, sample_rate: int) -> None:
        self._source = source
        self._format = sample_format
        self._layout = layout
        self._rate = sample_rate
        try:
            self._resampler = AudioResampler(format=sample_format, layout=layout, rate=sample_rate)
        except (av.error.FFmpegError, ValueError) as e:
            raise ResamplerError(f"Could not allocate resample context: {e}") from e
        self.samples_in = 0
        self.samples_out = 0
        logger.info(
            "[resampler] %s %dHz %s -> %s %dHz %s",
            source.sample_format or "?",
            source.sample_rate,
            source.layout or f"{source.channels}ch",
            sample_format,
            sample_rate,
            layout,
        )

    def convert(self, frame: av.AudioFrame) -> list[av.AudioFrame]:
        """
        Convert one decoded frame.

        Returns:
            Zero or more frames in the target format. The filter may hold
            samples back until later calls (or ``flush``).
        """
        try:
            resampled = self._resampler.resample(frame)
        except (av.error.FFmpegError, ValueError) as e:
            raise ResamplerError(f"Could not convert input samples: {e}") from e
        self.samples_in += frame.samples
        return self._collect(resampled)

    def flush(self) -> list[av.AudioFrame]:
        """
        Return the samples still held in the filter at end of input.

        A stream shorter than the filter's delay may come out empty when
        rates differ; the loss is bounded by that delay, well under one
        encoder frame.
        """
        try:
            resampled = self._resampler.resample(None)
        except (av.error.FFmpegError, ValueError) as e:
            raise ResamplerError(f"Could not flush resampler: {e}") from e
        frames = self._collect(resampled)
        logger.debug("[resampler] Flushed: %d samples in, %d samples out", self.samples_in, self.samples_out)
        return frames

    def _collect(self, resampled) -> list[av.AudioFrame]:
        if resampled is None:
            return []
        # resampled can be a single frame or list of frames
        if not isinstance(resampled, list):
            resampled = [resampled]
        # A passthrough resampler echoes the None flush marker back
        frames = [rs_frame for rs_frame in resampled if rs_frame is not None]
        self.samples_out += sum(rs_frame.samples for rs_frame in frames)
        return frames
