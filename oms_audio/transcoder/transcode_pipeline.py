"""
File-to-file audio transcode pipeline.

Architecture:
  ContainerReader -> AudioDecoder -> FrameResampler -> SampleFifo
      -> AudioEncoder -> ContainerWriter

The decoder emits frames of whatever length the input codec uses (1024
for AAC, 1152 for MP3, ...) while the encoder wants exactly
``frame_size`` samples per call (960 for Opus at 48 kHz). Resampled
samples are queued in the FIFO and popped in encoder-sized chunks; only
the very last chunk before the encoder flush may be shorter.

Each chunk handed to the encoder is stamped with the job's sample clock,
which starts at 0 and advances by the chunk's sample count. The clock
belongs to the job, so concurrent jobs never disturb each other's
timestamps.

Usage:
    stats = transcode("input.m4a", "output.opus")
"""

import logging
from contextlib import ExitStack
from dataclasses import dataclass

import av

from oms_audio.configs import settings
from oms_audio.transcoder.audio_codec import AudioDecoder, AudioEncoder
from oms_audio.transcoder.audio_target import AudioTarget
from oms_audio.transcoder.container_reader import ContainerReader
from oms_audio.transcoder.container_writer import ContainerWriter
from oms_audio.transcoder.errors import DrainError, FlushedError, TranscodeError
from oms_audio.transcoder.resampler import FrameResampler
from oms_audio.transcoder.sample_fifo import SampleFifo

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TranscodeStats:
    """Counters collected over one transcode job."""

    packets_read: int = 0
    packets_ignored: int = 0  # packets of non-audio streams
    invalid_packets_skipped: int = 0
    frames_decoded: int = 0
    chunks_encoded: int = 0
    samples_encoded: int = 0
    packets_written: int = 0
    bytes_written: int = 0
    sample_rate: int = 0

    @property
    def duration_seconds(self) -> float:
        if self.sample_rate == 0:
            return 0.0
        return self.samples_encoded / self.sample_rate


class SampleClock:
    """Per-job presentation clock counted in output samples."""

    def __init__(self) -> None:
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def stamp(self, frame: av.AudioFrame) -> int:
        """Set ``frame.pts`` to the current time, then advance past it."""
        pts = self._value
        frame.pts = pts
        self._value += frame.samples
        return pts


class AudioTranscodeJob:
    """
    One input file -> one output file conversion.

    Every stage is opened once and closed exactly once when ``run``
    returns or raises. A job is single-use.
    """

    def __init__(
        self,
        input_path: str,
        output_path: str,
        target: AudioTarget | None = None,
        *,
        skip_invalid_packets: bool | None = None,
        default_frame_size: int | None = None,
    ) -> None:
        self.input_path = str(input_path)
        self.output_path = str(output_path)
        self.target = target or settings.audio_target()
        self._skip_invalid_packets = (
            settings.transcode_skip_invalid_packets if skip_invalid_packets is None else skip_invalid_packets
        )
        self._default_frame_size = default_frame_size or settings.transcode_default_frame_size

        self._reader: ContainerReader | None = None
        self._decoder: AudioDecoder | None = None
        self._resampler: FrameResampler | None = None
        self._fifo: SampleFifo | None = None
        self._encoder: AudioEncoder | None = None
        self._writer: ContainerWriter | None = None
        self._clock = SampleClock()
        self._audio_index = -1
        self._input_exhausted = False
        self._started = False
        self.stats = TranscodeStats(sample_rate=self.target.sample_rate)

    @property
    def clock(self) -> SampleClock:
        return self._clock

    def run(self) -> TranscodeStats:
        """
        Run the whole conversion.

        Raises:
            TranscodeError: Any stage failed. The output file, if it was
                created, is incomplete and must not be used.
        """
        if self._started:
            raise RuntimeError("AudioTranscodeJob instances are single-use")
        self._started = True

        try:
            with ExitStack() as stack:
                self._open(stack)
                self._transcode()
        except TranscodeError as e:
            logger.error("[pipeline] Transcode %s -> %s failed: %s", self.input_path, self.output_path, e)
            raise

        logger.info(
            "[pipeline] Complete: %s -> %s, %d packets read, %d frames decoded, %d chunks (%.2fs) encoded, "
            "%d packets / %d bytes written",
            self.input_path,
            self.output_path,
            self.stats.packets_read,
            self.stats.frames_decoded,
            self.stats.chunks_encoded,
            self.stats.duration_seconds,
            self.stats.packets_written,
            self.stats.bytes_written,
        )
        return self.stats

    # ── Setup ────────────────────────────────────────────────────────

    def _open(self, stack: ExitStack) -> None:
        """Open every stage, registering its release on ``stack`` immediately."""
        self._reader = stack.enter_context(ContainerReader.open(self.input_path))
        self._audio_index, descriptor = self._reader.find_audio_stream()

        self._decoder = stack.enter_context(
            AudioDecoder(self._reader, self._audio_index, skip_invalid_packets=self._skip_invalid_packets)
        )
        self._decoder.open()

        self._writer = stack.enter_context(ContainerWriter.create(self.output_path, self.target))
        self._encoder = stack.enter_context(AudioEncoder(self._writer, default_frame_size=self._default_frame_size))
        self._encoder.open(self.target)

        self._resampler = FrameResampler(
            descriptor,
            sample_format=self._encoder.sample_format,
            layout=self._encoder.layout,
            sample_rate=self._encoder.sample_rate,
        )
        self._fifo = SampleFifo(self._encoder.sample_format, self._encoder.layout, self._encoder.sample_rate)

    # ── Main loop ────────────────────────────────────────────────────

    def _transcode(self) -> None:
        fifo = self._fifo
        frame_size = self._encoder.frame_size

        self._writer.write_header()

        while True:
            # Decode until at least one encoder frame is buffered, or input ends
            while fifo.size < frame_size and not self._input_exhausted:
                self._read_and_decode()

            if fifo.size < frame_size:
                break

            while fifo.size >= frame_size:
                self._encode_chunk(frame_size)

            if self._input_exhausted:
                break

        self._finish(frame_size)
        self._writer.write_trailer()

    def _read_and_decode(self) -> None:
        packet = self._reader.read_packet()
        if packet is None:
            self._input_exhausted = True
            logger.debug("[pipeline] End of input after %d packets", self.stats.packets_read)
            return

        self.stats.packets_read += 1
        if packet.stream_index != self._audio_index:
            self.stats.packets_ignored += 1
            return

        self._decoder.send_packet(packet)
        self._receive_decoded_frames()

    def _receive_decoded_frames(self) -> None:
        while True:
            try:
                frame = self._decoder.receive_frame()
            except (DrainError, FlushedError):
                return
            self.stats.frames_decoded += 1
            for rs_frame in self._resampler.convert(frame):
                self._fifo.append(rs_frame)

    def _encode_chunk(self, samples: int) -> None:
        chunk = self._fifo.pop_exact(samples)
        chunk.time_base = self.target.time_base
        self._clock.stamp(chunk)
        self._encoder.send_frame(chunk)
        self.stats.chunks_encoded += 1
        self.stats.samples_encoded += chunk.samples
        self._write_encoded_packets()

    def _write_encoded_packets(self) -> None:
        while True:
            try:
                packet = self._encoder.receive_packet()
            except (DrainError, FlushedError):
                return
            self._writer.write_packet(packet)
            self.stats.packets_written += 1

    # ── End of stream ────────────────────────────────────────────────

    def _finish(self, frame_size: int) -> None:
        """Drain decoder and resampler, emit the last chunks, flush the encoder."""
        self._decoder.send_packet(None)
        self._receive_decoded_frames()
        self.stats.invalid_packets_skipped = self._decoder.packets_skipped

        for rs_frame in self._resampler.flush():
            self._fifo.append(rs_frame)

        while self._fifo.size >= frame_size:
            self._encode_chunk(frame_size)

        # Final short chunk, sized to whatever is left (skipped when empty)
        remaining = self._fifo.size
        if remaining > 0:
            logger.debug("[pipeline] Final chunk: %d of %d samples", remaining, frame_size)
            self._encode_chunk(remaining)

        self._encoder.send_frame(None)
        self._write_encoded_packets()
        self.stats.bytes_written = self._writer.bytes_written


def transcode(input_path: str, output_path: str, target: AudioTarget | None = None) -> TranscodeStats:
    """
    Convert the audio stream of ``input_path`` into ``output_path``.

    Args:
        input_path: Container with at least one decodable audio stream.
        output_path: File to create. Its container format is taken from
            the target, or guessed from the extension.
        target: Encode target; defaults to the configured one
            (libopus, 48 kHz stereo, 96 kbit/s).

    Returns:
        Counters describing the finished job.

    Raises:
        TranscodeError: The job failed; see the subclass for the stage.
    """
    return AudioTranscodeJob(input_path, output_path, target).run()
