"""
Decoder and encoder wrappers with an explicit send/receive state machine.

PyAV's ``CodecContext.decode`` / ``encode`` run FFmpeg's send/receive loop
internally and return every frame (or packet) that is ready. These
wrappers keep that output in a queue and expose it one item at a time, so
the pipeline can follow the usual codec protocol:

    codec.send_packet(packet)            # or send_frame(frame)
    while True:
        try:
            item = codec.receive_frame() # or receive_packet()
        except DrainError:
            break                        # needs more input
        except FlushedError:
            break                        # fully drained

Sending ``None`` starts drain mode. The state is tracked explicitly:

    IDLE -> RUNNING (first send) -> DRAINING (send None) -> FLUSHED

Draining a PyAV codec context twice crashes FFmpeg, so sending anything
after ``None`` is rejected with ``CodecError`` instead of reaching it.
"""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import TYPE_CHECKING

import av

from oms_audio.transcoder.audio_target import AudioTarget
from oms_audio.transcoder.errors import CodecError, DrainError, FlushedError

if TYPE_CHECKING:
    from oms_audio.transcoder.container_reader import ContainerReader
    from oms_audio.transcoder.container_writer import ContainerWriter

logger = logging.getLogger(__name__)


class CodecState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    FLUSHED = "flushed"


class _StatefulCodec:
    """Shared queue and state handling for the decoder and encoder."""

    _tag = "codec"

    def __init__(self) -> None:
        self._state = CodecState.IDLE
        self._pending: deque = deque()
        self._opened = False
        self._closed = False

    @property
    def state(self) -> CodecState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    def _check_can_send(self, item: object) -> None:
        if not self.is_open:
            raise CodecError(f"[{self._tag}] Codec is not open")
        if self._state in (CodecState.DRAINING, CodecState.FLUSHED):
            kind = "flush" if item is None else "input"
            raise CodecError(f"[{self._tag}] Cannot send {kind} after drain mode started")

    def _after_send(self, item: object, produced: list) -> None:
        self._pending.extend(produced)
        self._state = CodecState.DRAINING if item is None else CodecState.RUNNING

    def _receive(self):
        if self._pending:
            return self._pending.popleft()
        if self._state is CodecState.DRAINING:
            self._state = CodecState.FLUSHED
            logger.debug("[%s] Flushed", self._tag)
        if self._state is CodecState.FLUSHED:
            raise FlushedError(f"[{self._tag}] Fully drained")
        raise DrainError(f"[{self._tag}] Needs more input")

    def close(self) -> None:
        """Release the codec handle. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        self._release()
        logger.debug("[%s] Closed in state %s", self._tag, self._state.value)

    def _release(self) -> None:
        raise NotImplementedError

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class AudioDecoder(_StatefulCodec):
    """
    Decoder bound to an input audio stream.

    Uses the demuxer's own codec context for the stream, which already
    carries the codec parameters and extradata from the container (needed
    for codecs like AAC-in-MP4, Vorbis and Opus).
    """

    _tag = "decoder"

    def __init__(self, reader: ContainerReader, stream_index: int, skip_invalid_packets: bool = False) -> None:
        """
        Args:
            reader: Reader that owns the input container.
            stream_index: Index of the audio stream to decode.
            skip_invalid_packets: If True, packets the decoder rejects as
                invalid data are logged and dropped instead of failing.
        """
        super().__init__()
        self._codec_context = reader.stream(stream_index).codec_context
        self._stream_index = stream_index
        self._skip_invalid_packets = skip_invalid_packets
        self.packets_skipped = 0

    def open(self) -> None:
        try:
            self._codec_context.open(strict=False)
        except (av.error.FFmpegError, ValueError) as e:
            raise CodecError(f"Could not open input codec {self._codec_context.name}: {e}") from e
        self._opened = True
        logger.debug("[decoder] Opened %s for stream #%d", self._codec_context.name, self._stream_index)

    def send_packet(self, packet: av.Packet | None) -> None:
        """Feed one packet, or None to start draining."""
        self._check_can_send(packet)
        try:
            frames = self._codec_context.decode(packet)
        except av.error.InvalidDataError as e:
            if packet is not None and self._skip_invalid_packets:
                self.packets_skipped += 1
                logger.debug("[decoder] Decode error (skipping packet): %s", e)
                self._state = CodecState.RUNNING
                return
            raise CodecError(f"Could not decode packet: {e}") from e
        except av.error.FFmpegError as e:
            raise CodecError(f"Could not decode packet: {e}") from e
        self._after_send(packet, frames)

    def receive_frame(self) -> av.AudioFrame:
        """
        Return the next decoded frame.

        Raises:
            DrainError: No frame is ready; send the next packet.
            FlushedError: Drain finished; no more frames will come.
        """
        return self._receive()

    def _release(self) -> None:
        # The codec context belongs to the input container, which frees it
        self._codec_context = None


class AudioEncoder(_StatefulCodec):
    """
    Encoder bound to the writer's output audio stream.

    Every frame sent must hold exactly ``frame_size`` samples, except the
    last one before the flush, which may be shorter.
    """

    _tag = "encoder"

    def __init__(self, writer: ContainerWriter, default_frame_size: int = 1024) -> None:
        """
        Args:
            writer: Writer whose output stream this encoder feeds.
            default_frame_size: Chunk length used for codecs that accept
                frames of any size (their ``frame_size`` is 0).
        """
        super().__init__()
        self._stream = writer.stream
        self._default_frame_size = default_frame_size
        self._short_frame_sent = False

    @property
    def codec_context(self):
        return self._stream.codec_context

    @property
    def frame_size(self) -> int:
        """Samples required per frame (the last frame may be shorter)."""
        return self.codec_context.frame_size or self._default_frame_size

    @property
    def sample_format(self) -> str:
        return self.codec_context.format.name

    @property
    def layout(self) -> str:
        return self.codec_context.layout.name

    @property
    def sample_rate(self) -> int:
        return self.codec_context.sample_rate

    def open(self, target: AudioTarget) -> None:
        """Configure the codec for ``target`` and open it."""
        ctx = self.codec_context
        formats = ctx.codec.audio_formats
        if not formats:
            raise CodecError(f"Encoder {ctx.name} reports no supported sample formats")
        try:
            # Encoder-native format: the first one the codec lists
            ctx.format = formats[0]
            ctx.layout = target.layout
            ctx.sample_rate = target.sample_rate
            ctx.bit_rate = target.bit_rate
            ctx.time_base = target.time_base
            ctx.open()
        except (av.error.FFmpegError, ValueError) as e:
            raise CodecError(f"Could not open output codec {ctx.name}: {e}") from e
        self._opened = True
        logger.info(
            "[encoder] Opened %s %dHz %s %s @%dk, frame_size=%d",
            ctx.name,
            ctx.sample_rate,
            ctx.layout.name,
            ctx.format.name,
            target.bit_rate // 1000,
            self.frame_size,
        )

    def send_frame(self, frame: av.AudioFrame | None) -> None:
        """Feed one frame, or None to start draining."""
        self._check_can_send(frame)
        if frame is not None:
            if frame.samples > self.frame_size:
                raise CodecError(f"Frame of {frame.samples} samples exceeds encoder frame size {self.frame_size}")
            if self._short_frame_sent:
                raise CodecError("Only the last frame before the flush may be shorter than the frame size")
            if frame.samples < self.frame_size:
                self._short_frame_sent = True
        try:
            packets = self._stream.encode(frame)
        except (av.error.FFmpegError, ValueError) as e:
            raise CodecError(f"Could not encode frame: {e}") from e
        self._after_send(frame, packets)

    def receive_packet(self) -> av.Packet:
        """
        Return the next encoded packet.

        Raises:
            DrainError: No packet is ready; send the next frame.
            FlushedError: Drain finished; no more packets will come.
        """
        return self._receive()

    def _release(self) -> None:
        # The codec context belongs to the output stream, which the writer frees
        self._stream = None
