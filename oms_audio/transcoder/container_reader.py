"""
PyAV-based container reader.

Opens any container FFmpeg can demux (MP4/M4A, ADTS, MKV, Ogg, WAV, ...),
selects its best audio stream and hands out compressed packets one at a
time. Decoding is left to ``AudioDecoder``; this module only advances the
demux cursor.

Usage:
    with ContainerReader.open("input.m4a") as reader:
        index, descriptor = reader.find_audio_stream()
        while (packet := reader.read_packet()) is not None:
            if packet.stream_index != index:
                continue
            ...
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from fractions import Fraction

import av

from oms_audio.transcoder.errors import StreamNotFoundError, TranscodeIOError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StreamDescriptor:
    """Metadata about the discovered input audio stream."""

    index: int
    codec_name: str
    sample_rate: int
    channels: int
    layout: str
    sample_format: str
    time_base: Fraction


class ContainerReader:
    """
    Demuxer over a single input file.

    ``read_packet`` returns packets for every stream in the container;
    filtering to the audio stream is the caller's job. The empty flush
    packets PyAV appends at end-of-stream are dropped here, since draining
    the decoder is done explicitly with ``send_packet(None)``.
    """

    def __init__(self, path: str, container: av.container.InputContainer) -> None:
        self._path = path
        self._container: av.container.InputContainer | None = container
        self._packets: Iterator[av.Packet] | None = None

    @classmethod
    def open(cls, path: str) -> ContainerReader:
        """Open ``path`` for demuxing."""
        try:
            container = av.open(str(path), mode="r")
        except (av.error.FFmpegError, OSError) as e:
            raise TranscodeIOError(f"Could not open input file {path}: {e}") from e
        logger.debug("[reader] Opened %s (%s)", path, container.format.name)
        return cls(str(path), container)

    def _require_open(self) -> av.container.InputContainer:
        if self._container is None:
            raise TranscodeIOError(f"Input file {self._path} is closed")
        return self._container

    def find_audio_stream(self) -> tuple[int, StreamDescriptor]:
        """
        Select the best audio stream and describe it.

        Returns:
            ``(stream_index, descriptor)`` for the selected stream.

        Raises:
            StreamNotFoundError: The container has no audio stream.
        """
        container = self._require_open()
        stream = container.streams.best("audio")
        if stream is None:
            raise StreamNotFoundError(f"Failed to find audio stream in {self._path}")

        codec_ctx = stream.codec_context
        layout = codec_ctx.layout
        descriptor = StreamDescriptor(
            index=stream.index,
            codec_name=codec_ctx.name,
            sample_rate=codec_ctx.sample_rate,
            channels=len(layout.channels) if layout else 0,
            layout=layout.name if layout else "",
            sample_format=codec_ctx.format.name if codec_ctx.format else "",
            time_base=stream.time_base or Fraction(1, codec_ctx.sample_rate or 1),
        )
        logger.info(
            "[reader] Audio: stream #%d %s %dHz %dch (%s)",
            descriptor.index,
            descriptor.codec_name,
            descriptor.sample_rate,
            descriptor.channels,
            descriptor.sample_format or "unknown format",
        )
        return descriptor.index, descriptor

    def stream(self, index: int) -> av.stream.Stream:
        """Return the PyAV stream object at ``index``."""
        return self._require_open().streams[index]

    def read_packet(self) -> av.Packet | None:
        """
        Read the next compressed packet.

        Returns:
            The next packet of any stream, or None at end of input.
        """
        container = self._require_open()
        if self._packets is None:
            self._packets = container.demux()

        while True:
            try:
                packet = next(self._packets, None)
            except av.error.FFmpegError as e:
                raise TranscodeIOError(f"Could not read packet from {self._path}: {e}") from e
            if packet is None:
                return None
            # End-of-stream flush markers carry no data
            if packet.size == 0:
                continue
            return packet

    def close(self) -> None:
        if self._container is None:
            return
        container, self._container = self._container, None
        self._packets = None
        container.close()
        logger.debug("[reader] Closed %s", self._path)

    def __enter__(self) -> ContainerReader:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
