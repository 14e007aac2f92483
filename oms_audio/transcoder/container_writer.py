"""
PyAV-based container writer for a single audio stream.

Creates the output file, declares one audio stream using the target
codec, and muxes encoded packets into it. The stream's codec context is
the encoder (see ``AudioEncoder``), so packets come back already tagged
with this stream and its time base.
"""

from __future__ import annotations

import logging

import av

from oms_audio.transcoder.audio_target import AudioTarget
from oms_audio.transcoder.errors import MuxError, TranscodeIOError

logger = logging.getLogger(__name__)


class ContainerWriter:
    """
    Muxer over a single output file.

    Call order: ``create`` -> ``write_header`` -> ``write_packet`` ... ->
    ``write_trailer``. ``close`` releases the file on every exit path; if
    the trailer was never written the file is left incomplete and must be
    treated as invalid.
    """

    def __init__(self, path: str, container: av.container.OutputContainer, stream) -> None:
        self._path = path
        self._container: av.container.OutputContainer | None = container
        self._stream = stream
        self._header_written = False
        self._finalized = False
        self.packets_written = 0
        self.bytes_written = 0

    @classmethod
    def create(cls, path: str, target: AudioTarget) -> ContainerWriter:
        """Create ``path`` and declare one audio stream for ``target``."""
        try:
            container = av.open(str(path), mode="w", format=target.container_format)
        except (av.error.FFmpegError, OSError, ValueError) as e:
            raise TranscodeIOError(f"Failed to open output file {path}: {e}") from e

        try:
            stream = container.add_stream(target.codec_name, rate=target.sample_rate)
            stream.time_base = target.time_base
        except (av.error.FFmpegError, ValueError) as e:
            container.close()
            raise TranscodeIOError(f"Failed to add {target.codec_name} stream to {path}: {e}") from e

        logger.debug("[writer] Created %s (%s) with %s stream", path, container.format.name, target.codec_name)
        return cls(str(path), container, stream)

    @property
    def stream(self):
        """The output audio stream (its codec context is the encoder)."""
        return self._stream

    def _require_open(self) -> av.container.OutputContainer:
        if self._container is None:
            raise MuxError(f"Output file {self._path} is closed")
        return self._container

    def write_header(self) -> None:
        container = self._require_open()
        try:
            container.start_encoding()
        except (av.error.FFmpegError, ValueError) as e:
            raise MuxError(f"Could not write output file header: {e}") from e
        self._header_written = True

    def write_packet(self, packet: av.Packet) -> None:
        """Mux one encoded packet. Timestamps must not decrease."""
        container = self._require_open()
        if not self._header_written:
            raise MuxError("write_header must be called before write_packet")
        size = packet.size
        try:
            container.mux_one(packet)
        except (av.error.FFmpegError, ValueError) as e:
            raise MuxError(f"Could not write frame: {e}") from e
        self.packets_written += 1
        self.bytes_written += size

    def write_trailer(self) -> None:
        """Finalize the file. Must be the last call on the writer."""
        container = self._require_open()
        if not self._header_written:
            raise MuxError("write_header must be called before write_trailer")
        self._container = None
        try:
            # Closing an output container writes the trailer
            container.close()
        except (av.error.FFmpegError, OSError) as e:
            raise MuxError(f"Could not write output file trailer: {e}") from e
        self._finalized = True
        logger.debug("[writer] Finalized %s: %d packets, %d bytes", self._path, self.packets_written, self.bytes_written)

    @property
    def finalized(self) -> bool:
        return self._finalized

    def close(self) -> None:
        if self._container is None:
            return
        container, self._container = self._container, None
        logger.warning("[writer] %s closed before trailer was written; output is incomplete", self._path)
        try:
            container.close()
        except (av.error.FFmpegError, OSError) as e:
            # Only reached while unwinding another failure; keep that one
            logger.warning("[writer] Error closing %s: %s", self._path, e)

    def __enter__(self) -> ContainerWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
