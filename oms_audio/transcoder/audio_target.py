"""Encode target shared by the writer, encoder and resampler."""

from dataclasses import dataclass
from fractions import Fraction

# Map channel count -> FFmpeg layout name
_CHANNEL_LAYOUT_MAP = {
    1: "mono",
    2: "stereo",
    3: "2.1",
    4: "quad",
    6: "5.1",
    8: "7.1",
}


def layout_for_channels(channels: int) -> str:
    """Map a channel count to an FFmpeg layout name (stereo when unknown)."""
    return _CHANNEL_LAYOUT_MAP.get(channels, "stereo")


@dataclass(frozen=True, slots=True)
class AudioTarget:
    """Fixed output parameters of a transcode job."""

    codec_name: str = "libopus"
    # None lets FFmpeg guess the container from the output file extension
    container_format: str | None = None
    sample_rate: int = 48000
    channels: int = 2
    bit_rate: int = 96000

    @property
    def layout(self) -> str:
        return layout_for_channels(self.channels)

    @property
    def time_base(self) -> Fraction:
        """Encoder and output stream time base: one tick per sample."""
        return Fraction(1, self.sample_rate)
