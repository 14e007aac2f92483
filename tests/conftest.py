"""
Pytest configuration for transcoder tests.

Input media is synthesised with PyAV at test time so no binary fixtures
are checked in. Settings overrides can be placed in a local .env file.
"""

import math
from array import array
from fractions import Fraction
from pathlib import Path

import av
import pytest
from dotenv import load_dotenv

# Load .env file from project root
project_root = Path(__file__).parent.parent
load_dotenv(project_root / ".env")

_LAYOUT_CHANNELS = {"mono": 1, "stereo": 2, "5.1": 6}


def make_frame(
    sample_format: str,
    layout: str,
    sample_rate: int,
    samples: int,
    pts: int | None = 0,
    values=None,
) -> av.AudioFrame:
    """
    Build an audio frame. ``values`` is a callable ``(sample_index, channel) -> number``;
    when omitted the frame is silent.
    """
    frame = av.AudioFrame(format=sample_format, layout=layout, samples=samples)
    frame.sample_rate = sample_rate
    frame.time_base = Fraction(1, sample_rate)
    frame.pts = pts

    channels = _LAYOUT_CHANNELS[layout]
    fmt = frame.format
    if values is None:
        for plane in frame.planes:
            plane.update(bytes(plane.buffer_size))
        return frame

    typecode = {"s16": "h", "s32": "i", "flt": "f", "dbl": "d"}[fmt.packed.name]
    if fmt.is_planar:
        for ch, plane in enumerate(frame.planes):
            plane.update(array(typecode, (values(i, ch) for i in range(samples))).tobytes())
    else:
        data = array(typecode, (values(i, ch) for i in range(samples) for ch in range(channels)))
        frame.planes[0].update(data.tobytes())
    return frame


def sine(rate: int, freq: float = 440.0, amplitude: float = 0.5, integer_scale: int | None = None):
    def _value(i, ch):
        v = amplitude * math.sin(2 * math.pi * freq * i / rate + ch)
        return int(v * integer_scale) if integer_scale else v

    return _value


def _encode_tone(container, stream, total: int, sample_rate: int, layout: str) -> None:
    """Encode ``total`` samples of a float sine tone through ``stream``, flushing at the end."""
    tone = sine(sample_rate)
    written = 0
    while written < total:
        n = min(1024, total - written)
        frame = make_frame("fltp", layout, sample_rate, n, pts=written, values=lambda i, ch: tone(written + i, ch))
        for packet in stream.encode(frame):
            container.mux(packet)
        written += n
    for packet in stream.encode(None):
        container.mux(packet)


def _encode_blank_video(container, stream, frames: int) -> None:
    for i in range(frames):
        frame = av.VideoFrame(64, 64, "yuv420p")
        for plane in frame.planes:
            plane.update(bytes(plane.buffer_size))
        frame.pts = i
        frame.time_base = Fraction(1, 25)
        for packet in stream.encode(frame):
            container.mux(packet)
    for packet in stream.encode(None):
        container.mux(packet)


def _add_video_stream(container):
    stream = container.add_stream("mpeg4", rate=25)
    stream.width = 64
    stream.height = 64
    stream.pix_fmt = "yuv420p"
    return stream


def write_aac_file(
    path: Path, seconds: float = 2.0, sample_rate: int = 44100, layout: str = "stereo", container_format=None
) -> Path:
    """Encode a sine tone as AAC (M4A by default, raw ADTS with ``container_format="adts"``)."""
    with av.open(str(path), mode="w", format=container_format) as container:
        stream = container.add_stream("aac", rate=sample_rate)
        stream.codec_context.layout = layout
        _encode_tone(container, stream, int(seconds * sample_rate), sample_rate, layout)
    return path


def corrupt_adts_frames(path: Path, every: int = 5) -> int:
    """
    Zero the payload of every ``every``-th ADTS frame, keeping the headers
    intact so the file still demuxes. The first and last frames are left
    alone. Returns the number of frames corrupted.
    """
    data = bytearray(path.read_bytes())
    offsets = []
    pos = 0
    while pos + 7 <= len(data):
        assert data[pos] == 0xFF and data[pos + 1] & 0xF0 == 0xF0, f"lost ADTS sync at byte {pos}"
        header_size = 7 if data[pos + 1] & 0x01 else 9
        frame_length = ((data[pos + 3] & 0x03) << 11) | (data[pos + 4] << 3) | (data[pos + 5] >> 5)
        offsets.append((pos + header_size, pos + frame_length))
        pos += frame_length

    corrupted = 0
    for start, end in offsets[every:-1:every]:
        data[start:end] = bytes(end - start)
        corrupted += 1
    path.write_bytes(bytes(data))
    return corrupted


def write_wav_file(
    path: Path, total_samples: int, sample_rate: int = 48000, layout: str = "stereo", chunk: int = 4096
) -> Path:
    """Write a 16-bit PCM sine tone into a WAV file."""
    with av.open(str(path), mode="w") as container:
        stream = container.add_stream("pcm_s16le", rate=sample_rate)
        stream.codec_context.layout = layout
        tone = sine(sample_rate, integer_scale=32767)
        written = 0
        while written < total_samples:
            n = min(chunk, total_samples - written)
            frame = make_frame("s16", layout, sample_rate, n, pts=written, values=lambda i, ch: tone(written + i, ch))
            for packet in stream.encode(frame):
                container.mux(packet)
            written += n
        for packet in stream.encode(None):
            container.mux(packet)
    return path


def write_video_only_file(path: Path, frames: int = 10) -> Path:
    """Write a tiny MPEG-4 video with no audio stream."""
    with av.open(str(path), mode="w") as container:
        _encode_blank_video(container, _add_video_stream(container), frames)
    return path


def write_video_with_audio_file(path: Path, seconds: float = 2.0, sample_rate: int = 44100) -> Path:
    """
    Write an MP4 whose first stream is MPEG-4 video at 25 fps and whose
    second stream is a stereo AAC tone of the same length.
    """
    with av.open(str(path), mode="w") as container:
        video = _add_video_stream(container)
        audio = container.add_stream("aac", rate=sample_rate)
        audio.codec_context.layout = "stereo"
        _encode_blank_video(container, video, int(seconds * 25))
        _encode_tone(container, audio, int(seconds * sample_rate), sample_rate, "stereo")
    return path


def decoded_samples(path: Path) -> tuple[int, int]:
    """Decode the first audio stream of ``path``; return (total samples, sample rate)."""
    total = 0
    rate = 0
    with av.open(str(path)) as container:
        for frame in container.decode(audio=0):
            total += frame.samples
            rate = frame.sample_rate
    return total, rate


@pytest.fixture
def require_libopus():
    if "libopus" not in av.codecs_available:
        pytest.skip("FFmpeg build has no libopus encoder")


@pytest.fixture
def aac_input(tmp_path) -> Path:
    return write_aac_file(tmp_path / "input.m4a", seconds=2.0, sample_rate=44100)


@pytest.fixture
def pcm_target():
    """A target every FFmpeg build can encode: 16-bit PCM in WAV, 48 kHz stereo."""
    from oms_audio.transcoder.audio_target import AudioTarget

    return AudioTarget(codec_name="pcm_s16le", container_format="wav", sample_rate=48000, channels=2, bit_rate=0)
