from array import array

import pytest

from oms_audio.transcoder.errors import FifoUnderrunError, TranscodeIOError
from oms_audio.transcoder.sample_fifo import SampleFifo

from conftest import make_frame


def _ramp_frame(start: int, count: int, pts: int = 0):
    return make_frame("s16", "mono", 16000, count, pts=pts, values=lambda i, ch: start + i)


def _samples(frame) -> list[int]:
    data = bytes(frame.planes[0])[: frame.samples * 2]
    return array("h", data).tolist()


def test_popping_everything_returns_appended_chunks_in_order():
    fifo = SampleFifo("s16", "mono", 16000)
    fifo.append(_ramp_frame(0, 1000))
    fifo.append(_ramp_frame(1000, 600, pts=12345))  # pts is ignored by the queue

    assert fifo.size == 1600
    popped = fifo.pop_exact(1600)

    assert popped.samples == 1600
    assert _samples(popped) == list(range(1600))
    assert fifo.size == 0


def test_uneven_pops_preserve_order_across_frame_boundaries():
    fifo = SampleFifo("s16", "mono", 16000)
    for start in range(0, 3000, 750):
        fifo.append(_ramp_frame(start, 750))

    collected = []
    for count in (700, 960, 960, 380):
        collected.extend(_samples(fifo.pop_exact(count)))

    assert collected == list(range(3000))
    assert len(fifo) == 0


def test_pop_more_than_buffered_raises_underrun():
    fifo = SampleFifo("s16", "mono", 16000)
    fifo.append(_ramp_frame(0, 100))

    with pytest.raises(FifoUnderrunError):
        fifo.pop_exact(101)
    # Nothing was consumed by the failed pop
    assert fifo.size == 100


def test_pop_from_empty_fifo_raises_underrun():
    with pytest.raises(FifoUnderrunError):
        SampleFifo("s16", "mono", 16000).pop_exact(1)


def test_pop_requires_positive_count():
    with pytest.raises(ValueError):
        SampleFifo("s16", "mono", 16000).pop_exact(0)


@pytest.mark.parametrize(
    "sample_format,layout,rate",
    [("flt", "mono", 16000), ("s16", "stereo", 16000), ("s16", "mono", 48000)],
)
def test_frames_in_another_format_are_rejected(sample_format, layout, rate):
    fifo = SampleFifo("s16", "mono", 16000)
    with pytest.raises(TranscodeIOError):
        fifo.append(make_frame(sample_format, layout, rate, 64))
    assert fifo.size == 0
