import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from oms_audio.configs import settings
from oms_audio.transcoder.errors import TranscodeError
from oms_audio.transcoder.transcode_pipeline import TranscodeStats, transcode

logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TranscodeOutcome:
    """Result of one job in a batch conversion."""

    input_path: str
    output_path: str
    stats: TranscodeStats | None = None
    error: TranscodeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _run_job(input_path: str, output_path: str) -> TranscodeOutcome:
    try:
        stats = transcode(input_path, output_path)
    except TranscodeError as e:
        return TranscodeOutcome(input_path, output_path, error=e)
    return TranscodeOutcome(input_path, output_path, stats=stats)


def transcode_files(jobs: Iterable[tuple[str, str]], max_workers: int | None = None) -> list[TranscodeOutcome]:
    """
    Convert several (input, output) pairs concurrently.

    Jobs share no state, so each runs on its own worker thread. A failed
    job is reported in its outcome and does not affect the others.

    Args:
        jobs: ``(input_path, output_path)`` pairs.
        max_workers: Thread count (defaults to ``settings.transcode_max_workers``).

    Returns:
        One outcome per job, in the order the jobs were given.
    """
    jobs = [(str(src), str(dst)) for src, dst in jobs]
    workers = max(1, max_workers or settings.transcode_max_workers)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="transcode") as executor:
        futures = [executor.submit(_run_job, src, dst) for src, dst in jobs]
        outcomes = [future.result() for future in futures]

    failed = sum(1 for outcome in outcomes if not outcome.ok)
    logger.info("[batch] %d jobs finished, %d failed", len(outcomes), failed)
    return outcomes
