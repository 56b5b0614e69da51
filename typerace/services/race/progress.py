from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from typerace.models import as_utc, utcnow

CHARS_PER_WORD = 5


@dataclass(frozen=True)
class ProgressReport:
    correct_chars: int
    progress: int
    wpm: int
    valid_so_far: bool

    @property
    def complete(self) -> bool:
        return self.valid_so_far and self.progress == 100


def matching_prefix_length(reference: str, typed: str) -> int:
    count = 0
    for expected, actual in zip(reference, typed):
        if expected != actual:
            break
        count += 1
    return count


def progress_percent(correct_chars: int, reference_length: int) -> int:
    if reference_length <= 0:
        return 100
    return max(0, min(100, (100 * correct_chars) // reference_length))


def words_per_minute(correct_chars: int, elapsed_seconds: float) -> int:
    minutes = (elapsed_seconds or 0) / 60.0
    if correct_chars <= 0 or minutes <= 0:
        return 0
    # half-up rounding, the value is never negative here
    return int((correct_chars / CHARS_PER_WORD) / minutes + 0.5)


def measure(reference: str, typed: str, elapsed_seconds: float) -> ProgressReport:
    """Measure a submission against the reference text.

    ``correct_chars`` counts the matching head and drives the local display;
    ``valid_so_far`` requires the whole submission to be a prefix of the
    reference and gates whether the result may be pushed to the room.
    """
    reference = reference or ''
    typed = typed or ''
    correct = matching_prefix_length(reference, typed)
    return ProgressReport(
        correct_chars=correct,
        progress=progress_percent(correct, len(reference)),
        wpm=words_per_minute(correct, elapsed_seconds),
        valid_so_far=reference.startswith(typed),
    )


def elapsed_since(start_time: Optional[datetime], now: Optional[datetime] = None) -> float:
    if start_time is None:
        return 0.0
    now = as_utc(now) if now is not None else utcnow()
    return max(0.0, (now - as_utc(start_time)).total_seconds())


def measure_since(reference: str, typed: str, start_time: Optional[datetime],
                  now: Optional[datetime] = None) -> ProgressReport:
    return measure(reference, typed, elapsed_since(start_time, now))
