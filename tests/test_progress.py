from datetime import datetime, timedelta, timezone

import pytest

from typerace.services.race.progress import (
    elapsed_since,
    matching_prefix_length,
    measure,
    measure_since,
    progress_percent,
    words_per_minute,
)

TEXT = "The quick brown fox jumps over the lazy dog."


def test_worked_example():
    report = measure('abcde', 'abc', 30)
    assert report.correct_chars == 3
    assert report.progress == 60
    assert report.wpm == 1
    assert report.valid_so_far is True
    assert report.complete is False


def test_divergent_input_is_measured_but_not_valid():
    report = measure('abcde', 'abx', 30)
    assert report.correct_chars == 2
    assert report.progress == 40
    assert report.valid_so_far is False


def test_text_after_typo_does_not_count():
    assert matching_prefix_length('abcde', 'axcde') == 1


@pytest.mark.parametrize('typed', ['', 'T', 'The quick', TEXT[:-1]])
def test_progress_below_100_until_exact(typed):
    assert measure(TEXT, typed, 60).progress < 100


def test_progress_100_only_for_exact_text():
    report = measure(TEXT, TEXT, 60)
    assert report.progress == 100
    assert report.complete is True


def test_progress_non_decreasing_as_correct_input_grows():
    previous = -1
    for i in range(len(TEXT) + 1):
        current = measure(TEXT, TEXT[:i], 60).progress
        assert current >= previous
        previous = current
    assert previous == 100


def test_overlong_input_clamps_and_is_not_propagatable():
    report = measure('abc', 'abcdef', 60)
    assert report.correct_chars == 3
    assert report.progress == 100
    assert report.valid_so_far is False
    assert report.complete is False


def test_empty_reference_is_already_complete():
    report = measure('', '', 10)
    assert report.progress == 100
    assert report.complete is True
    assert progress_percent(0, 0) == 100


@pytest.mark.parametrize('elapsed', [0, 1, 60, 3600])
def test_wpm_zero_without_correct_chars(elapsed):
    assert words_per_minute(0, elapsed) == 0
    assert measure('abc', 'x', elapsed).wpm == 0


def test_wpm_zero_before_any_time_passes():
    assert measure('abcde', 'abc', 0).wpm == 0


def test_wpm_rounds_half_up():
    # 5 chars = 1 word; 1 word in 0.4 min = 2.5 wpm
    assert words_per_minute(5, 24) == 3


def test_wpm_can_fall_as_time_passes():
    assert words_per_minute(50, 60) > words_per_minute(50, 120)


def test_elapsed_since_handles_naive_and_future_times():
    now = datetime(2026, 1, 1, 12, 0, 30, tzinfo=timezone.utc)
    naive_start = datetime(2026, 1, 1, 12, 0, 0)
    assert elapsed_since(naive_start, now) == 30.0
    assert elapsed_since(now + timedelta(seconds=5), now) == 0.0
    assert elapsed_since(None, now) == 0.0


def test_measure_since_uses_start_time():
    start = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    report = measure_since('abcde', 'abc', start, now=start + timedelta(seconds=30))
    assert report.wpm == 1
