"""测试两阶段进度跟踪与结果展示。"""

from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest
from rich.console import Console

from image_squeeze.core.models import ImageJob, OutputResult, SourceFile
from image_squeeze.core.progress import BAR_WIDTH, Phase, ProgressTracker, filled_cells


def make_tracker() -> ProgressTracker:
    console = Console(file=io.StringIO(), width=200, color_system=None)
    return ProgressTracker(console=console)


def console_output(tracker: ProgressTracker) -> str:
    return tracker.console.file.getvalue()


def make_job(original_size: int, *outputs: tuple[str, int, str | None]) -> ImageJob:
    source = SourceFile.from_path(Path("assets/logo.png"))
    job = ImageJob(job_id=1, source=source, original_size=original_size)
    for fmt, size, info in outputs:
        job.add_output(
            OutputResult(
                format=fmt,
                size=size,
                binary=b"x" * size,
                output_path=Path(f"assets/logo.{fmt}"),
                info_text=info,
            )
        )
    return job


@pytest.mark.parametrize("total", [1, 3, 7, 10, 13])
def test_filled_cells_matches_floor_of_completeness(total: int) -> None:
    for done in range(total + 1):
        assert filled_cells(done, total) == (BAR_WIDTH * done) // total


def test_filled_cells_guards_zero_and_overflow() -> None:
    assert filled_cells(0, 0) == 0
    assert filled_cells(5, 0) == 0
    assert filled_cells(12, 10) == BAR_WIDTH
    assert filled_cells(-3, 10) == 0


def test_set_progress_renders_counter_and_bar_with_offsets() -> None:
    tracker = make_tracker()
    tracker.total_offset = 4
    tracker.progress_offset = 4
    tracker.set_progress(1, 4)

    plain = tracker.render().plain
    # (4 + 1) / (4 + 4) -> 6 格
    assert plain.startswith("1/4 ")
    assert "▐" + "▨" * 6 + "╌" * 4 + "▌" in plain
    assert tracker.phase_progress[Phase.DECODING] == (1, 4)


def test_set_progress_with_zero_total_does_not_divide_by_zero() -> None:
    tracker = make_tracker()
    tracker.set_progress(0, 0)

    assert "0/0" in tracker.render().plain
    assert "╌" * BAR_WIDTH in tracker.render().plain


def test_phases_are_recorded_separately() -> None:
    tracker = make_tracker()
    tracker.begin_phase(Phase.DECODING, "decoding")
    tracker.set_progress(3, 3)
    tracker.begin_phase(Phase.ENCODING, "encoding")
    tracker.set_progress(2, 2)

    assert tracker.phase_progress == {Phase.DECODING: (3, 3), Phase.ENCODING: (2, 2)}
    assert "encoding" in tracker.render().plain


def test_results_text_shows_sizes_percent_and_info() -> None:
    tracker = make_tracker()
    tracker.track(make_job(2048, ("png", 1024, None), ("webp", 3072, "upscaled")))

    plain = tracker.results_text().plain

    assert "assets/logo.png: 2.00KB" in plain
    assert "→ 1.00KB (50.0%)" in plain
    assert "→ 3.00KB (150%) upscaled" in plain


def test_results_text_is_blank_line_without_jobs() -> None:
    assert make_tracker().results_text().plain == "\n"


def test_untracked_job_is_not_rendered() -> None:
    tracker = make_tracker()
    tracker.track(make_job(100))
    tracker.untrack(1)

    assert "logo" not in tracker.results_text().plain


def test_finish_prints_summary_once() -> None:
    tracker = make_tracker()
    tracker.set_progress(0, 0)
    tracker.track(make_job(1000, ("png", 400, None)))

    tracker.finish("Done:")
    first = console_output(tracker)
    tracker.finish("Again:")
    tracker.set_status("ignored")
    tracker.set_progress(5, 5)

    assert "0/0 ✔ Done:" in first
    assert "40.0%" in first
    assert console_output(tracker) == first
    assert tracker.finished
    assert tracker.phase_progress == {Phase.DECODING: (0, 0)}


def test_render_errors_are_logged_not_raised(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    tracker = make_tracker()

    def broken() -> None:
        raise RuntimeError("boom")

    monkeypatch.setattr(tracker, "results_text", broken)

    with caplog.at_level(logging.ERROR):
        tracker.set_status("working")
        tracker.set_progress(1, 2)
        tracker.finish("done")

    assert tracker.finished
    assert any("boom" in (record.exc_text or "") or record.exc_info for record in caplog.records)
