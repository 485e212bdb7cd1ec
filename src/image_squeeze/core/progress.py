"""两阶段（解码、编码）的进度跟踪与结果展示。"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Optional

from rich.console import Console
from rich.live import Live
from rich.text import Text

from image_squeeze.core.formatting import format_size, to_precision
from image_squeeze.core.models import ImageJob

LOGGER = logging.getLogger(__name__)

BAR_WIDTH = 10


class Phase(Enum):
    DECODING = "decoding"
    ENCODING = "encoding"
    FINISHED = "finished"


def filled_cells(completed: int, total: int) -> int:
    """进度条中已填充的格数，总数为 0 时视为 0%。"""

    if total <= 0:
        return 0
    return max(0, min(BAR_WIDTH, math.floor(BAR_WIDTH * completed / total)))


class ProgressTracker:
    """单次运行内的进度状态，只允许在事件循环线程中修改。

    ``progress_offset`` / ``total_offset`` 用于把两个阶段拼接成一条总进度条：
    解码阶段结束后，编码阶段的完成数会叠加在解码完成数之上。
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console(stderr=True)
        self.progress_offset = 0
        self.total_offset = 0
        self.phase = Phase.DECODING
        self.phase_progress: dict[Phase, tuple[int, int]] = {}
        self._jobs: dict[int, ImageJob] = {}
        self._status = ""
        self._counter = ""
        self._bar = ""
        self._live: Optional[Live] = None

    @property
    def finished(self) -> bool:
        return self.phase is Phase.FINISHED

    def track(self, job: ImageJob) -> None:
        self._jobs[job.job_id] = job

    def untrack(self, job_id: int) -> None:
        self._jobs.pop(job_id, None)

    def begin_phase(self, phase: Phase, status: str) -> None:
        if self.finished:
            return
        self.phase = phase
        self.set_status(status)

    def set_status(self, text: Optional[str]) -> None:
        if self.finished:
            LOGGER.debug("进度已结束，忽略状态更新：%s", text)
            return
        self._status = text or ""
        self._update()

    def set_progress(self, done: int, total: int) -> None:
        if self.finished:
            LOGGER.debug("进度已结束，忽略进度更新：%d/%d", done, total)
            return
        self.phase_progress[self.phase] = (done, total)
        self._counter = f"{done}/{total}"
        cells = filled_cells(self.progress_offset + done, self.total_offset + total)
        self._bar = f"▐{'▨' * cells}{'╌' * (BAR_WIDTH - cells)}▌ "
        self._update()

    def finish(self, text: str) -> None:
        """输出最终结果并进入终止状态，重复调用无效果。"""

        if self.finished:
            return
        self.phase = Phase.FINISHED
        try:
            final = Text(f"{self._counter} " if self._counter else "", style="dim")
            final.append("✔ ", style="green")
            final.append(text, style="bold")
            final.append_text(self.results_text())
            self._ensure_live().update(final, refresh=True)
        except Exception:  # noqa: BLE001
            LOGGER.exception("渲染最终结果失败")
        finally:
            if self._live is not None:
                self._live.stop()

    def render(self) -> Text:
        """当前状态行与结果列表。"""

        line = Text(self._counter + " ", style="dim")
        line.append(self._bar, style="cyan")
        line.append(self._status, style="bold")
        line.append_text(self.results_text())
        return line

    def results_text(self) -> Text:
        out = Text()
        for job in self._jobs.values():
            out.append("\n ")
            out.append(str(job.source.path), style="cyan")
            out.append(f": {format_size(job.original_size)}")
            for output in job.outputs:
                out.append("\n  ")
                out.append("└", style="dim")
                out.append(" ")
                out.append(str(output.output_path).ljust(5), style="cyan")
                out.append(f" → {format_size(output.size)} (")
                out.append(
                    f"{_percent(output.size, job.original_size)}%",
                    style="red" if output.size > job.original_size else "green",
                )
                out.append(")")
                if output.info_text:
                    out.append(f" {output.info_text}", style="yellow")
        if not out.plain:
            out.append("\n")
        return out

    def _ensure_live(self) -> Live:
        if self._live is None:
            self._live = Live(
                console=self.console,
                auto_refresh=False,
                transient=False,
                redirect_stdout=False,
                redirect_stderr=False,
            )
            self._live.start()
        return self._live

    def stop(self) -> None:
        """在未正常结束时释放显示（例如流水线致命失败）。"""

        if self.finished:
            return
        self.phase = Phase.FINISHED
        if self._live is not None:
            self._live.stop()

    def _update(self) -> None:
        try:
            self._ensure_live().update(self.render(), refresh=True)
        except Exception:  # noqa: BLE001
            LOGGER.exception("刷新进度显示失败")


def _percent(output_size: int, original_size: int) -> str:
    if original_size <= 0:
        return "∞"
    return to_precision(output_size / original_size * 100, 3)
