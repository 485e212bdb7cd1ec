"""测试日志输出与进度显示共用同一个控制台。"""

from __future__ import annotations

import io
import logging

import pytest
from rich.console import Console
from rich.logging import RichHandler

from image_squeeze.utils.logging import setup_logging


@pytest.fixture
def restore_root_logger():
    root, pil = logging.getLogger(), logging.getLogger("PIL")
    handlers, level, pil_level = root.handlers[:], root.level, pil.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    pil.setLevel(pil_level)


def test_log_records_go_through_shared_console(restore_root_logger: logging.Logger) -> None:
    console = Console(file=io.StringIO(), width=200, color_system=None)

    setup_logging(logging.INFO, console=console)
    logging.getLogger("image_squeeze.test").warning("解码失败 bad.png")

    handlers = restore_root_logger.handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0], RichHandler)
    assert "解码失败 bad.png" in console.file.getvalue()


def test_debug_level_keeps_pillow_quiet(restore_root_logger: logging.Logger) -> None:
    setup_logging(logging.DEBUG, console=Console(file=io.StringIO()))

    assert restore_root_logger.level == logging.DEBUG
    assert logging.getLogger("PIL").level == logging.INFO
