"""日志配置。"""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: int = logging.INFO, console: Optional[Console] = None) -> None:
    """初始化项目日志配置，工作进程名称会出现在每条日志中。

    日志与进度显示共用同一个 rich ``Console``，警告不会打断实时状态行。
    """

    logging.basicConfig(
        level=level,
        format="[%(processName)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(console=console or Console(stderr=True), show_path=False)],
        force=True,
    )
    # Pillow 的插件加载日志在 DEBUG 级别下过于冗长。
    logging.getLogger("PIL").setLevel(max(level, logging.INFO))
