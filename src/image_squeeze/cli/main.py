"""命令行入口。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from image_squeeze.core.config import WHITELIST_FORMATS, PipelineConfig, parse_preprocessor_options
from image_squeeze.core.exceptions import ImageSqueezeError, InvalidConfigurationError
from image_squeeze.core.progress import ProgressTracker
from image_squeeze.processing.pipeline import run_pipeline
from image_squeeze.utils.logging import setup_logging

app = typer.Typer(help="批量压缩图片并把优化结果写回源文件旁。")


@app.callback()
def main() -> None:
    """image-squeeze 命令行工具。"""


@app.command("run")
def run_cli(  # noqa: PLR0913
    source: List[Path] = typer.Argument(..., help="源图片文件或目录，可指定多个"),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", envvar="INPUT_WORKERS", help="工作进程数量，默认为 CPU 逻辑核数"
    ),
    resize: Optional[str] = typer.Option(
        None, "--resize", envvar="INPUT_RESIZE", help="缩放参数 (JSON5)，如 '{width: 1200}'"
    ),
    quant: Optional[str] = typer.Option(
        None, "--quant", envvar="INPUT_QUANT", help="减色参数 (JSON5)，如 '{numColors: 128}'"
    ),
    rotate: Optional[str] = typer.Option(
        None, "--rotate", envvar="INPUT_ROTATE", help="旋转参数 (JSON5)，如 '{numRotations: 1}'"
    ),
    extensions: List[str] = typer.Option(
        list(WHITELIST_FORMATS), "--extension", "-e", help="参与处理的扩展名，可指定多次"
    ),
    allow_recursive: bool = typer.Option(True, "--recursive/--no-recursive", help="是否递归扫描目录"),
    report: Optional[Path] = typer.Option(None, "--report", help="输出 CSV 统计报告的路径"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """执行批量压缩。"""

    tracker = ProgressTracker()
    setup_logging(logging.DEBUG if verbose else logging.INFO, console=tracker.console)
    logging.getLogger(__name__).debug("CLI 参数解析完成")

    if workers is not None and workers < 1:
        raise typer.BadParameter("工作进程数量必须大于 0", param_hint="--workers")

    try:
        preprocess_options = parse_preprocessor_options({"resize": resize, "quant": quant, "rotate": rotate})
    except InvalidConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    config = PipelineConfig(
        preprocess_options=preprocess_options,
        concurrency=workers,
        extensions=tuple(extensions),
        allow_recursive=allow_recursive,
        report_path=report.expanduser().resolve() if report else None,
    )

    sources = [p.expanduser().resolve() for p in source]
    try:
        summary = run_pipeline(sources, config, tracker=tracker)
    except ImageSqueezeError as exc:
        typer.echo(f"处理失败：{exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(
        f"处理完成：解码 {len(summary.jobs)} 张，跳过 {len(summary.skipped)} 张，"
        f"失败 {len(summary.failed_sources())} 张，输出 {summary.output_count} 个文件。"
    )
    if config.report_path is not None:
        typer.echo(f"报告文件：{config.report_path}")


if __name__ == "__main__":
    app()
