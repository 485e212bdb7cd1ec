"""报告生成工具。"""

from __future__ import annotations

import csv
from pathlib import Path

from image_squeeze.core.formatting import to_precision
from image_squeeze.core.models import RunSummary

HEADER = ["source_path", "output_path", "format", "original_size", "output_size", "percent", "quality", "status", "message"]


def write_csv_report(summary: RunSummary, report_path: Path) -> Path:
    """将处理前后的大小统计写入 CSV 报告。"""

    report_path.parent.mkdir(parents=True, exist_ok=True)
    with report_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADER)
        for job in summary.jobs:
            for output in job.outputs:
                writer.writerow(
                    [
                        str(job.source.path),
                        str(output.output_path),
                        output.format,
                        job.original_size,
                        output.size,
                        _format_percent(output.size, job.original_size),
                        "" if output.quality is None else output.quality,
                        "optimized",
                        output.info_text or "",
                    ]
                )
        for source in summary.skipped:
            writer.writerow([str(source.path), "", "", "", "", "", "", "skipped", "没有匹配的编码器"])
        for failure in summary.failures:
            writer.writerow(
                [
                    str(failure.source.path),
                    "",
                    failure.encoder or "",
                    "",
                    "",
                    "",
                    "",
                    f"error-{failure.stage}",
                    failure.message,
                ]
            )
    return report_path


def _format_percent(output_size: int, original_size: int) -> str:
    if original_size <= 0:
        return ""
    return to_precision(output_size / original_size * 100, 3)
