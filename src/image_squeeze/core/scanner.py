"""文件扫描与筛选逻辑。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Sequence

from image_squeeze.core.config import WHITELIST_FORMATS
from image_squeeze.core.models import SourceFile

LOGGER = logging.getLogger(__name__)


def _iter_candidate_files(path: Path, recursive: bool) -> Iterator[Path]:
    """遍历路径下的所有文件。"""

    if path.is_file():
        yield path
        return

    if not path.is_dir():
        LOGGER.warning("输入路径不存在：%s", path)
        return

    iterator = path.rglob("*") if recursive else path.glob("*")
    for candidate in iterator:
        if candidate.is_file():
            yield candidate


def collect_source_files(
    paths: Sequence[Path],
    extensions: Sequence[str] = WHITELIST_FORMATS,
    *,
    recursive: bool = True,
) -> list[SourceFile]:
    """扫描输入路径，返回扩展名在白名单内的源文件列表（按路径排序）。"""

    allowed = {ext.lower().lstrip(".") for ext in extensions}
    collected: list[SourceFile] = []
    seen_paths: set[Path] = set()

    for root in paths:
        for candidate in _iter_candidate_files(Path(root), recursive):
            if candidate in seen_paths:
                continue
            seen_paths.add(candidate)

            source = SourceFile.from_path(candidate)
            if source.extension not in allowed:
                LOGGER.info("%s 格式不在处理范围内，已忽略：%s", source.extension or "无扩展名", candidate)
                continue
            collected.append(source)

    collected.sort(key=lambda x: str(x.path).lower())
    return collected
