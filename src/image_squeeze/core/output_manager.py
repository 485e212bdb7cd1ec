"""输出路径推导与文件写入。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Set

from image_squeeze.core.exceptions import ImageWriteError

LOGGER = logging.getLogger(__name__)


def derive_output_path(source_path: Path, extension: str) -> Path:
    """与源文件同目录、同名，扩展名替换为编码器产出的扩展名。"""

    return source_path.with_name(f"{source_path.stem}.{extension.lstrip('.')}")


def write_output(destination: Path, binary: bytes) -> None:
    """将编码结果写入磁盘。"""

    try:
        destination.write_bytes(binary)
    except OSError as exc:
        raise ImageWriteError(f"写入文件失败: {destination}") from exc
    LOGGER.debug("已写入 %s (%d 字节)", destination, len(binary))


def claim_output_path(source_path: Path, extension: str, reserved_paths: Set[Path]) -> Path:
    """推导输出路径并登记到本次运行的占用集合。

    ``reserved_paths`` 预先包含全部源文件路径：文件可以覆盖自身，
    但不能覆盖其他源文件或其他任务已经认领的输出。
    """

    destination = derive_output_path(source_path, extension)
    if destination != source_path and destination in reserved_paths:
        raise ImageWriteError(f"输出路径已被占用，跳过写入: {destination}")
    reserved_paths.add(destination)
    return destination
