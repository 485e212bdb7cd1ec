"""根据源文件扩展名选择输出编码器。"""

from __future__ import annotations

from typing import Optional

ENCODER_MAP = {
    "png": "oxipng",
    "jpeg": "mozjpeg",
    "jpg": "mozjpeg",
    "webp": "webp",
}


def route_format(extension: str) -> Optional[str]:
    """返回扩展名对应的编码器名称，不支持时返回 None。"""

    return ENCODER_MAP.get(extension.lower().lstrip("."))
