"""数值与文件大小的格式化工具。"""

from __future__ import annotations

import math

SIZE_SUFFIXES = ("B", "KB", "MB")


def _clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(value, upper))


def format_size(size: int) -> str:
    """将字节数转换为带单位的可读字符串，例如 ``1.50MB``。"""

    if size < 0:
        raise ValueError(f"文件大小不能为负数: {size}")

    # log2(0) 无定义，直接落到最低档位。
    tier = math.floor(math.log2(size) / 10) if size > 0 else 0
    index = _clamp(tier, 0, len(SIZE_SUFFIXES) - 1)
    return f"{size / 2 ** (10 * index):.2f}{SIZE_SUFFIXES[index]}"


def to_precision(value: float, digits: int) -> str:
    """按有效数字位数格式化，保留末尾的 0（如 5 -> ``5.00``）。

    与 JavaScript 的 ``Number.prototype.toPrecision`` 一致：指数小于 -6
    或不小于 ``digits`` 时使用 ``1.23e+3`` 形式，指数不补零。
    """

    mantissa, exponent = format(value, f".{digits - 1}e").split("e")
    power = int(exponent)
    if power < -6 or power >= digits:
        return f"{mantissa}e{'+' if power >= 0 else '-'}{abs(power)}"
    return format(value, f".{digits - 1 - power}f")
