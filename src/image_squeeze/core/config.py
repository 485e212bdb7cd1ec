"""处理任务的配置模型与预处理参数解析。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

import json5

from image_squeeze.core.exceptions import InvalidConfigurationError

WHITELIST_FORMATS: tuple[str, ...] = ("png", "jpeg", "jpg", "webp")

# 与 processing.preprocessors.PREPROCESSORS 的键保持一致，按执行顺序排列。
PREPROCESSOR_NAMES: tuple[str, ...] = ("resize", "quant", "rotate")

PreprocessOptions = Mapping[str, Any]


@dataclass(slots=True)
class EncodePolicy:
    """编码优化策略，固定为自动寻找满足视觉质量目标的最低质量。"""

    mode: str = "auto"
    butteraugli_target: float = 1.4
    max_optimizer_rounds: int = 6


@dataclass(slots=True)
class PipelineConfig:
    """单次批处理任务的配置集合。"""

    preprocess_options: PreprocessOptions = field(default_factory=dict)
    concurrency: Optional[int] = None
    extensions: Sequence[str] = WHITELIST_FORMATS
    allow_recursive: bool = True
    encode_policy: EncodePolicy = field(default_factory=EncodePolicy)
    report_path: Optional[Path] = None


def parse_preprocessor_options(raw: Mapping[str, Optional[str]]) -> dict[str, Any]:
    """将命令行传入的 JSON5 字符串解析为预处理参数。

    只保留已知预处理器的键，空值表示未启用。
    """

    options: dict[str, Any] = {}
    for name in PREPROCESSOR_NAMES:
        value = raw.get(name)
        if not value:
            continue
        try:
            options[name] = json5.loads(value)
        except ValueError as exc:
            raise InvalidConfigurationError(f"无法解析预处理参数 {name}: {value}") from exc
    return options
