"""编码前的预处理：缩放、减色与旋转。"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from PIL import Image, ImageOps

from image_squeeze.core.exceptions import InvalidConfigurationError
from image_squeeze.core.models import DecodedImage

LOGGER = logging.getLogger(__name__)

RESIZE_METHODS = {
    "lanczos3": Image.Resampling.LANCZOS,
    "mitchell": Image.Resampling.BICUBIC,
    "catrom": Image.Resampling.BICUBIC,
    "triangle": Image.Resampling.BILINEAR,
    "nearest": Image.Resampling.NEAREST,
}

VALID_FIT_METHODS = {"stretch", "contain"}

# 顺时针旋转 90 度的次数 -> 对应的 transpose 操作
_ROTATIONS = {
    1: Image.Transpose.ROTATE_270,
    2: Image.Transpose.ROTATE_180,
    3: Image.Transpose.ROTATE_90,
}


def apply_resize(image: Image.Image, options: Mapping[str, Any], notes: list[str]) -> Image.Image:
    """按 width/height 缩放；只给出一边时保持宽高比。"""

    width = options.get("width")
    height = options.get("height")
    if width is None and height is None:
        raise InvalidConfigurationError("resize 至少需要 width 或 height")

    method = RESIZE_METHODS.get(str(options.get("method", "lanczos3")))
    if method is None:
        raise InvalidConfigurationError(f"未知的缩放算法: {options.get('method')}")

    fit_method = options.get("fitMethod", "stretch")
    if fit_method not in VALID_FIT_METHODS:
        raise InvalidConfigurationError(f"未知的适配方式: {fit_method}")

    target = _compute_target_size(image.size, width, height)
    if target[0] > image.width or target[1] > image.height:
        notes.append("upscaled")

    if target == image.size:
        return image
    if fit_method == "contain":
        return ImageOps.fit(image, target, method, centering=(0.5, 0.5))
    return image.resize(target, method)


def apply_quant(image: Image.Image, options: Mapping[str, Any], notes: list[str]) -> Image.Image:
    """减少调色板颜色数量。"""

    colors = options.get("numColors", 255)
    dither = options.get("dither", 1.0)
    if not isinstance(colors, int) or not 2 <= colors <= 256:
        raise InvalidConfigurationError(f"numColors 必须为 2~256 的整数: {colors}")
    if not isinstance(dither, (int, float)) or dither < 0:
        raise InvalidConfigurationError(f"dither 必须为非负数: {dither}")

    # RGBA 只能用 FASTOCTREE 量化。
    method = Image.Quantize.FASTOCTREE if image.mode == "RGBA" else Image.Quantize.MEDIANCUT
    return image.quantize(
        colors=colors,
        method=method,
        dither=Image.Dither.FLOYDSTEINBERG if dither > 0 else Image.Dither.NONE,
    )


def apply_rotate(image: Image.Image, options: Mapping[str, Any], notes: list[str]) -> Image.Image:
    """按 90 度为单位顺时针旋转。"""

    rotations = options.get("numRotations", 0)
    if not isinstance(rotations, int):
        raise InvalidConfigurationError(f"numRotations 必须为整数: {rotations}")
    transpose = _ROTATIONS.get(rotations % 4)
    if transpose is None:
        return image
    return image.transpose(transpose)


Preprocessor = Callable[[Image.Image, Mapping[str, Any], list[str]], Image.Image]

PREPROCESSORS: dict[str, Preprocessor] = {
    "resize": apply_resize,
    "quant": apply_quant,
    "rotate": apply_rotate,
}


def apply_preprocessors(decoded: DecodedImage, options: Mapping[str, Any]) -> DecodedImage:
    """依次执行已配置的预处理器，返回新的解码结果。"""

    notes = list(decoded.notes)
    bitmap = decoded.bitmap
    for name, preprocessor in PREPROCESSORS.items():
        if name not in options:
            continue
        value = options[name]
        if not isinstance(value, Mapping):
            raise InvalidConfigurationError(f"预处理参数 {name} 必须是对象: {value!r}")
        bitmap = preprocessor(bitmap, value, notes)
    return DecodedImage(bitmap=bitmap, size=decoded.size, notes=tuple(notes))


def _compute_target_size(size: tuple[int, int], width: Any, height: Any) -> tuple[int, int]:
    src_w, src_h = size
    for value in (width, height):
        if value is not None and (not isinstance(value, int) or value <= 0):
            raise InvalidConfigurationError(f"缩放尺寸必须为正整数: {value}")

    if width is None:
        width = max(1, round(src_w * height / src_h))
    if height is None:
        height = max(1, round(src_h * width / src_w))
    return int(width), int(height)
