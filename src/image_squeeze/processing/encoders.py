"""在工作进程中执行的各格式编码与质量自动寻优。"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

import numpy as np
from PIL import Image

from image_squeeze.core.config import EncodePolicy
from image_squeeze.core.exceptions import ImageEncodeError
from image_squeeze.core.models import EncodedOutput
from image_squeeze.processing.validation import perceptual_distance

LOGGER = logging.getLogger(__name__)

EncoderOptions = Union[str, Mapping[str, Any]]

QUALITY_RANGE = (0, 100)
TARGET_NOT_REACHED = "target not reached"


@dataclass(frozen=True, slots=True)
class EncoderSpec:
    """描述一个编码器：输出扩展名、是否有损与默认参数。"""

    extension: str
    lossy: bool
    defaults: Mapping[str, Any]
    save: Callable[[Image.Image, Mapping[str, Any]], bytes]


def _flatten_alpha(image: Image.Image) -> Image.Image:
    """JPEG 不支持透明通道，通过白色背景混合生成 RGB。"""

    if image.mode in {"RGBA", "LA"} or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def _pack_channels(pixels: np.ndarray) -> np.ndarray:
    """把每个像素的各通道拼成一个整数，保持按通道字典序的大小关系。"""

    packed = np.zeros(pixels.shape[:-1], dtype=np.uint32)
    for channel in range(pixels.shape[-1]):
        packed = (packed << 8) | pixels[..., channel].astype(np.uint32)
    return packed


def _to_palette(image: Image.Image, pixels: np.ndarray) -> Optional[Image.Image]:
    """颜色数不超过 256 时无损转换为调色板图，透明度写入 tRNS。"""

    found = image.getcolors(256)
    if found is None:
        return None
    palette = np.array(sorted(color for _, color in found), dtype=np.uint8)
    indices = np.searchsorted(_pack_channels(palette), _pack_channels(pixels)).astype(np.uint8)

    indexed = Image.frombytes("P", image.size, indices.tobytes())
    indexed.putpalette(palette[:, :3].tobytes())
    if palette.shape[1] == 4:
        indexed.info["transparency"] = palette[:, 3].tobytes()
    return indexed


def _lossless_reductions(image: Image.Image) -> list[Image.Image]:
    """与 oxipng 一样无损缩减颜色类型：去掉全不透明的 alpha、灰度化、调色板化。"""

    if image.mode not in {"RGB", "RGBA"}:
        return [image]

    pixels = np.asarray(image)
    has_alpha = image.mode == "RGBA"
    if has_alpha and bool((pixels[..., 3] == 255).all()):
        image = image.convert("RGB")
        pixels = pixels[..., :3]
        has_alpha = False

    candidates = [image]
    if bool((pixels[..., 0] == pixels[..., 1]).all()) and bool((pixels[..., 1] == pixels[..., 2]).all()):
        # R=G=B 时 Pillow 的 L 转换权重之和恰为 1，结果无损。
        candidates.append(image.convert("LA" if has_alpha else "L"))
    indexed = _to_palette(image, pixels)
    if indexed is not None:
        candidates.append(indexed)
    return candidates


def _save_png(image: Image.Image, options: Mapping[str, Any]) -> bytes:
    level = options.get("level", 2)
    if not isinstance(level, int) or not 0 <= level <= 6:
        raise ImageEncodeError(f"oxipng level 必须为 0~6 的整数: {level}")

    best: Optional[bytes] = None
    for candidate in _lossless_reductions(image):
        buffer = io.BytesIO()
        candidate.save(buffer, format="PNG", optimize=level > 0, compress_level=min(9, 3 + level))
        if best is None or buffer.tell() < len(best):
            best = buffer.getvalue()
    assert best is not None
    return best


def _save_jpeg(image: Image.Image, options: Mapping[str, Any]) -> bytes:
    buffer = io.BytesIO()
    _flatten_alpha(image).save(
        buffer,
        format="JPEG",
        quality=_quality(options),
        optimize=True,
        progressive=bool(options.get("progressive", True)),
    )
    return buffer.getvalue()


def _save_webp(image: Image.Image, options: Mapping[str, Any]) -> bytes:
    if image.mode not in {"RGB", "RGBA"}:
        has_alpha = image.mode in {"LA", "PA"} or "transparency" in image.info
        image = image.convert("RGBA" if has_alpha else "RGB")
    buffer = io.BytesIO()
    image.save(
        buffer,
        format="WEBP",
        quality=_quality(options),
        method=int(options.get("method", 4)),
        lossless=bool(options.get("lossless", False)),
    )
    return buffer.getvalue()


ENCODERS: dict[str, EncoderSpec] = {
    "oxipng": EncoderSpec(extension="png", lossy=False, defaults={"level": 2}, save=_save_png),
    "mozjpeg": EncoderSpec(extension="jpg", lossy=True, defaults={"quality": 75}, save=_save_jpeg),
    "webp": EncoderSpec(extension="webp", lossy=True, defaults={"quality": 75}, save=_save_webp),
}


def encode_bitmap(
    bitmap: Image.Image,
    encoder_name: str,
    options: EncoderOptions,
    policy: EncodePolicy,
) -> EncodedOutput:
    """使用指定编码器编码位图。

    ``options`` 为 ``"auto"`` 时，有损编码器会在 ``policy`` 限定的轮数内
    寻找满足视觉距离目标的最低质量；无损编码器直接使用默认参数。
    """

    spec = ENCODERS.get(encoder_name)
    if spec is None:
        raise ImageEncodeError(f"未知的编码器: {encoder_name}")

    try:
        if options == "auto":
            if spec.lossy:
                binary, quality, reached = optimize_quality(bitmap, spec, policy)
                info = None if reached else TARGET_NOT_REACHED
                return EncodedOutput(binary=binary, extension=spec.extension, info_text=info, quality=quality)
            return EncodedOutput(binary=spec.save(bitmap, spec.defaults), extension=spec.extension)

        if not isinstance(options, Mapping):
            raise ImageEncodeError(f"编码参数必须为 'auto' 或对象: {options!r}")
        merged = {**spec.defaults, **options}
        return EncodedOutput(
            binary=spec.save(bitmap, merged),
            extension=spec.extension,
            quality=merged.get("quality") if spec.lossy else None,
        )
    except (OSError, ValueError) as exc:
        raise ImageEncodeError(f"{encoder_name} 编码失败: {exc}") from exc


def optimize_quality(
    bitmap: Image.Image, spec: EncoderSpec, policy: EncodePolicy
) -> tuple[bytes, int, bool]:
    """二分查找满足 ``butteraugli_target`` 的最低质量。

    返回 ``(binary, quality, reached)``；所有轮次都未达标时使用最高质量编码。
    """

    low, high = QUALITY_RANGE
    best: Optional[tuple[bytes, int]] = None

    for round_idx in range(policy.max_optimizer_rounds):
        quality = (low + high) // 2
        if quality in (low, high):
            break
        binary = spec.save(bitmap, {**spec.defaults, "quality": quality})
        with Image.open(io.BytesIO(binary)) as candidate:
            distance = perceptual_distance(bitmap, candidate)
        LOGGER.debug("第 %d 轮: quality=%d distance=%.3f", round_idx + 1, quality, distance)
        if distance <= policy.butteraugli_target:
            best = (binary, quality)
            high = quality
        else:
            low = quality

    if best is not None:
        return best[0], best[1], True

    top = QUALITY_RANGE[1]
    return spec.save(bitmap, {**spec.defaults, "quality": top}), top, False


def _quality(options: Mapping[str, Any]) -> int:
    quality = options.get("quality", 75)
    if not isinstance(quality, (int, float)) or not QUALITY_RANGE[0] <= quality <= QUALITY_RANGE[1]:
        raise ImageEncodeError(f"quality 必须在 0~100 之间: {quality}")
    return int(quality)
