"""在工作进程中执行的图片解码。"""

from __future__ import annotations

import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from image_squeeze.core.exceptions import ImageDecodeError
from image_squeeze.core.models import DecodedImage

LOGGER = logging.getLogger(__name__)


def decode_buffer(buffer: bytes) -> DecodedImage:
    """解码图片字节并执行 EXIF 旋转与模式归一化。

    ``size`` 记录的是原始文件的字节数，用于之后的压缩率统计。
    """

    try:
        with Image.open(io.BytesIO(buffer)) as img:
            img.load()

            # EXIF Orientation 校正
            img = ImageOps.exif_transpose(img)
            bitmap = _normalize_mode(img)
            return DecodedImage(bitmap=bitmap.copy(), size=len(buffer))
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        LOGGER.debug("无法识别图像数据: %s", exc)
        raise ImageDecodeError(f"无法解码图像: {exc}") from exc


def _normalize_mode(img: Image.Image) -> Image.Image:
    """统一转换到 RGB，带透明通道的转换到 RGBA。"""

    if img.mode in {"RGB", "RGBA"}:
        return img

    if img.mode in {"LA", "PA"} or "transparency" in img.info:
        return img.convert("RGBA")

    return img.convert("RGB")
