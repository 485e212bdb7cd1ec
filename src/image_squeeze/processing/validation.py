"""图像视觉差异指标计算工具。"""

from __future__ import annotations

import cv2
import numpy as np
from PIL import Image

# (1 - SSIM) 放大到与 butteraugli 距离相近的量级，1.4 约对应 SSIM 0.986。
DISTANCE_SCALE = 100.0

_C1 = (0.01 * 255) ** 2
_C2 = (0.03 * 255) ** 2


def compute_ssim(original: Image.Image, processed: Image.Image) -> float:
    """计算两张图片亮度通道上的高斯窗口结构相似度（SSIM）均值。"""

    size = original.size
    if size[0] <= 0 or size[1] <= 0:
        return 0.0

    img_a = _to_gray_array(original, size)
    img_b = _to_gray_array(processed, size)

    mu_a = _blur(img_a)
    mu_b = _blur(img_b)
    sigma_a_sq = _blur(img_a * img_a) - mu_a**2
    sigma_b_sq = _blur(img_b * img_b) - mu_b**2
    sigma_ab = _blur(img_a * img_b) - mu_a * mu_b

    numerator = (2 * mu_a * mu_b + _C1) * (2 * sigma_ab + _C2)
    denominator = (mu_a**2 + mu_b**2 + _C1) * (sigma_a_sq + sigma_b_sq + _C2)
    ssim_map = numerator / denominator

    # Clamp to [-1, 1] to avoid slight numeric drift.
    return float(max(min(ssim_map.mean(), 1.0), -1.0))


def perceptual_distance(original: Image.Image, processed: Image.Image) -> float:
    """视觉距离，0 表示完全一致，数值越大差异越明显。"""

    return max(0.0, (1.0 - compute_ssim(original, processed)) * DISTANCE_SCALE)


def _blur(array: np.ndarray) -> np.ndarray:
    return cv2.GaussianBlur(array, (11, 11), 1.5)


def _to_gray_array(image: Image.Image, size: tuple[int, int]) -> np.ndarray:
    """转换图片为指定尺寸的灰度数组。"""

    gray = image.convert("L")
    if gray.size != size:
        gray = gray.resize(size, Image.Resampling.LANCZOS)
    return np.asarray(gray, dtype=np.float64)
