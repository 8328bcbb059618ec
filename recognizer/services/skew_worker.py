"""
Определение и коррекция наклона текста (deskew) перед распознаванием.

Использует библиотеку deskew для определения мелкого наклона (1-5°).
Вызывается движком в потоке координатора.

Оптимизации:
    - Resize до 1200px (достаточно для определения наклона)
    - num_peaks=20 (стабильный результат)
"""

import logging

import numpy as np
from deskew import determine_skew
from PIL import Image

from recognizer.config import settings

logger = logging.getLogger(__name__)


def detect_skew(img: Image.Image) -> float:
    """
    Определяет угол наклона текста на изображении.

    Выполняет:
        1. Resize до deskew_resize_px по длинной стороне
        2. Конвертация в grayscale
        3. Определение угла через deskew (проекционный профиль)

    Args:
        img: изображение для анализа

    Returns:
        float: угол наклона в градусах (0.0 если не определён)
    """
    # На больших изображениях алгоритм захлебывается, на маленьких теряет точность
    w, h = img.size
    ratio = settings.deskew_resize_px / max(w, h)
    if ratio < 1:
        img = img.resize((max(1, int(w * ratio)), max(1, int(h * ratio))), Image.Resampling.BILINEAR)

    img_array = np.array(img.convert("L"))

    try:
        angle = determine_skew(img_array, num_peaks=settings.deskew_num_peaks)
    except Exception as e:
        logger.debug(f"deskew не смог определить угол: {e}")
        angle = 0.0

    # None -> 0.0 (пустое изображение, нет линий)
    return float(angle) if angle is not None else 0.0


def apply_deskew(img: Image.Image, angle: float) -> Image.Image:
    """
    Применяет коррекцию наклона к изображению.

    Args:
        img: исходное изображение
        angle: угол наклона в градусах

    Returns:
        Image.Image: скорректированное изображение (или исходное,
        если наклон меньше порога)
    """
    if abs(angle) <= settings.skew_threshold:
        return img

    # expand=True увеличивает холст чтобы не обрезать углы
    return img.rotate(
        angle,
        resample=Image.Resampling.BICUBIC,
        expand=True,
        fillcolor="white",
    )
