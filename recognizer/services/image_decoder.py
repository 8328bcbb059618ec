"""
Декодер загруженных изображений.

Превращает произвольный байтовый буфер (PNG, JPEG, ...) в PixelGrid.
Формат определяется по содержимому через Pillow, имя файла и
Content-Type клиента не учитываются.

Функция чистая и без общего состояния: вызывается из threadpool,
несколько изображений декодируются параллельно.
"""

import io
import logging
from typing import Optional

import numpy as np
from PIL import Image, ImageOps

from recognizer.config import settings
from recognizer.exceptions import DecodeError
from recognizer.schemas import PixelGrid

logger = logging.getLogger(__name__)

# Режимы, которые сводятся к одному каналу
GRAYSCALE_MODES = {"1", "L", "I", "I;16", "I;16B", "I;16L", "F"}


def decode(
    data: bytes,
    max_bytes: Optional[int] = None,
    max_pixels: Optional[int] = None,
) -> PixelGrid:
    """
    Декодирует изображение в нормализованный PixelGrid.

    Выполняет:
        1. Проверку размера буфера (пустой / больше лимита)
        2. Чтение заголовка и проверку размеров до полного декодирования
        3. Полное декодирование (первый кадр для многокадровых форматов)
        4. Поворот по EXIF и приведение к режиму "L" или "RGB"

    Args:
        data: байты загруженного файла
        max_bytes: лимит размера буфера (по умолчанию из настроек)
        max_pixels: лимит площади изображения (по умолчанию из настроек)

    Returns:
        PixelGrid: декодированное изображение

    Raises:
        DecodeError: при любой проблеме с входными данными
    """
    max_bytes = max_bytes if max_bytes is not None else settings.max_file_size_bytes
    max_pixels = max_pixels if max_pixels is not None else settings.max_pixels

    if not data:
        raise DecodeError("Empty image")

    if len(data) > max_bytes:
        raise DecodeError(
            f"Image too large: {len(data)} bytes, maximum: {max_bytes} bytes",
            context={"size": len(data)},
        )

    try:
        img = Image.open(io.BytesIO(data))

        # Размеры известны из заголовка, пиксели ещё не прочитаны
        width, height = img.size
        if width <= 0 or height <= 0:
            raise DecodeError(f"Invalid image dimensions: {width}x{height}")
        if width * height > max_pixels:
            raise DecodeError(
                f"Image dimensions too large: {width}x{height}, "
                f"maximum area: {max_pixels} pixels",
            )

        img.load()
        img = _normalize(img)

    except DecodeError:
        raise
    except Image.DecompressionBombError as e:
        raise DecodeError("Image dimensions too large", context={"error": str(e)})
    except (OSError, SyntaxError, ValueError) as e:
        # UnidentifiedImageError — подкласс OSError
        logger.debug(f"Не удалось декодировать изображение: {e}")
        raise DecodeError("Invalid image format", context={"error": str(e)})

    pixels = np.asarray(img, dtype=np.uint8)

    return PixelGrid(
        width=img.width,
        height=img.height,
        mode=img.mode,
        data=pixels.tobytes(),
    )


def _normalize(img: Image.Image) -> Image.Image:
    """
    Приводит изображение к режиму "L" или "RGB".

    Поворот по EXIF применяется до конвертации (фото с телефона).
    Прозрачность заливается белым, чтобы текст на прозрачном фоне
    не превратился в чёрное на чёрном.

    Args:
        img: загруженное изображение Pillow

    Returns:
        Image.Image: изображение в режиме "L" или "RGB"
    """
    img = ImageOps.exif_transpose(img)

    if img.mode in GRAYSCALE_MODES:
        return img if img.mode == "L" else img.convert("L")

    if img.mode in ("RGBA", "LA", "PA") or (
        img.mode == "P" and "transparency" in img.info
    ):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, "white")
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background

    return img if img.mode == "RGB" else img.convert("RGB")
