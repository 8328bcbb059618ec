"""
Схемы данных сервиса распознавания.

Включает:
    - Pydantic модель конверта ответа (то, что уходит клиенту)
    - Внутренние dataclass'ы пайплайна: декодированное изображение
      и запрос к координатору
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from PIL import Image
from pydantic import BaseModel, Field


# =============================================================================
# Pydantic модели для API
# =============================================================================


class ResponseEnvelope(BaseModel):
    """
    Конверт ответа API.

    Attributes:
        status: код результата (совпадает с HTTP статусом ответа)
        message: человекочитаемое описание
        data: распознанные строки (только при успехе)
    """

    status: int
    message: str
    data: Optional[list[str]] = Field(
        default=None,
        description="Строки текста сверху вниз, в порядке чтения",
    )


# =============================================================================
# Внутренние структуры пайплайна
# =============================================================================

# Режим Pillow -> количество каналов
CHANNELS = {
    "L": 1,
    "RGB": 3,
}


@dataclass(frozen=True)
class PixelGrid:
    """
    Декодированное и нормализованное изображение.

    Attributes:
        width: ширина в пикселях (> 0)
        height: высота в пикселях (> 0)
        mode: режим каналов: "L" (grayscale) или "RGB"
        data: пиксели построчно, width * height * channels байт
    """

    width: int
    height: int
    mode: str
    data: bytes

    def __post_init__(self) -> None:
        if self.mode not in CHANNELS:
            raise ValueError(f"Неподдерживаемый режим каналов: {self.mode}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Размеры должны быть положительными: {self.width}x{self.height}"
            )
        expected = self.width * self.height * self.channels
        if len(self.data) != expected:
            raise ValueError(
                f"Длина буфера {len(self.data)} не равна {expected} "
                f"({self.width}x{self.height}x{self.channels})"
            )

    @property
    def channels(self) -> int:
        return CHANNELS[self.mode]

    def to_image(self) -> Image.Image:
        return Image.frombytes(self.mode, (self.width, self.height), self.data)


@dataclass
class RecognitionRequest:
    """
    Задание для координатора.

    Attributes:
        grid: изображение для распознавания
        future: одноразовый канал, через который воркер отдаёт результат
    """

    grid: PixelGrid
    future: asyncio.Future
