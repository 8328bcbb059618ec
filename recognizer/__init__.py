"""
Recognizer — сервис распознавания текста на изображениях.

Принимает изображение по HTTP и возвращает найденный текст
списком строк в порядке чтения:
    - FastAPI эндпоинт (приём, валидация, конверт ответа)
    - Декодирование изображения в нормализованный PixelGrid
    - Один движок Tesseract на процесс за очередью координатора
"""

from recognizer.config import settings
from recognizer.schemas import PixelGrid, ResponseEnvelope

__all__ = [
    "settings",
    "PixelGrid",
    "ResponseEnvelope",
]
