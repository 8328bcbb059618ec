"""
Сервисы распознавания.

Модули:
    - image_decoder: байты -> PixelGrid
    - engine: движок распознавания (Tesseract)
    - skew_worker: определение и коррекция наклона
    - coordinator: очередь и единственный поток движка
    - serializer: результат -> конверт ответа
"""

from recognizer.services.coordinator import RecognitionCoordinator
from recognizer.services.engine import RecognitionEngine, TesseractEngine
from recognizer.services.image_decoder import decode
from recognizer.services.serializer import serialize, to_response

__all__ = [
    "decode",
    "RecognitionEngine",
    "TesseractEngine",
    "RecognitionCoordinator",
    "serialize",
    "to_response",
]
