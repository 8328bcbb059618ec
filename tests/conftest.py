"""
Общие фикстуры тестов.

    - fake_engine: движок-заглушка, запоминает вызовы и поток
    - make_image: генерация изображений Pillow в байты нужного формата
    - client: TestClient приложения с fake_engine (lifespan запускается)
"""

import io
import os
import threading
from typing import Callable, Optional

import pytest
from fastapi.testclient import TestClient
from PIL import Image, ImageDraw

# Не читаем .env разработчика
os.environ.setdefault("RECOGNIZER_LOG_LEVEL", "WARNING")

from recognizer.schemas import PixelGrid
from recognizer.services.engine import RecognitionEngine


class FakeEngine(RecognitionEngine):
    """
    Движок-заглушка.

    Attributes:
        responder: функция PixelGrid -> list[str] (может бросать исключения)
        calls: изображения в порядке вызова infer()
        threads: имена потоков, из которых вызывался infer()
    """

    name = "fake"
    version = "0.0"

    def __init__(self, responder: Optional[Callable[[PixelGrid], list[str]]] = None):
        self.responder = responder or (lambda grid: [])
        self.calls: list[PixelGrid] = []
        self.threads: set[str] = set()
        self.closed = False
        self._lock = threading.Lock()

    @classmethod
    def initialize(cls) -> "FakeEngine":
        return cls()

    def infer(self, grid: PixelGrid) -> list[str]:
        with self._lock:
            self.calls.append(grid)
            self.threads.add(threading.current_thread().name)
        return self.responder(grid)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """
    Возвращает функцию, создающую изображение в байтах.

    Пример:
        png = make_image(200, 80, text="HELLO")
    """

    def _make(
        width: int = 64,
        height: int = 32,
        mode: str = "RGB",
        color="white",
        fmt: str = "PNG",
        text: Optional[str] = None,
    ) -> bytes:
        img = Image.new(mode, (width, height), color)
        if text:
            draw = ImageDraw.Draw(img)
            draw.text((10, 10), text, fill="black")
        buffer = io.BytesIO()
        img.save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def client(fake_engine):
    from recognizer.main import create_app

    with TestClient(create_app(engine=fake_engine)) as test_client:
        yield test_client
