"""
Движок распознавания текста.

Содержит:
    - Базовый класс RecognitionEngine (интерфейс, который потребляет координатор)
    - TesseractEngine — реализация на Tesseract через pytesseract
    - Сборку строк текста из результата image_to_data

Движок не потокобезопасен по контракту: infer() вызывается только
из единственного потока координатора.
"""

import logging
from abc import ABC, abstractmethod

import pytesseract

from recognizer.config import settings
from recognizer.exceptions import EngineError, FatalError
from recognizer.schemas import PixelGrid
from recognizer.services.skew_worker import apply_deskew, detect_skew

logger = logging.getLogger(__name__)


class RecognitionEngine(ABC):
    """
    Интерфейс движка распознавания.

    Жизненный цикл: initialize() один раз при старте процесса,
    infer() на каждое изображение, close() при остановке.
    """

    name: str = "engine"
    version: str = "unknown"

    @classmethod
    @abstractmethod
    def initialize(cls) -> "RecognitionEngine":
        """Создаёт готовый к работе движок или бросает FatalError."""

    @abstractmethod
    def infer(self, grid: PixelGrid) -> list[str]:
        """Возвращает строки текста сверху вниз или бросает EngineError."""

    def close(self) -> None:
        """Освобождает ресурсы движка."""


class TesseractEngine(RecognitionEngine):
    """
    Движок на Tesseract OCR.

    Пайплайн одного изображения:
        1. PixelGrid -> PIL.Image
        2. Deskew (если включён в настройках)
        3. Один вызов image_to_data — слова со структурой блоков/строк
        4. Сборка строк, отбрасывание шумовых строк короче min_line_chars
    """

    name = "tesseract"

    def __init__(
        self,
        version: str,
        languages: str,
        oem: int,
        psm: int,
        min_line_chars: int,
        deskew_enabled: bool,
    ):
        self.version = version
        self.languages = languages
        self.config = f"--oem {oem} --psm {psm}"
        self.min_line_chars = min_line_chars
        self.deskew_enabled = deskew_enabled

    @classmethod
    def initialize(cls) -> "TesseractEngine":
        """
        Проверяет наличие Tesseract и языковых моделей.

        Returns:
            TesseractEngine: движок с параметрами из настроек

        Raises:
            FatalError: Tesseract не установлен или нет нужных языков
        """
        try:
            version = pytesseract.get_tesseract_version().public
            available = set(pytesseract.get_languages(config=""))
        except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError, OSError) as e:
            raise FatalError(
                f"Tesseract is not available: {e}",
                context={"error": str(e)},
            )

        missing = [
            lang for lang in settings.languages.split("+")
            if lang not in available
        ]
        if missing:
            raise FatalError(
                f"Tesseract language data not found: {', '.join(missing)}",
                context={"available": sorted(available)},
            )

        logger.info(f"Tesseract {version} готов, языки: {settings.languages}")

        return cls(
            version=version,
            languages=settings.languages,
            oem=settings.ocr_oem,
            psm=settings.ocr_psm,
            min_line_chars=settings.min_line_chars,
            deskew_enabled=settings.deskew_enabled,
        )

    def infer(self, grid: PixelGrid) -> list[str]:
        image = grid.to_image()

        if self.deskew_enabled:
            angle = detect_skew(image)
            image = apply_deskew(image, angle)

        try:
            data = pytesseract.image_to_data(
                image,
                lang=self.languages,
                config=self.config,
                output_type=pytesseract.Output.DICT,
            )
        except (pytesseract.TesseractError, RuntimeError, OSError) as e:
            raise EngineError(context={"error": str(e)}) from e

        return assemble_lines(data, self.min_line_chars)


def assemble_lines(data: dict, min_line_chars: int = 1) -> list[str]:
    """
    Собирает строки текста из словаря image_to_data.

    Алгоритм:
        - Слова одной строки (block_num, par_num, line_num) соединяются пробелами
        - Строки упорядочены по блокам, параграфам и номерам строк
          (порядок чтения Tesseract)
        - Строки короче min_line_chars отбрасываются, дубликаты сохраняются

    Args:
        data: словарь от pytesseract.image_to_data()
        min_line_chars: минимальная длина строки

    Returns:
        list[str]: строки текста сверху вниз
    """
    # Структура: {(block_num, par_num, line_num): [words]}
    lines: dict[tuple[int, int, int], list[str]] = {}

    for i in range(len(data["text"])):
        word = str(data["text"][i]).strip()
        if not word:  # Пропускаем пустые записи (уровни блоков/строк)
            continue

        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word)

    result = []
    for key in sorted(lines):
        line_text = " ".join(lines[key])
        if len(line_text) >= min_line_chars:
            result.append(line_text)

    return result
