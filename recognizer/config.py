"""
Конфигурация сервиса распознавания текста на изображениях.

Все значения читаются из .env файла (или переменных окружения).
У каждого параметра есть дефолт, .env переопределяет только нужное.

Единый префикс: RECOGNIZER_
Документация по параметрам: .env.example
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Настройки сервиса распознавания.

    Читает переменные с префиксом RECOGNIZER_ из .env файла.
    Объединяет все параметры: сервер, лимиты, очередь, Tesseract.
    """

    model_config = SettingsConfigDict(
        env_prefix="RECOGNIZER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Сервер ---
    host: str = "0.0.0.0"
    port: int = 6622
    log_level: str = "INFO"

    # --- Лимиты входных данных ---
    max_file_size_mb: int = Field(default=15, gt=0)
    # Максимальная площадь изображения в пикселях (ширина * высота)
    max_pixels: int = Field(default=50_000_000, gt=0)

    # --- Очередь распознавания ---
    # Сколько запросов может ждать движок, остальные получают 503.
    # 0 превратил бы asyncio.Queue в неограниченную
    max_queue_depth: int = Field(default=32, gt=0)

    # --- OCR: Tesseract ---
    languages: str = "eng"
    ocr_oem: int = 3
    ocr_psm: int = 3
    # Строки короче этого порога считаются шумом
    min_line_chars: int = 2

    # --- Deskew: коррекция наклона перед распознаванием ---
    deskew_enabled: bool = True
    deskew_resize_px: int = 1200
    deskew_num_peaks: int = 20
    skew_threshold: float = 0.5

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


# Глобальный экземпляр настроек
settings = Settings()
