"""
Иерархия ошибок сервиса распознавания.

Каждая ошибка несёт HTTP статус и сообщение для клиента.
Обработчик в main.py превращает их в JSON конверт ответа.

Иерархия:
    RecognizerError
    ├── InputError              400 — клиент прислал не то
    │   ├── MissingFileError    400 — нет поля file
    │   ├── PayloadTooLargeError 413 — тело больше лимита
    │   └── DecodeError         400 — не удалось декодировать изображение
    ├── CapacityError           503 — очередь переполнена, повторить позже
    ├── EngineError             500 — движок упал на конкретном изображении
    └── FatalError              — движок не инициализирован, сервис не стартует
"""

from typing import Any, Optional


class RecognizerError(Exception):
    """Базовая ошибка сервиса."""

    status_code: int = 500
    default_message: str = "Something went wrong"

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        # Контекст только для логов, клиенту не отдаётся
        self.context = context or {}
        super().__init__(self.message)


class InputError(RecognizerError):
    """Некорректный запрос: клиент может исправить и повторить."""

    status_code = 400
    default_message = "Invalid input"


class MissingFileError(InputError):
    default_message = "missing file field"


class PayloadTooLargeError(InputError):
    status_code = 413
    default_message = "Payload too large"


class DecodeError(InputError):
    """Байты не являются поддерживаемым изображением или нарушают лимиты."""

    default_message = "Invalid image format"


class CapacityError(RecognizerError):
    """Очередь распознавания заполнена."""

    status_code = 503
    default_message = "service busy"


class EngineError(RecognizerError):
    """Ошибка движка на конкретном изображении."""

    status_code = 500
    default_message = "Failed to recognize text"


class FatalError(RecognizerError):
    """
    Движок не удалось инициализировать.

    Возникает только при старте процесса: без загруженной модели
    сервис не должен принимать запросы.
    """

    default_message = "Failed to initialize OCR engine"
