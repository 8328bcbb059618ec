"""
Сериализация результата распознавания в конверт ответа.

| Результат           | status  | message         | data   |
|---------------------|---------|-----------------|--------|
| успех               | 200     | "OK"            | строки |
| ошибка входа        | 400/413 | описание        | нет    |
| ошибка движка       | 500     | описание        | нет    |
| очередь заполнена   | 503     | "service busy"  | нет    |

HTTP статус ответа всегда совпадает с полем status конверта.
"""

import json
from typing import Optional, Union

from fastapi.responses import JSONResponse

from recognizer.exceptions import CapacityError, RecognizerError
from recognizer.schemas import ResponseEnvelope

SUCCESS_MESSAGE = "OK"

# Через сколько секунд клиенту стоит повторить запрос при 503
RETRY_AFTER_SECONDS = 1


class UnicodeJSONResponse(JSONResponse):
    """JSON ответ с нормальным отображением кириллицы (без \\uXXXX экранирования)."""

    def render(self, content) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            indent=None,
            separators=(",", ":"),
        ).encode("utf-8")


def serialize(result: Union[list[str], RecognizerError]) -> ResponseEnvelope:
    """
    Преобразует результат распознавания в конверт ответа.

    Args:
        result: строки текста или типизированная ошибка

    Returns:
        ResponseEnvelope: конверт для отправки клиенту
    """
    if isinstance(result, RecognizerError):
        return error_envelope(result.status_code, result.message)

    return ResponseEnvelope(
        status=200,
        message=SUCCESS_MESSAGE,
        data=list(result),
    )


def error_envelope(status: int, message: str) -> ResponseEnvelope:
    return ResponseEnvelope(status=status, message=message)


def to_response(
    envelope: ResponseEnvelope,
    headers: Optional[dict[str, str]] = None,
) -> UnicodeJSONResponse:
    """Оборачивает конверт в HTTP ответ с тем же статусом, data без значения не выводится."""
    return UnicodeJSONResponse(
        content=envelope.model_dump(exclude_none=True),
        status_code=envelope.status,
        headers=headers,
    )


def error_response(error: RecognizerError) -> UnicodeJSONResponse:
    headers = None
    if isinstance(error, CapacityError):
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
    return to_response(serialize(error), headers=headers)
