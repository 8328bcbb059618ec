"""
ASGI middleware ограничения размера тела запроса.

Две проверки:
    1. Content-Length больше лимита -> 413 сразу, тело не читается
    2. Тело без Content-Length (chunked) -> байты считаются по мере
       чтения, чтение прерывается на первом чанке сверх лимита

Ответ приложения после прерывания отбрасывается, клиент получает
конверт 413.
"""

import logging

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from recognizer.exceptions import InputError, PayloadTooLargeError
from recognizer.services.serializer import error_response

logger = logging.getLogger(__name__)

# Запас на границы multipart и заголовки частей
MULTIPART_OVERHEAD_BYTES = 64 * 1024


class BodySizeLimitMiddleware:
    """Не даёт прочитать больше max_body_size байт тела запроса."""

    def __init__(self, app: ASGIApp, max_body_size: int):
        self.app = app
        self.max_body_size = max_body_size + MULTIPART_OVERHEAD_BYTES

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")

        if content_length is not None:
            try:
                size = int(content_length)
            except ValueError:
                await error_response(InputError("Invalid Content-Length header"))(scope, receive, send)
                return

            if size > self.max_body_size:
                logger.warning(
                    f"Тело запроса слишком большое: {size} байт, "
                    f"лимит {self.max_body_size} байт"
                )
                await self._reject(scope, receive, send)
                return

        received = 0
        exceeded = False
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received, exceeded
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_size:
                    exceeded = True
                    raise PayloadTooLargeError()
            return message

        async def guarded_send(message: Message) -> None:
            nonlocal response_started
            # Ответ приложения на оборванное чтение не отправляем
            if exceeded:
                return
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, guarded_send)
        except PayloadTooLargeError:
            if not exceeded:
                raise
        except Exception:
            if not exceeded or response_started:
                raise
            logger.debug("Ошибка приложения после превышения лимита тела подавлена")

        if exceeded and not response_started:
            logger.warning(
                f"Тело запроса превысило лимит "
                f"{self.max_body_size} байт, прочитано {received}"
            )
            await self._reject(scope, receive, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        error = PayloadTooLargeError(f"Request body too large: more than {self.max_body_size} bytes")
        await error_response(error)(scope, receive, send)
