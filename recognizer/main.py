"""
Сервис распознавания текста на изображениях — FastAPI приложение.

Принимает изображение (multipart/form-data, поле file), декодирует его
и прогоняет через движок распознавания. Движок один на процесс и
доступен только через координатор с ограниченной очередью.

Эндпоинты:
    POST /v1/recognize — загрузка изображения и распознавание текста
    GET  /health — проверка работоспособности (движок + очередь + конфиг)

Формат ответа:
    {"status": <int>, "message": <str>, "data": [<str>, ...]}
    Поле status всегда совпадает с HTTP статусом ответа,
    data присутствует только при успехе.

Запуск:
    uvicorn recognizer.main:app --host 0.0.0.0 --port 6622
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, Coroutine, Optional

from fastapi import APIRouter, FastAPI, File, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.routing import APIRoute
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from recognizer.config import settings
from recognizer.exceptions import (
    FatalError,
    InputError,
    MissingFileError,
    PayloadTooLargeError,
    RecognizerError,
)
from recognizer.middleware import BodySizeLimitMiddleware
from recognizer.schemas import ResponseEnvelope
from recognizer.services.coordinator import RecognitionCoordinator
from recognizer.services.engine import RecognitionEngine, TesseractEngine
from recognizer.services.image_decoder import decode
from recognizer.services.serializer import (
    UnicodeJSONResponse,
    error_envelope,
    error_response,
    serialize,
    to_response,
)

VERSION = "1.0.0"

# Настройка логгера
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [Recognizer] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

router = APIRouter()


class UploadRoute(APIRoute):
    """
    Маршрут загрузки: multipart без boundary считается запросом без файла.

    Starlette отклоняет такое тело ещё до вызова эндпоинта, и клиент
    получил бы сообщение парсера вместо "missing file field".
    """

    def get_route_handler(self) -> Callable[[Request], Coroutine[Any, Any, Response]]:
        handler = super().get_route_handler()

        async def route_handler(request: Request) -> Response:
            content_type = request.headers.get("content-type", "").lower()
            if content_type.startswith("multipart/") and "boundary=" not in content_type:
                raise MissingFileError()
            return await handler(request)

        return route_handler


upload_router = APIRouter(route_class=UploadRoute)


def get_coordinator(request: Request) -> RecognitionCoordinator:
    return request.app.state.coordinator


@router.get("/health")
async def health_check(request: Request) -> dict:
    """
    Проверка работоспособности сервиса.

    Returns:
        dict: статус, информация о движке, состояние очереди и лимиты
    """
    coordinator = get_coordinator(request)
    engine = coordinator.engine

    return {
        "status": "ok" if coordinator.running else "degraded",
        "service": "recognizer",
        "version": VERSION,
        "cpu_count": os.cpu_count(),
        "engine": {
            "name": engine.name,
            "version": engine.version,
        },
        "queue": coordinator.stats(),
        "config": {
            "max_file_size_mb": settings.max_file_size_mb,
            "max_pixels": settings.max_pixels,
            "max_queue_depth": coordinator.capacity,
            "languages": settings.languages,
            "deskew_enabled": settings.deskew_enabled,
        },
    }


@upload_router.post(
    "/v1/recognize",
    response_model=ResponseEnvelope,
    response_model_exclude_none=True,
    responses={
        400: {"description": "Нет поля file или файл не является изображением", "model": ResponseEnvelope},
        413: {"description": "Файл больше лимита", "model": ResponseEnvelope},
        500: {"description": "Ошибка движка распознавания", "model": ResponseEnvelope},
        503: {"description": "Очередь распознавания заполнена", "model": ResponseEnvelope},
    },
)
async def recognize(
    request: Request,
    file: Optional[UploadFile] = File(
        default=None,
        description="Изображение (PNG, JPEG, ...), формат определяется по содержимому",
    ),
) -> UnicodeJSONResponse:
    """
    Распознаёт текст на загруженном изображении.

    Выполняет:
        1. Чтение поля file целиком, не больше лимита (без потоковой передачи в декодер)
        2. Декодирование в threadpool (параллельно с другими запросами)
        3. Распознавание через очередь координатора

    Args:
        request: HTTP запрос (доступ к координатору)
        file: изображение (multipart/form-data)

    Returns:
        UnicodeJSONResponse: конверт со строками текста

    Raises:
        RecognizerError: преобразуется в конверт обработчиком ошибок
    """
    if file is None:
        raise MissingFileError()

    # Форма уже разобрана FastAPI, request.form() возвращает её из кэша
    form = await request.form()
    if len(form.getlist("file")) > 1:
        raise InputError("exactly one file field expected")

    start_time = time.time()

    # 1. Читаем файл целиком, но не больше лимита + 1 байт
    try:
        file_bytes = await file.read(settings.max_file_size_bytes + 1)
    finally:
        await file.close()

    if len(file_bytes) > settings.max_file_size_bytes:
        raise PayloadTooLargeError(
            f"File too large: more than {settings.max_file_size_bytes} bytes, "
            f"maximum: {settings.max_file_size_mb} MB"
        )

    logger.info(f"Получен файл: {file.filename}, {len(file_bytes)} байт")

    # 2. Декодируем изображение
    grid = await run_in_threadpool(decode, file_bytes)
    del file_bytes

    # 3. Распознаём
    lines = await get_coordinator(request).recognize(grid)

    processing_time_ms = int((time.time() - start_time) * 1000)
    logger.info(f"Распознавание завершено: {len(lines)} строк за {processing_time_ms}ms")

    return to_response(serialize(lines))


async def recognizer_error_handler(request: Request, exc: RecognizerError) -> UnicodeJSONResponse:
    if isinstance(exc, InputError):
        logger.info(f"Отклонён запрос {request.url.path}: {exc.message}")
    return error_response(exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> UnicodeJSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        field = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"Invalid {field or 'request'}: {errors[0].get('msg', 'validation failed')}"
    logger.info(f"Ошибка валидации {request.url.path}: {message}")
    return to_response(error_envelope(400, message))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> UnicodeJSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Something went wrong"
    return to_response(error_envelope(exc.status_code, message), headers=exc.headers)


async def unhandled_error_handler(request: Request, exc: Exception) -> UnicodeJSONResponse:
    logger.exception(f"Необработанная ошибка {request.url.path}: {exc}")
    return to_response(error_envelope(500, "Something went wrong"))


def create_app(engine: Optional[RecognitionEngine] = None) -> FastAPI:
    """
    Создаёт приложение.

    Args:
        engine: готовый движок; если не передан, при старте
            инициализируется TesseractEngine

    Returns:
        FastAPI: приложение с координатором в app.state
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        try:
            ocr_engine = engine or TesseractEngine.initialize()
        except FatalError as e:
            logger.critical(f"Движок не инициализирован, сервис не запускается: {e.message}")
            raise

        coordinator = RecognitionCoordinator(ocr_engine, settings.max_queue_depth)
        await coordinator.start()
        app.state.coordinator = coordinator

        yield

        await coordinator.stop()

    app = FastAPI(
        title="Recognizer",
        description="Сервис распознавания текста на изображениях",
        version=VERSION,
        default_response_class=UnicodeJSONResponse,
        lifespan=lifespan,
    )

    app.add_middleware(BodySizeLimitMiddleware, max_body_size=settings.max_file_size_bytes)

    app.add_exception_handler(RecognizerError, recognizer_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router)
    app.include_router(upload_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Запуск Recognizer на {settings.host}:{settings.port}")
    logger.info(f"CPU ядер: {os.cpu_count()}")

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
