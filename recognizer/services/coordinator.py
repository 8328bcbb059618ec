"""
Координатор доступа к движку распознавания.

Движок тяжёлый (секунды на изображение) и не потокобезопасен, поэтому
все вызовы идут через одну точку:

    запрос 1 ─┐
    запрос 2 ─┼─> asyncio.Queue (ограниченная) ─> воркер ─> поток движка
    запрос N ─┘                                   │
              <──────────── Future на каждый запрос ┘

    - Обработчик запроса кладёт задание в очередь и ждёт свой Future,
      не занимая поток: event loop продолжает принимать и декодировать
      другие загрузки.
    - Воркер (asyncio task) забирает задания строго по порядку (FIFO)
      и выполняет infer() в единственном выделенном потоке.
    - Очередь заполнена -> CapacityError сразу, без ожидания.
    - Ошибка движка уходит только в Future своего задания, воркер
      продолжает разбирать очередь.
    - Повторов нет: ошибка распознавания окончательна для запроса.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import suppress
from typing import Optional

from recognizer.config import settings
from recognizer.exceptions import CapacityError, EngineError
from recognizer.schemas import PixelGrid, RecognitionRequest
from recognizer.services.engine import RecognitionEngine

logger = logging.getLogger(__name__)


class RecognitionCoordinator:
    """
    Единственный владелец движка распознавания.

    Attributes:
        capacity: максимальное число заданий, ожидающих в очереди
        processed: успешно распознанных заданий
        failed: заданий, на которых движок упал
        skipped: заданий, отменённых клиентом до начала распознавания
        rejected: запросов, отклонённых из-за переполнения очереди
    """

    def __init__(
        self,
        engine: RecognitionEngine,
        max_queue_depth: Optional[int] = None,
    ):
        self._engine = engine
        if max_queue_depth is None:
            max_queue_depth = settings.max_queue_depth
        if max_queue_depth <= 0:
            # asyncio.Queue(maxsize=0) не ограничена
            raise ValueError(f"max_queue_depth должен быть > 0, получено {max_queue_depth}")
        self.capacity = max_queue_depth
        self._queue: asyncio.Queue[RecognitionRequest] = asyncio.Queue(maxsize=self.capacity)
        # Один поток — движок никогда не вызывается конкурентно
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="recognizer-engine")
        self._worker: Optional[asyncio.Task] = None
        self._closed = False

        self.processed = 0
        self.failed = 0
        self.skipped = 0
        self.rejected = 0

    @property
    def engine(self) -> RecognitionEngine:
        return self._engine

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        """Запускает воркер, разбирающий очередь."""
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="recognizer-worker")
        logger.info(f"Координатор запущен: движок {self._engine.name}, очередь {self.capacity}")

    async def stop(self) -> None:
        """
        Останавливает воркер и освобождает движок.

        Задания, оставшиеся в очереди, получают CapacityError.
        Текущее распознавание дорабатывает в своём потоке.
        """
        self._closed = True

        if self._worker is not None:
            self._worker.cancel()
            with suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None

        while not self._queue.empty():
            request = self._queue.get_nowait()
            _deliver_error(request, CapacityError("service is shutting down"))
            self._queue.task_done()

        await asyncio.to_thread(self._executor.shutdown, True)
        self._engine.close()
        logger.info("Координатор остановлен")

    async def recognize(self, grid: PixelGrid) -> list[str]:
        """
        Ставит изображение в очередь и ждёт результат.

        Args:
            grid: декодированное изображение

        Returns:
            list[str]: распознанные строки (может быть пустым)

        Raises:
            CapacityError: очередь заполнена или координатор остановлен
            EngineError: движок упал на этом изображении
        """
        if self._closed:
            raise CapacityError("service is shutting down")

        future = asyncio.get_running_loop().create_future()

        try:
            self._queue.put_nowait(RecognitionRequest(grid=grid, future=future))
        except asyncio.QueueFull:
            self.rejected += 1
            logger.warning(f"Очередь заполнена ({self.capacity}), запрос отклонён")
            raise CapacityError()

        # Отмена ожидания (клиент отключился) отменяет и future:
        # воркер пропустит задание или проигнорирует результат
        return await future

    def stats(self) -> dict:
        return {
            "running": self.running,
            "queued": self._queue.qsize(),
            "capacity": self.capacity,
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "rejected": self.rejected,
        }

    async def _run(self) -> None:
        """Основной цикл воркера: FIFO, по одному заданию."""
        loop = asyncio.get_running_loop()

        while True:
            request = await self._queue.get()
            try:
                await self._process(loop, request)
            finally:
                self._queue.task_done()

    async def _process(self, loop: asyncio.AbstractEventLoop, request: RecognitionRequest) -> None:
        if request.future.cancelled():
            self.skipped += 1
            logger.info("Задание отменено клиентом до распознавания, пропускаем")
            return

        start = time.perf_counter()

        try:
            lines = await loop.run_in_executor(self._executor, self._engine.infer, request.grid)
        except asyncio.CancelledError:
            # Остановка координатора посреди распознавания
            _deliver_error(request, CapacityError("service is shutting down"))
            raise
        except EngineError as e:
            self.failed += 1
            logger.error(f"Ошибка движка: {e.message} {e.context}")
            _deliver_error(request, e)
            return
        except Exception as e:
            self.failed += 1
            logger.exception(f"Непредвиденная ошибка движка: {e}")
            _deliver_error(request, EngineError(context={"error": str(e)}))
            return

        self.processed += 1
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            f"Распознано {request.grid.width}x{request.grid.height}: "
            f"{len(lines)} строк за {duration_ms}ms"
        )

        if request.future.done():
            logger.info("Клиент отключился, результат отброшен")
            return
        request.future.set_result(lines)


def _deliver_error(request: RecognitionRequest, error: Exception) -> None:
    if not request.future.done():
        request.future.set_exception(error)
