"""
HTTP клиент сервиса распознавания.

Успех определяется по полю status в JSON конверте (status == 200),
а не только по HTTP статусу.

Пример:
    with RecognizerClient("http://localhost:6622") as client:
        lines = client.recognize("photo.jpg")

Запуск из командной строки:
    python -m recognizer.client photo.jpg --url http://localhost:6622
"""

import argparse
import sys
from pathlib import Path
from typing import Optional, Union

import httpx

DEFAULT_URL = "http://localhost:6622"


class RecognizerClientError(Exception):
    """
    Сервис вернул ошибку.

    Attributes:
        status: поле status конверта (или HTTP статус, если тело не JSON)
        message: описание ошибки от сервиса
    """

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"{status}: {message}")

    @property
    def retryable(self) -> bool:
        return self.status == 503


class RecognizerClient:
    """Синхронный клиент эндпоинта POST /v1/recognize."""

    def __init__(
        self,
        base_url: str = DEFAULT_URL,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def __enter__(self) -> "RecognizerClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def recognize(
        self,
        image: Union[bytes, str, Path],
        filename: Optional[str] = None,
    ) -> list[str]:
        """
        Отправляет изображение и возвращает распознанные строки.

        Args:
            image: байты изображения или путь к файлу
            filename: имя файла в multipart (справочное)

        Returns:
            list[str]: строки текста (может быть пустым)

        Raises:
            RecognizerClientError: сервис вернул status != 200
        """
        if isinstance(image, (str, Path)):
            path = Path(image)
            filename = filename or path.name
            image = path.read_bytes()

        files = {"file": (filename or "image", image, "application/octet-stream")}
        response = self._client.post("/v1/recognize", files=files)

        try:
            envelope = response.json()
        except ValueError:
            raise RecognizerClientError(response.status_code, response.text)

        if envelope.get("status") != 200:
            raise RecognizerClientError(
                envelope.get("status", response.status_code),
                envelope.get("message", "Unknown error"),
            )

        return envelope.get("data") or []


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Распознать текст на изображении")
    parser.add_argument("image", type=Path, help="путь к изображению")
    parser.add_argument("--url", default=DEFAULT_URL, help="адрес сервиса")
    parser.add_argument("--timeout", type=float, default=60.0)
    args = parser.parse_args(argv)

    with RecognizerClient(args.url, timeout=args.timeout) as client:
        try:
            lines = client.recognize(args.image)
        except RecognizerClientError as e:
            print(f"Ошибка: {e}", file=sys.stderr)
            return 1
        except httpx.HTTPError as e:
            print(f"Сервис недоступен: {e}", file=sys.stderr)
            return 2

    for line in lines:
        print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
