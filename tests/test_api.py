"""
Тесты HTTP эндпоинтов через TestClient с движком-заглушкой.

Проверяют конверт ответа: status совпадает с HTTP статусом,
data присутствует только при успехе.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from recognizer.config import settings
from recognizer.exceptions import CapacityError, EngineError, FatalError
from recognizer.main import create_app
from recognizer.services.engine import TesseractEngine


def _upload(data: bytes, name: str = "image.png") -> dict:
    return {"file": (name, data, "image/png")}


class TestRecognize:

    def test_success_returns_lines(self, client, fake_engine, make_image):
        fake_engine.responder = lambda grid: ["HELLO"]

        response = client.post("/v1/recognize", files=_upload(make_image(200, 80)))

        assert response.status_code == 200
        assert response.json() == {"status": 200, "message": "OK", "data": ["HELLO"]}
        assert len(fake_engine.calls) == 1
        assert (fake_engine.calls[0].width, fake_engine.calls[0].height) == (200, 80)

    def test_blank_image_returns_empty_data(self, client, make_image):
        response = client.post("/v1/recognize", files=_upload(make_image(300, 100)))

        assert response.status_code == 200
        assert response.json() == {"status": 200, "message": "OK", "data": []}

    def test_lines_keep_order_and_duplicates(self, client, fake_engine, make_image):
        fake_engine.responder = lambda grid: ["первая", "вторая", "вторая"]

        response = client.post("/v1/recognize", files=_upload(make_image()))

        assert response.json()["data"] == ["первая", "вторая", "вторая"]
        # Кириллица без \uXXXX экранирования
        assert "первая".encode("utf-8") in response.content

    def test_filename_and_content_type_are_advisory(self, client, fake_engine, make_image):
        fake_engine.responder = lambda grid: ["jpeg"]

        response = client.post(
            "/v1/recognize",
            files={"file": ("notes.txt", make_image(fmt="JPEG"), "text/plain")},
        )

        assert response.json()["data"] == ["jpeg"]

    def test_empty_body_is_missing_file(self, client, fake_engine):
        response = client.post("/v1/recognize")

        assert response.status_code == 400
        assert response.json() == {"status": 400, "message": "missing file field"}
        assert fake_engine.calls == []

    def test_multipart_without_boundary_is_missing_file(self, client, fake_engine):
        response = client.post(
            "/v1/recognize",
            content=b"",
            headers={"Content-Type": "multipart/form-data"},
        )

        assert response.status_code == 400
        assert response.json() == {"status": 400, "message": "missing file field"}
        assert fake_engine.calls == []

    def test_several_file_parts_are_rejected(self, client, fake_engine, make_image):
        image = make_image()
        files = [
            ("file", ("a.png", image, "image/png")),
            ("file", ("b.png", image, "image/png")),
        ]

        response = client.post("/v1/recognize", files=files)

        assert response.status_code == 400
        assert response.json() == {"status": 400, "message": "exactly one file field expected"}
        assert fake_engine.calls == []

    def test_wrong_field_name_is_missing_file(self, client, make_image):
        response = client.post("/v1/recognize", files={"image": ("a.png", make_image(), "image/png")})

        assert response.status_code == 400
        assert response.json()["message"] == "missing file field"

    def test_text_field_instead_of_file_is_rejected(self, client, fake_engine):
        response = client.post("/v1/recognize", data={"file": "not a file"})

        body = response.json()
        assert response.status_code == 400
        assert body["status"] == 400
        assert "data" not in body
        assert fake_engine.calls == []

    def test_not_an_image_never_reaches_engine(self, client, fake_engine):
        response = client.post("/v1/recognize", files=_upload(b"plain text, not pixels"))

        assert response.status_code == 400
        assert response.json() == {"status": 400, "message": "Invalid image format"}
        assert fake_engine.calls == []

    def test_empty_file_is_decode_error(self, client, fake_engine):
        response = client.post("/v1/recognize", files=_upload(b""))

        assert response.status_code == 400
        assert "data" not in response.json()
        assert fake_engine.calls == []

    def test_engine_error_is_500(self, client, fake_engine, make_image):
        def failing(grid):
            raise EngineError()

        fake_engine.responder = failing

        response = client.post("/v1/recognize", files=_upload(make_image()))

        assert response.status_code == 500
        assert response.json() == {"status": 500, "message": "Failed to recognize text"}

    def test_engine_recovers_after_failure(self, client, fake_engine, make_image):
        responses = iter([EngineError(), ["again"]])

        def flaky(grid):
            result = next(responses)
            if isinstance(result, Exception):
                raise result
            return result

        fake_engine.responder = flaky

        assert client.post("/v1/recognize", files=_upload(make_image())).status_code == 500
        assert client.post("/v1/recognize", files=_upload(make_image())).json()["data"] == ["again"]

    def test_busy_is_503_with_retry_after(self, client, make_image, monkeypatch):
        coordinator = client.app.state.coordinator
        monkeypatch.setattr(coordinator, "recognize", AsyncMock(side_effect=CapacityError()))

        response = client.post("/v1/recognize", files=_upload(make_image()))

        assert response.status_code == 503
        assert response.json() == {"status": 503, "message": "service busy"}
        assert response.headers["Retry-After"] == "1"


class TestLimits:

    @pytest.fixture
    def small_limits(self, monkeypatch):
        monkeypatch.setattr(settings, "max_file_size_mb", 1)
        monkeypatch.setattr(settings, "max_pixels", 10_000)

    def test_body_over_limit_is_413(self, small_limits, fake_engine):
        with TestClient(create_app(engine=fake_engine)) as client:
            response = client.post("/v1/recognize", files=_upload(b"x" * (2 * 1024 * 1024)))

        assert response.status_code == 413
        assert response.json()["status"] == 413
        assert fake_engine.calls == []

    def test_chunked_body_over_limit_is_413(self, small_limits, fake_engine):
        # Генератор: httpx шлёт тело без Content-Length
        def chunks():
            for _ in range(40):
                yield b"x" * (64 * 1024)

        with TestClient(create_app(engine=fake_engine)) as client:
            response = client.post(
                "/v1/recognize",
                content=chunks(),
                headers={"Content-Type": "multipart/form-data; boundary=limit"},
            )

        assert response.status_code == 413
        assert response.json()["status"] == 413
        assert "too large" in response.json()["message"]
        assert fake_engine.calls == []

    def test_file_just_over_limit_is_413(self, small_limits, fake_engine):
        # Тело укладывается в запас middleware, отказ даёт сам эндпоинт
        data = b"x" * (settings.max_file_size_bytes + 1)

        with TestClient(create_app(engine=fake_engine)) as client:
            response = client.post("/v1/recognize", files=_upload(data))

        assert response.status_code == 413
        assert response.json()["message"].startswith("File too large")
        assert fake_engine.calls == []

    def test_pixel_area_over_limit_is_400(self, small_limits, fake_engine, make_image):
        with TestClient(create_app(engine=fake_engine)) as client:
            response = client.post("/v1/recognize", files=_upload(make_image(200, 200)))

        assert response.status_code == 400
        assert "too large" in response.json()["message"]
        assert fake_engine.calls == []


class TestServiceEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        body = response.json()

        assert response.status_code == 200
        assert body["status"] == "ok"
        assert body["engine"] == {"name": "fake", "version": "0.0"}
        assert body["queue"]["capacity"] == settings.max_queue_depth
        assert body["queue"]["running"] is True

    def test_unknown_route_uses_envelope(self, client):
        response = client.get("/v2/nothing")

        assert response.status_code == 404
        assert response.json() == {"status": 404, "message": "Not Found"}

    def test_wrong_method_uses_envelope(self, client):
        response = client.get("/v1/recognize")

        assert response.status_code == 405
        assert response.json()["status"] == 405


class TestLifecycle:

    def test_engine_closed_on_shutdown(self, fake_engine):
        with TestClient(create_app(engine=fake_engine)):
            assert not fake_engine.closed

        assert fake_engine.closed

    def test_engine_initialization_failure_prevents_startup(self, monkeypatch):
        def fail():
            raise FatalError("no model")

        monkeypatch.setattr(TesseractEngine, "initialize", classmethod(lambda cls: fail()))

        with pytest.raises(FatalError):
            with TestClient(create_app()):
                pass
