import asyncio
import logging
import time

from fastapi.testclient import TestClient
from starlette.requests import Request
from starlette.responses import PlainTextResponse

from sping.config import ServerConfig
from sping.domain.cors import parse_whitelist
from sping.main import create_app
from sping.middleware import AccessLogInterceptor, CorsInterceptor, InFlightTracker, Pipeline


def _access_records(caplog):
    return [r for r in caplog.records if getattr(r, "event", None) == "access"]


def _request(client=("10.0.0.1", 4321), headers=()):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/ping",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers],
        "client": client,
        "server": ("testserver", 80),
        "scheme": "http",
    }
    return Request(scope)


async def _ok(request):
    return PlainTextResponse("ok")


class TestRecovery:
    def _client(self, cors="*"):
        app = create_app(ServerConfig(cors=parse_whitelist(cors)))

        @app.get("/boom")
        async def boom():
            raise RuntimeError("kaboom")

        return TestClient(app)

    def test_fault_becomes_500_and_server_keeps_answering(self, caplog):
        client = self._client()
        r = client.get("/boom")
        assert r.status_code == 500
        assert r.text == "Internal server error"
        errors = [x for x in caplog.records if getattr(x, "event", None) == "request_error"]
        assert errors and errors[0].exc_info is not None

        r = client.get("/ping")
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}

    def test_500_keeps_wildcard_cors_headers(self):
        r = self._client().get("/boom", headers={"Origin": "https://a.example"})
        assert r.status_code == 500
        assert r.headers["access-control-allow-origin"] == "*"
        assert "access-control-allow-credentials" not in r.headers

    def test_500_keeps_whitelisted_origin(self):
        client = self._client("https://a.example")
        r = client.get("/boom", headers={"Origin": "https://a.example"})
        assert r.status_code == 500
        assert r.headers["access-control-allow-origin"] == "https://a.example"
        assert r.headers["access-control-allow-credentials"] == "true"

    def test_tracker_is_released_after_fault(self):
        tracker = InFlightTracker()
        app = create_app(tracker=tracker)

        @app.get("/boom")
        async def boom():
            raise ValueError("nope")

        TestClient(app).get("/boom")
        assert tracker.active == 0


class TestAccessLog:
    def test_logs_ip_method_path(self, client, caplog):
        caplog.set_level(logging.INFO)
        client.get("/ping")
        (record,) = _access_records(caplog)
        assert record.ip == "testclient"
        assert record.method == "GET"
        assert record.path == "/ping"
        assert record.status_code == 200

    def test_prefers_x_real_ip(self, client, caplog):
        caplog.set_level(logging.INFO)
        client.get("/version", headers={"X-Real-Ip": "203.0.113.7"})
        (record,) = _access_records(caplog)
        assert record.ip == "203.0.113.7"
        assert record.path == "/version"

    def test_peer_address_host_part(self, caplog):
        caplog.set_level(logging.INFO)
        response = asyncio.run(AccessLogInterceptor().handle(_request(), _ok))
        assert response.status_code == 200
        (record,) = _access_records(caplog)
        assert record.ip == "10.0.0.1"

    def test_missing_peer_address_is_400(self, caplog):
        response = asyncio.run(AccessLogInterceptor().handle(_request(client=None), _ok))
        assert response.status_code == 400
        assert response.body.startswith(b"Unable to parse client IP")
        assert not _access_records(caplog)

    def test_missing_peer_address_with_real_ip_header_is_fine(self, caplog):
        caplog.set_level(logging.INFO)
        request = _request(client=None, headers=[("X-Real-Ip", "198.51.100.1")])
        response = asyncio.run(AccessLogInterceptor().handle(request, _ok))
        assert response.status_code == 200

    def test_empty_x_real_ip_header_is_still_preferred(self, caplog):
        caplog.set_level(logging.INFO)
        request = _request(headers=[("X-Real-Ip", "")])
        response = asyncio.run(AccessLogInterceptor().handle(request, _ok))
        assert response.status_code == 200
        (record,) = _access_records(caplog)
        assert record.ip == ""

    def test_400_keeps_cors_headers(self):
        pipeline = Pipeline(
            app=None,
            interceptors=[AccessLogInterceptor(), CorsInterceptor(ServerConfig())],
        )
        response = asyncio.run(pipeline.dispatch(_request(client=None), _ok))
        assert response.status_code == 400
        assert response.headers["access-control-allow-origin"] == "*"


class TestPipeline:
    def test_runs_interceptors_in_order(self):
        seen = []

        class Mark:
            def __init__(self, name):
                self.name = name

            async def handle(self, request, call_next):
                seen.append(f"{self.name}:in")
                response = await call_next(request)
                seen.append(f"{self.name}:out")
                return response

        pipeline = Pipeline(app=None, interceptors=[Mark("a"), Mark("b")])
        response = asyncio.run(pipeline.dispatch(_request(), _ok))
        assert response.status_code == 200
        assert seen == ["a:in", "b:in", "b:out", "a:out"]


class TestInFlightTracker:
    def test_wait_idle(self):
        async def scenario():
            tracker = InFlightTracker()
            assert await tracker.wait_idle(0.01)

            release = asyncio.Event()

            async def slow(request):
                await release.wait()
                return PlainTextResponse("done")

            task = asyncio.create_task(tracker.handle(_request(), slow))
            await asyncio.sleep(0)
            assert tracker.active == 1
            assert not await tracker.wait_idle(0.05)

            release.set()
            assert await tracker.wait_idle(1.0)
            await task
            return tracker.active

        assert asyncio.run(scenario()) == 0


class TestWriteDeadline:
    def _client(self, write_timeout):
        app = create_app(ServerConfig(write_timeout=write_timeout))

        @app.get("/slow")
        async def slow():
            await asyncio.sleep(1.0)
            return {"done": True}

        return TestClient(app)

    def test_slow_handler_is_cut_off_with_503(self, caplog):
        client = self._client(0.2)
        started = time.monotonic()
        r = client.get("/slow", headers={"Origin": "https://a.example"})
        elapsed = time.monotonic() - started
        assert r.status_code == 503
        assert elapsed < 0.9
        assert r.headers["access-control-allow-origin"] == "*"
        assert any(getattr(x, "event", None) == "request_write_timeout" for x in caplog.records)

        assert client.get("/ping").json() == {"status": "ok"}

    def test_handler_within_deadline_is_untouched(self):
        r = self._client(5.0).get("/slow")
        assert r.status_code == 200
        assert r.json() == {"done": True}
