"""
Tests for the HTTP surface.
"""
import httpx
import pytest
from fastapi import FastAPI

from tvcast.routers import main_router
from tvcast.services.fetch_types import CommandResult
from tvcast.streaming.pipeline import PipelineOptions
from tvcast.streaming.session_manager import SessionManager


class StubRefreshService:
    def __init__(self, result):
        self.result = result
        self.kinds = []

    async def execute_refresh(self, kind):
        self.kinds.append(kind)
        return self.result


class StubScheduler:
    scheduler = None

    def get_next_run_time(self):
        return None


def make_app(refresh_service=None, session_manager=None) -> FastAPI:
    app = FastAPI()
    app.include_router(main_router)
    app.state.refresh_service = refresh_service
    app.state.scheduler = StubScheduler()
    app.state.session_manager = session_manager
    return app


def client_for(app: FastAPI) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


class TestRefreshRoute:

    @pytest.mark.asyncio
    async def test_successful_refresh(self):
        service = StubRefreshService(CommandResult(True, "Refreshed channels"))

        async with client_for(make_app(service)) as client:
            response = await client.post("/refresh/channels")

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Refreshed channels"}
        assert service.kinds == ["channels"]

    @pytest.mark.asyncio
    async def test_unknown_kind_is_bad_request(self):
        service = StubRefreshService(CommandResult(False, "Unknown refresh type: weekly"))

        async with client_for(make_app(service)) as client:
            response = await client.post("/refresh/weekly")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_failed_refresh_is_server_error(self):
        service = StubRefreshService(CommandResult(False, "Refresh failed: boom"))

        async with client_for(make_app(service)) as client:
            response = await client.post("/refresh/all")

        assert response.status_code == 500
        assert response.json()["detail"] == "Refresh failed: boom"


class TestStreamRoutes:

    @pytest.mark.asyncio
    async def test_streaming_unconfigured(self):
        async with client_for(make_app()) as client:
            response = await client.get("/stream")

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_status_and_stop_when_idle(self, fake_transport, pipeline_factory):
        manager = SessionManager(
            fake_transport,
            pipeline_factory=pipeline_factory,
            options=PipelineOptions(),
            settle_delay=0,
            idle_timeout=600,
            liveness_timeout=0,
        )

        async with client_for(make_app(session_manager=manager)) as client:
            status = await client.get("/stream")
            stopped = await client.post("/stream/stop")

        assert status.json()["state"] == "idle"
        assert stopped.json() == {"success": False, "message": "No active stream"}

    @pytest.mark.asyncio
    async def test_start_rejects_invalid_voice_channel(self, fake_transport, pipeline_factory):
        manager = SessionManager(fake_transport, pipeline_factory=pipeline_factory, options=PipelineOptions())

        async with client_for(make_app(session_manager=manager)) as client:
            response = await client.post("/stream/start", json={"channel": "News", "voice_channel_id": 0})

        assert response.status_code == 422


class TestServiceInfo:

    @pytest.mark.asyncio
    async def test_health(self):
        async with client_for(make_app()) as client:
            response = await client.get("/health")

        assert response.json() == {"status": "ok", "scheduler_running": False, "next_refresh": None}
