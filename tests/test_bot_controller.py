from unittest.mock import MagicMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from controllers.bot_controller import BotController, bot_controller, bot_router
from services.audio_service import AudioService
from services.presence_tracker import PresenceTracker


def test_status_without_bot():
    status = BotController().get_status()

    assert status["bot_running"] is False
    assert status["bot_ready"] is False
    assert status["open_voice_sessions"] == 0


def test_status_endpoint_reports_open_sessions():
    bot = MagicMock()
    bot.is_closed.return_value = False
    bot.is_ready.return_value = True
    bot.guilds = [MagicMock(), MagicMock()]
    tracker = PresenceTracker()
    tracker.on_transition(1, 10, None, 100, 0)
    bot_controller.set_references(bot, tracker, AudioService())

    app = FastAPI()
    app.include_router(bot_router)
    response = TestClient(app).get("/api/bot/status")

    assert response.status_code == 200
    body = response.json()
    assert body["bot_ready"] is True
    assert body["guilds"] == 2
    assert body["open_voice_sessions"] == 1
    assert body["streaming_guilds"] == 0
    bot_controller.set_references(None)
