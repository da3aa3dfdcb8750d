import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

import main
from src.models.message import BotMode


BOT = "2250100000000@s.whatsapp.net"
USER = "2250700000000@s.whatsapp.net"


def _payload(text="Bonjour", from_me=False, event="messages.upsert"):
    return {
        "event": event,
        "sender": BOT,
        "data": {
            "key": {"id": "ABC123", "remoteJid": USER, "fromMe": from_me},
            "messageType": "conversation",
            "message": {"conversation": text},
            "messageTimestamp": 1740988800,
        },
    }


def _jarvis():
    dispatcher = MagicMock()
    dispatcher.handle = AsyncMock()
    dispatcher.state.mode = BotMode.NORMAL
    admin = MagicMock()
    admin.load_bot_mode = AsyncMock(return_value=BotMode.NORMAL)
    scheduler = MagicMock()
    scheduler.stop = AsyncMock()
    return main.Jarvis(dispatcher=dispatcher, admin=admin, scheduler=scheduler, bot_id="")


class TestWebhook(unittest.TestCase):
    def setUp(self):
        self.jarvis = _jarvis()
        patcher = patch("main.build_jarvis", return_value=self.jarvis)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_health(self):
        with TestClient(main.app) as client:
            resp = client.get("/health")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok", "mode": "normal"})
        self.jarvis.scheduler.start.assert_called_once()
        self.jarvis.scheduler.stop.assert_awaited_once()

    def test_message_is_dispatched(self):
        with TestClient(main.app) as client:
            resp = client.post("/webhook/whatsapp", json=_payload("Bonjour"))

        self.assertEqual(resp.json(), {"status": "ok"})
        message = self.jarvis.dispatcher.handle.await_args.args[0]
        self.assertEqual(message.body, "Bonjour")
        self.assertEqual(message.sender, USER)

    def test_ignored_events(self):
        with TestClient(main.app) as client:
            own = client.post("/webhook/whatsapp", json=_payload(from_me=True))
            other = client.post("/webhook/whatsapp", json=_payload(event="connection.update"))
            broken = client.post("/webhook/whatsapp", json={"event": "messages.upsert"})
            not_json = client.post("/webhook/whatsapp", content=b"nope")

        for resp in (own, other, broken, not_json):
            self.assertEqual(resp.status_code, 200)
            self.assertEqual(resp.json(), {"status": "ignored"})
        self.jarvis.dispatcher.handle.assert_not_awaited()

    def test_webhook_token(self):
        with patch.dict("os.environ", {"EVOLUTION_WEBHOOK_TOKEN": "s3cret"}):
            with TestClient(main.app) as client:
                denied = client.post("/webhook/whatsapp", json=_payload())
                allowed = client.post("/webhook/whatsapp", json=_payload(), headers={"apikey": "s3cret"})

        self.assertEqual(denied.status_code, 403)
        self.assertEqual(allowed.json(), {"status": "ok"})
        self.assertEqual(self.jarvis.dispatcher.handle.await_count, 1)


if __name__ == "__main__":
    unittest.main()
