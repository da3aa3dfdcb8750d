import unittest

from src.adapters.evolution import InvalidPayloadError
from src.adapters.evolution import normalize
from src.models.message import MessageKind
from src.utils.format import jid_number
from src.utils.format import same_user
from src.utils.format import to_jid


BOT = "2250100000000@s.whatsapp.net"
USER = "2250700000000@s.whatsapp.net"
GROUP = "120363000000000000@g.us"


def _payload(message_type, message, remote_jid=USER, from_me=False, participant=None, event="messages.upsert"):
    key = {"id": "ABC123", "remoteJid": remote_jid, "fromMe": from_me}
    if participant:
        key["participant"] = participant
    return {
        "event": event,
        "instance": "jarvis",
        "sender": BOT,
        "data": {
            "key": key,
            "messageType": message_type,
            "message": message,
            "messageTimestamp": 1740988800,
        },
    }


class TestNormalize(unittest.TestCase):
    def test_plain_conversation(self):
        message = normalize(_payload("conversation", {"conversation": "Bonjour Jarvis"}))

        self.assertEqual(message.message_id, "ABC123")
        self.assertEqual(message.sender, USER)
        self.assertEqual(message.recipient, BOT)
        self.assertEqual(message.body, "Bonjour Jarvis")
        self.assertEqual(message.kind, MessageKind.TEXT)
        self.assertFalse(message.is_group)
        self.assertEqual(message.user_id, USER)
        self.assertEqual(message.timestamp.year, 2025)

    def test_extended_text(self):
        message = normalize(_payload("extendedTextMessage", {"extendedTextMessage": {"text": "/help"}}))
        self.assertEqual(message.body, "/help")

    def test_own_messages_are_ignored(self):
        self.assertIsNone(normalize(_payload("conversation", {"conversation": "echo"}, from_me=True)))

    def test_other_events_are_ignored(self):
        payload = _payload("conversation", {"conversation": "x"}, event="connection.update")
        self.assertIsNone(normalize(payload))

    def test_invalid_payloads(self):
        with self.assertRaises(InvalidPayloadError):
            normalize({"event": "messages.upsert"})

        payload = _payload("conversation", {"conversation": "x"})
        payload["data"]["key"]["id"] = None
        with self.assertRaises(InvalidPayloadError):
            normalize(payload)

        payload = _payload("conversation", {"conversation": "x"}, remote_jid="")
        with self.assertRaises(InvalidPayloadError):
            normalize(payload)

    def test_group_message_with_mention(self):
        payload = _payload(
            "extendedTextMessage",
            {"extendedTextMessage": {"text": "@Jarvis quelle heure ?", "contextInfo": {"mentionedJid": [BOT]}}},
            remote_jid=GROUP,
            participant=USER,
        )
        message = normalize(payload)

        self.assertTrue(message.is_group)
        self.assertEqual(message.sender, GROUP)
        self.assertEqual(message.author, USER)
        self.assertEqual(message.user_id, USER)
        self.assertEqual(message.mentioned_ids, (BOT,))
        self.assertFalse(message.quoted_from_bot)

    def test_group_reply_to_bot(self):
        payload = _payload(
            "extendedTextMessage",
            {
                "extendedTextMessage": {
                    "text": "et demain ?",
                    "contextInfo": {"participant": BOT, "quotedMessage": {"conversation": "Il fait beau"}},
                }
            },
            remote_jid=GROUP,
            participant=USER,
        )
        message = normalize(payload)
        self.assertTrue(message.quoted_from_bot)
        self.assertEqual(message.mentioned_ids, ())

    def test_explicit_bot_id_overrides_sender(self):
        payload = _payload(
            "extendedTextMessage",
            {
                "extendedTextMessage": {
                    "text": "ok",
                    "contextInfo": {"participant": BOT, "quotedMessage": {"conversation": "?"}},
                }
            },
            remote_jid=GROUP,
            participant=USER,
        )
        message = normalize(payload, bot_id="2250999999999")
        self.assertFalse(message.quoted_from_bot)
        self.assertEqual(message.recipient, "2250999999999")

    def test_document_with_caption(self):
        payload = _payload(
            "documentWithCaptionMessage",
            {
                "documentWithCaptionMessage": {
                    "message": {
                        "documentMessage": {
                            "fileName": "devis.pdf",
                            "mimetype": "application/pdf",
                            "caption": "Voici le devis",
                        }
                    }
                }
            },
        )
        message = normalize(payload)

        self.assertEqual(message.kind, MessageKind.DOCUMENT)
        self.assertTrue(message.has_media)
        self.assertEqual(message.file_name, "devis.pdf")
        self.assertEqual(message.mimetype, "application/pdf")
        self.assertEqual(message.body, "Voici le devis")

    def test_voice_note(self):
        payload = _payload("audioMessage", {"audioMessage": {"mimetype": "audio/ogg; codecs=opus", "ptt": True}})
        message = normalize(payload)

        self.assertEqual(message.kind, MessageKind.VOICE)
        self.assertEqual(message.mimetype, "audio/ogg; codecs=opus")
        self.assertEqual(message.body, "")


class TestJidHelpers(unittest.TestCase):
    def test_jid_number(self):
        self.assertEqual(jid_number("2250700000000:12@s.whatsapp.net"), "2250700000000")
        self.assertEqual(jid_number(None), "")

    def test_to_jid(self):
        self.assertEqual(to_jid("+225 07 00 00 00 00"), "2250700000000@s.whatsapp.net")
        self.assertEqual(to_jid(GROUP), GROUP)

    def test_same_user(self):
        self.assertTrue(same_user(USER, "+2250700000000"))
        self.assertFalse(same_user(USER, BOT))
        self.assertFalse(same_user(None, None))


if __name__ == "__main__":
    unittest.main()
