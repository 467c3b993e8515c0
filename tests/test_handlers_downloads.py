from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from types import SimpleNamespace
from unittest import IsolatedAsyncioTestCase

from bot_app.handlers import downloads, inline
from bot_app.orchestrator import DownloadOrchestrator, RequestState
from bot_app.ui.i18n import translate
from services.download_service import DownloadService
from utils.access_control import AuthorizationGate

BOT_USERNAME = "reelser_bot"


class FakeTransport:
    def __init__(self) -> None:
        self.messages: list[tuple[int, str]] = []
        self.deleted: list[tuple[int, int]] = []
        self.inline_answers: list[dict] = []
        self._next_id = 500

    async def send_message(self, chat_id: int, text: str):
        self.messages.append((chat_id, text))
        self._next_id += 1
        return self._next_id

    async def delete_message(self, chat_id: int, message_id):
        self.deleted.append((chat_id, message_id))
        return True

    async def answer_inline_query(self, inline_query_id, results, *, cache_time=0, is_personal=True):
        self.inline_answers.append(
            {"id": inline_query_id, "results": list(results), "cache_time": cache_time, "is_personal": is_personal}
        )
        return True

    def texts(self) -> list[str]:
        return [text for _, text in self.messages]


class DummyBackend:
    async def download(self, url: str, output_dir: Path) -> Path:
        raise AssertionError("workers are not started in handler tests")


class DummyMessage:
    def __init__(self, user_id: int = 7, chat_type: str = "private", text: str = "", entities=None) -> None:
        chat_id = -1000 if chat_type in ("group", "supergroup") else user_id
        self.chat = SimpleNamespace(id=chat_id, type=chat_type)
        self.from_user = SimpleNamespace(id=user_id, language_code="ru", first_name="Tester")
        self.text = text
        self.caption = None
        self.entities = entities
        self.caption_entities = None
        self.message_id = 77


class HandlerTestCase(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        root = Path(self._tmpdir.name)
        self.service = DownloadService(
            root / "tmp",
            {"youtube": DummyBackend(), "tiktok": DummyBackend(), "instagram": DummyBackend()},
        )
        self.transport = FakeTransport()
        self.orchestrator = DownloadOrchestrator(self.service, self.transport, workers=1)
        self.gate = AuthorizationGate(False)
        self.allowed_file = root / "allowed_users.txt"
        logging.getLogger("bot_app").setLevel(logging.CRITICAL)
        logging.getLogger("utils").setLevel(logging.CRITICAL)

    def tearDown(self) -> None:
        logging.getLogger("bot_app").setLevel(logging.NOTSET)
        logging.getLogger("utils").setLevel(logging.NOTSET)
        self._tmpdir.cleanup()

    async def send(self, message: DummyMessage) -> None:
        await downloads.handle_message(
            message,
            gate=self.gate,
            orchestrator=self.orchestrator,
            transport=self.transport,
            bot_username=BOT_USERNAME,
            locale="ru",
        )


class MessageHandlerTests(HandlerTestCase):
    async def test_link_is_enqueued_with_status_message(self) -> None:
        await self.send(DummyMessage(text="смотри https://youtu.be/abc!"))

        self.assertEqual(self.transport.texts(), [translate("request.accepted", "ru")])
        self.assertEqual(self.orchestrator.stats()["queue_size"], 1)

    async def test_start_and_help_and_unknown_commands(self) -> None:
        await self.send(DummyMessage(text="/start"))
        await self.send(DummyMessage(text="/help@reelser_bot"))
        await self.send(DummyMessage(text="/nope"))

        texts = self.transport.texts()
        self.assertIn("@reelser_bot", texts[0])
        self.assertIn("50 MB", texts[1])
        self.assertEqual(texts[2], translate("unknown_command", "ru"))

    async def test_text_without_link(self) -> None:
        await self.send(DummyMessage(text="привет"))
        self.assertEqual(self.transport.texts(), [translate("link.invalid", "ru")])

    async def test_domain_without_scheme_cannot_be_extracted(self) -> None:
        await self.send(DummyMessage(text="youtube.com/watch?v=1"))
        self.assertEqual(self.transport.texts(), [translate("link.extract_failed", "ru")])

    async def test_unsupported_platform_is_not_enqueued(self) -> None:
        await self.send(DummyMessage(text="https://example.com/video"))

        self.assertEqual(self.transport.texts(), [translate("link.unsupported", "ru")])
        self.assertEqual(self.orchestrator.stats()["queue_size"], 0)

    async def test_overflow_deletes_status_and_reports_overload(self) -> None:
        for _ in range(2):
            await self.send(DummyMessage(text="https://youtu.be/abc"))
        self.transport.messages.clear()

        await self.send(DummyMessage(text="https://youtu.be/abc"))

        self.assertEqual(
            self.transport.texts(),
            [translate("request.accepted", "ru"), translate("request.overloaded", "ru")],
        )
        self.assertEqual(len(self.transport.deleted), 1)

    async def test_group_requires_mention(self) -> None:
        await self.send(DummyMessage(chat_type="group", text="https://youtu.be/abc"))
        self.assertEqual(self.transport.messages, [])

        mention = SimpleNamespace(type="mention", offset=0, length=len("@reelser_bot"))
        await self.send(
            DummyMessage(chat_type="supergroup", text="@Reelser_Bot https://youtu.be/abc", entities=[mention])
        )
        self.assertEqual(self.transport.messages, [(-1000, translate("request.accepted", "ru"))])

    async def test_message_without_sender_is_ignored(self) -> None:
        message = DummyMessage(text="https://youtu.be/abc")
        message.from_user = None
        await self.send(message)
        self.assertEqual(self.transport.messages, [])


class AuthFlowTests(HandlerTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.gate = AuthorizationGate(True, ["secret-token"], self.allowed_file)

    async def test_command_asks_for_token(self) -> None:
        await self.send(DummyMessage(text="/start"))
        self.assertEqual(self.transport.texts(), [translate("auth.prompt", "ru")])

    async def test_wrong_then_right_token(self) -> None:
        await self.send(DummyMessage(text="wrong"))
        await self.send(DummyMessage(text="  secret-token "))

        self.assertEqual(
            self.transport.texts(),
            [translate("auth.invalid", "ru"), translate("auth.success", "ru")],
        )
        self.assertTrue(self.gate.is_authorized(7))
        self.assertEqual(self.allowed_file.read_text().split(), ["7"])

    async def test_links_are_blocked_until_authorized(self) -> None:
        await self.send(DummyMessage(text="https://youtu.be/abc"))

        self.assertEqual(self.transport.texts(), [translate("auth.invalid", "ru")])
        self.assertEqual(self.orchestrator.stats()["queue_size"], 0)

    async def test_group_token_has_mention_stripped(self) -> None:
        await self.send(DummyMessage(chat_type="group", text="@reelser_bot secret-token"))
        self.assertTrue(self.gate.is_authorized(7))


class InlineHandlerTests(HandlerTestCase):
    async def test_help_article_without_url(self) -> None:
        results = inline.build_inline_results("", authorized=True, bot_username=BOT_USERNAME)

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].id, "help")
        self.assertIn("dQw4w9WgXcQ", results[0].input_message_content.message_text)

    async def test_download_article_with_url(self) -> None:
        results = inline.build_inline_results(
            "https://www.tiktok.com/@x/video/1",
            authorized=True,
            bot_username=BOT_USERNAME,
        )
        self.assertEqual(results[0].id, "download")
        self.assertEqual(results[0].input_message_content.message_text, "https://www.tiktok.com/@x/video/1")

    async def test_unauthorized_query_gets_auth_article(self) -> None:
        self.gate = AuthorizationGate(True, ["secret-token"], self.allowed_file)
        query = SimpleNamespace(id="q1", query="https://youtu.be/abc", from_user=SimpleNamespace(id=9))

        await inline.handle_inline_query(
            query,
            gate=self.gate,
            transport=self.transport,
            bot_username=BOT_USERNAME,
        )

        answer = self.transport.inline_answers[0]
        self.assertEqual(answer["id"], "q1")
        self.assertEqual(answer["cache_time"], 0)
        self.assertTrue(answer["is_personal"])
        self.assertEqual([r.id for r in answer["results"]], ["auth_required"])

    async def test_chosen_result_is_enqueued_to_private_chat(self) -> None:
        chosen = SimpleNamespace(result_id="download", query="https://youtu.be/abc", from_user=SimpleNamespace(id=9))

        await inline.handle_chosen_inline_result(
            chosen,
            gate=self.gate,
            orchestrator=self.orchestrator,
            transport=self.transport,
        )

        self.assertEqual(self.transport.messages, [(9, translate("request.inline_accepted", "ru"))])
        self.assertEqual(self.orchestrator.stats()["queue_size"], 1)

    async def test_chosen_result_for_unauthorized_user(self) -> None:
        self.gate = AuthorizationGate(True, ["secret-token"], self.allowed_file)
        chosen = SimpleNamespace(result_id="download", query="https://youtu.be/abc", from_user=SimpleNamespace(id=9))

        await inline.handle_chosen_inline_result(
            chosen,
            gate=self.gate,
            orchestrator=self.orchestrator,
            transport=self.transport,
        )

        self.assertEqual(self.transport.messages, [(9, translate("auth.inline_required", "ru"))])
        self.assertEqual(self.orchestrator.stats()["queue_size"], 0)

    async def test_chosen_result_without_url_is_ignored(self) -> None:
        chosen = SimpleNamespace(result_id="help", query="", from_user=SimpleNamespace(id=9))

        await inline.handle_chosen_inline_result(
            chosen,
            gate=self.gate,
            orchestrator=self.orchestrator,
            transport=self.transport,
        )

        self.assertEqual(self.transport.messages, [])


class RequestRecordTests(HandlerTestCase):
    async def test_enqueued_request_carries_message_ids(self) -> None:
        request = self.orchestrator.new_request("https://youtu.be/abc", 1, 2, message_id=3, status_message_id=4)
        self.assertEqual(request.state, RequestState.ENQUEUED)
        self.assertEqual((request.message_id, request.status_message_id), (3, 4))
