import tempfile
import unittest
from pathlib import Path

from support import grant, make_client, make_service, now_ms

from spotibot.core.errors import Transient
from spotibot.core.storage import JsonDocument
from spotibot.spotify.oauth import OAuthStateStore


class OAuthStateStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.document = JsonDocument(Path(self._tmp.name) / "states.json")
        self.states = OAuthStateStore(self.document, ttl_seconds=600)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_state_is_single_use(self) -> None:
        state = self.states.create("A")

        self.assertEqual(len(state), 64)
        self.assertEqual(self.states.peek(state), "A")
        self.assertEqual(self.states.consume(state), "A")
        self.assertIsNone(self.states.consume(state))

    def test_unknown_state(self) -> None:
        self.assertIsNone(self.states.peek("nope"))
        self.assertIsNone(self.states.consume("nope"))

    def test_expired_state_is_rejected(self) -> None:
        self.document.set("old", {"user_id": "A", "created_at": now_ms() - 601_000})

        self.assertIsNone(self.states.peek("old"))
        self.assertIsNone(self.states.consume("old"))
        self.assertNotIn("old", self.document)

    def test_sweep_removes_expired_and_malformed(self) -> None:
        fresh = self.states.create("A")
        self.document.set("old", {"user_id": "B", "created_at": now_ms() - 601_000})
        self.document.set("junk", "not-a-dict")

        self.assertEqual(self.states.sweep(), 2)
        self.assertEqual(self.document.keys(), [fresh])


class CompleteLinkTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.client = make_client()
        self.service = make_service(Path(self._tmp.name), self.client)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_complete_link_stores_account(self) -> None:
        self.service.begin_link("A")
        state = self.service.states.document.keys()[0]
        self.client.exchange_code_for_token.return_value = grant("access", "refresh")

        self.assertEqual(await self.service.complete_link(state, "code"), "A")

        account = self.service.accounts.get("A")
        self.assertEqual((account.access_token, account.refresh_token), ("access", "refresh"))
        self.assertIsNone(self.service.states.peek(state))

    async def test_unknown_state_does_not_exchange(self) -> None:
        self.assertIsNone(await self.service.complete_link("forged", "code"))
        self.client.exchange_code_for_token.assert_not_awaited()

    async def test_failed_exchange_keeps_state(self) -> None:
        self.service.begin_link("A")
        state = self.service.states.document.keys()[0]
        self.client.exchange_code_for_token.side_effect = Transient("HTTP 500")

        with self.assertRaises(Transient):
            await self.service.complete_link(state, "code")

        self.assertFalse(self.service.is_linked("A"))
        self.assertEqual(self.service.states.peek(state), "A")

    async def test_manual_code_links_user(self) -> None:
        self.client.exchange_code_for_token.return_value = grant("access", "refresh")

        await self.service.link_with_code("A", "pasted")

        self.assertTrue(self.service.is_linked("A"))
        self.client.exchange_code_for_token.assert_awaited_once_with("pasted")


if __name__ == "__main__":
    unittest.main()
