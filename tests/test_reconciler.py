import random
import tempfile
import unittest
from pathlib import Path

from support import (
    history_message,
    link,
    make_client,
    make_messenger,
    make_service,
    make_user,
    playing_payload,
    track_url,
)

from spotibot.cogs.spotify.reconciler import Outcome, PingRule, StatusReconciler
from spotibot.core.errors import NotFound, Transient
from spotibot.spotify.models import Track


class StatusReconcilerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.client = make_client()
        self.client.get_currently_playing.return_value = playing_payload("Song A")
        self.service = make_service(Path(self._tmp.name), self.client)
        self.alice = make_user("1", "Alice")
        self.messenger = make_messenger({"1": self.alice})
        self.reconciler = StatusReconciler(self.service, self.messenger)

        link(self.service, "1")
        self.service.set_user_channel("1", "4242")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_send_then_edit_then_new_song(self) -> None:
        outcomes = await self.reconciler.run_cycle()
        self.assertEqual(outcomes, {"1": Outcome.SENT})
        self.assertEqual(self.service.get_user_message("1"), "1000")
        content = self.messenger.send.await_args.args[1]
        self.assertEqual(content, "Alice is listening to **Song A** by Artist X")

        outcomes = await self.reconciler.run_cycle()
        self.assertEqual(outcomes, {"1": Outcome.EDITED})
        self.assertEqual(self.messenger.edit.await_args.args[1], "1000")

        self.client.get_currently_playing.return_value = playing_payload("Song B")
        outcomes = await self.reconciler.run_cycle()
        self.assertEqual(outcomes, {"1": Outcome.EDITED})
        self.assertIn("**Song B**", self.messenger.edit.await_args.args[2])
        self.assertEqual(self.messenger.send.await_count, 1)

    async def test_deleted_message_same_song_sends_new(self) -> None:
        await self.reconciler.run_cycle()
        self.messenger.edit.side_effect = NotFound("Unknown Message")

        outcomes = await self.reconciler.run_cycle()

        self.assertEqual(outcomes, {"1": Outcome.REPLACED})
        self.assertEqual(self.service.get_user_message("1"), "1001")
        self.messenger.recent_messages.assert_not_awaited()

    async def test_deleted_message_new_song_tries_discovery_first(self) -> None:
        await self.reconciler.run_cycle()
        self.client.get_currently_playing.return_value = playing_payload("Song B")
        self.messenger.edit.side_effect = [NotFound("Unknown Message"), None]
        self.messenger.recent_messages.return_value = [
            history_message(777, content="Alice is listening to **Song A** by Artist X"),
        ]

        outcomes = await self.reconciler.run_cycle()

        self.assertEqual(outcomes, {"1": Outcome.ADOPTED})
        self.assertEqual(self.service.get_user_message("1"), "777")

    async def test_not_playing_touches_nothing(self) -> None:
        self.client.get_currently_playing.return_value = None

        outcomes = await self.reconciler.run_cycle()

        self.assertEqual(outcomes, {"1": Outcome.IDLE})
        self.messenger.send.assert_not_awaited()
        self.messenger.edit.assert_not_awaited()

    async def test_no_channel_configured_skips_polling(self) -> None:
        self.service.remove_user_channel("1")

        self.assertEqual(await self.reconciler.run_cycle(), {})
        self.client.get_currently_playing.assert_not_awaited()

    async def test_missing_channel_removes_all_entries(self) -> None:
        link(self.service, "2")
        self.service.set_user_channel("2", "4242")
        self.messenger.fetch_channel.return_value = None

        self.assertEqual(await self.reconciler.run_cycle(), {})
        self.assertEqual(self.service.get_all_channels(), {})

    async def test_transient_channel_error_keeps_config(self) -> None:
        self.messenger.fetch_channel.side_effect = Transient("HTTP 503")

        self.assertEqual(await self.reconciler.run_cycle(), {})
        self.assertEqual(self.service.get_all_channels(), {"1": "4242"})

    async def test_unresolvable_user_is_skipped(self) -> None:
        link(self.service, "2")
        outcomes = await self.reconciler.run_cycle()

        # "2" has no entry in the fake user directory
        self.assertEqual(outcomes["1"], Outcome.SENT)
        self.assertEqual(outcomes["2"], Outcome.FAILED)

        self.messenger.fetch_user.side_effect = NotFound("Unknown User")
        outcomes = await self.reconciler.run_cycle()
        self.assertEqual(outcomes, {"1": Outcome.SKIPPED, "2": Outcome.SKIPPED})

    async def test_send_failure_is_isolated(self) -> None:
        bob = make_user("2", "Bob")
        self.messenger = make_messenger({"1": self.alice, "2": bob})
        self.reconciler = StatusReconciler(self.service, self.messenger)
        link(self.service, "2")

        async def send(channel, content, embed):
            if content.startswith("Alice"):
                raise Transient("HTTP 500")
            return "2000"

        self.messenger.send.side_effect = send

        outcomes = await self.reconciler.run_cycle()

        self.assertEqual(outcomes, {"1": Outcome.FAILED, "2": Outcome.SENT})
        self.assertEqual(self.service.get_user_message("2"), "2000")

    async def test_discovery_prefers_user_match(self) -> None:
        track = Track.from_api(playing_payload("Song A"))
        history = [
            history_message(10, embed_url=track_url("Song A")),
            history_message(11, content="Alice is listening to **Old** by Someone"),
            history_message(12, content="Alice is listening to **Song A** by Artist X", author_id=5),
        ]

        found = await self.reconciler.find_existing_message(None, self.alice, track, history=history)

        self.assertEqual(found, "11")

    async def test_discovery_falls_back_to_track_url(self) -> None:
        track = Track.from_api(playing_payload("Song A"))
        history = [history_message(10, embed_url=track_url("Song A"))]

        found = await self.reconciler.find_existing_message(None, self.alice, track, history=history)

        self.assertEqual(found, "10")

    async def test_discovery_skips_claimed_messages(self) -> None:
        self.service.set_user_message("2", "11")
        history = [history_message(11, icon_url=self.alice.display_avatar.url)]

        found = await self.reconciler.find_existing_message(None, self.alice, None, history=history)

        self.assertIsNone(found)

    async def test_startup_discovery_adopts_messages(self) -> None:
        self.messenger.recent_messages.return_value = [
            history_message(55, icon_url=self.alice.display_avatar.url),
        ]

        self.assertEqual(await self.reconciler.discover_existing_messages(), 1)
        self.assertEqual(self.service.get_user_message("1"), "55")

        # Users that already have a message are not rescanned
        self.assertEqual(await self.reconciler.discover_existing_messages(), 0)


class PingRuleTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.client = make_client()
        self.client.get_currently_playing.return_value = playing_payload("Hotline", ("Drake",))
        self.service = make_service(Path(self._tmp.name), self.client)
        self.messenger = make_messenger({"1": make_user("1", "Alice")})
        link(self.service, "1")
        self.service.set_user_channel("1", "4242")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_rule_only_fires_for_keyword(self) -> None:
        rule = PingRule("drake", 1.0)
        other = Track.from_api(playing_payload("Song", ("Someone",)))
        drake = Track.from_api(playing_payload("Hotline", ("Drake",)))

        self.assertEqual(rule.apply(other, "content"), "content")
        self.assertTrue(rule.apply(drake, "content").startswith("@everyone"))
        self.assertTrue(rule.apply(drake, "content").endswith("\n\ncontent"))

    def test_rule_respects_chance(self) -> None:
        rule = PingRule("drake", 0.05, rng=random.Random(0))
        drake = Track.from_api(playing_payload("Hotline", ("Drake",)))
        results = [rule.apply(drake, "c") for _ in range(200)]
        self.assertLess(sum(r != "c" for r in results), 50)

    async def test_ping_only_when_song_changes(self) -> None:
        reconciler = StatusReconciler(self.service, self.messenger, ping_rule=PingRule("drake", 1.0))

        await reconciler.run_cycle()
        self.assertTrue(self.messenger.send.await_args.args[1].startswith("@everyone"))

        await reconciler.run_cycle()
        self.assertFalse(self.messenger.edit.await_args.args[2].startswith("@everyone"))


if __name__ == "__main__":
    unittest.main()
