import tempfile
import unittest
from pathlib import Path

from support import link, make_service

from spotibot.spotify.models import PlaybackSnapshot


class ChannelAndMessageRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)
        self.service = make_service(self.data_dir)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_set_channel_round_trip(self) -> None:
        self.service.set_user_channel("1", "100")
        self.assertEqual(self.service.get_user_channel("1"), "100")

        self.service.set_user_channel("1", "200")
        self.assertEqual(self.service.get_user_channel("1"), "200")

    def test_remove_channel_clears_message(self) -> None:
        self.service.set_user_channel("1", "100")
        self.service.set_user_message("1", "m1")

        self.assertTrue(self.service.remove_user_channel("1"))
        self.assertIsNone(self.service.get_user_channel("1"))
        self.assertIsNone(self.service.get_user_message("1"))
        self.assertFalse(self.service.remove_user_channel("1"))

    def test_shared_channel_is_first_entry(self) -> None:
        self.assertIsNone(self.service.get_shared_channel())
        self.service.set_user_channel("2", "200")
        self.service.set_user_channel("1", "100")
        self.assertEqual(self.service.get_shared_channel(), "200")

    def test_unlink_preserves_other_users_shared_channel(self) -> None:
        link(self.service, "A")
        link(self.service, "B")
        self.service.set_user_channel("A", "C")
        self.service.set_user_channel("B", "C")
        self.service.set_user_message("A", "mA")
        self.service.snapshots.put(PlaybackSnapshot("A", None, 0, "x|y"))

        self.assertTrue(self.service.unlink_user("A"))

        self.assertEqual(self.service.get_all_channels(), {"B": "C"})
        self.assertFalse(self.service.is_linked("A"))
        self.assertIsNone(self.service.get_snapshot("A"))
        self.assertIsNone(self.service.get_user_message("A"))
        self.assertEqual(self.service.get_shared_channel(), "C")

    def test_unlink_unknown_user(self) -> None:
        self.service.set_user_channel("A", "C")
        self.assertFalse(self.service.unlink_user("A"))
        self.assertEqual(self.service.get_all_channels(), {"A": "C"})

    def test_remove_channel_everywhere(self) -> None:
        self.service.set_user_channel("A", "C")
        self.service.set_user_channel("B", "C")
        self.service.set_user_channel("D", "E")
        self.service.set_user_message("A", "mA")

        self.assertEqual(self.service.remove_channel_everywhere("C"), 2)
        self.assertEqual(self.service.get_all_channels(), {"D": "E"})
        self.assertIsNone(self.service.get_user_message("A"))

    def test_set_user_message_with_empty_id_clears(self) -> None:
        self.service.set_user_message("A", "m1")
        self.service.set_user_message("A", None)
        self.assertIsNone(self.service.get_user_message("A"))

    def test_state_persists_across_service_instances(self) -> None:
        link(self.service, "A")
        self.service.set_user_channel("A", "C")
        self.service.set_user_message("A", "m1")

        reloaded = make_service(self.data_dir)
        self.assertTrue(reloaded.is_linked("A"))
        self.assertEqual(reloaded.get_user_channel("A"), "C")
        self.assertEqual(reloaded.get_user_message("A"), "m1")


if __name__ == "__main__":
    unittest.main()
