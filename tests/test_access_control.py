import logging
import tempfile
import threading
import unittest
from pathlib import Path

from monitoring import get_metrics_registry
from utils import access_control
from utils.access_control import AuthorizationGate


class AccessControlTests(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.allowed_file = Path(self._tmpdir.name) / "allowed_users.txt"
        get_metrics_registry().reset()
        logging.getLogger("utils.access_control").setLevel(logging.CRITICAL)

    def tearDown(self):
        logging.getLogger("utils.access_control").setLevel(logging.NOTSET)
        self._tmpdir.cleanup()

    def test_disabled_gate_lets_everyone_in(self):
        gate = AuthorizationGate(False, ["token"], self.allowed_file)
        self.assertFalse(gate.is_enabled())
        self.assertTrue(gate.is_authorized(123))
        self.assertTrue(gate.try_authorize(123, "anything"))
        self.assertFalse(self.allowed_file.exists())

    def test_bad_token_is_rejected(self):
        gate = AuthorizationGate(True, ["token"], self.allowed_file)
        self.assertFalse(gate.try_authorize(5, "nope"))
        self.assertFalse(gate.try_authorize(5, ""))
        self.assertFalse(gate.is_authorized(5))
        self.assertEqual(get_metrics_registry().counter("auth.rejected"), 2)

    def test_authorization_is_idempotent(self):
        gate = AuthorizationGate(True, [" token "], self.allowed_file)
        self.assertTrue(gate.try_authorize(5, "token"))
        self.assertTrue(gate.try_authorize(5, "token"))
        self.assertTrue(gate.is_authorized(5))
        self.assertEqual(gate.approved_count(), 1)
        self.assertEqual(self.allowed_file.read_text().splitlines(), ["5"])
        self.assertEqual(get_metrics_registry().counter("auth.approved"), 1)

    def test_approvals_survive_restart(self):
        gate = AuthorizationGate(True, ["token"], self.allowed_file)
        gate.try_authorize(5, "token")
        gate.try_authorize(-100200300, "token")

        restarted = AuthorizationGate(True, ["token"], self.allowed_file)
        self.assertTrue(restarted.is_authorized(5))
        self.assertTrue(restarted.is_authorized(-100200300))
        self.assertFalse(restarted.is_authorized(6))

    def test_malformed_lines_are_skipped(self):
        self.allowed_file.write_text("# approved users\n\n42\nnot-a-number\n99999999999999999999\n  17  \n")
        gate = AuthorizationGate(True, ["token"], self.allowed_file)
        self.assertTrue(gate.is_authorized(42))
        self.assertTrue(gate.is_authorized(17))
        self.assertEqual(gate.approved_count(), 2)

    def test_missing_file_is_fine(self):
        gate = AuthorizationGate(True, ["token"], Path(self._tmpdir.name) / "nested" / "users.txt")
        self.assertEqual(gate.approved_count(), 0)
        self.assertTrue(gate.try_authorize(1, "token"))
        self.assertTrue((Path(self._tmpdir.name) / "nested" / "users.txt").exists())

    def test_persistence_failure_keeps_approval_in_memory(self):
        blocker = Path(self._tmpdir.name) / "blocker"
        blocker.write_text("not a directory")
        gate = AuthorizationGate(True, ["token"], blocker / "allowed_users.txt")

        self.assertTrue(gate.try_authorize(5, "token"))
        self.assertTrue(gate.is_authorized(5))
        self.assertEqual(gate.approved_count(), 1)
        self.assertEqual(get_metrics_registry().counter("auth.approved"), 1)

    def test_parse_user_id_bounds(self):
        self.assertEqual(access_control.parse_user_id("9223372036854775807"), 2 ** 63 - 1)
        self.assertIsNone(access_control.parse_user_id("9223372036854775808"))
        self.assertIsNone(access_control.parse_user_id("1.5"))

    def test_concurrent_authorizations(self):
        gate = AuthorizationGate(True, ["token"], self.allowed_file)
        threads = [threading.Thread(target=gate.try_authorize, args=(uid % 10, "token")) for uid in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(gate.approved_count(), 10)
        self.assertEqual(sorted(int(x) for x in self.allowed_file.read_text().split()), list(range(10)))


if __name__ == "__main__":
    unittest.main()
