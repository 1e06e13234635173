from __future__ import annotations

import io
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

import config
import run
from scheduler import QuoteScheduler
from state_store import StateStore
from tests.test_scheduler import FAILED, OK, FakeCollector
from tests.test_state_store import MemoryStorage


class RunOnceTests(unittest.TestCase):
    def _main(self, *argv: str, outcomes=OK) -> tuple[int, str, FakeCollector, MemoryStorage]:
        storage = MemoryStorage()
        collector = FakeCollector(outcomes)

        def fake_build_scheduler(index_api_key=None, on_publish=None) -> QuoteScheduler:
            return QuoteScheduler(StateStore(storage, key="state"), collector=collector, index_api_key=index_api_key)

        out = io.StringIO()
        with patch("run.build_scheduler", side_effect=fake_build_scheduler), patch("run.configure_logging"), patch(
            "sys.argv", ["run.py", *argv]
        ), redirect_stdout(out):
            code = run.main()
        return code, out.getvalue(), collector, storage

    def test_once_exits_zero_when_every_cascade_succeeds(self) -> None:
        code, output, _, storage = self._main("--once")
        self.assertEqual(0, code)
        self.assertIn("Run status: ok", output)
        self.assertIn(f"Next delay: {config.INTERVAL_SEC}s", output)
        self.assertFalse(StateStore(storage, key="state").load().last_data.fx.stale)

    def test_once_exits_one_on_degraded_cycle(self) -> None:
        code, output, _, storage = self._main("--once", outcomes=FAILED)
        self.assertEqual(1, code)
        self.assertIn("Run status: degraded", output)
        self.assertIn("Failed cascades:", output)
        self.assertIn("- spx: down", output)
        # the degraded cycle is still persisted
        self.assertIsNotNone(StateStore(storage, key="state").load().last_updated)

    def test_fmp_key_and_interval_are_applied(self) -> None:
        code, output, collector, storage = self._main("--once", "--fmp", "abc", "--interval", "120")
        self.assertEqual(0, code)
        self.assertEqual(["abc"], collector.calls)
        self.assertIn("Next delay: 120s", output)
        self.assertEqual(120, StateStore(storage, key="state").load().interval_sec)

    def test_non_positive_interval_is_rejected(self) -> None:
        with self.assertRaises(SystemExit):
            self._main("--once", "--interval", "0")


if __name__ == "__main__":
    unittest.main()
