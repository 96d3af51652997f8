import unittest
from unittest.mock import patch

import support  # noqa: F401

from progress_api import worker


class FakeMonotonic:
    def __init__(self):
        self.value = 1000.0

    def monotonic(self):
        return self.value

    def sleep(self, seconds):
        self.value += seconds


class WorkerScheduleTests(unittest.TestCase):
    def _serve(self, pass_seconds, ticks, side_effect=None):
        clock = FakeMonotonic()
        stop = {'flag': False}
        starts = []

        def slow_pass(actor):
            starts.append(clock.value)
            clock.value += pass_seconds
            if len(starts) >= ticks:
                stop['flag'] = True
            if side_effect is not None:
                raise side_effect
            return {'sync': {}}

        with patch.object(worker, 'time', clock), patch.object(worker, 'run_once', side_effect=slow_pass):
            worker.serve('tests', 3600, stop, poll_sleep=1.0)
        return starts

    def test_slow_pass_keeps_start_to_start_interval(self):
        starts = self._serve(pass_seconds=300, ticks=3)
        self.assertEqual(len(starts), 3)
        self.assertEqual(starts[1] - starts[0], 3600)
        self.assertEqual(starts[2] - starts[1], 3600)

    def test_overrunning_pass_starts_next_tick_without_backlog(self):
        starts = self._serve(pass_seconds=9000, ticks=3)
        self.assertEqual(starts[1] - starts[0], 9001)
        self.assertEqual(starts[2] - starts[1], 9001)

    def test_loop_survives_pass_errors(self):
        starts = self._serve(pass_seconds=5, ticks=2, side_effect=RuntimeError('db down'))
        self.assertEqual(starts[1] - starts[0], 3600)


if __name__ == '__main__':
    unittest.main()
