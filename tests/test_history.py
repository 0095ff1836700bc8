import unittest

from uplink import messages as m
from uplink.history import HistoryBuffer


def _message(n):
    return m.make_message(m.PEER, "alice", f"message {n}", n)


class TestHistoryBuffer(unittest.TestCase):

    def test_never_exceeds_capacity(self):
        history = HistoryBuffer(capacity=50)
        for n in range(120):
            history.append(_message(n))
            self.assertLessEqual(len(history), 50)
        self.assertEqual(len(history), 50)

    def test_fifty_first_message_evicts_oldest(self):
        history = HistoryBuffer(capacity=50)
        appended = [_message(n) for n in range(51)]
        for message in appended:
            history.append(message)
        snapshot = history.snapshot()
        self.assertEqual(snapshot[0].content, "message 1")
        self.assertEqual(snapshot[-1].content, "message 50")
        self.assertEqual([msg.id for msg in snapshot], [msg.id for msg in appended[1:]])

    def test_snapshot_is_detached_from_later_appends(self):
        history = HistoryBuffer(capacity=3)
        history.append(_message(1))
        snapshot = history.snapshot()
        history.append(_message(2))
        self.assertIsInstance(snapshot, tuple)
        self.assertEqual(len(snapshot), 1)

    def test_clear_empties_buffer(self):
        history = HistoryBuffer(capacity=3)
        history.append(_message(1))
        history.clear()
        self.assertEqual(history.snapshot(), ())

    def test_rejects_zero_capacity(self):
        with self.assertRaises(ValueError):
            HistoryBuffer(capacity=0)


if __name__ == "__main__":
    unittest.main()
