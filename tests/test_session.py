import json
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from candidate_checker.errors import SessionError
from candidate_checker.session import JsonFileStore, MemoryStore, SessionSnapshot, set_checked


def sample_snapshot() -> SessionSnapshot:
    return SessionSnapshot(
        headers=["Nombre", "Alta"],
        rows=[{"Nombre": "Ana", "Alta": datetime(2020, 1, 2)}, {"Nombre": "Luis"}],
        checked_state={1: {"CCOO": True}},
        unions=["CCOO", "UGT", "SB"],
        submission_date="2024-03-01",
        voting_date="2024-03-15",
        file_name="censo.xlsx",
    )


class SetCheckedTests(unittest.TestCase):
    def test_returns_a_new_state(self):
        state = {0: {"CCOO": True}}
        updated = set_checked(state, 0, "UGT", True)
        self.assertEqual(updated, {0: {"CCOO": True, "UGT": True}})
        self.assertEqual(state, {0: {"CCOO": True}})

    def test_snapshot_rejects_rows_out_of_range(self):
        with self.assertRaises(IndexError):
            sample_snapshot().with_checked(5, "CCOO", True)


class SnapshotShapeTests(unittest.TestCase):
    def test_to_dict_uses_the_stored_layout(self):
        payload = sample_snapshot().to_dict()
        self.assertEqual(payload["checkedState"], {"1": {"CCOO": True}})
        self.assertEqual(
            payload["settings"],
            {"dates": {"submissionDate": "2024-03-01", "votingDate": "2024-03-15"}, "unions": ["CCOO", "UGT", "SB"]},
        )
        self.assertEqual(payload["data"][0]["Alta"], "2020-01-02T00:00:00")
        self.assertEqual(payload["fileName"], "censo.xlsx")
        json.dumps(payload)

    def test_from_dict_restores_integer_row_keys(self):
        restored = SessionSnapshot.from_dict(sample_snapshot().to_dict())
        self.assertEqual(restored.checked_state, {1: {"CCOO": True}})
        self.assertEqual(restored.rows[1], {"Nombre": "Luis"})
        self.assertEqual(restored.unions, ["CCOO", "UGT", "SB"])

    def test_datetime_cells_come_back_as_datetimes(self):
        restored = SessionSnapshot.from_dict(sample_snapshot().to_dict())
        self.assertEqual(restored.rows[0]["Alta"], datetime(2020, 1, 2))

    def test_other_text_cells_stay_text(self):
        payload = {"data": [{"Alta": "2020-01-02", "Nota": "2020-99-99T00:00:00"}]}
        restored = SessionSnapshot.from_dict(payload)
        self.assertEqual(restored.rows[0], {"Alta": "2020-01-02", "Nota": "2020-99-99T00:00:00"})

    def test_missing_settings_fall_back_to_defaults(self):
        restored = SessionSnapshot.from_dict({"headers": ["a"], "data": [{"a": 1}]})
        self.assertEqual(restored.unions, ["CCOO", "UGT"])
        self.assertEqual(restored.submission_date, "")
        self.assertEqual(restored.checked_state, {})

    def test_bad_selection_keys(self):
        with self.assertRaises(SessionError):
            SessionSnapshot.from_dict({"checkedState": {"first": {"CCOO": True}}})


class StoreTests(unittest.TestCase):
    def test_json_file_store_round_trip_and_clear(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = JsonFileStore(Path(tmpdir) / "nested" / "session.json")
            self.assertIsNone(store.load())
            store.save(sample_snapshot())
            loaded = store.load()
            self.assertEqual(loaded.file_name, "censo.xlsx")
            self.assertEqual(loaded.checked_state, {1: {"CCOO": True}})
            store.clear()
            self.assertIsNone(store.load())
            store.clear()

    def test_corrupt_file_raises_session_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "session.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaises(SessionError):
                JsonFileStore(path).load()

    def test_memory_store(self):
        store = MemoryStore()
        self.assertIsNone(store.load())
        store.save(sample_snapshot())
        self.assertEqual(store.load().voting_date, "2024-03-15")
        store.clear()
        self.assertIsNone(store.load())


if __name__ == "__main__":
    unittest.main()
