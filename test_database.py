# test_database.py
"""
Integration tests for CaseRepository against a temporary SQLite file.
"""

import sqlite3
import tempfile
import unittest
from pathlib import Path

from database import CaseRepository, get_connection, initialize_db, run_integrity_check
from migrations import LATEST_VERSION, get_schema_version


def _result(name, actual, lower=None, upper=None, status="NORMAL", **extra):
    row = {
        "parameter_name": name,
        "actual_value": actual,
        "lower_limit": lower,
        "upper_limit": upper,
        "status": status,
    }
    row.update(extra)
    return row


class RepoTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "test.db"
        self.conn = initialize_db(get_connection(self.path), self.path)
        self.repo = CaseRepository(self.conn)

    def tearDown(self):
        self.conn.close()
        self.tmpdir.cleanup()

    def _case(self, owner="lab-1", name="Acme", **extra):
        data = {"customer_name": name}
        data.update(extra)
        return self.repo.create_case(owner, data)


class TestSchema(RepoTestCase):
    def test_fresh_db_is_at_latest_version(self):
        self.assertEqual(get_schema_version(self.conn), LATEST_VERSION)
        self.assertIsNone(run_integrity_check(self.conn))

    def test_initialize_twice_is_harmless(self):
        initialize_db(self.conn, self.path)
        self.assertEqual(get_schema_version(self.conn), LATEST_VERSION)

    def test_condition_check_constraint(self):
        with self.assertRaises(sqlite3.IntegrityError):
            self._case(machine_condition="BAD")
        self.conn.rollback()


class TestCases(RepoTestCase):
    def test_create_and_get(self):
        case_id = self._case(customer_email="ops@acme.test", lubricant_condition="ALARM")
        case = self.repo.get_case(case_id)
        self.assertEqual(case.customer_name, "Acme")
        self.assertEqual(case.customer_email, "ops@acme.test")
        self.assertEqual(case.machine_condition, "NORMAL")
        self.assertEqual(case.lubricant_condition, "ALARM")
        self.assertIsNotNone(case.created_at)

    def test_owner_scoping(self):
        case_id = self._case(owner="lab-1")
        self._case(owner="lab-2", name="Other")
        self.assertIsNone(self.repo.get_case(case_id, owner_id="lab-2"))
        self.assertEqual([c.customer_name for c in self.repo.list_cases("lab-2")], ["Other"])
        self.assertIsNone(self.repo.get_case_detail(case_id, owner_id="lab-2"))

    def test_list_newest_first(self):
        first = self._case(name="First")
        second = self._case(name="Second")
        ids = [c.id for c in self.repo.list_cases("lab-1")]
        self.assertEqual(ids, [second, first])

    def test_update_case_only_allowed_fields(self):
        case_id = self._case()
        self.repo.update_case(case_id, {"recommendations": "Change oil", "machine_condition": "ALERT"})
        case = self.repo.get_case(case_id)
        self.assertEqual(case.recommendations, "Change oil")
        self.assertEqual(case.machine_condition, "ALERT")
        with self.assertRaises(ValueError):
            self.repo.update_case(case_id, {"customer_name": "Renamed"})

    def test_update_case_scoped_to_owner(self):
        case_id = self._case(owner="lab-1")
        self.assertFalse(self.repo.update_case(case_id, {"recommendations": "Hijacked"}, owner_id="lab-2"))
        self.assertIsNone(self.repo.get_case(case_id).recommendations)
        self.assertTrue(self.repo.update_case(case_id, {"recommendations": "Resample"}, owner_id="lab-1"))
        self.assertEqual(self.repo.get_case(case_id).recommendations, "Resample")


class TestResults(RepoTestCase):
    def setUp(self):
        super().setUp()
        self.case_id = self._case()
        self.test_id = self.repo.create_test(self.case_id, "Wear Metals")

    def test_insert_preserves_order(self):
        self.repo.insert_results(
            self.test_id,
            [_result("Iron", 25, 0, 20, "ALARM"), _result("Copper", 3), _result("Lead", 1)],
        )
        names = [r.parameter_name for r in self.repo.list_results(self.test_id)]
        self.assertEqual(names, ["Iron", "Copper", "Lead"])

    def test_replace_leaves_exactly_new_rows(self):
        self.repo.insert_results(self.test_id, [_result("A", 1), _result("B", 2), _result("C", 3)])
        self.repo.replace_results(self.test_id, [_result("X", 9), _result("Y", 8)])
        results = self.repo.list_results(self.test_id)
        self.assertEqual([r.parameter_name for r in results], ["X", "Y"])
        count = self.conn.execute(
            "SELECT COUNT(*) FROM case_test_results WHERE case_test_id = ?", (self.test_id,)
        ).fetchone()[0]
        self.assertEqual(count, 2)

    def test_replace_updates_test_fields(self):
        self.repo.replace_results(
            self.test_id,
            [_result("X", 1)],
            test_fields={"test_name": "Renamed", "image_comment": "sample jar"},
        )
        test = self.repo.get_test(self.test_id)
        self.assertEqual(test.test_name, "Renamed")
        self.assertEqual(test.image_comment, "sample jar")
        self.assertEqual(len(test.results), 1)

    def test_replace_rolls_back_on_failure(self):
        self.repo.insert_results(self.test_id, [_result("A", 1), _result("B", 2)])
        with self.assertRaises(sqlite3.IntegrityError):
            self.repo.replace_results(
                self.test_id,
                [_result("X", 1), _result("Y", 2, status="BOGUS")],
                test_fields={"test_name": "Should not stick"},
            )
        self.assertEqual([r.parameter_name for r in self.repo.list_results(self.test_id)], ["A", "B"])
        self.assertEqual(self.repo.get_test(self.test_id).test_name, "Wear Metals")

    def test_test_access_scoped_to_case_owner(self):
        self.repo.insert_results(self.test_id, [_result("A", 1)])
        self.assertIsNone(self.repo.get_test(self.test_id, owner_id="lab-2"))
        self.assertEqual(self.repo.get_test(self.test_id, owner_id="lab-1").test_name, "Wear Metals")
        with self.assertRaises(ValueError):
            self.repo.replace_results(
                self.test_id, [_result("X", 99)], test_fields={"test_name": "Hijacked"}, owner_id="lab-2"
            )
        test = self.repo.get_test(self.test_id)
        self.assertEqual(test.test_name, "Wear Metals")
        self.assertEqual([r.parameter_name for r in test.results], ["A"])

    def test_replace_rejects_unknown_test_fields(self):
        with self.assertRaises(ValueError):
            self.repo.replace_results(self.test_id, [], test_fields={"case_id": "x"})

    def test_case_detail_is_nested_and_ordered(self):
        self.repo.insert_results(self.test_id, [_result("Iron", 25, 0, 20, "ALARM"), _result("Copper", 3)])
        second = self.repo.create_test(self.case_id, "Viscosity")
        self.repo.insert_results(second, [_result("KV40", 68.2, 61.2, 74.8, unit="cSt")])
        empty = self.repo.create_test(self.case_id, "Pending")

        detail = self.repo.get_case_detail(self.case_id, "lab-1")
        self.assertEqual(detail.case.id, self.case_id)
        self.assertEqual([t.id for t in detail.tests], [self.test_id, second, empty])
        self.assertEqual([r.parameter_name for r in detail.tests[0].results], ["Iron", "Copper"])
        self.assertEqual(detail.tests[1].results[0].unit, "cSt")
        self.assertEqual(detail.tests[2].results, [])
        self.assertEqual(len(detail.all_results()), 3)

    def test_zero_limit_round_trips_as_zero(self):
        self.repo.insert_results(self.test_id, [_result("Iron", 25, 0, 20, "ALARM")])
        r = self.repo.list_results(self.test_id)[0]
        self.assertEqual(r.lower_limit, 0.0)
        self.assertIsNone(r.unit)


class TestTemplatesAndSettings(RepoTestCase):
    def test_template_round_trip(self):
        tid = self.repo.create_template(
            "lab-1",
            "Wear Metals",
            [
                {"parameter_name": "Iron", "lower_limit": 0, "upper_limit": 20, "unit": "ppm"},
                {"parameter_name": "Copper", "lower_limit": None, "upper_limit": 10, "unit": None},
            ],
        )
        template = self.repo.get_template(tid)
        self.assertEqual(template.test_name, "Wear Metals")
        self.assertEqual([p.parameter_name for p in template.parameters], ["Iron", "Copper"])
        self.assertIsNone(template.parameters[1].lower_limit)
        self.assertEqual([t.id for t in self.repo.list_templates("lab-1")], [tid])
        self.assertEqual(self.repo.list_templates("lab-2"), [])
        self.assertIsNone(self.repo.get_template(tid, owner_id="lab-2"))
        self.assertEqual(self.repo.get_template(tid, owner_id="lab-1").id, tid)

    def test_settings_upsert_by_owner(self):
        self.assertIsNone(self.repo.get_company_settings("lab-1"))
        self.repo.upsert_company_settings("lab-1", {"company_name": "Lube Labs", "email": "a@b.test"})
        self.repo.upsert_company_settings("lab-1", {"company_name": "Lube Labs Ltd"})
        settings = self.repo.get_company_settings("lab-1")
        self.assertEqual(settings.company_name, "Lube Labs Ltd")
        self.assertIsNone(settings.email)
        count = self.conn.execute("SELECT COUNT(*) FROM company_settings").fetchone()[0]
        self.assertEqual(count, 1)


if __name__ == "__main__":
    unittest.main()
