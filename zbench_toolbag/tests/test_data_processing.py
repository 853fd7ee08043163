import unittest

from bson.objectid import ObjectId

from zbench_toolbag.data_processing import FailureKind, OperationOutcome, QueryResult, SafeResult


class TestSafeResult(unittest.TestCase):
    def test_ok_converts_object_ids(self):
        oid = ObjectId()
        result = SafeResult.ok({"_id": oid, "tags": [oid]})
        self.assertTrue(result)
        self.assertEqual(result.data, {"_id": str(oid), "tags": [str(oid)]})

    def test_fail_keeps_exception(self):
        exc = RuntimeError("boom")
        result = SafeResult.fail("boom", exc=exc)
        self.assertFalse(result)
        self.assertIs(result.original(), exc)
        self.assertIsNone(result.unwrap(quiet=True))
        with self.assertRaises(RuntimeError):
            result.unwrap()


class TestOperationOutcome(unittest.TestCase):
    def test_failure_defaults_to_error_kind(self):
        outcome = OperationOutcome.fail("nope")
        self.assertEqual(outcome.failure_kind, FailureKind.ERROR)
        self.assertIsNone(outcome.document)
        self.assertFalse(outcome.not_found)

    def test_success_has_no_failure_kind(self):
        outcome = OperationOutcome.ok({"_id": "a"}, request_charge=5.71, elapsed_ms=3,
                                      failure_kind=FailureKind.THROTTLED)
        self.assertIsNone(outcome.failure_kind)
        self.assertEqual(outcome.document, {"_id": "a"})

    def test_charge_and_elapsed_never_negative(self):
        outcome = OperationOutcome.ok({}, request_charge=-2.0, elapsed_ms=-1)
        self.assertEqual(outcome.request_charge, 0.0)
        self.assertEqual(outcome.elapsed_ms, 0)
        self.assertEqual(outcome.document_count, -1)

    def test_model_dump(self):
        dumped = OperationOutcome.fail("missing", failure_kind=FailureKind.NOT_FOUND, request_charge=1.0).model_dump()
        self.assertEqual(dumped["failure_kind"], "not_found")
        self.assertEqual(dumped["request_charge"], 1.0)
        self.assertFalse(dumped["success"])


class TestQueryResult(unittest.TestCase):
    def test_charge_is_summed_over_pages(self):
        result = QueryResult.ok([{"_id": 1}], page_charges=[2.0, 3.0, 1.5], elapsed_ms=40)
        self.assertEqual(result.request_charge, 6.5)
        self.assertEqual(result.pages, 3)

    def test_failure_keeps_partial_documents(self):
        result = QueryResult.fail("throttled", data=[{"_id": 1}], page_charges=[2.0],
                                  failure_kind=FailureKind.THROTTLED)
        self.assertEqual(result.documents, [{"_id": 1}])
        self.assertEqual(result.request_charge, 2.0)

    def test_validation_failure_has_no_documents(self):
        result = QueryResult.fail("Query is not valid JSON", failure_kind=FailureKind.VALIDATION)
        self.assertEqual(result.documents, [])
        self.assertEqual(result.pages, 0)


if __name__ == "__main__":
    unittest.main()
