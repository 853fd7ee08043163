import asyncio
import random
import unittest
from unittest.mock import AsyncMock, MagicMock

from pymongo.errors import (
    DuplicateKeyError,
    OperationFailure,
    ServerSelectionTimeoutError,
    WriteError,
)

from zbench_toolbag.data_processing import FailureKind
from zbench_toolbag.zconstants import BenchConfig
from zbench_toolbag.zdocument import DocumentGenerator
from zbench_toolbag.zgateway import ZCosmosGateway


class GatewayTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.collection = MagicMock()
        self.db = MagicMock()
        self.db.__getitem__.return_value = self.collection
        self.db.command = AsyncMock(return_value={"CommandName": "insert", "RequestCharge": 5.71, "ok": 1})
        self.collection.count_documents = AsyncMock(return_value=42)
        self.gateway = ZCosmosGateway(db=self.db, config=BenchConfig(), page_size=2)
        self.document = DocumentGenerator(rng=random.Random(0)).generate(1)[0]


class TestCreateOne(GatewayTestCase):
    async def test_create_success_reports_charge(self):
        self.collection.insert_one = AsyncMock()
        outcome = await self.gateway.create_one(self.document)

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.request_charge, 5.71)
        self.assertGreaterEqual(outcome.elapsed_ms, 0)
        self.assertEqual(outcome.document["_id"], self.document.document_ref)
        sent = self.collection.insert_one.call_args[0][0]
        self.assertEqual(sent["documentRef"], self.document.document_ref)
        self.db.command.assert_awaited_once_with({"getLastRequestStatistics": 1})

    async def test_create_conflict(self):
        self.collection.insert_one = AsyncMock(side_effect=DuplicateKeyError("E11000 duplicate key", code=11000))
        outcome = await self.gateway.create_one(self.document)
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.failure_kind, FailureKind.CONFLICT)
        self.assertEqual(outcome.request_charge, 0.0)
        self.assertIsNone(outcome.document)

    async def test_create_throttled(self):
        self.collection.insert_one = AsyncMock(side_effect=OperationFailure("Request rate is large", code=16500))
        outcome = await self.gateway.create_one(self.document)
        self.assertEqual(outcome.failure_kind, FailureKind.THROTTLED)
        self.assertIn("Request rate is large", outcome.error)

    async def test_create_validation(self):
        self.collection.insert_one = AsyncMock(side_effect=WriteError("Document failed validation", code=121))
        outcome = await self.gateway.create_one(self.document)
        self.assertEqual(outcome.failure_kind, FailureKind.VALIDATION)

    async def test_create_transport_failure_never_raises(self):
        self.collection.insert_one = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))
        outcome = await self.gateway.create_one(self.document)
        self.assertEqual(outcome.failure_kind, FailureKind.TRANSPORT)
        self.assertIsInstance(outcome.original(), ServerSelectionTimeoutError)

    async def test_create_generic_exception(self):
        self.collection.insert_one = AsyncMock(side_effect=Exception("unexpected error"))
        outcome = await self.gateway.create_one(self.document)
        self.assertEqual(outcome.failure_kind, FailureKind.ERROR)

    async def test_unsupported_charge_command_is_disabled_after_first_failure(self):
        self.collection.insert_one = AsyncMock()
        self.db.command = AsyncMock(side_effect=OperationFailure("no such command", code=59))

        first = await self.gateway.create_one(self.document)
        second = await self.gateway.create_one({"_id": "plain"})

        self.assertTrue(first.success and second.success)
        self.assertEqual(first.request_charge, 0.0)
        self.assertFalse(self.gateway.track_request_charge)
        self.assertEqual(self.db.command.await_count, 1)

    async def test_rejected_charge_command_warns_once_under_concurrency(self):
        async def rejecting_command(cmd):
            await asyncio.sleep(0)
            raise OperationFailure("no such command: getLastRequestStatistics", code=59)

        self.collection.insert_one = AsyncMock()
        self.db.command = rejecting_command
        docs = DocumentGenerator(rng=random.Random(3)).generate(5)

        with self.assertLogs("zbench_toolbag.zgateway", level="WARNING") as logs:
            outcomes = await asyncio.gather(*(self.gateway.create_one(d) for d in docs))

        self.assertTrue(all(o.success for o in outcomes))
        warnings = [r for r in logs.records if "does not report request charges" in r.getMessage()]
        self.assertEqual(len(warnings), 1)
        self.assertFalse(self.gateway.track_request_charge)

    async def test_tracking_switched_off(self):
        gateway = ZCosmosGateway(db=self.db, config=BenchConfig(), track_request_charge=False)
        self.collection.insert_one = AsyncMock()
        outcome = await gateway.create_one(self.document)
        self.assertEqual(outcome.request_charge, 0.0)
        self.db.command.assert_not_awaited()


class TestReadOne(GatewayTestCase):
    async def test_read_success(self):
        self.collection.find_one = AsyncMock(return_value={"_id": "abc", "documentRef": "abc"})
        outcome = await self.gateway.read_one("abc")

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.document["_id"], "abc")
        self.assertEqual(outcome.request_charge, 5.71)
        self.assertEqual(outcome.document_count, 42)
        self.collection.find_one.assert_awaited_once_with({"_id": "abc", "documentRef": "abc"})

    async def test_read_not_found_is_distinct(self):
        self.collection.find_one = AsyncMock(return_value=None)
        outcome = await self.gateway.read_one("missing")
        self.assertFalse(outcome.success)
        self.assertTrue(outcome.not_found)
        self.assertEqual(outcome.failure_kind, FailureKind.NOT_FOUND)
        self.assertEqual(outcome.document_count, 42)

    async def test_read_transport_error_is_not_not_found(self):
        self.collection.find_one = AsyncMock(side_effect=ServerSelectionTimeoutError("timeout"))
        outcome = await self.gateway.read_one("abc")
        self.assertFalse(outcome.not_found)
        self.assertEqual(outcome.failure_kind, FailureKind.TRANSPORT)

    async def test_read_with_id_partition_key(self):
        gateway = ZCosmosGateway(db=self.db, config=BenchConfig(), partition_key="/_id")
        self.collection.find_one = AsyncMock(return_value={"_id": "abc"})
        await gateway.read_one("abc", with_count=False)
        self.collection.find_one.assert_awaited_once_with({"_id": "abc"})
        self.collection.count_documents.assert_not_awaited()

    async def test_read_many_keeps_order(self):
        self.collection.find_one = AsyncMock(side_effect=[{"_id": "a"}, None, {"_id": "c"}])
        outcomes = await self.gateway.read_many(["a", "b", "c"])
        self.assertEqual([o.success for o in outcomes], [True, False, True])
        self.assertTrue(outcomes[1].not_found)


class TestQuery(GatewayTestCase):
    def _cursor(self, pages):
        cursor = MagicMock()
        cursor.alive = True
        cursor.to_list = AsyncMock(side_effect=pages)
        self.collection.find = MagicMock(return_value=cursor)
        return cursor

    async def test_query_drains_every_page_and_sums_charge(self):
        self._cursor([[{"_id": 1}, {"_id": 2}], [{"_id": 3}, {"_id": 4}], [{"_id": 5}]])
        self.db.command = AsyncMock(side_effect=[
            {"RequestCharge": 2.0}, {"RequestCharge": 3.0}, {"RequestCharge": 1.5},
        ])

        result = await self.gateway.query('{"metadata.docClass": "Policy Schedule"}')

        self.assertTrue(result.success)
        self.assertEqual([d["_id"] for d in result.documents], [1, 2, 3, 4, 5])
        self.assertEqual(result.page_charges, [2.0, 3.0, 1.5])
        self.assertEqual(result.request_charge, 6.5)
        self.assertEqual(result.pages, 3)
        self.assertEqual(result.document_count, 42)
        self.collection.find.assert_called_once_with({"metadata.docClass": "Policy Schedule"}, batch_size=2)

    async def test_query_empty_result(self):
        self._cursor([[]])
        result = await self.gateway.query("")
        self.assertTrue(result.success)
        self.assertEqual(result.documents, [])
        self.assertEqual(result.pages, 1)
        self.collection.find.assert_called_once_with({}, batch_size=2)

    async def test_query_stops_when_cursor_exhausted(self):
        cursor = self._cursor([[{"_id": 1}, {"_id": 2}]])
        cursor.alive = False
        result = await self.gateway.query("{}")
        self.assertEqual(len(result.documents), 2)
        cursor.to_list.assert_awaited_once()

    async def test_query_invalid_json(self):
        result = await self.gateway.query("SELECT * FROM c")
        self.assertFalse(result.success)
        self.assertEqual(result.failure_kind, FailureKind.VALIDATION)
        self.assertIn("not valid JSON", result.error)

    async def test_query_non_object_json(self):
        result = await self.gateway.query("[1, 2]")
        self.assertFalse(result.success)
        self.assertEqual(result.failure_kind, FailureKind.VALIDATION)

    async def test_query_backend_failure_mid_drain(self):
        self._cursor([[{"_id": 1}, {"_id": 2}], OperationFailure("Request rate is large", code=16500)])
        result = await self.gateway.query("{}")
        self.assertFalse(result.success)
        self.assertEqual(result.failure_kind, FailureKind.THROTTLED)
        self.assertEqual(len(result.documents), 2)


class TestCountAndContainer(GatewayTestCase):
    async def test_count(self):
        self.assertEqual(await self.gateway.count(), 42)

    async def test_count_failure_returns_sentinel(self):
        self.collection.count_documents = AsyncMock(side_effect=Exception("boom"))
        self.assertEqual(await self.gateway.count(), -1)

    async def test_ensure_container_existing(self):
        self.db.list_collection_names = AsyncMock(return_value=["DocRefContainer"])
        result = await self.gateway.ensure_container()
        self.assertTrue(result.success)
        self.assertFalse(result.data["created"])
        self.db.command.assert_not_awaited()

    async def test_ensure_container_creates_sharded(self):
        self.db.list_collection_names = AsyncMock(return_value=[])
        result = await self.gateway.ensure_container()
        self.assertTrue(result.data["created"])
        self.db.command.assert_awaited_once_with({
            "customAction": "CreateCollection",
            "collection": "DocRefContainer",
            "shardKey": "documentRef",
        })

    async def test_ensure_container_falls_back_to_plain_collection(self):
        self.db.list_collection_names = AsyncMock(return_value=[])
        self.db.command = AsyncMock(side_effect=OperationFailure("no such command: customAction", code=59))
        self.db.create_collection = AsyncMock()
        result = await self.gateway.ensure_container()
        self.assertTrue(result.success)
        self.db.create_collection.assert_awaited_once_with("DocRefContainer")

    async def test_ensure_container_failure(self):
        self.db.list_collection_names = AsyncMock(side_effect=ServerSelectionTimeoutError("down"))
        result = await self.gateway.ensure_container()
        self.assertFalse(result.success)
        self.assertIn("down", result.error)


class TestParseQuery(unittest.TestCase):
    def test_blank_is_match_all(self):
        self.assertEqual(ZCosmosGateway.parse_query("  "), {})
        self.assertEqual(ZCosmosGateway.parse_query(None), {})

    def test_extended_json(self):
        parsed = ZCosmosGateway.parse_query('{"count": {"$gt": 3}}')
        self.assertEqual(parsed, {"count": {"$gt": 3}})


if __name__ == "__main__":
    unittest.main()
