"""Test cases for the document sideband."""

import pytest
from unittest.mock import MagicMock
from pymongo.errors import ConnectionFailure, PyMongoError

from classroom_rls.audit import TEST_ASSIGNMENTS
from classroom_rls.documents import COLLECTIONS, DocumentStore
from classroom_rls.gateway import QueryGateway
from classroom_rls.security import PolicyEngine

P2 = "f0000000-0000-0000-0000-000000000002"


@pytest.fixture
def mongo_client():
    client = MagicMock()
    client.admin.command.return_value = {"ok": 1}
    return client


@pytest.fixture
def store(mongo_client):
    store = DocumentStore("mongodb://localhost:27017", "classroom_test", client_factory=lambda uri: mongo_client)
    store.connect()
    yield store
    store.close()


class TestConnection:

    def test_connect_pings_and_selects_database(self, store, mongo_client):
        mongo_client.admin.command.assert_called_once_with("ping")
        mongo_client.__getitem__.assert_called_with("classroom_test")
        assert store.is_connected()

    def test_connect_is_idempotent(self, store, mongo_client):
        assert store.connect() is store.database
        assert mongo_client.admin.command.call_count == 1

    def test_connect_failure_closes_client(self, mongo_client):
        mongo_client.admin.command.side_effect = ConnectionFailure("unreachable")
        store = DocumentStore("mongodb://nowhere", client_factory=lambda uri: mongo_client)
        with pytest.raises(ConnectionFailure):
            store.connect()
        mongo_client.close.assert_called_once()
        assert not store.is_connected()

    def test_connect_without_uri(self):
        store = DocumentStore(uri="", client_factory=MagicMock())
        store.uri = None
        with pytest.raises(ValueError):
            store.connect()

    def test_close(self, store, mongo_client):
        store.close()
        mongo_client.close.assert_called_once()
        assert not store.is_connected()

    def test_context_manager(self, mongo_client):
        with DocumentStore("mongodb://localhost", client_factory=lambda uri: mongo_client) as store:
            assert store.is_connected()
        assert not store.is_connected()

    def test_operations_require_connection(self):
        store = DocumentStore("mongodb://localhost", client_factory=MagicMock())
        with pytest.raises(RuntimeError):
            store.find_documents(COLLECTIONS["LOGS"])


class TestDocumentOperations:

    def test_insert_stamps_timestamps(self, store):
        store.insert_document(COLLECTIONS["ANALYTICS"], {"event": "login"})
        collection = store.database[COLLECTIONS["ANALYTICS"]]
        document = collection.insert_one.call_args[0][0]
        assert document["event"] == "login"
        assert document["createdAt"] == document["updatedAt"]

    def test_update_sets_fields(self, store):
        store.update_document(COLLECTIONS["CACHE"], {"key": "k"}, {"value": 1})
        collection = store.database[COLLECTIONS["CACHE"]]
        filter, update = collection.update_one.call_args[0]
        assert filter == {"key": "k"}
        assert update["$set"]["value"] == 1
        assert "updatedAt" in update["$set"]

    def test_find_and_delete(self, store):
        collection = store.database[COLLECTIONS["NOTIFICATIONS"]]
        collection.find.return_value = [{"_id": 1}]
        assert store.find_documents(COLLECTIONS["NOTIFICATIONS"], {"read": False}) == [{"_id": 1}]
        store.delete_document(COLLECTIONS["NOTIFICATIONS"], {"_id": 1})
        collection.delete_one.assert_called_once_with({"_id": 1})


class TestGatewayEvents:

    def test_write_is_recorded(self, seeded_database, student1):
        documents = MagicMock()
        gateway = QueryGateway(seeded_database, policy=PolicyEngine(strict_transitions=False), documents=documents)
        gateway.write(student1, "progress", "update", {"id": P2}, {"status": "submitted"})

        collection, event = documents.insert_document.call_args[0]
        assert collection == COLLECTIONS["LOGS"]
        assert event["relation"] == "progress"
        assert event["operation"] == "update"
        assert event["principal_id"] == student1.id
        assert event["row_ids"] == [P2]

    def test_sideband_failure_does_not_undo_write(self, seeded_database, student1, admin):
        documents = MagicMock()
        documents.insert_document.side_effect = PyMongoError("down")
        gateway = QueryGateway(seeded_database, policy=PolicyEngine(strict_transitions=False), documents=documents)

        rows = gateway.write(student1, "progress", "insert",
                             {"user_id": student1.id, "assignment_id": TEST_ASSIGNMENTS["HISTORY_101"]})
        assert len(rows) == 1
        assert gateway.read(admin, "progress", {"id": rows[0]["id"]})
