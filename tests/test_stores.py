import uuid
from datetime import date
from unittest.mock import MagicMock

import pytest

from query_agent.adapters.entities import Employee, EmploymentStatus
from query_agent.adapters.memory.store import InMemoryEntityStore
from query_agent.adapters.mongodb.store import MongoEntityStore


class TestInMemoryEntityStore:
    def test_find_filters_by_tenant_and_predicate(self, hr_data):
        store = hr_data.store
        tenant_id = hr_data.alice.tenant_id

        everyone = store.find("Employee")
        tenant = store.find("employee", tenant_id=tenant_id)
        on_leave = store.find("Employee", lambda e: e.status is EmploymentStatus.ON_LEAVE, tenant_id)

        assert len(everyone) == 4
        assert {e.employee_number for e in tenant} == {"E001", "E002", "E003"}
        assert on_leave == [hr_data.carol]

    def test_find_applies_equality_constraints_by_field_name(self, hr_data):
        store = hr_data.store

        assert store.find("Employee", equals={"EmployeeNumber": "E002"}) == [hr_data.bob]
        assert store.find("Employee", equals={"Id": hr_data.alice.id, "EmployeeNumber": "E002"}) == []

    def test_reads_return_stored_records(self, hr_data):
        found = hr_data.store.find("Employee", lambda e: e.employee_number == "E001")
        assert found[0] is hr_data.alice

    def test_add_and_remove(self, hr_data):
        store = hr_data.store
        newcomer = Employee(
            tenant_id=hr_data.alice.tenant_id, employee_number="E004", first_name="敏",
            last_name="陈", email="chen.min@example.com", hire_date=date(2024, 5, 1),
        )

        store.add("Employee", newcomer)
        assert store.count("Employee") == 5

        store.remove("Employee", [newcomer, hr_data.bob])
        assert hr_data.bob not in store.find("Employee")
        assert store.count("Employee") == 3

    def test_unknown_entity_is_empty(self):
        store = InMemoryEntityStore(["Employee"])
        assert store.find("Position") == []
        assert store.count("Employee") == 0


@pytest.fixture
def mongo():
    collection = MagicMock()
    db = MagicMock()
    db.__getitem__.return_value = collection
    client = MagicMock()
    client.__getitem__.return_value = db
    store = MongoEntityStore("mongodb://localhost:27017", "hr", client=client)
    return store, client, db, collection


class TestMongoEntityStore:
    def test_collections_are_named_after_models(self, mongo):
        store, client, db, collection = mongo
        collection.find.return_value = []

        store.find("leaverequest")

        client.__getitem__.assert_called_with("hr")
        db.__getitem__.assert_called_with("LeaveRequest")

    def test_find_pushes_down_tenant_and_validates(self, mongo, hr_data):
        store, _, _, collection = mongo
        tenant_id = hr_data.alice.tenant_id
        collection.find.return_value = [
            hr_data.alice.model_dump(mode="json", by_alias=True),
            hr_data.carol.model_dump(mode="json", by_alias=True),
        ]

        records = store.find("Employee", lambda e: e.status is EmploymentStatus.ACTIVE, tenant_id)

        collection.find.assert_called_once_with({"TenantId": str(tenant_id)}, {"_id": 0})
        assert len(records) == 1
        assert records[0].id == hr_data.alice.id
        assert records[0].hire_date == date(2020, 3, 1)

    def test_find_without_tenant(self, mongo):
        store, _, _, collection = mongo
        collection.find.return_value = []

        assert store.find("Employee") == []
        collection.find.assert_called_once_with({}, {"_id": 0})

    def test_find_pushes_down_equality_constraints(self, mongo, hr_data):
        store, _, _, collection = mongo
        tenant_id = hr_data.alice.tenant_id
        collection.find.return_value = []

        store.find(
            "LeaveRequest",
            tenant_id=tenant_id,
            equals={"EmployeeId": hr_data.alice.id, "Status": EmploymentStatus.ON_LEAVE},
        )

        collection.find.assert_called_once_with(
            {
                "TenantId": str(tenant_id),
                "EmployeeId": str(hr_data.alice.id),
                "Status": int(EmploymentStatus.ON_LEAVE),
            },
            {"_id": 0},
        )

    def test_add_writes_pascal_case_document(self, mongo, hr_data):
        store, _, _, collection = mongo

        store.add("Employee", hr_data.alice)

        document = collection.insert_one.call_args[0][0]
        assert document["Id"] == str(hr_data.alice.id)
        assert document["EmployeeNumber"] == "E001"
        assert document["Status"] == EmploymentStatus.ACTIVE.value

    def test_update_replaces_by_id(self, mongo, hr_data):
        store, _, _, collection = mongo

        store.update("Employee", [hr_data.alice, hr_data.bob])

        assert collection.replace_one.call_count == 2
        selector, document = collection.replace_one.call_args_list[0][0]
        assert selector == {"Id": str(hr_data.alice.id)}
        assert document["Email"] == "zhang.wei@example.com"

    def test_remove_deletes_by_ids(self, mongo, hr_data):
        store, _, _, collection = mongo

        store.remove("Employee", [hr_data.alice, hr_data.bob])
        store.remove("Employee", [])

        collection.delete_many.assert_called_once_with(
            {"Id": {"$in": [str(hr_data.alice.id), str(hr_data.bob.id)]}}
        )

    def test_unknown_entity(self, mongo):
        store, _, _, _ = mongo
        with pytest.raises(KeyError):
            store.find("Spaceship")

    def test_close(self, mongo):
        store, client, _, _ = mongo
        store.close()
        client.close.assert_called_once()


def test_uuid_ids_round_trip_through_documents(hr_data):
    document = hr_data.bob.model_dump(mode="json", by_alias=True)
    assert uuid.UUID(document["Id"]) == hr_data.bob.id
    assert Employee.model_validate(document).organization_unit_id == hr_data.rd.id
