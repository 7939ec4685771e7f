"""
MongoDB entity store.

One collection per entity. Documents are the JSON-mode dumps of the record
models with PascalCase keys, so they read naturally from the Mongo shell.
Only the tenant restriction and exact-match `equals` constraints are pushed
down to MongoDB; every other condition runs in process over the loaded
documents, so a read costs one pass over what those constraints leave.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Type
from uuid import UUID

from pydantic import BaseModel, TypeAdapter
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from query_agent.adapters.entities import ENTITY_MODELS

logger = logging.getLogger(__name__)

_JSON = TypeAdapter(Any)


class MongoEntityStore:
    """
    Entity store backed by MongoDB.

    Implements the IEntityStore interface.
    """

    def __init__(
        self,
        mongo_uri: str,
        database_name: str,
        models: Optional[Dict[str, Type[BaseModel]]] = None,
        client: Optional[MongoClient] = None,
    ):
        """
        Initialize MongoDB entity store.

        Args:
            mongo_uri: MongoDB connection URI
            database_name: Name of the database
            models: Record model per entity name; defaults to the HR entities
            client: Existing client to reuse instead of connecting to `mongo_uri`
        """
        self.mongo_uri = mongo_uri
        self.database_name = database_name
        self.models = {name.lower(): model for name, model in (models or ENTITY_MODELS).items()}

        self.client: MongoClient = client if client is not None else MongoClient(mongo_uri)
        self.db: Database = self.client[database_name]

    def _model(self, entity: str) -> Type[BaseModel]:
        model = self.models.get(entity.lower())
        if model is None:
            raise KeyError(f"No record model registered for entity '{entity}'")
        return model

    def _collection(self, entity: str) -> Collection:
        return self.db[self._model(entity).__name__]

    @staticmethod
    def _document(record: BaseModel) -> Dict[str, Any]:
        return record.model_dump(mode="json", by_alias=True)

    def find(
        self,
        entity: str,
        predicate: Optional[Callable[[Any], bool]] = None,
        tenant_id: Optional[UUID] = None,
        equals: Optional[Mapping[str, Any]] = None,
    ) -> List[Any]:
        model = self._model(entity)
        query = {"TenantId": str(tenant_id)} if tenant_id is not None else {}
        for name, value in (equals or {}).items():
            query[name] = _JSON.dump_python(value, mode="json")
        documents = self._collection(entity).find(query, {"_id": 0})
        records = [model.model_validate(document) for document in documents]
        if predicate is not None:
            records = [record for record in records if predicate(record)]
        return records

    def add(self, entity: str, record: Any) -> None:
        self._collection(entity).insert_one(self._document(record))

    def update(self, entity: str, records: Iterable[Any]) -> None:
        collection = self._collection(entity)
        for record in records:
            document = self._document(record)
            collection.replace_one({"Id": document["Id"]}, document)

    def remove(self, entity: str, records: Iterable[Any]) -> None:
        ids = [str(record.id) for record in records]
        if not ids:
            return
        result = self._collection(entity).delete_many({"Id": {"$in": ids}})
        logger.debug(f"Deleted {result.deleted_count} {entity} documents")

    def close(self) -> None:
        self.client.close()
