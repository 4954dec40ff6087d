import copy
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from threading import Lock
from typing import Any, Optional, Protocol
from uuid import uuid4

logger = logging.getLogger(__name__)


class DocumentStoreError(Exception):
    pass


class DocumentNotFoundError(DocumentStoreError):
    pass


class DocumentExistsError(DocumentStoreError):
    pass


@dataclass
class StoredDocument:
    id: str
    data: dict = field(default_factory=dict)


class DocumentStore(Protocol):
    """Minimal document-store surface the postback pipeline depends on."""

    def find_one(self, collection: str, field_name: str, value: Any) -> Optional[StoredDocument]:
        ...

    def get(self, collection: str, document_id: str) -> Optional[StoredDocument]:
        ...

    def create(self, collection: str, data: dict, document_id: Optional[str] = None) -> str:
        ...

    def increment_field(self, collection: str, document_id: str, field_name: str, amount: Decimal) -> None:
        ...


class InMemoryDocumentStore:
    def __init__(self, seed: Optional[dict[str, dict[str, dict]]] = None):
        self.collections: dict[str, dict[str, dict]] = {}
        self._lock = Lock()
        for collection, documents in (seed or {}).items():
            for document_id, data in documents.items():
                self.create(collection, data, document_id=document_id)

    def find_one(self, collection: str, field_name: str, value: Any) -> Optional[StoredDocument]:
        with self._lock:
            for document_id, data in self.collections.get(collection, {}).items():
                if data.get(field_name) == value:
                    return StoredDocument(id=document_id, data=copy.deepcopy(data))
        return None

    def get(self, collection: str, document_id: str) -> Optional[StoredDocument]:
        with self._lock:
            data = self.collections.get(collection, {}).get(document_id)
            if data is None:
                return None
            return StoredDocument(id=document_id, data=copy.deepcopy(data))

    def create(self, collection: str, data: dict, document_id: Optional[str] = None) -> str:
        with self._lock:
            documents = self.collections.setdefault(collection, {})
            document_id = document_id or uuid4().hex
            if document_id in documents:
                raise DocumentExistsError(f"{collection}/{document_id} already exists")
            documents[document_id] = copy.deepcopy(data)
            return document_id

    def increment_field(self, collection: str, document_id: str, field_name: str, amount: Decimal) -> None:
        with self._lock:
            data = self.collections.get(collection, {}).get(document_id)
            if data is None:
                raise DocumentNotFoundError(f"{collection}/{document_id} not found")
            current = data.get(field_name) or Decimal("0")
            data[field_name] = Decimal(str(current)) + amount

    def all(self, collection: str) -> list[StoredDocument]:
        with self._lock:
            return [
                StoredDocument(id=document_id, data=copy.deepcopy(data))
                for document_id, data in self.collections.get(collection, {}).items()
            ]


def create_store(settings) -> DocumentStore:
    if settings.store_backend == "firestore":
        from .firestore_store import FirestoreDocumentStore
        return FirestoreDocumentStore.from_settings(settings)
    if settings.store_backend != "memory":
        raise ValueError(f"Unknown store backend: {settings.store_backend}")
    logger.info("[store] using in-memory document store")
    return InMemoryDocumentStore()
