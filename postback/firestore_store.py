import logging
from decimal import Decimal
from typing import Any, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as gcp_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from .store import DocumentExistsError, DocumentNotFoundError, DocumentStoreError, StoredDocument

logger = logging.getLogger(__name__)


def to_firestore_value(value: Any) -> Any:
    # Firestore has no decimal type; amounts are persisted as doubles.
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: to_firestore_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_firestore_value(v) for v in value]
    return value


class FirestoreDocumentStore:
    def __init__(self, client):
        self.client = client

    @classmethod
    def from_settings(cls, settings) -> "FirestoreDocumentStore":
        try:
            firebase_admin.get_app()
        except ValueError:
            options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
            if settings.firebase_credentials_path:
                cred = credentials.Certificate(settings.firebase_credentials_path)
                firebase_admin.initialize_app(cred, options)
            else:
                firebase_admin.initialize_app(options=options)
            logger.info(f"[store] Firebase Admin initialized project={settings.firebase_project_id or '-'}")
        return cls(firestore.client())

    def find_one(self, collection: str, field_name: str, value: Any) -> Optional[StoredDocument]:
        query = self.client.collection(collection).where(filter=FieldFilter(field_name, "==", value)).limit(1)
        try:
            for snapshot in query.stream():
                return StoredDocument(id=snapshot.id, data=snapshot.to_dict() or {})
        except gcp_exceptions.GoogleAPICallError as e:
            raise DocumentStoreError(f"Query {collection}.{field_name} failed: {e}") from e
        return None

    def get(self, collection: str, document_id: str) -> Optional[StoredDocument]:
        try:
            snapshot = self.client.collection(collection).document(document_id).get()
        except gcp_exceptions.GoogleAPICallError as e:
            raise DocumentStoreError(f"Read {collection}/{document_id} failed: {e}") from e
        if not snapshot.exists:
            return None
        return StoredDocument(id=snapshot.id, data=snapshot.to_dict() or {})

    def create(self, collection: str, data: dict, document_id: Optional[str] = None) -> str:
        payload = to_firestore_value(data)
        collection_ref = self.client.collection(collection)
        try:
            if document_id is None:
                _, doc_ref = collection_ref.add(payload)
                return doc_ref.id
            collection_ref.document(document_id).create(payload)
            return document_id
        except gcp_exceptions.AlreadyExists as e:
            raise DocumentExistsError(f"{collection}/{document_id} already exists") from e
        except gcp_exceptions.GoogleAPICallError as e:
            raise DocumentStoreError(f"Write to {collection} failed: {e}") from e

    def increment_field(self, collection: str, document_id: str, field_name: str, amount: Decimal) -> None:
        doc_ref = self.client.collection(collection).document(document_id)
        try:
            doc_ref.update({field_name: firestore.Increment(float(amount))})
        except gcp_exceptions.NotFound as e:
            raise DocumentNotFoundError(f"{collection}/{document_id} not found") from e
        except gcp_exceptions.GoogleAPICallError as e:
            raise DocumentStoreError(f"Increment {collection}/{document_id}.{field_name} failed: {e}") from e
