"""Wrapper around the ``weaviate-client`` (v4) collections API."""

from __future__ import annotations

import importlib
import json
import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import urlparse

from kb_retrieval.exceptions import ConfigError, VectorStoreError
from kb_retrieval.models import Chunk, ChunkMetadata

from .base import MetadataFilter, VectorBackend, VectorHit, check_vectors, enforce_signature

logger = logging.getLogger(__name__)

_TEXT_PROPERTIES = ("content", "source", "access_level", "file_type")
_INT_PROPERTIES = ("source_id", "chunk_index", "document_id", "article_id", "page")


class WeaviateBackend(VectorBackend):
    """Store chunks in a Weaviate collection with client-side vectors.

    The embedding signature is kept as JSON in the collection description and
    checked whenever an existing collection is opened.
    """

    name = "weaviate"

    def __init__(
        self,
        weaviate_url: str,
        collection_name: str,
        *,
        api_key: Optional[str] = None,
        signature: Optional[Mapping[str, Any]] = None,
        client: Any | None = None,
    ) -> None:
        if not weaviate_url and client is None:
            raise ConfigError("Weaviate backend requires a weaviate_url")
        self.weaviate_url = weaviate_url
        self.collection_name = collection_name
        self.signature = dict(signature or {})
        self._wv = self._import_weaviate()
        self._client = client if client is not None else self._connect(weaviate_url, api_key)
        self._collection = self._ensure_collection()

    def add(self, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]]) -> None:
        check_vectors(chunks, vectors)
        if not chunks:
            return
        objects = [
            self._wv.data.DataObject(
                properties=properties_for(chunk),
                vector=list(vector),
                uuid=uuid.uuid5(uuid.NAMESPACE_URL, chunk.chunk_id),
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        result = self._collection.data.insert_many(objects)
        if getattr(result, "has_errors", False):
            raise VectorStoreError(f"Weaviate insert failed: {result.errors}")

    def delete(self, where: MetadataFilter) -> None:
        filters = self._filters(where)
        if filters is None:
            raise ValueError("Refusing to delete with an empty filter; use reset()")
        self._collection.data.delete_many(where=filters)

    def query(
        self, vector: Sequence[float], k: int, where: Optional[MetadataFilter] = None
    ) -> List[VectorHit]:
        if k <= 0:
            return []
        response = self._collection.query.near_vector(
            near_vector=list(vector),
            limit=k,
            filters=self._filters(where) if where is not None else None,
            return_metadata=self._wv.query.MetadataQuery(distance=True),
        )
        hits: List[VectorHit] = []
        for obj in response.objects:
            properties = dict(obj.properties)
            content = str(properties.pop("content", "") or "")
            distance = obj.metadata.distance if obj.metadata is not None else None
            similarity = 1.0 - float(distance) if distance is not None else 0.0
            hits.append((Chunk(content=content, metadata=ChunkMetadata.from_dict(properties)), similarity))
        return hits

    def reset(self) -> None:
        if self._client.collections.exists(self.collection_name):
            self._client.collections.delete(self.collection_name)
        self._collection = self._ensure_collection()
        logger.info("Cleared Weaviate collection %s", self.collection_name)

    def count(self) -> int:
        return int(self._collection.aggregate.over_all(total_count=True).total_count or 0)

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _filters(self, where: MetadataFilter) -> Any | None:
        Filter = self._wv.query.Filter
        clauses = [Filter.by_property(key).equal(value) for key, value in where.equals.items()]
        if where.access_levels is not None:
            clauses.append(Filter.by_property("access_level").contains_any(sorted(where.access_levels)))
        if not clauses:
            return None
        return Filter.all_of(clauses) if len(clauses) > 1 else clauses[0]

    def _connect(self, weaviate_url: str, api_key: Optional[str]) -> Any:
        parsed = urlparse(weaviate_url)
        if not parsed.hostname:
            raise ConfigError(f"Invalid weaviate_url: {weaviate_url!r}")
        weaviate = importlib.import_module("weaviate")
        auth = self._wv.init.Auth.api_key(api_key) if api_key else None
        client = weaviate.connect_to_local(
            host=parsed.hostname,
            port=parsed.port or 8080,
            auth_credentials=auth,
        )
        logger.info("Connected to Weaviate at %s", weaviate_url)
        return client

    def _ensure_collection(self) -> Any:
        if self._client.collections.exists(self.collection_name):
            collection = self._client.collections.get(self.collection_name)
            config = collection.config.get()
            enforce_signature(
                self.collection_name,
                parse_signature(getattr(config, "description", None)),
                self.signature,
            )
            return collection

        Configure = self._wv.config.Configure
        Property = self._wv.config.Property
        DataType = self._wv.config.DataType
        properties: List[Any] = [Property(name=name, data_type=DataType.TEXT) for name in _TEXT_PROPERTIES]
        properties.extend(Property(name=name, data_type=DataType.INT) for name in _INT_PROPERTIES)
        return self._client.collections.create(
            self.collection_name,
            description=json.dumps(self.signature, sort_keys=True) if self.signature else None,
            vectorizer_config=Configure.Vectorizer.none(),
            vector_index_config=Configure.VectorIndex.hnsw(
                distance_metric=self._wv.config.VectorDistances.COSINE
            ),
            properties=properties,
        )

    @staticmethod
    def _import_weaviate():
        try:
            return importlib.import_module("weaviate.classes")
        except ModuleNotFoundError as exc:  # pragma: no cover - optional dependency
            raise VectorStoreError(
                "Weaviate backend requires the 'weaviate-client' package. Install with "
                "`pip install weaviate-client`."
            ) from exc


def parse_signature(description: Optional[str]) -> Dict[str, Any]:
    """Read a signature written by this backend; foreign descriptions yield ``{}``."""

    if not description:
        return {}
    try:
        value = json.loads(description)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


def properties_for(chunk: Chunk) -> Dict[str, Any]:
    return {"content": chunk.content, **chunk.metadata.to_dict()}


__all__ = ["WeaviateBackend"]
