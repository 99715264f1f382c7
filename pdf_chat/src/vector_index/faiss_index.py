from __future__ import annotations

import json
import re
import shutil
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from cachetools import TTLCache
from langchain_community.vectorstores import FAISS
from langchain_core.documents import Document
from langchain_core.embeddings import Embeddings

from pdf_chat.exception.custom_exception import (
    NotFound,
    PdfChatException,
    UpstreamFailure,
    ValidationFailure,
)
from pdf_chat.logger import GLOBAL_LOGGER as log

META_FILE = "namespace.json"
_NAMESPACE_RE = re.compile(r"^[A-Za-z0-9_\-]+$")


class FaissVectorIndex:
    """
    Namespace-partitioned vector index on top of local FAISS directories.

    Each namespace is one directory under `base_dir`:
      - index.faiss / index.pkl : the FAISS store (LangChain format)
      - namespace.json          : vector count + timestamps

    A namespace counts as existing only once namespace.json reports vectors.
    New namespaces are built in a staging directory and renamed into place,
    so a crash mid-build never leaves a directory that looks populated.
    """

    def __init__(
        self,
        base_dir: str | Path,
        embeddings: Embeddings,
        cache_maxsize: int = 128,
        cache_ttl: int = 3600,
    ):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.embeddings = embeddings

        # Loaded FAISS stores, so each namespace is read from disk once per TTL
        self._cache: TTLCache = TTLCache(maxsize=cache_maxsize, ttl=cache_ttl)
        # run_sync calls land on several pool threads; TTLCache is not thread-safe
        self._cache_lock = threading.Lock()

        log.info("FaissVectorIndex initialized | base_dir=%s", str(self.base_dir))

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _namespace_dir(self, namespace: str) -> Path:
        if not namespace:
            raise ValidationFailure("No namespace value provided.")
        if not _NAMESPACE_RE.match(namespace):
            raise ValidationFailure(f"Invalid namespace value: {namespace!r}")
        return self.base_dir / namespace

    @staticmethod
    def _read_meta(ns_dir: Path) -> Optional[Dict[str, Any]]:
        meta_path = ns_dir / META_FILE
        if not meta_path.exists():
            return None
        try:
            return json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            log.error(
                "Failed to read namespace metadata | dir=%s | error=%s",
                str(ns_dir),
                str(e),
            )
            return None

    @staticmethod
    def _write_meta(ns_dir: Path, vector_count: int, created_at: str) -> None:
        meta = {
            "vector_count": vector_count,
            "created_at": created_at,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        (ns_dir / META_FILE).write_text(
            json.dumps(meta, ensure_ascii=False, indent=2), encoding="utf-8"
        )

    def _cache_put(self, namespace: str, vs: FAISS) -> None:
        with self._cache_lock:
            self._cache[namespace] = vs

    @staticmethod
    def _chunk_ids(chunks: List[Document]) -> List[str]:
        ids = []
        for chunk in chunks:
            md = dict(chunk.metadata or {})
            if "id" not in md:
                md["id"] = f"chunk_{uuid.uuid4().hex[:12]}"
                chunk.metadata = md
            ids.append(md["id"])
        return ids

    # ------------------------------------------------------------------
    # index stats
    # ------------------------------------------------------------------
    def describe_namespace_stats(self) -> Dict[str, Dict[str, Any]]:
        """Return {namespace: {"vector_count": n, ...}} for every populated namespace."""
        stats: Dict[str, Dict[str, Any]] = {}
        for ns_dir in sorted(
            p for p in self.base_dir.iterdir() if p.is_dir() and not p.name.startswith(".")
        ):
            meta = self._read_meta(ns_dir)
            if meta and meta.get("vector_count", 0) > 0:
                stats[ns_dir.name] = meta
        return stats

    def namespace_exists(self, namespace: str) -> bool:
        ns_dir = self._namespace_dir(namespace)
        meta = self._read_meta(ns_dir)
        exists = bool(meta and meta.get("vector_count", 0) > 0)
        log.info("Namespace existence check | namespace=%s | exists=%s", namespace, exists)
        return exists

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------
    def create_or_append_namespace(self, namespace: str, chunks: List[Document]) -> int:
        """
        Embed `chunks` and store them under `namespace`, creating it if needed.
        Returns the namespace's total vector count afterwards.
        """
        if not chunks:
            raise ValidationFailure("No chunks to index")

        ns_dir = self._namespace_dir(namespace)
        ids = self._chunk_ids(chunks)

        try:
            existing = self._read_meta(ns_dir)
            if existing and existing.get("vector_count", 0) > 0:
                vs = self.open_namespace(namespace)
                vs.add_documents(chunks, ids=ids)
                vs.save_local(str(ns_dir))
                total = int(vs.index.ntotal)
                self._write_meta(ns_dir, total, existing.get("created_at"))
                log.info(
                    "Appended to namespace | namespace=%s | added=%d | total=%d",
                    namespace,
                    len(chunks),
                    total,
                )
            else:
                staging = self.base_dir / f".{namespace}.staging-{uuid.uuid4().hex[:8]}"
                try:
                    vs = FAISS.from_documents(chunks, embedding=self.embeddings, ids=ids)
                    vs.save_local(str(staging))
                    total = int(vs.index.ntotal)
                    self._write_meta(
                        staging, total, datetime.now(timezone.utc).isoformat()
                    )
                    # a leftover directory without metadata is an abandoned build
                    if ns_dir.exists():
                        shutil.rmtree(ns_dir)
                    staging.rename(ns_dir)
                finally:
                    if staging.exists():
                        shutil.rmtree(staging, ignore_errors=True)
                log.info(
                    "Created namespace | namespace=%s | vectors=%d", namespace, total
                )
        except PdfChatException:
            raise
        except Exception as e:
            log.error(
                "Vector index write failed | namespace=%s | error=%s", namespace, str(e)
            )
            raise UpstreamFailure("Failed to write embeddings to vector index", e) from e

        self._cache_put(namespace, vs)
        return total

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def open_namespace(self, namespace: str) -> FAISS:
        """Load (or reuse from cache) the FAISS store bound to `namespace`."""
        with self._cache_lock:
            cached = self._cache.get(namespace)
        if cached is not None:
            log.debug("Reusing cached FAISS store | namespace=%s", namespace)
            return cached

        ns_dir = self._namespace_dir(namespace)
        if not self._read_meta(ns_dir):
            raise NotFound(f"Namespace {namespace} does not exist")

        try:
            vs = FAISS.load_local(
                str(ns_dir), self.embeddings, allow_dangerous_deserialization=True
            )
        except Exception as e:
            log.error("Failed to load FAISS store | namespace=%s | error=%s", namespace, str(e))
            raise UpstreamFailure("Failed to load vector namespace", e) from e

        self._cache_put(namespace, vs)
        log.info("Loaded FAISS store | namespace=%s", namespace)
        return vs

    def embed_query(self, text: str) -> List[float]:
        try:
            return self.embeddings.embed_query(text)
        except Exception as e:
            log.error("Failed to embed query | error=%s", str(e))
            raise UpstreamFailure("Embedding service failed", e) from e

    def query_namespace(
        self,
        namespace: str,
        query_vector: List[float],
        k: int = 4,
        search_type: str = "similarity",
        fetch_k: int = 20,
        lambda_mult: float = 0.5,
    ) -> List[Document]:
        """Nearest-neighbour search inside one namespace."""
        vs = self.open_namespace(namespace)
        try:
            if search_type == "mmr":
                return vs.max_marginal_relevance_search_by_vector(
                    query_vector, k=k, fetch_k=fetch_k, lambda_mult=lambda_mult
                )
            return vs.similarity_search_by_vector(query_vector, k=k)
        except Exception as e:
            log.error("Vector search failed | namespace=%s | error=%s", namespace, str(e))
            raise UpstreamFailure("Vector search failed", e) from e
