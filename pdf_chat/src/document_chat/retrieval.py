from typing import List, Optional

from langchain_core.documents import Document

from pdf_chat.logger import GLOBAL_LOGGER as log


class RetrieverWrapper:
    """
    Query-side access to a document namespace:
     - embeds the (possibly rewritten) search query
     - runs similarity or MMR search inside the namespace

    MMR (Maximal Marginal Relevance):
    - Reduces redundancy in retrieved chunks
    - lambda_mult controls diversity vs relevance tradeoff
        * 0.0 = maximum diversity
        * 1.0 = maximum relevance
    """

    def __init__(self, vector_index, retriever_config: Optional[dict] = None):
        self.vector_index = vector_index
        self.retriever_config = retriever_config or {}

        log.info("RetrieverWrapper initialized | retriever_cfg=%s", self.retriever_config)

    def embed_query(self, query: str) -> List[float]:
        return self.vector_index.embed_query(query)

    def retrieve(self, namespace: str, query: str) -> List[Document]:
        """
        Retrieve chunks using configured search type (similarity by default).

        Args:
            namespace: vector namespace (document id)
            query: standalone search query

        Returns:
            List of relevant Document chunks
        """
        search_type = self.retriever_config.get("search_type", "similarity")
        top_k = self.retriever_config.get("top_k", 4)

        query_vector = self.embed_query(query)

        docs = self.vector_index.query_namespace(
            namespace,
            query_vector,
            k=top_k,
            search_type=search_type,
            fetch_k=self.retriever_config.get("fetch_k", 20),
            lambda_mult=self.retriever_config.get("lambda_mult", 0.5),
        )

        log.info(
            "Retrieval complete | namespace=%s | search_type=%s | num_docs=%d",
            namespace,
            search_type,
            len(docs),
        )
        return docs
