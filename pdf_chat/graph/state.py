from typing import Any, List, Optional, TypedDict


class GraphState(TypedDict, total=False):
    orchestrator: Any
    db: Any
    user_id: str
    document_id: str
    question: str
    exclude_turn_id: Optional[int]
    namespace: str
    chat_history: List[Any]
    search_query: str
    docs: List[Any]
    output: str
    steps: List[str]
