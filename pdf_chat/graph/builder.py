from langgraph.graph import END, StateGraph

# Importing the nodes:
from pdf_chat.graph.nodes import (
    ensure_embeddings_node,
    generate_node,
    load_history_node,
    retrieve_node,
    rewrite_query_node,
)

# Importing the typed state defined
from pdf_chat.graph.state import GraphState


def build_graph():
    graph = StateGraph(GraphState)

    graph.add_node("ensure_embeddings", ensure_embeddings_node)
    graph.add_node("load_history", load_history_node)
    graph.add_node("rewrite_query", rewrite_query_node)
    graph.add_node("retrieve", retrieve_node)
    graph.add_node("generate", generate_node)

    # embeddings must exist before any retrieval is attempted
    graph.set_entry_point("ensure_embeddings")

    graph.add_edge("ensure_embeddings", "load_history")
    graph.add_edge("load_history", "rewrite_query")
    graph.add_edge("rewrite_query", "retrieve")
    graph.add_edge("retrieve", "generate")
    graph.add_edge("generate", END)

    return graph.compile()
