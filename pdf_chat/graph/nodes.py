"""
Each node is an async function that returns a partial state update.
Graph wiring is done in graph.builder.
"""

from pdf_chat.logger import GLOBAL_LOGGER as log


# Appends the current step into existing steps in the state
def _append_step(state, step):
    steps = state.get("steps", [])
    return steps + [step]


async def ensure_embeddings_node(state):
    orchestrator = state["orchestrator"]

    handle = await orchestrator.provisioner.ensure_embeddings(
        state["db"], state["user_id"], state["document_id"]
    )

    log.info(
        "Embeddings ready | namespace=%s | created=%s", handle.namespace, handle.created
    )
    return {"namespace": handle.namespace, "steps": _append_step(state, "ensure_embeddings")}


async def load_history_node(state):
    orchestrator = state["orchestrator"]

    chat_history = await orchestrator.load_chat_history(
        state["db"],
        state["user_id"],
        state["document_id"],
        exclude_turn_id=state.get("exclude_turn_id"),
    )
    return {"chat_history": chat_history, "steps": _append_step(state, "load_history")}


async def rewrite_query_node(state):
    orchestrator = state["orchestrator"]

    search_query = await orchestrator.rewrite_query(
        state["question"], state.get("chat_history", [])
    )
    return {"search_query": search_query, "steps": _append_step(state, "rewrite_query")}


async def retrieve_node(state):
    orchestrator = state["orchestrator"]

    docs = await orchestrator.retrieve(state["namespace"], state["search_query"])
    return {"docs": docs, "steps": _append_step(state, "retrieve")}


async def generate_node(state):
    orchestrator = state["orchestrator"]

    # the literal question, never the rewritten search query
    answer = await orchestrator.generate(
        state["question"], state.get("chat_history", []), state.get("docs", [])
    )
    return {"output": answer, "steps": _append_step(state, "generate")}
