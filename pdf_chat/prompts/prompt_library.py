from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

REWRITE_INSTRUCTION = (
    "Given the above conversation, generate a search query to look up in order "
    "to get information relevant to the conversation"
)


# Query-rewrite prompt: history, then the raw question, then the instruction
# to turn both into one standalone search query.
contextualize_question_prompt = ChatPromptTemplate.from_messages(
    [
        MessagesPlaceholder("chat_history"),
        ("human", "{input}"),
        ("human", REWRITE_INSTRUCTION),
    ]
)


# Answer prompt: grounded in retrieved context, anchored to the literal question
context_qa_prompt = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            (
                "Answer the user's questions based on the below context. "
                "Use ONLY the provided context; if the answer is not in it, say: "
                "\"I don't know based on the document.\"\n\n"
                "Context:\n{context}"
            ),
        ),
        MessagesPlaceholder("chat_history"),
        ("human", "{input}"),
    ]
)


# Central dictionary to register prompts
PROMPT_REGISTRY = {
    "contextualize_question": contextualize_question_prompt,
    "context_qa": context_qa_prompt,
}
