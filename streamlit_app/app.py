import os
from enum import Enum

import requests
import streamlit as st

from pdf_chat.chat import session_state as ss

# =========================================================
# CONFIG
# =========================================================
API_BASE = os.getenv("PDF_CHAT_API", "http://localhost:8000")
USER_ID = os.getenv("PDF_CHAT_USER", "demo-user")
API_KEY = os.getenv("PDF_CHAT_API_KEY", "")

st.set_page_config(page_title="Chat with PDF", layout="wide")


class UploadStatus(str, Enum):
    UPLOADING = "Uploading file..."
    UPLOADED = "File uploaded successfully"
    SAVING = "Saving file to database..."
    GENERATING = "Generating AI embeddings, this will only take a few minutes"


class ApiError(Exception):
    pass


# =========================================================
# API HELPERS
# =========================================================
def _headers() -> dict:
    headers = {"X-User-Id": USER_ID}
    if API_KEY:
        headers["X-API-Key"] = API_KEY
    return headers


def api(method: str, path: str, timeout: int = 120, **kwargs):
    try:
        r = requests.request(
            method, f"{API_BASE}{path}", headers=_headers(), timeout=timeout, **kwargs
        )
    except requests.exceptions.RequestException as e:
        raise ApiError(f"Backend connection error: {e}") from e

    if r.status_code >= 400:
        try:
            message = r.json().get("message", r.text)
        except ValueError:
            message = r.text
        raise ApiError(message)
    return r.json()


# =========================================================
# STATE MANAGEMENT
# =========================================================
if "document_id" not in st.session_state:
    st.session_state.document_id = None
if "chat" not in st.session_state:
    st.session_state.chat = ss.ChatState()


def load_transcript(document_id: str):
    return api("GET", f"/documents/{document_id}/messages")


def apply_snapshot():
    doc_id = st.session_state.document_id
    if not doc_id:
        return
    try:
        turns = load_transcript(doc_id)
    except ApiError as e:
        st.sidebar.error(str(e))
        return
    st.session_state.chat = ss.receive_snapshot(st.session_state.chat, turns)


# =========================================================
# SIDEBAR: documents + upload
# =========================================================
st.sidebar.title("📄 Documents")

try:
    documents = api("GET", "/documents")
except ApiError as e:
    st.sidebar.error(str(e))
    documents = []

for d in documents:
    if st.sidebar.button(d["name"], key=f"doc-{d['id']}"):
        st.session_state.document_id = d["id"]
        st.session_state.chat = ss.ChatState()
        apply_snapshot()
        st.rerun()

st.sidebar.divider()

upload = st.sidebar.file_uploader("Upload a PDF", type=["pdf"])
if upload and st.sidebar.button("Upload"):
    status = st.sidebar.empty()
    progress = st.sidebar.progress(0)
    try:
        status.info(UploadStatus.UPLOADING.value)
        doc = api(
            "POST",
            "/documents",
            files={"file": (upload.name, upload.getvalue(), "application/pdf")},
        )
        progress.progress(100)
        status.info(UploadStatus.UPLOADED.value)
        status.info(UploadStatus.SAVING.value)
        st.session_state.document_id = doc["id"]
        st.session_state.chat = ss.ChatState()

        status.info(UploadStatus.GENERATING.value)
        api("POST", f"/documents/{doc['id']}/embeddings", timeout=600)
        status.success("Ready to chat")
        st.rerun()
    except ApiError as e:
        # upload stays where it stopped; user can try again
        status.error(f"Error uploading the file: {e}")


# =========================================================
# MAIN CHAT
# =========================================================
st.title("💬 Chat with your PDF")

if not st.session_state.document_id:
    st.info("👈 Upload or select a document to start chatting.")
    st.stop()


@st.fragment(run_every="3s")
def transcript_view():
    # polling stands in for the live subscription; a failed reply stays
    # visible until the next question
    if st.session_state.chat.status != ss.ChatStatus.ERROR:
        apply_snapshot()
    for m in st.session_state.chat.messages:
        role = "user" if m.role == "human" else "assistant"
        with st.chat_message(role):
            st.markdown(m.message)


transcript_view()

state = st.session_state.chat
question = st.chat_input("Ask a Question...", disabled=not state.can_submit)

if question:
    # Optimistic UI update
    st.session_state.chat = ss.submit(st.session_state.chat, question)
    with st.chat_message("user"):
        st.markdown(question)

    with st.chat_message("assistant"):
        with st.spinner(ss.PLACEHOLDER_TEXT):
            try:
                resp = api(
                    "POST",
                    f"/documents/{st.session_state.document_id}/chat",
                    json={"question": question},
                )
                st.session_state.chat = ss.reply_succeeded(
                    st.session_state.chat, resp["answer"]
                )
                apply_snapshot()
            except ApiError as e:
                st.session_state.chat = ss.reply_failed(st.session_state.chat, str(e))

    st.rerun()
