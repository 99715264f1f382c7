import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, File, Request, UploadFile
from pydantic import BaseModel

from api.auth import require_user
from db.database import get_db
from pdf_chat.exception.custom_exception import NotFound, ValidationFailure
from pdf_chat.logger import GLOBAL_LOGGER as log
from pdf_chat.utils.thread_pool import run_sync

router = APIRouter()

PDF_CONTENT_TYPE = "application/pdf"


class DocumentOut(BaseModel):
    id: str
    name: str
    size: int
    content_type: str
    download_url: str
    storage_path: str
    created_at: datetime

    model_config = {"from_attributes": True}


class EmbeddingStatus(BaseModel):
    completed: bool
    created: bool
    namespace: str


def _is_pdf(upload: UploadFile) -> bool:
    name = (upload.filename or "").lower()
    return upload.content_type == PDF_CONTENT_TYPE or name.endswith(".pdf")


@router.post("/documents", response_model=DocumentOut, status_code=201)
async def upload_document(
    request: Request,
    file: UploadFile = File(...),
    user_id: str = Depends(require_user),
    db=Depends(get_db),
):
    """
    Upload endpoint:
      - streams the PDF into document storage with progress logging
      - records the Document once the upload completes
    Embeddings are generated separately (POST /documents/{id}/embeddings)
    or lazily on the first question.
    """
    if not _is_pdf(file):
        raise ValidationFailure("Only PDF documents are supported")

    container = request.app.state.container
    document_id = str(uuid.uuid4())

    log.info("Uploading file... | document_id=%s | name=%s", document_id, file.filename)

    def on_progress(percent: int) -> None:
        log.info("Upload progress | document_id=%s | percent=%d", document_id, percent)

    stored = await run_sync(
        container.storage.save,
        user_id,
        document_id,
        file.file,
        file.size,
        on_progress,
    )
    log.info("File uploaded successfully | document_id=%s", document_id)

    doc = await container.document_repo.create_document(
        db,
        document_id=document_id,
        user_id=user_id,
        name=file.filename or "document.pdf",
        size=stored.size,
        content_type=file.content_type or PDF_CONTENT_TYPE,
        download_url=stored.download_url,
        storage_path=stored.storage_path,
    )
    return doc


@router.get("/documents", response_model=list[DocumentOut])
async def list_documents(
    request: Request, user_id: str = Depends(require_user), db=Depends(get_db)
):
    return await request.app.state.container.document_repo.list_documents(db, user_id)


@router.get("/documents/{document_id}", response_model=DocumentOut)
async def get_document(
    document_id: str,
    request: Request,
    user_id: str = Depends(require_user),
    db=Depends(get_db),
):
    doc = await request.app.state.container.document_repo.get_document(
        db, user_id, document_id
    )
    if doc is None:
        raise NotFound(f"Document {document_id} not found")
    return doc


@router.post("/documents/{document_id}/embeddings", response_model=EmbeddingStatus)
async def generate_embeddings(
    document_id: str,
    request: Request,
    user_id: str = Depends(require_user),
    db=Depends(get_db),
):
    """Turn the PDF into embeddings now instead of on the first question."""
    handle = await request.app.state.container.provisioner.ensure_embeddings(
        db, user_id, document_id
    )
    return EmbeddingStatus(completed=True, created=handle.created, namespace=handle.namespace)


@router.get("/namespaces")
async def namespace_stats(
    request: Request, user_id: str = Depends(require_user), db=Depends(get_db)
):
    """Vector namespace stats for the caller's own documents."""
    container = request.app.state.container
    owned = {d.id for d in await container.document_repo.list_documents(db, user_id)}
    stats = await run_sync(container.vector_index.describe_namespace_stats)
    return {"namespaces": {ns: s for ns, s in stats.items() if ns in owned}}
