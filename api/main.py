"""
api/main.py - HTTP surface for TenderQA.

Run with:
    uvicorn api.main:build_app --factory --port 3001
or:
    python -m tender_qa.main serve

Handlers are plain `def` on purpose: the store and the Anthropic SDK are
blocking, and FastAPI runs sync handlers on its threadpool. The store
serializes writes with its own lock.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from dotenv import load_dotenv
from fastapi import APIRouter, Body, Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tender_qa.config import Config, config as default_config
from tender_qa.document_service import AnthropicDocumentService, DocumentService
from tender_qa.documents import ingest_upload
from tender_qa.errors import TenderQAError, ValidationError
from tender_qa.logs import configure_logging
from tender_qa.retention import release_external
from tender_qa.schemas import FileView
from tender_qa.store import RecordStore
from tender_qa.workflow import SubmissionWorkflow

logger = logging.getLogger("tender_qa.api")


def create_app(
    cfg: Optional[Config] = None,
    store: Optional[RecordStore] = None,
    service: Optional[DocumentService] = None,
) -> FastAPI:
    """
    Build the app around explicitly constructed collaborators. Tests pass
    their own store and a stub service; production passes nothing.
    """
    cfg = cfg or default_config
    service = service or AnthropicDocumentService(cfg.anthropic)

    if store is None:
        on_evict = None
        if cfg.storage.release_evicted_files:
            def on_evict(evicted):
                release_external(service, evicted)
        store = RecordStore(cfg.storage.db_path, cfg.storage.max_files, on_evict=on_evict)

    app = FastAPI(title="TenderQA")
    app.state.config = cfg
    app.state.store = store
    app.state.service = service
    app.state.workflow = SubmissionWorkflow(store, service)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.server.cors_origins),
        allow_methods=["*"], allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info("%s %s from %s (%s)",
                    request.method, request.url.path,
                    request.client.host if request.client else "-",
                    request.headers.get("user-agent", "-"))
        return await call_next(request)

    @app.exception_handler(TenderQAError)
    async def handle_domain_error(request: Request, exc: TenderQAError):
        log = logger.warning if exc.status_code < 500 else logger.error
        log("%s %s failed with %s: %s",
            request.method, request.url.path, exc.__class__.__name__, exc)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc), "type": exc.__class__.__name__},
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
            for err in exc.errors()
        )
        return await handle_domain_error(request, ValidationError(f"Invalid request: {details}"))

    app.include_router(_build_router())
    return app


# ── Dependencies ─────────────────────────────────────────────────────────

def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_service(request: Request) -> DocumentService:
    return request.app.state.service


def get_workflow(request: Request) -> SubmissionWorkflow:
    return request.app.state.workflow


def get_config(request: Request) -> Config:
    return request.app.state.config


def _not_found(message: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": message, "type": "NotFound"})


def _build_router():
    router = APIRouter()

    @router.get("/health")
    def health():
        return {"status": "ok"}

    @router.post("/api/upload")
    def upload(
        file: Optional[UploadFile] = File(None),
        store: RecordStore = Depends(get_store),
        service: DocumentService = Depends(get_service),
        cfg: Config = Depends(get_config),
    ):
        if file is None:
            raise ValidationError("No file uploaded or file is not a PDF.")
        result = ingest_upload(
            store,
            service,
            data=file.file.read(),
            filename=file.filename,
            content_type=file.content_type,
            upload_dir=cfg.storage.upload_dir,
            max_file_size_mb=cfg.storage.max_file_size_mb,
        )
        return result.model_dump(by_alias=True)

    @router.get("/api/tender/files")
    def list_files(store: RecordStore = Depends(get_store)):
        files = [FileView.from_record(f).model_dump(by_alias=True) for f in store.list_files()]
        return {"files": files}

    @router.get("/api/tender/files/{file_id}/answers")
    def file_answers(file_id: str, store: RecordStore = Depends(get_store)):
        record = store.get_file(file_id)
        if record is None:
            return _not_found(f"File {file_id} not found")
        return {
            "fileName": record.original_name,
            "answers": [a.model_dump(by_alias=True) for a in record.answers],
        }

    @router.post("/api/tender/question")
    @router.post("/api/question/add")
    def add_question(payload: Any = Body(None), store: RecordStore = Depends(get_store)):
        # The raw body is taken as-is so a missing body, a bare string or a
        # list all reach add_question and fail with the same message.
        text = payload.get("question") if isinstance(payload, dict) else None
        question_id = store.add_question(text)
        return {"id": question_id}

    @router.delete("/api/tender/question/{question_id}")
    def delete_question(question_id: str, store: RecordStore = Depends(get_store)):
        if not store.delete_question(question_id):
            return JSONResponse(
                status_code=404,
                content={"deleted": False, "error": f"Question {question_id} not found"},
            )
        return {"deleted": True}

    @router.get("/api/tender/questions")
    def list_questions(store: RecordStore = Depends(get_store)):
        views = store.list_questions_with_answers()
        return {"questions": [v.model_dump(by_alias=True) for v in views]}

    @router.post("/api/tender/submit")
    def submit(workflow: SubmissionWorkflow = Depends(get_workflow)):
        report = workflow.run()
        return {"status": "ok", "report": report.model_dump(by_alias=True)}

    return router


def build_app() -> FastAPI:
    """
    ASGI factory for `uvicorn --factory`. Loads .env.local (then .env) into
    the environment before building a fresh Config, so keys kept there are
    picked up the same way the CLI picks them up.
    """
    load_dotenv(".env.local")
    load_dotenv()
    cfg = Config()
    configure_logging(
        level=cfg.logging.level,
        environment=cfg.logging.environment,
        log_dir=cfg.logging.log_dir,
    )
    return create_app(cfg)
