"""
main.py - Command-line entry point for TenderQA.

    python -m tender_qa.main serve
    python -m tender_qa.main add-question "Is a bid security required?"
    python -m tender_qa.main upload dataset/MTF.pdf
    python -m tender_qa.main submit
    python -m tender_qa.main list

The CLI and the API share the same record document, so questions added
here show up in the UI and vice versa. Do not run `submit` from the CLI
while the server is handling a submission: the two processes do not share
a lock.
"""

from __future__ import annotations

# .env.local has to be loaded before tender_qa.config reads the environment.
from dotenv import load_dotenv

load_dotenv(".env.local")
load_dotenv()

import argparse  # noqa: E402
import json  # noqa: E402
import logging  # noqa: E402
import sys  # noqa: E402
from pathlib import Path  # noqa: E402

from tender_qa.config import config  # noqa: E402
from tender_qa.document_service import AnthropicDocumentService  # noqa: E402
from tender_qa.documents import PDF_MIMETYPE, ingest_upload  # noqa: E402
from tender_qa.errors import NoFilesError, TenderQAError  # noqa: E402
from tender_qa.logs import configure_logging  # noqa: E402
from tender_qa.retention import release_external  # noqa: E402
from tender_qa.schemas import FileView  # noqa: E402
from tender_qa.store import RecordStore  # noqa: E402
from tender_qa.workflow import SubmissionWorkflow  # noqa: E402

logger = logging.getLogger("tender_qa")


def _build_store(service: AnthropicDocumentService) -> RecordStore:
    on_evict = None
    if config.storage.release_evicted_files:
        def on_evict(evicted):
            release_external(service, evicted)
    return RecordStore(config.storage.db_path, config.storage.max_files, on_evict=on_evict)


def _cmd_serve(args) -> int:
    import uvicorn

    from api.main import create_app

    app = create_app(config)
    logger.info("Server starting at http://%s:%d (%s)",
                args.host, args.port, config.logging.environment)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


def _cmd_add_question(args, store: RecordStore, service) -> int:
    question_id = store.add_question(args.text)
    print(question_id)
    return 0


def _cmd_upload(args, store: RecordStore, service) -> int:
    path = Path(args.file)
    if not path.exists():
        logger.error("File not found: %s", path)
        return 1
    result = ingest_upload(
        store,
        service,
        data=path.read_bytes(),
        filename=path.name,
        content_type=PDF_MIMETYPE if path.suffix.lower() == ".pdf" else None,
        upload_dir=config.storage.upload_dir,
        max_file_size_mb=config.storage.max_file_size_mb,
    )
    print(json.dumps(result.model_dump(by_alias=True), indent=2))
    return 0


def _cmd_submit(args, store: RecordStore, service) -> int:
    try:
        report = SubmissionWorkflow(store, service).run()
    except NoFilesError as exc:
        logger.error("%s", exc)
        return 1
    print(json.dumps(report.model_dump(by_alias=True), indent=2))
    return 0 if not report.failed else 2


def _cmd_list(args, store: RecordStore, service) -> int:
    out = {
        "questions": [v.model_dump(by_alias=True) for v in store.list_questions_with_answers()],
        "files": [FileView.from_record(f).model_dump(by_alias=True) for f in store.list_files()],
    }
    print(json.dumps(out, indent=2, ensure_ascii=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tender_qa",
        description="TenderQA - Ask questions against uploaded tender PDFs",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=config.server.host)
    serve.add_argument("--port", type=int, default=config.server.port)

    add = sub.add_parser("add-question", help="Register a question")
    add.add_argument("text")

    upload = sub.add_parser("upload", help="Upload a PDF tender document")
    upload.add_argument("file")

    sub.add_parser("submit", help="Answer every unanswered (file, question) pair")
    sub.add_parser("list", help="Print questions and files as JSON")
    return parser


COMMANDS = {
    "add-question": _cmd_add_question,
    "upload": _cmd_upload,
    "submit": _cmd_submit,
    "list": _cmd_list,
}


def main(argv=None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    configure_logging(
        level="DEBUG" if args.verbose else config.logging.level,
        environment=config.logging.environment,
        log_dir=config.logging.log_dir,
    )

    if args.command == "serve":
        return _cmd_serve(args)

    try:
        service = AnthropicDocumentService(config.anthropic)
        store = _build_store(service)
        return COMMANDS[args.command](args, store, service)
    except TenderQAError as exc:
        logger.error("%s: %s", exc.__class__.__name__, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
