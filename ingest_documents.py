"""
Batch ingestion of legal documents for one user.

Processes every PDF, DOCX and TXT file in a directory through the PatraSaar
pipeline (extract, chunk, embed, index, summarize) and optionally asks a
question against the result.

Backends come from the environment (see .env): EMBEDDING_PROVIDER,
VECTOR_BACKEND, METADATA_BACKEND, DATABASE_URL, GROQ_API_KEY, ...

Usage:
    python ingest_documents.py --dir ~/contracts/ --user-id user-123
    python ingest_documents.py --dir ~/contracts/ --user-id user-123 --ask "When can the lease be terminated?"
"""

import sys
import time
import argparse
import logging
from pathlib import Path
from dotenv import load_dotenv

# Ensure project root is on path
PROJECT_ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(PROJECT_ROOT))
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".pdf", ".docx", ".txt")


def collect_files(input_dir: Path) -> list[Path]:
    """Supported files directly inside ``input_dir``, sorted by name."""
    return sorted(
        p for p in input_dir.iterdir()
        if p.is_file() and p.suffix.lower() in SUPPORTED_SUFFIXES
    )


def ingest_file(pipeline, filepath: Path, user_id: str):
    """Register and ingest one file. Returns the IngestionResult."""
    data = filepath.read_bytes()
    file_type = filepath.suffix.lstrip(".").lower()
    record = pipeline.submit_document(user_id, data, filepath.name, file_type)
    return pipeline.ingest(record.id, user_id, data, file_type, filepath.name)


def main():
    arg_parser = argparse.ArgumentParser(description="Ingest legal documents into PatraSaar")
    arg_parser.add_argument(
        "--dir",
        type=str,
        required=True,
        help="Directory containing PDF, DOCX and/or TXT files",
    )
    arg_parser.add_argument(
        "--user-id",
        type=str,
        required=True,
        help="Owner of the ingested documents",
    )
    arg_parser.add_argument(
        "--ask",
        type=str,
        default=None,
        help="Question to ask across the ingested documents",
    )
    arg_parser.add_argument(
        "--top-k",
        type=int,
        default=5,
        help="Passages to retrieve for --ask (default: 5)",
    )
    args = arg_parser.parse_args()

    input_dir = Path(args.dir).expanduser()
    if not input_dir.is_dir():
        logger.error(f"Directory not found: {input_dir}")
        sys.exit(1)

    files = collect_files(input_dir)
    if not files:
        logger.error(f"No PDF, DOCX or TXT files found in {input_dir}")
        sys.exit(1)

    from execution.patrasaar.blob_store import LocalBlobStore
    from execution.patrasaar.pipeline import build_pipeline
    from execution.patrasaar.settings import PipelineSettings

    settings = PipelineSettings.from_env()
    pipeline = build_pipeline(settings, blob_store=LocalBlobStore(settings.document_storage_dir))

    logger.info(f"Found {len(files)} files in {input_dir}")
    logger.info(f"  Embedding model: {pipeline.embeddings.model_id}")
    logger.info(f"  Vector backend: {settings.vector_backend}")
    logger.info(f"  User: {args.user_id}")

    start_time = time.time()
    total_chunks = 0
    success_count = 0
    fail_count = 0

    for i, filepath in enumerate(files):
        logger.info(f"[{i+1}/{len(files)}] Processing: {filepath.name}")
        result = ingest_file(pipeline, filepath, args.user_id)
        if result.status == "completed":
            success_count += 1
            total_chunks += result.chunks_created
            logger.info(f"  -> {result.chunks_created} chunks")
        else:
            fail_count += 1
            logger.error(f"  FAILED: {result.error}")

    elapsed = time.time() - start_time
    logger.info("=" * 60)
    logger.info(f"Ingestion complete in {elapsed:.1f}s")
    logger.info(f"  Success: {success_count}")
    logger.info(f"  Failed: {fail_count}")
    logger.info(f"  Total chunks: {total_chunks}")

    if args.ask:
        result = pipeline.query(args.user_id, args.ask, top_k=args.top_k)
        print(f"\nQ: {args.ask}\n")
        print(result.answer)
        print(f"\nConfidence: {result.confidence:.2f}")
        for i, citation in enumerate(result.citations, start=1):
            print(f"  [{i}] {citation.short_format()} (score: {citation.relevance_score:.3f})")

    if fail_count:
        sys.exit(1)


if __name__ == "__main__":
    main()
