"""
Ingestion orchestrator.

Turns a stored document into searchable data: an embedding on the document
row, tags, a summary and, for images, a detailed visual analysis. Text and PDF
documents additionally get their full text chunked and embedded into
`document_embeddings` so chat retrieval has passages to return.

Every derived field is produced in its own try/except; one failing provider
never prevents the others from being written.
"""
import logging
import random
import time
from typing import Any, Dict, List, Optional, Tuple

from config import (
    EMBED_BATCH_SIZE,
    REPROCESS_DEFAULT_LIMIT,
    REPROCESS_MAX_DELAY,
    REPROCESS_MIN_DELAY,
)
from models.analysis import (
    DocumentAnalysis,
    GenericAnalysis,
    ImageAnalysis,
    IngestionReport,
    TextAnalysis,
    VideoAnalysis,
)
from models.chunk import DocumentChunk
from models.document import IMAGE, TEXT, VIDEO, Document
from services.chunking_engine import ChunkingEngine
from services.document_loader import DocumentLoader
from services.document_repository import DocumentRepository
from services.embedding_model import EmbeddingModel
from services.errors import AnalysisError, DocumentNotFoundError
from services.gemini_client import GeminiClient
from services.image_analyzer import ImageAnalyzer, detailed_summary
from services.object_storage import ObjectStorage
from services.vector_store import VectorStore

logger = logging.getLogger(__name__)


class IngestionOrchestrator:
    """Runs the per-kind analysis pipeline and writes the results back."""

    def __init__(
        self,
        documents: DocumentRepository,
        storage: ObjectStorage,
        gemini: GeminiClient,
        image_analyzer: ImageAnalyzer,
        embedder: EmbeddingModel,
        vector_store: VectorStore,
        chunker: Optional[ChunkingEngine] = None,
        loader: Optional[DocumentLoader] = None
    ):
        self.documents = documents
        self.storage = storage
        self.gemini = gemini
        self.image_analyzer = image_analyzer
        self.embedder = embedder
        self.vector_store = vector_store
        self.chunker = chunker or ChunkingEngine()
        self.loader = loader or DocumentLoader()

    def process(self, document_id: str, quality: str = "standard") -> IngestionReport:
        """
        Analyze one document and update its row.

        Args:
            document_id: Document to process
            quality: "standard" or "premium" vision models for images

        Returns:
            IngestionReport listing the fields written

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        document = self.documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)

        logger.info(f"Processing document {document.id} ({document.kind}, {document.mime_type})")
        start_time = time.time()

        if document.kind == IMAGE:
            analysis: DocumentAnalysis = self._process_image(document, quality)
        elif document.kind == TEXT:
            analysis = self._process_text(document)
        elif document.kind == VIDEO:
            analysis = self._process_video(document)
        else:
            analysis = self._process_generic(document)

        payload = analysis.update_payload()
        self.documents.update(document.id, payload)

        report = IngestionReport.from_analysis(analysis, payload)
        logger.info(
            f"Processed document {document.id} in {time.time() - start_time:.2f}s",
            extra={"document_id": document.id, "fields_written": report.fields_written}
        )
        return report

    def prepare_document(self, text: str) -> Tuple[List[DocumentChunk], List[List[float]]]:
        """Clean and chunk text, then embed every chunk in order."""
        chunks = self.chunker.chunk_text(self.chunker.clean_text(text))
        embeddings: List[List[float]] = []

        for start in range(0, len(chunks), EMBED_BATCH_SIZE):
            embeddings.extend(self.embedder.embed_chunks(chunks[start:start + EMBED_BATCH_SIZE]))

        return chunks, embeddings

    def index_full_text(self, document: Document) -> int:
        """Replace the document's passage embeddings with ones built from its stored file."""
        if not document.storage_path:
            return 0

        data = self.storage.download(document.storage_path)
        text = self.loader.extract_text(data, document.mime_type)
        chunks, embeddings = self.prepare_document(text)
        return self.vector_store.replace_document_chunks(document.id, chunks, embeddings)

    def _process_image(self, document: Document, quality: str) -> ImageAnalysis:
        analysis = ImageAnalysis(document_id=document.id)

        try:
            if not document.storage_path:
                raise AnalysisError("Document has no stored file")

            image_bytes = self.storage.download(document.storage_path)
            result = self.image_analyzer.analyze(image_bytes, document.mime_type, quality=quality)

            analysis.description = result.description
            analysis.detailed_analysis = result.detailed_analysis
            analysis.searchable_text = result.searchable_text
            analysis.model_used = result.model_used
            analysis.tags = result.tags
            analysis.summary = detailed_summary(result)

            analysis.embedding = self.gemini.embed_text(
                f"{result.description} {result.searchable_text}".strip()
            )
            self.documents.upsert_image_embedding(
                document.id,
                analysis.embedding,
                thumbnail_path=document.thumbnail_path or document.storage_path,
            )
        except Exception as e:
            logger.warning(f"Image analysis failed for {document.id}, falling back to title: {e}")
            analysis.errors.append(str(e))
            analysis.fallback_used = True
            self._fill_from_title(document, analysis)

        return analysis

    def _fill_from_title(self, document: Document, analysis: DocumentAnalysis) -> None:
        """Produce whatever is still missing from the title alone."""
        if not document.title:
            return

        if not analysis.embedding:
            try:
                analysis.embedding = self.gemini.embed_text(document.title)
            except Exception as e:
                logger.error(f"Title embedding failed for {document.id}: {e}")
                analysis.errors.append(str(e))

        if not analysis.tags:
            analysis.tags = self.gemini.generate_tags(document.title, document.mime_type)

    def _process_text(self, document: Document) -> TextAnalysis:
        analysis = TextAnalysis(document_id=document.id)
        blob = f"{document.title} {document.description or ''}".strip()

        if blob:
            try:
                analysis.embedding = self.gemini.embed_text(blob)
            except Exception as e:
                logger.error(f"Embedding failed for {document.id}: {e}")
                analysis.errors.append(str(e))

            analysis.tags = self.gemini.generate_tags(blob, document.mime_type)
            analysis.summary = self.gemini.generate_summary(blob, document.title) or None

        try:
            analysis.chunks_indexed = self.index_full_text(document)
        except Exception as e:
            logger.error(f"Full-text indexing failed for {document.id}: {e}", exc_info=True)
            analysis.errors.append(str(e))

        return analysis

    def _process_video(self, document: Document) -> VideoAnalysis:
        analysis = VideoAnalysis(document_id=document.id)
        blob = f"Video: {document.title}"

        try:
            analysis.embedding = self.gemini.embed_text(blob)
        except Exception as e:
            logger.error(f"Embedding failed for {document.id}: {e}")
            analysis.errors.append(str(e))

        analysis.tags = self.gemini.generate_tags(blob, document.mime_type)
        return analysis

    def _process_generic(self, document: Document) -> GenericAnalysis:
        analysis = GenericAnalysis(document_id=document.id)
        self._fill_from_title(document, analysis)
        return analysis

    def reprocess_workspace(
        self,
        workspace_id: str,
        quality: str = "standard",
        limit: int = REPROCESS_DEFAULT_LIMIT
    ) -> Dict[str, Any]:
        """
        Re-run image analysis for a workspace, one image at a time.

        Sleeps a random 2-4 seconds before each item to stay under provider
        rate limits. Per-item failures are collected, not raised.
        """
        images = self.documents.list_workspace_images(workspace_id, limit)
        logger.info(f"Reprocessing {len(images)} images in workspace {workspace_id}")

        processed_ids: List[str] = []
        errors: List[Dict[str, str]] = []

        for row in images:
            time.sleep(random.uniform(REPROCESS_MIN_DELAY, REPROCESS_MAX_DELAY))
            try:
                self.process(row["id"], quality=quality)
                processed_ids.append(row["id"])
            except Exception as e:
                logger.error(f"Reprocessing failed for {row['id']}: {e}")
                errors.append({"id": row["id"], "error": str(e)})

        return {
            "processed": len(processed_ids),
            "errors": len(errors),
            "processed_ids": processed_ids,
            "error_details": errors,
        }

    def reprocess_status(self, workspace_id: str) -> Dict[str, Any]:
        """Count workspace images with and without a detailed analysis."""
        pending = self.documents.images_needing_analysis(workspace_id)
        return {
            "needs_reprocessing": len(pending),
            "already_processed": self.documents.count_analyzed_images(workspace_id),
            "documents": pending,
        }
