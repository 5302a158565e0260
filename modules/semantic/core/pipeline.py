"""
Semantic Pipeline Orchestrator

Sequences the five stages that turn a source tree into a searchable,
layered representation:

1. parsing        source files -> AiItems (L0)
2. dependencies   AiItems -> dependency descriptors + graph (L1)
3. enrichment     AiItems -> description/summary/tags (L2)
4. vectorization  AiItems -> embedding vectors
5. indexing       vectors -> persisted similarity index + IndexEntry table

Each stage takes the mapping of earlier stage results and returns a new result
dict; items are never mutated, each stage hands forward a new list.
"""

import logging
import time
from collections import Counter
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from .ai_item import AiItem, IndexEntry
from .batch_processor import BatchProcessor, split_batches
from .checkpoint_manager import CheckpointManager
from .config import PipelineConfig, STAGE_ORDER, StageName
from .errors import (
    FatalStageError,
    PerBatchEmbeddingError,
    PerBatchEnrichmentError,
    PerItemAnalysisError,
    PipelineError,
)
from .file_discovery import FileDiscovery
from .progress import STATUS_FAILED, STATUS_RUNNING, ProgressCallback, ProgressTracker
from ..services.index_builder import path_size

logger = logging.getLogger(__name__)

ENRICHMENT_ERROR_PREFIX = "Error generating description: "
ENRICHMENT_ERROR_SUMMARY = "Enrichment failed"
ENRICHMENT_ERROR_TAGS = ["error"]

PARSING = StageName.PARSING.value
DEPENDENCIES = StageName.DEPENDENCIES.value
ENRICHMENT = StageName.ENRICHMENT.value
VECTORIZATION = StageName.VECTORIZATION.value
INDEXING = StageName.INDEXING.value


def embedding_text(item: AiItem) -> str:
    return f"{item.id}\n{item.l2_desc or ''}\n{item.l0_code or ''}".strip()


class PipelineOrchestrator:
    """
    Orchestrator for the staged semantic pipeline.

    Coordinates:
    - File discovery and sequential parsing
    - Per-item dependency analysis and graph building
    - Batched enrichment and vectorization with positional alignment
    - Index construction with contiguous vector ordinals
    - Step status, progress events and optional checkpointing

    Collaborators can be injected; otherwise they are created lazily from config.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        file_discovery=None,
        dispatcher=None,
        dependency_analyzer=None,
        enricher=None,
        vectorizer=None,
        index_builder=None,
        checkpoint_manager: Optional[CheckpointManager] = None,
        progress_callback: Optional[ProgressCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Pipeline configuration (defaults if not provided)
            file_discovery: FileDiscovery-like collaborator
            dispatcher: ParserDispatcher-like collaborator
            dependency_analyzer: DependencyAnalyzer-like collaborator
            enricher: SemanticEnricher-like collaborator
            vectorizer: Vectorizer-like collaborator
            index_builder: IndexBuilder-like collaborator
            checkpoint_manager: Persists stage results when provided
            progress_callback: Receives ProgressEvent notifications
            sleep: Inter-batch sleep function
        """
        self.config = config or PipelineConfig()
        self.sleep = sleep

        self._file_discovery = file_discovery
        self._dispatcher = dispatcher
        self._dependency_analyzer = dependency_analyzer
        self._enricher = enricher
        self._vectorizer = vectorizer
        self._index_builder = index_builder

        if checkpoint_manager is None and self.config.checkpoint_dir:
            checkpoint_manager = CheckpointManager(Path(self.config.checkpoint_dir))
        self.checkpoint_manager = checkpoint_manager

        self.progress = ProgressTracker(STAGE_ORDER)
        if progress_callback is not None:
            self.progress.add_callback(progress_callback)

        self._stages = {
            PARSING: self.execute_parsing,
            DEPENDENCIES: self.execute_dependency_analysis,
            ENRICHMENT: self.execute_semantic_enrichment,
            VECTORIZATION: self.execute_vectorization,
            INDEXING: self.execute_indexing,
        }

        logger.info(f"🚀 Semantic pipeline initialized for {self.config.project_root}")

    # ===== LAZY COLLABORATORS =====

    @property
    def file_discovery(self) -> FileDiscovery:
        """Lazy-load file discovery on first access."""
        if self._file_discovery is None:
            self._file_discovery = FileDiscovery(self.config.project_path)
        return self._file_discovery

    @property
    def dispatcher(self):
        """Lazy-load parser dispatcher on first access."""
        if self._dispatcher is None:
            from ..parsers.dispatcher import ParserDispatcher

            self._dispatcher = ParserDispatcher(self.config.project_path)
        return self._dispatcher

    @property
    def dependency_analyzer(self):
        """Lazy-load dependency analyzer on first access."""
        if self._dependency_analyzer is None:
            from ..analysis.dependency_analyzer import DependencyAnalyzer

            self._dependency_analyzer = DependencyAnalyzer()
        return self._dependency_analyzer

    @property
    def enricher(self):
        """Lazy-load semantic enricher on first access (requires an API key)."""
        if self._enricher is None:
            from ..services.semantic_enricher import SemanticEnricher

            self._enricher = SemanticEnricher(
                model=self.config.llm_model,
                base_url=self.config.openai_base_url,
                temperature=self.config.llm_temperature,
                max_tokens=self.config.llm_max_tokens,
                max_retries=self.config.max_retries,
                max_code_chars=self.config.max_code_chars,
                timeout=self.config.llm_timeout,
            )
        return self._enricher

    @property
    def vectorizer(self):
        """Lazy-load vectorizer on first access."""
        if self._vectorizer is None:
            from ..services.vectorizer import Vectorizer

            self._vectorizer = Vectorizer(
                model=self.config.embedding_model,
                provider=self.config.embedding_provider,
                embedding_size=self.config.embedding_size,
                local_embedding_size=self.config.local_embedding_size,
                max_text_chars=self.config.max_text_chars,
                max_retries=self.config.max_retries,
                base_url=self.config.openai_base_url,
            )
        return self._vectorizer

    @property
    def index_builder(self):
        """Lazy-load index builder on first access."""
        if self._index_builder is None:
            from ..services.index_builder import IndexBuilder

            self._index_builder = IndexBuilder(
                index_type=self.config.index_type,
                index_path=self.config.index_path,
                collection_name=self.config.collection_name,
            )
        return self._index_builder

    # ===== STEP CONTROL =====

    def run_step(self, stage: str, previous_results: Optional[Dict[str, Dict[str, Any]]] = None) -> Dict[str, Any]:
        """
        Run one stage and record its state.

        Args:
            stage: Stage name (parsing, dependencies, enrichment, vectorization, indexing)
            previous_results: Earlier stage results; defaults to results stored by
                this orchestrator, then to checkpoints

        Returns:
            The stage result dict
        """
        if stage not in self._stages:
            raise ValueError(f"Unknown pipeline stage: {stage} (expected one of {', '.join(STAGE_ORDER)})")
        if self.progress.steps[stage].status == STATUS_RUNNING:
            raise PipelineError(f"Stage '{stage}' is already running")

        if previous_results is None:
            previous_results = self.stored_results()

        logger.info(f"▶️ Running stage: {stage}")
        self.progress.start_step(stage)
        started = time.time()
        try:
            result = self._stages[stage](previous_results)
        except Exception as e:
            self.progress.fail_step(stage, e)
            logger.error(f"❌ Stage '{stage}' failed: {e}")
            raise

        self.progress.complete_step(stage, result)
        logger.info(f"✅ Stage '{stage}' completed in {time.time() - started:.1f}s")

        if self.checkpoint_manager is not None:
            self.checkpoint_manager.save_stage_result(stage, result)

        return result

    def run_all(self) -> Dict[str, Dict[str, Any]]:
        """Run every stage in order; the first failure propagates."""
        logger.info("🏁 Starting full semantic pipeline run")
        results: Dict[str, Dict[str, Any]] = {}
        for stage in STAGE_ORDER:
            results[stage] = self.run_step(stage, results)

        self._log_statistics(results)
        return results

    def stored_results(self) -> Dict[str, Dict[str, Any]]:
        """Results of completed steps, backed by checkpoints for steps not run here."""
        results: Dict[str, Dict[str, Any]] = {}
        if self.checkpoint_manager is not None:
            results.update(self.checkpoint_manager.load_results(STAGE_ORDER))
        for name, step in self.progress.steps.items():
            if step.result is not None:
                results[name] = step.result
            elif step.status == STATUS_FAILED:
                # A failed rerun invalidates any older checkpoint for the stage
                results.pop(name, None)
        return results

    def get_status(self) -> Dict[str, Any]:
        return self.progress.get_status()

    @property
    def history(self):
        return list(self.progress.history)

    def reset(self) -> None:
        self.progress.reset()
        logger.info("🔄 Pipeline state reset")

    # ===== HELPERS =====

    def _emit(self, stage: str, percentage: float, message: str, processed: int = 0, total: int = 0) -> None:
        self.progress.emit(stage, percentage, message, processed, total)

    def _require(self, previous_results: Dict[str, Dict[str, Any]], source: str, field: str, stage: str):
        """Fetch a required field from an earlier stage result or fail the stage."""
        source_result = (previous_results or {}).get(source)
        if not isinstance(source_result, dict) or source_result.get(field) is None:
            raise FatalStageError(
                stage,
                f"Missing prerequisite: '{field}' from stage '{source}'. Run '{source}' first."
            )
        return source_result[field]

    @staticmethod
    def _timestamp() -> str:
        return datetime.now().isoformat()

    # ===== STAGE 1: PARSING =====

    def execute_parsing(self, previous_results: Optional[Dict[str, Dict[str, Any]]] = None) -> Dict[str, Any]:
        """Discover files and parse them one at a time into AiItems."""
        self._emit(PARSING, 0, "Discovering files")
        files = self.file_discovery.resolve(
            selected_files=self.config.selected_files,
            excluded_files=self.config.excluded_files,
            patterns=self.config.file_patterns,
            ignore_patterns=self.config.ignore_patterns,
        )

        total = len(files)
        logger.info(f"📝 Parsing {total} files")
        self._emit(PARSING, 10, f"Found {total} files", 0, total)

        items: List[AiItem] = []
        failed: List[Dict[str, str]] = []

        for index, file_path in enumerate(files, start=1):
            try:
                file_items = self.dispatcher.parse_file(file_path)
                items.extend(file_items)
            except Exception as e:
                failed.append({'file_path': file_path, 'error': str(e)})
                logger.warning(f"⚠️ Skipping {file_path}: {e}")

            self._emit(PARSING, 10 + 80 * index / total, f"Parsed {Path(file_path).name}", index, total)

        # Colliding ids are reported but kept; the items stay distinct in the list
        duplicate_ids = sorted(item_id for item_id, count in Counter(item.id for item in items).items() if count > 1)
        if duplicate_ids:
            logger.warning(f"⚠️ {len(duplicate_ids)} duplicate item ids (e.g. {duplicate_ids[0]})")

        statistics = {
            'total_files': total,
            'files_processed': total - len(failed),
            'files_failed': len(failed),
            'total_items': len(items),
            'items_by_language': dict(Counter(item.language for item in items)),
            'items_by_type': dict(Counter(item.type for item in items)),
            'duplicate_ids': duplicate_ids,
            'errors': failed[-5:],
        }

        logger.info(f"✅ Parsed {len(items)} items from {statistics['files_processed']}/{total} files")
        self._emit(PARSING, 100, f"Parsed {len(items)} items", total, total)

        return {'ai_items': items, 'statistics': statistics, 'timestamp': self._timestamp()}

    # ===== STAGE 2: DEPENDENCIES =====

    def execute_dependency_analysis(self, previous_results: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        """Attach dependency descriptors to every item, then build the graph."""
        items: List[AiItem] = self._require(previous_results, PARSING, 'ai_items', DEPENDENCIES)
        analyzer = self.dependency_analyzer

        total = len(items)
        logger.info(f"🔍 Analyzing dependencies for {total} items")
        self._emit(DEPENDENCIES, 10, "Analyzing dependencies", 0, total)

        analyzed: List[AiItem] = []
        failures = 0
        for index, item in enumerate(items, start=1):
            try:
                dependencies = list(analyzer.analyze_dependencies(item, items))
            except Exception as e:
                failures += 1
                logger.warning(f"⚠️ {PerItemAnalysisError(item.id, str(e))}")
                dependencies = []
            analyzed.append(replace(item, l1_deps=dependencies))

            self._emit(DEPENDENCIES, 10 + 80 * index / total, f"Analyzed {item.id}", index, total)

        self._emit(DEPENDENCIES, 90, "Building dependency graph", total, total)
        graph = analyzer.build_dependency_graph(analyzed)

        statistics = {
            'total_items': total,
            'items_with_dependencies': sum(1 for item in analyzed if item.l1_deps),
            'total_dependencies': len(graph.edges),
            'failed_items': failures,
        }

        logger.info(f"✅ {statistics['items_with_dependencies']}/{total} items have dependencies "
                    f"({statistics['total_dependencies']} edges)")
        self._emit(DEPENDENCIES, 100, "Dependency analysis complete", total, total)

        return {
            'ai_items': analyzed,
            'dependency_graph': graph,
            'statistics': statistics,
            'timestamp': self._timestamp(),
        }

    # ===== STAGE 3: ENRICHMENT =====

    def execute_semantic_enrichment(self, previous_results: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        """Fill the L2 layer batch by batch, merging results back by position."""
        items: List[AiItem] = self._require(previous_results, DEPENDENCIES, 'ai_items', ENRICHMENT)
        total = len(items)
        logger.info(f"🧠 Enriching {total} items in batches of {self.config.enrichment_batch_size}")
        self._emit(ENRICHMENT, 10, "Starting semantic enrichment", 0, total)

        enricher = self.enricher if items else None

        def enrich(batch: List[AiItem]) -> List[AiItem]:
            enrichments = enricher.enrich_batch(batch)
            if len(enrichments) != len(batch):
                raise ValueError(f"enricher returned {len(enrichments)} results for {len(batch)} items")
            return [merge_enrichment(item, enrichment) for item, enrichment in zip(batch, enrichments)]

        def mark_failed(batch: List[AiItem], error: BaseException) -> List[AiItem]:
            return [mark_enrichment_failed(item, error) for item in batch]

        processor = BatchProcessor(
            batch_size=self.config.enrichment_batch_size,
            delay=self.config.enrichment_delay,
            failure_error=lambda index, message, cause: PerBatchEnrichmentError(index, message, cause),
            sleep=self.sleep,
        )
        outcome = processor.process(
            items,
            handler=enrich,
            fallback=mark_failed,
            on_batch_done=lambda done, count: self._emit(
                ENRICHMENT, 10 + 80 * done / count, f"Enriched {done}/{count} items", done, count
            ),
        )
        enriched: List[AiItem] = outcome['results']

        descriptions = [item.l2_desc for item in enriched if not item.l2_desc.startswith(ENRICHMENT_ERROR_PREFIX)]
        statistics = {
            'total_items': total,
            'enriched_items': len(descriptions),
            'failed_batches': outcome['failed_batches'],
            'average_description_length': (
                round(sum(len(d) for d in descriptions) / len(descriptions), 1) if descriptions else 0
            ),
        }

        logger.info(f"✅ Enriched {statistics['enriched_items']}/{total} items "
                    f"({statistics['failed_batches']} failed batches)")
        self._emit(ENRICHMENT, 100, "Semantic enrichment complete", total, total)

        return {'ai_items': enriched, 'statistics': statistics, 'timestamp': self._timestamp()}

    # ===== STAGE 4: VECTORIZATION =====

    def execute_vectorization(self, previous_results: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        """Embed every item; failed batches become zero vectors so alignment holds."""
        items: List[AiItem] = self._require(previous_results, ENRICHMENT, 'ai_items', VECTORIZATION)
        total = len(items)

        self._emit(VECTORIZATION, 0, "Initializing vectorizer", 0, total)
        vectorizer = self.vectorizer
        vectorizer.initialize()
        dimension = int(vectorizer.dimension)
        self._emit(VECTORIZATION, 10, f"Vectorizer ready ({dimension}D)", 0, total)

        logger.info(f"🔢 Vectorizing {total} items in batches of {self.config.vectorization_batch_size}")
        texts = [embedding_text(item) for item in items]

        def embed(batch: List[str]) -> List[np.ndarray]:
            vectors = [np.asarray(v, dtype=np.float32) for v in vectorizer.create_embeddings(batch)]
            for vector in vectors:
                if vector.shape != (dimension,):
                    raise ValueError(f"expected {dimension}D vectors, got shape {vector.shape}")
            return vectors

        def zero_vectors(batch: List[str], error: BaseException) -> List[np.ndarray]:
            return [np.zeros(dimension, dtype=np.float32) for _ in batch]

        processor = BatchProcessor(
            batch_size=self.config.vectorization_batch_size,
            delay=self.config.vectorization_delay,
            failure_error=lambda index, message, cause: PerBatchEmbeddingError(index, message, cause),
            sleep=self.sleep,
        )
        outcome = processor.process(
            texts,
            handler=embed,
            fallback=zero_vectors,
            on_batch_done=lambda done, count: self._emit(
                VECTORIZATION, 20 + 70 * done / count, f"Vectorized {done}/{count} items", done, count
            ),
        )
        vectors: List[np.ndarray] = outcome['results']

        if len(vectors) != total:
            raise PipelineError(f"Vector count {len(vectors)} does not match item count {total}")

        vectorized = [replace(item, vector=vector) for item, vector in zip(items, vectors)]
        zero_count = sum(1 for vector in vectors if not np.any(vector))

        statistics = {
            'total_items': total,
            'vectorized_items': total - zero_count,
            'zero_vector_items': zero_count,
            'failed_batches': outcome['failed_batches'],
            'vector_dimension': dimension,
        }

        logger.info(f"✅ Vectorized {total} items ({zero_count} zero vectors, {dimension}D)")
        self._emit(VECTORIZATION, 100, "Vectorization complete", total, total)

        return {
            'ai_items': vectorized,
            'vectors': vectors,
            'vector_dimension': dimension,
            'statistics': statistics,
            'timestamp': self._timestamp(),
        }

    # ===== STAGE 5: INDEXING =====

    def execute_indexing(self, previous_results: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        """Load vectors into the index with contiguous ordinals, then persist it."""
        vectors: List[np.ndarray] = self._require(previous_results, VECTORIZATION, 'vectors', INDEXING)
        items: List[AiItem] = self._require(previous_results, VECTORIZATION, 'ai_items', INDEXING)
        if len(items) != len(vectors):
            raise FatalStageError(INDEXING, f"{len(vectors)} vectors for {len(items)} items")

        dimension = previous_results[VECTORIZATION].get('vector_dimension') or (len(vectors[0]) if vectors else None)
        if not dimension:
            raise FatalStageError(INDEXING, "Cannot determine vector dimension from stage 'vectorization'")

        total = len(vectors)
        builder = self.index_builder

        entries = [
            IndexEntry(
                vector_ordinal=ordinal,
                id=item.id,
                type=item.type,
                language=item.language,
                file_path=item.file_path,
            )
            for ordinal, item in enumerate(items)
        ]

        # The index storage is released even when a write fails
        try:
            self._emit(INDEXING, 10, f"Initializing {dimension}D index", 0, total)
            builder.initialize(int(dimension))

            start_offset = 0
            for batch in split_batches(vectors, self.config.indexing_batch_size):
                builder.add_vectors(batch, start_offset)
                start_offset += len(batch)
                self._emit(INDEXING, 30 + 50 * start_offset / total, f"Indexed {start_offset}/{total} vectors",
                           start_offset, total)

            self._emit(INDEXING, 80, "Optimizing index", total, total)
            builder.optimize()

            self._emit(INDEXING, 90, "Saving index", total, total)
            index_path = builder.save()
            metadata_path = builder.save_metadata(entries)
        finally:
            builder.close()

        statistics = {
            'total_vectors': total,
            'vector_dimension': int(dimension),
            'index_type': getattr(builder, 'index_type', None),
            'index_size': path_size(index_path) if isinstance(index_path, str) else 0,
            'search_ready': True,
        }

        logger.info(f"✅ Indexed {total} vectors -> {index_path}")
        self._emit(INDEXING, 100, "Index built", total, total)

        return {
            'index_path': index_path,
            'metadata_path': metadata_path,
            'metadata': entries,
            'statistics': statistics,
            'timestamp': self._timestamp(),
        }

    # ===== REPORTING =====

    def _log_statistics(self, results: Dict[str, Dict[str, Any]]):
        """Log a summary of every completed stage."""
        logger.info("\n" + "=" * 60)
        logger.info("📊 Semantic Pipeline Statistics:")
        logger.info("=" * 60)

        for stage in STAGE_ORDER:
            stats = results.get(stage, {}).get('statistics')
            if not stats:
                continue
            logger.info(f"  {stage}:")
            for key, value in stats.items():
                if key == 'errors':
                    continue
                logger.info(f"    {key}: {value}")

        errors = results.get(PARSING, {}).get('statistics', {}).get('errors') or []
        if errors:
            logger.info(f"\n⚠️ Parse errors (last {len(errors)}):")
            for error in errors:
                logger.info(f"  - {error['file_path']}: {error['error']}")

        logger.info("=" * 60 + "\n")


def merge_enrichment(item: AiItem, enrichment: Dict[str, Any]) -> AiItem:
    """Copy of item with the L2 layer taken from an enrichment result."""
    description = enrichment.get('description') or f"{ENRICHMENT_ERROR_PREFIX}empty description"
    metadata = dict(item.metadata)
    if enrichment.get('complexity'):
        metadata['complexity'] = enrichment['complexity']
    if enrichment.get('confidence') is not None:
        metadata['enrichment_confidence'] = enrichment['confidence']

    return replace(
        item,
        l2_desc=description,
        l2_summary=enrichment.get('summary') or '',
        l2_tags=list(enrichment.get('tags') or []),
        metadata=metadata,
    )


def mark_enrichment_failed(item: AiItem, error: BaseException) -> AiItem:
    """Copy of item with sentinel L2 values, unless it already has a description."""
    if item.l2_desc:
        return item
    return replace(
        item,
        l2_desc=f"{ENRICHMENT_ERROR_PREFIX}{error}",
        l2_summary=item.l2_summary or ENRICHMENT_ERROR_SUMMARY,
        l2_tags=item.l2_tags or list(ENRICHMENT_ERROR_TAGS),
    )
