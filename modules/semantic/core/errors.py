"""
Pipeline Error Taxonomy

Exception types raised by the semantic pipeline. Only FatalStageError is
meant to escape a stage; the per-file, per-item and per-batch errors are
recovered where they occur and counted in the stage statistics.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for all semantic pipeline errors."""


class FatalStageError(PipelineError):
    """A stage cannot run because a required upstream result is missing."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(f"[{stage}] {message}")


class PerFileParseError(PipelineError):
    """A single file could not be read or parsed."""

    def __init__(self, file_path: str, message: str):
        self.file_path = file_path
        super().__init__(f"Failed to parse {file_path}: {message}")


class UnsupportedFileTypeError(PipelineError):
    """No parser is registered for the file's extension."""

    def __init__(self, file_path: str, extension: str):
        self.file_path = file_path
        self.extension = extension
        super().__init__(f"No parser available for file extension: {extension or '<none>'} ({file_path})")


class PerItemAnalysisError(PipelineError):
    """Dependency analysis failed for one item."""

    def __init__(self, item_id: str, message: str):
        self.item_id = item_id
        super().__init__(f"Dependency analysis failed for {item_id}: {message}")


class PerBatchEnrichmentError(PipelineError):
    """An enrichment batch failed as a whole."""

    def __init__(self, batch_index: int, message: str, cause: Optional[BaseException] = None):
        self.batch_index = batch_index
        self.cause = cause
        super().__init__(f"Enrichment batch {batch_index} failed: {message}")


class PerBatchEmbeddingError(PipelineError):
    """An embedding batch failed as a whole."""

    def __init__(self, batch_index: int, message: str, cause: Optional[BaseException] = None):
        self.batch_index = batch_index
        self.cause = cause
        super().__init__(f"Embedding batch {batch_index} failed: {message}")
