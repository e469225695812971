"""Ingestion pipeline: PDF bytes to an indexed, structured document."""

from .pipeline import IngestedDocument, IngestPipeline, IngestPipelineConfig
from .sources import DocumentSource

__all__ = ["DocumentSource", "IngestPipeline", "IngestPipelineConfig", "IngestedDocument"]
