"""Orchestrator package - coordinates batch uploads."""
from .batching import partition, progress_percent
from .core import BatchUploadOrchestrator
from .job import ImportJob, JobState

__all__ = ["BatchUploadOrchestrator", "ImportJob", "JobState", "partition", "progress_percent"]
