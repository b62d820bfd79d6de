"""clipmind ingest pipeline — library, background indexing, transcription, summaries."""

from clipmind.ingest.indexer import IndexingQueue, IndexJob
from clipmind.ingest.library import Library
from clipmind.ingest.summarizer import TranscriptSummarizer
from clipmind.ingest.transcriber import Transcriber

__all__ = [
    "IndexJob",
    "IndexingQueue",
    "Library",
    "TranscriptSummarizer",
    "Transcriber",
]
