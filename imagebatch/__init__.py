"""
Batch image generation and review for imagebatch

Two workflows:
    1. Batch: generate variations for every new or changed image of a folder
    2. Review: pick one variation per image, or queue it for regeneration

Progress for both is kept in flat index files so interrupted runs resume.
"""

__version__ = "1.0.0"

from .config import GenerationConfig, WorkflowConfig
from .index_store import IndexStore
from .records import FileRecord, ReviewRecord, FolderRecord
from .change_detector import ChangeDetector
from .aspect_normalizer import AspectNormalizer
from .generation_client import GenerationClient
from .batch_stats import BatchStats
from .batch_progress import BatchProgress
from .batch_orchestrator import BatchOrchestrator
from .review_scanner import ReviewScanner
from .review_workflow import ReviewWorkflowEngine
from .reporter import Reporter

__all__ = [
    "GenerationConfig",
    "WorkflowConfig",
    "IndexStore",
    "FileRecord",
    "ReviewRecord",
    "FolderRecord",
    "ChangeDetector",
    "AspectNormalizer",
    "GenerationClient",
    "BatchStats",
    "BatchProgress",
    "BatchOrchestrator",
    "ReviewScanner",
    "ReviewWorkflowEngine",
    "Reporter",
]
