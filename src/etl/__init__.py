"""
ETL chain: extract, validate, transform, deduplicate, load.
"""

from .deduplicator import CompletenessWeights, Deduplicator, completeness_score, deduplicate_users, merge_users
from .extractor import ExtractedFile, extract_all_files, extract_file, extract_files
from .identifiers import IdGenerator
from .loader import UserLoader, UserStore, compute_program_stats
from .pipeline import ETLPipeline, PipelineState
from .transformer import UserTransformer, transform_user, transform_user_batch
from .validator import validate_user, validate_user_batch

__all__ = [
    "ExtractedFile",
    "extract_file",
    "extract_files",
    "extract_all_files",
    "validate_user",
    "validate_user_batch",
    "IdGenerator",
    "UserTransformer",
    "transform_user",
    "transform_user_batch",
    "CompletenessWeights",
    "Deduplicator",
    "completeness_score",
    "merge_users",
    "deduplicate_users",
    "UserStore",
    "UserLoader",
    "compute_program_stats",
    "ETLPipeline",
    "PipelineState",
]
