from .config import LlmConfig, LLM_BATCH_SIZE
from .refiner import (
    LlmCandidate, Refinement, SYSTEM_PROMPT, build_request_body, parse_completion_body,
    decode_refinement, validate_batch, refine_toc_with_llm
)
from .merge import MergeOutcome, refinement_candidates, merge_refinements, is_refinable

__all__ = [
    "LlmConfig", "LLM_BATCH_SIZE",
    "LlmCandidate", "Refinement", "SYSTEM_PROMPT", "build_request_body", "parse_completion_body",
    "decode_refinement", "validate_batch", "refine_toc_with_llm",
    "MergeOutcome", "refinement_candidates", "merge_refinements", "is_refinable",
]
