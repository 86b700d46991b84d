from .coordinator import (
    CoordinatorOptions,
    GraphSync,
    ProcessingResult,
    RelationshipCoordinator,
    RelationshipQuery,
    RelationshipStats,
    ServiceStats,
    UpdateTrigger,
)
from .inference import InferenceOptions, InferenceResult, RelationshipInferenceEngine
from .scoring import AttributeScorer, PairScore, PairScorer, jaccard

__all__ = [
    "AttributeScorer",
    "CoordinatorOptions",
    "GraphSync",
    "InferenceOptions",
    "InferenceResult",
    "PairScore",
    "PairScorer",
    "ProcessingResult",
    "RelationshipCoordinator",
    "RelationshipInferenceEngine",
    "RelationshipQuery",
    "RelationshipStats",
    "ServiceStats",
    "UpdateTrigger",
    "jaccard",
]
