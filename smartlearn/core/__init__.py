# Core package
from .constants import MessageRole, QuizType, ActivityType, Messages, QuizLimits
from .exceptions import (
    SmartLearnError,
    ResourceNotFound,
    ValidationFailed,
    DocumentUnreadable,
    DeadlineExceeded,
    EmbeddingUnavailable,
    IndexProvisioningTimeout,
    VectorSearchTimeout,
    GenerationFailed,
    GenerationTimeout,
    QuizGenerationFailed,
    ConcurrentUpdateConflict,
    QuizAlreadyAttempted,
)
from .logger import logger, setup_logger, ingestion_logger, grading_logger

__all__ = [
    # Constants
    "MessageRole",
    "QuizType",
    "ActivityType",
    "Messages",
    "QuizLimits",
    # Exceptions
    "SmartLearnError",
    "ResourceNotFound",
    "ValidationFailed",
    "DocumentUnreadable",
    "DeadlineExceeded",
    "EmbeddingUnavailable",
    "IndexProvisioningTimeout",
    "VectorSearchTimeout",
    "GenerationFailed",
    "GenerationTimeout",
    "QuizGenerationFailed",
    "ConcurrentUpdateConflict",
    "QuizAlreadyAttempted",
    # Logging
    "logger",
    "setup_logger",
    "ingestion_logger",
    "grading_logger",
]
