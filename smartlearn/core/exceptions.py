"""
Error taxonomy for the SmartLearn core.

Every error carries an ``error_code`` and an HTTP ``status_code`` so the API
layer can render it without knowing the individual classes.
"""
from typing import Optional


class SmartLearnError(Exception):
    """Base exception for all SmartLearn errors"""

    error_code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, detail: str, error_code: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        if error_code:
            self.error_code = error_code


class ResourceNotFound(SmartLearnError):
    """Document, quiz or learner not found"""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: Optional[str] = None):
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} '{identifier}' not found"
        super().__init__(detail)
        self.resource = resource
        self.identifier = identifier


class ValidationFailed(SmartLearnError):
    """Input or generated output failed shape checks"""

    error_code = "VALIDATION_FAILED"
    status_code = 422


class DocumentUnreadable(SmartLearnError):
    """PDF extraction produced no usable text"""

    error_code = "DOCUMENT_UNREADABLE"
    status_code = 422

    def __init__(self, filename: str, reason: str):
        super().__init__(f"Cannot read document '{filename}': {reason}")
        self.filename = filename
        self.reason = reason


class DeadlineExceeded(SmartLearnError):
    """An external call did not finish within its deadline"""

    error_code = "DEADLINE_EXCEEDED"
    status_code = 504

    def __init__(self, service: str, timeout: float):
        super().__init__(f"Service '{service}' did not respond within {timeout:g}s")
        self.service = service
        self.timeout = timeout


class EmbeddingUnavailable(SmartLearnError):
    """Embedding calls exhausted their retries"""

    error_code = "EMBEDDING_UNAVAILABLE"
    status_code = 503


class IndexProvisioningTimeout(SmartLearnError):
    """Vector index never became ready within the wait budget"""

    error_code = "INDEX_PROVISIONING_TIMEOUT"
    status_code = 504

    def __init__(self, index_name: str, timeout: float):
        super().__init__(f"Index '{index_name}' was not ready after {timeout:g}s")
        self.index_name = index_name
        self.timeout = timeout


class VectorSearchTimeout(DeadlineExceeded):
    """Nearest-neighbour query exceeded its deadline"""

    error_code = "VECTOR_SEARCH_TIMEOUT"


class GenerationFailed(SmartLearnError):
    """Language model call errored or returned unusable content"""

    error_code = "GENERATION_FAILED"
    status_code = 502


class GenerationTimeout(GenerationFailed):
    """Language model call exceeded its deadline"""

    error_code = "GENERATION_TIMEOUT"
    status_code = 504


class QuizGenerationFailed(GenerationFailed):
    """Quiz output from the model could not be parsed"""

    error_code = "QUIZ_GENERATION_FAILED"


class ConcurrentUpdateConflict(SmartLearnError):
    """Two submissions raced on the same quiz or learner progress"""

    error_code = "CONCURRENT_UPDATE_CONFLICT"
    status_code = 409


class QuizAlreadyAttempted(SmartLearnError):
    """Quiz was already graded; a new attempt needs a new quiz"""

    error_code = "QUIZ_ALREADY_ATTEMPTED"
    status_code = 409

    def __init__(self, quiz_id: str):
        super().__init__(f"Quiz '{quiz_id}' has already been attempted")
        self.quiz_id = quiz_id
