"""
Exception hierarchy for the lecture generation system.

Provides specific exceptions for different failure scenarios
to enable proper error handling and recovery.
"""

import random
from typing import Optional, Dict, Any


class LectureError(Exception):
    """Base exception for all lecturecast errors"""

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.cause = cause
        self.context = context or {}

    def __str__(self):
        parts = [super().__str__()]
        if self.cause:
            parts.append(f" (caused by: {type(self.cause).__name__}: {str(self.cause)})")
        if self.context:
            parts.append(f" Context: {self.context}")
        return "".join(parts)


# === AI-related exceptions ===

class AIGenerationError(LectureError):
    """AI model failed to generate content"""
    pass


class AITimeoutError(AIGenerationError):
    """AI generation timed out"""
    pass


class AIRateLimitError(AIGenerationError):
    """AI API rate limit exceeded"""
    pass


class AIInvalidResponseError(AIGenerationError):
    """AI returned invalid or unparseable response"""
    pass


# === Validation exceptions ===

class ValidationError(LectureError):
    """Content validation failed"""
    pass


class UnknownCompilerError(ValidationError):
    """Step requested a compiler kind that has no route"""

    def __init__(self, compiler: str, **kwargs):
        super().__init__(f"Invalid compiler type: {compiler}", **kwargs)
        self.compiler = compiler
        self.context['compiler'] = compiler


class ChunkValidationError(ValidationError):
    """Generated chunk payload is malformed"""
    pass


class EventValidationError(ValidationError):
    """Channel event payload does not match its event type"""

    def __init__(self, event: str, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.event = event
        self.context['event'] = event


# === Orchestration exceptions ===

class OrchestrationError(LectureError):
    """Orchestration error"""
    pass


class PlanGenerationError(OrchestrationError):
    """Plan could not be produced for a query"""

    def __init__(self, query: str, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.query = query
        self.context['query'] = query


class StepGenerationError(OrchestrationError):
    """Single step produced no usable artifact"""

    def __init__(self, step_id: int, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.step_id = step_id
        self.context['step_id'] = step_id


class SessionNotFoundError(OrchestrationError):
    """No state stored for the session"""

    def __init__(self, session_id: str, **kwargs):
        super().__init__(f"Unknown session: {session_id}", **kwargs)
        self.session_id = session_id


class CircuitOpenError(OrchestrationError):
    """Call rejected because the circuit breaker is open"""
    pass


class JobFailedError(OrchestrationError):
    """Queued job exhausted its attempts"""

    def __init__(self, job_id: str, attempts: int, **kwargs):
        super().__init__(f"Job {job_id} failed after {attempts} attempts", **kwargs)
        self.job_id = job_id
        self.attempts = attempts


# === Persistence exceptions ===

class CacheError(LectureError):
    """Cache read or write failed"""
    pass


# === Configuration exceptions ===

class ConfigurationError(LectureError):
    """Configuration error"""
    pass


class InvalidConfigError(ConfigurationError):
    """Invalid configuration value"""
    pass


# === Recovery helpers ===

def is_retryable(error: Exception) -> bool:
    """Check if error is retryable"""
    if isinstance(error, ValidationError):
        return False
    retryable_types = (
        AITimeoutError,
        AIRateLimitError,
        AIInvalidResponseError,
        CacheError,
    )
    return isinstance(error, retryable_types)


def get_retry_delay(error: Exception, attempt: int) -> float:
    """Get retry delay for error"""
    if isinstance(error, AIRateLimitError):
        # Longer delay for rate limits, with jitter against thundering herd
        delay = min(60.0, 10.0 * (2 ** attempt))
        return delay + random.uniform(0, delay * 0.2)
    elif isinstance(error, AITimeoutError):
        return min(30.0, 2.0 * (2 ** attempt))
    else:
        return min(10.0, 1.0 * (2 ** attempt))
