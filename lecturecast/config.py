"""
Configuration settings for lecturecast.

Module-level constants are read from the environment once at import time.
Grouped, validated settings live in the dataclasses below and are obtained
through get_settings().
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from lecturecast.agents.generation.exceptions import InvalidConfigError

load_dotenv()

#==============================================================================
# MODELS
#==============================================================================

AI_MODEL = os.getenv("AI_MODEL", "gpt-4o-mini")
PLANNER_MODEL = os.getenv("PLANNER_MODEL", AI_MODEL)
VISUAL_MODEL = os.getenv("VISUAL_MODEL", AI_MODEL)
NOTES_MODEL = os.getenv("NOTES_MODEL", AI_MODEL)
NARRATION_MODEL = os.getenv("NARRATION_MODEL", AI_MODEL)
TTS_MODEL = os.getenv("TTS_MODEL", "gpt-4o-mini-tts")
TTS_VOICE = os.getenv("TTS_VOICE", "alloy")

#==============================================================================
# QUEUES
#==============================================================================

PLAN_QUEUE_NAME = "plan-jobs"
GEN_QUEUE_NAME = "gen-jobs"
PARALLEL_GEN_QUEUE_NAME = "parallel-gen-jobs"

#==============================================================================
# CACHE
#==============================================================================

CACHE_DIR = os.getenv("CACHE_DIR", os.path.join(".cache", "lecturecast"))
CACHE_VERSION = "v2"

#==============================================================================
# SERVER
#==============================================================================

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
SENTRY_DSN = os.getenv("SENTRY_DSN")
ENV = os.getenv("ENV", "development")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class QueueConfig:
    """Worker pool, retry and retention settings shared by the three queues"""
    plan_concurrency: int = field(default_factory=lambda: int(os.getenv('PLAN_CONCURRENCY', '1')))
    generation_concurrency: int = field(default_factory=lambda: int(os.getenv('GENERATION_CONCURRENCY', '2')))
    attempts: int = field(default_factory=lambda: int(os.getenv('JOB_ATTEMPTS', '3')))
    backoff_base: float = field(default_factory=lambda: float(os.getenv('JOB_BACKOFF_SECONDS', '0.5')))
    backoff_max: float = field(default_factory=lambda: float(os.getenv('JOB_BACKOFF_MAX_SECONDS', '30.0')))
    keep_completed_seconds: float = field(default_factory=lambda: float(os.getenv('KEEP_COMPLETED_SECONDS', '3600')))
    keep_completed_count: int = field(default_factory=lambda: int(os.getenv('KEEP_COMPLETED_COUNT', '1000')))
    keep_failed_seconds: float = field(default_factory=lambda: float(os.getenv('KEEP_FAILED_SECONDS', '86400')))


@dataclass
class GenerationConfig:
    """Per-step fan-out settings"""
    visuals_per_step: int = field(default_factory=lambda: int(os.getenv('VISUALS_PER_STEP', '4')))
    stagger_delay: float = field(default_factory=lambda: float(os.getenv('STAGGER_DELAY_SECONDS', '2.0')))
    visual_attempts: int = field(default_factory=lambda: int(os.getenv('VISUAL_MAX_RETRIES', '5')))
    visual_backoff_base: float = field(default_factory=lambda: float(os.getenv('VISUAL_RETRY_DELAY', '5.0')))
    ai_timeout_seconds: float = field(default_factory=lambda: float(os.getenv('AI_TIMEOUT', '120')))
    temperature: float = field(default_factory=lambda: float(os.getenv('AI_TEMPERATURE', '0.7')))
    enable_notes: bool = field(default_factory=lambda: _env_bool('ENABLE_NOTES', 'true'))
    enable_narration: bool = field(default_factory=lambda: _env_bool('ENABLE_NARRATION', 'true'))
    enable_audio: bool = field(default_factory=lambda: _env_bool('ENABLE_TTS_AUDIO', 'false'))
    # Legacy sequential mode
    buffer_simple: float = field(default_factory=lambda: float(os.getenv('LEGACY_BUFFER_SECONDS', '2.0')))
    buffer_complex: float = field(default_factory=lambda: float(os.getenv('LEGACY_COMPLEX_BUFFER_SECONDS', '5.0')))
    complex_threshold: int = 4
    # Circuit breaker around plan generation
    breaker_failure_threshold: int = field(default_factory=lambda: int(os.getenv('BREAKER_FAILURE_THRESHOLD', '3')))
    breaker_reset_timeout: float = field(default_factory=lambda: float(os.getenv('BREAKER_RESET_SECONDS', '10')))


@dataclass
class CacheConfig:
    """Cache store settings"""
    directory: str = field(default_factory=lambda: CACHE_DIR)
    # 0 disables expiry
    ttl_seconds: int = field(default_factory=lambda: int(os.getenv('CACHE_TTL_SECONDS', '86400')))
    size_limit_mb: int = field(default_factory=lambda: int(os.getenv('CACHE_SIZE_LIMIT_MB', '1024')))
    # Threads running blocking diskcache calls
    io_workers: int = field(default_factory=lambda: int(os.getenv('CACHE_IO_WORKERS', '4')))

    @property
    def expire(self) -> Optional[int]:
        return self.ttl_seconds or None


@dataclass
class PlaybackConfig:
    """Delivery descriptor attached to every emitted batch"""
    tts_enabled: bool = field(default_factory=lambda: _env_bool('TTS_ENABLED', 'true'))
    inter_visual_delay_ms: int = field(default_factory=lambda: int(os.getenv('INTER_VISUAL_DELAY_MS', '2000')))
    wait_for_narration: bool = field(default_factory=lambda: _env_bool('WAIT_FOR_NARRATION', 'true'))
    wait_for_animation: bool = field(default_factory=lambda: _env_bool('WAIT_FOR_ANIMATION', 'true'))
    replay_on_join: bool = field(default_factory=lambda: _env_bool('SESSION_REPLAY_ON_JOIN', 'false'))
    subscriber_queue_size: int = field(default_factory=lambda: int(os.getenv('SUBSCRIBER_QUEUE_SIZE', '1000')))


@dataclass
class LogConfig:
    """Logging configuration"""
    level: str = field(default_factory=lambda: os.getenv('LOG_LEVEL', 'INFO'))
    format: str = field(default_factory=lambda: os.getenv('LOG_FORMAT', 'text'))
    enable_performance_logging: bool = field(default_factory=lambda: _env_bool('LOG_PERFORMANCE', 'true'))


@dataclass
class Settings:
    """Master configuration"""
    queue: QueueConfig = field(default_factory=QueueConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    logging: LogConfig = field(default_factory=LogConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for the health endpoint"""
        return {
            'queue': {
                'generation_concurrency': self.queue.generation_concurrency,
                'attempts': self.queue.attempts,
            },
            'generation': {
                'visuals_per_step': self.generation.visuals_per_step,
                'stagger_delay': self.generation.stagger_delay,
                'narration': self.generation.enable_narration,
            },
            'cache': {
                'ttl_seconds': self.cache.ttl_seconds,
            },
            'playback': {
                'tts_enabled': self.playback.tts_enabled,
                'inter_visual_delay_ms': self.playback.inter_visual_delay_ms,
                'replay_on_join': self.playback.replay_on_join,
            },
        }

    def validate(self) -> None:
        """Validate configuration values"""
        if self.queue.generation_concurrency < 1:
            raise InvalidConfigError(f"generation_concurrency must be at least 1, got {self.queue.generation_concurrency}")

        if self.queue.plan_concurrency < 1:
            raise InvalidConfigError(f"plan_concurrency must be at least 1, got {self.queue.plan_concurrency}")

        if self.queue.attempts < 1:
            raise InvalidConfigError(f"attempts must be at least 1, got {self.queue.attempts}")

        if self.generation.visuals_per_step < 1:
            raise InvalidConfigError(f"visuals_per_step must be at least 1, got {self.generation.visuals_per_step}")

        if self.generation.stagger_delay < 0:
            raise InvalidConfigError(f"stagger_delay must not be negative, got {self.generation.stagger_delay}")

        if self.cache.ttl_seconds < 0:
            raise InvalidConfigError(f"ttl_seconds must not be negative, got {self.cache.ttl_seconds}")

        if self.cache.io_workers < 1:
            raise InvalidConfigError(f"io_workers must be at least 1, got {self.cache.io_workers}")

        if self.playback.inter_visual_delay_ms < 0:
            raise InvalidConfigError(f"inter_visual_delay_ms must not be negative, got {self.playback.inter_visual_delay_ms}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get singleton settings instance"""
    settings = Settings()
    settings.validate()
    return settings
