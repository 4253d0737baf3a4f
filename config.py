from functools import lru_cache
from typing import Tuple

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenAI Configuration
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4.1-mini"
    # Reasoning model used for the second, low-confidence pass
    ESCALATION_MODEL: str = "o4-mini"
    ESCALATION_REASONING_EFFORT: str = "high"

    # Completion token limits
    PRIMARY_MAX_TOKENS: int = 2000
    ESCALATION_MAX_TOKENS: int = 16000

    # Image transform targets applied before an image enters a request
    IMAGE_MAX_DIMENSION: int = 1600
    IMAGE_QUALITY: int = 85
    IMAGE_FORMAT: str = "jpg"

    # Batch API
    BATCH_COMPLETION_WINDOW: str = "24h"

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()


# Policy constants. Fixed on purpose; not read from the environment.
VALIDITY_CONFIDENCE_THRESHOLD = 70
ESCALATION_CONFIDENCE_THRESHOLD = 70
NAME_SIMILARITY_THRESHOLD = 0.85
MINIMUM_RENTAL_AGE = 21

# Default validity window assumed for jurisdictions we have no profile for
DEFAULT_JURISDICTION_VALIDITY: Tuple[int, int] = (4, 8)

# Batch jobs
CORRELATION_PREFIX = "verify-"
BATCH_RETENTION_DAYS = 29
ESTIMATED_COST_PER_VERIFICATION = 0.02
BATCH_DISCOUNT = 0.5
BATCH_JOB_TYPE = "dl_verification"

# Name suffixes ignored by the looser name matching strategies
NAME_SUFFIXES = {"jr", "sr", "ii", "iii", "iv", "v"}

# Image hosts whose delivery URLs accept inline transformations
CLOUDINARY_UPLOAD_MARKER = "/image/upload/"
