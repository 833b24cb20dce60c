from typing import Dict, List, Literal

from pydantic import ValidationError as PydanticValidationError
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jira_fields.core.errors import ConfigurationError

AmbiguityPolicy = Literal["first", "error", "score"]

DEFAULT_PARENT_SYNONYMS: List[str] = [
    "parent",
    "epic link",
    "epic",
    "parent link",
    "parent issue",
]


class Settings(BaseSettings):
    JIRA_BASE_URL: str = "http://localhost:8080"
    JIRA_TOKEN: str | None = None  # Personal Access Token
    JIRA_API_VERSION: Literal["v2", "v3"] = "v2"
    JIRA_TIMEOUT: float = 30.0  # 秒
    JIRA_MAX_CONCURRENCY: int = 10

    # Cache
    CACHE_TTL_SECONDS: int = 900  # 15分钟
    CACHE_MAX_ENTRIES: int = 5000
    CACHE_KEY_PREFIX: str = "jira_fields:"

    # Resolution behaviour
    USER_AMBIGUITY_POLICY: AmbiguityPolicy = "first"
    LOOKUP_AMBIGUITY_POLICY: AmbiguityPolicy = "error"
    FUZZY_THRESHOLD: float = 0.3
    PARENT_FIELD_SYNONYMS: List[str] = list(DEFAULT_PARENT_SYNONYMS)
    ISSUE_TYPE_ABBREVIATIONS: Dict[str, List[str]] = {}

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("JIRA_BASE_URL")
    @classmethod
    def _strip_base_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("JIRA_BASE_URL must start with http:// or https://")
        return value

    @field_validator("PARENT_FIELD_SYNONYMS")
    @classmethod
    def _check_synonyms(cls, value: List[str]) -> List[str]:
        cleaned = [s.strip() for s in value if s and s.strip()]
        if not cleaned:
            raise ValueError("PARENT_FIELD_SYNONYMS must contain at least one name")
        return cleaned

    @field_validator("ISSUE_TYPE_ABBREVIATIONS")
    @classmethod
    def _lower_abbreviations(cls, value: Dict[str, List[str]]) -> Dict[str, List[str]]:
        return {k.strip().lower(): list(v) for k, v in value.items() if k.strip()}

    @field_validator("FUZZY_THRESHOLD")
    @classmethod
    def _check_threshold(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("FUZZY_THRESHOLD must be between 0 and 1")
        return value

    @field_validator("JIRA_MAX_CONCURRENCY", "CACHE_MAX_ENTRIES")
    @classmethod
    def _check_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value

    @property
    def api_prefix(self) -> str:
        """REST API 路径前缀，如 /rest/api/2"""
        return f"/rest/api/{self.JIRA_API_VERSION[1:]}"


def load_settings(**overrides) -> Settings:
    """
    构造 Settings，将 pydantic 校验失败转换为 ConfigurationError

    Raises:
        ConfigurationError: 配置结构非法
    """
    try:
        return Settings(**overrides)
    except PydanticValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise ConfigurationError(
            f"Invalid configuration: {'; '.join(problems)}",
            {"errors": problems},
        ) from e


settings = Settings()
