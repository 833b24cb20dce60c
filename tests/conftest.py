import logging
import sys

import pytest

from jira_fields.core.cache import LookupCache
from jira_fields.core.config import Settings
from jira_fields.core.context import ConversionContext
from jira_fields.schemas.field import FieldSchema


# Configure logging for tests
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)
logger.info("Test logging configured: level=DEBUG")


@pytest.fixture(autouse=True)
def log_test_start(request):
    """Log test start and end for each test."""
    logger.info("=" * 80)
    logger.info("Starting test: %s", request.node.name)
    yield
    logger.info("Completed test: %s", request.node.name)
    logger.info("=" * 80)


@pytest.fixture
def test_settings():
    """不读取 .env 的测试配置"""
    return Settings(_env_file=None, JIRA_BASE_URL="https://jira.example.com")


@pytest.fixture
def cache():
    return LookupCache(ttl=900, key_prefix="test:", max_entries=100)


@pytest.fixture
def make_field():
    """构造 FieldSchema"""

    def _make(
        field_id="customfield_10000",
        name="Test Field",
        type="string",
        required=False,
        allowed_values=None,
        items=None,
    ):
        schema = {"type": type}
        if items:
            schema["items"] = items
        return FieldSchema(
            id=field_id,
            name=name,
            type=type,
            required=required,
            allowedValues=allowed_values,
            schema=schema,
        )

    return _make


@pytest.fixture
def make_context(cache, test_settings):
    """构造 ConversionContext，默认使用测试缓存和测试配置"""

    def _make(**overrides):
        values = {
            "project_key": "PROJ",
            "issue_type": "Bug",
            "base_url": "https://jira.example.com",
            "cache": cache,
            "config": test_settings,
        }
        values.update(overrides)
        return ConversionContext(**values)

    return _make
