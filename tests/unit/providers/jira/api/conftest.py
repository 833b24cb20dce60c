from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def mock_client():
    """模拟 JiraClient: api() 拼接真实路径，get / post 为 AsyncMock"""
    client = MagicMock()
    client.api.side_effect = lambda path: f"/rest/api/2/{path.lstrip('/')}"
    client.get = AsyncMock()
    client.post = AsyncMock()
    return client
