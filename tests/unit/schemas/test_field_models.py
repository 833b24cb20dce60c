"""
字段模型测试
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from jira_fields.schemas.field import FieldSchema, ProjectSchema


class TestFieldSchema:
    """测试 FieldSchema"""

    def test_schema_alias_and_items(self):
        field = FieldSchema.model_validate(
            {
                "id": "labels",
                "name": "Labels",
                "type": "array",
                "schema": {"type": "array", "items": "string", "system": "labels"},
            }
        )

        assert field.items == "string"
        assert field.schema_.system == "labels"

    def test_lookup_values(self):
        field = FieldSchema(
            id="customfield_10100",
            name="Region",
            type="option",
            allowedValues=[
                {"id": "1", "name": "EMEA", "value": "EMEA", "self": "https://jira/option/1"},
                {"id": "2", "name": "APAC"},
            ],
        )

        assert field.lookup_values() == [
            {"id": "1", "name": "EMEA", "value": "EMEA"},
            {"id": "2", "name": "APAC"},
        ]

    def test_frozen(self):
        field = FieldSchema(id="summary", name="Summary", type="string")

        with pytest.raises(PydanticValidationError):
            field.name = "Title"


class TestProjectSchema:
    """测试 ProjectSchema"""

    def test_defaults(self):
        schema = ProjectSchema(projectKey="PROJ", issueType="Bug")

        assert schema.fields == {}
