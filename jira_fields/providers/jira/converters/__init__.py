from .array import convert_array
from .cascading import convert_option_with_child
from .dates import convert_date, convert_datetime
from .issue_type import convert_issue_type
from .lookup import convert_component, convert_option, convert_priority, convert_version
from .project import convert_project
from .registry import BUILTIN_CONVERTERS, ConverterRegistry
from .scalar import convert_number, convert_string, convert_text
from .time_tracking import convert_time_tracking
from .user import convert_user

__all__ = [
    "ConverterRegistry",
    "BUILTIN_CONVERTERS",
    "convert_array",
    "convert_component",
    "convert_date",
    "convert_datetime",
    "convert_issue_type",
    "convert_number",
    "convert_option",
    "convert_option_with_child",
    "convert_priority",
    "convert_project",
    "convert_string",
    "convert_text",
    "convert_time_tracking",
    "convert_user",
    "convert_version",
]
