"""Recording-script loader: YAML parsing, validation, and error reporting."""

from sessiontape.loader.errors import ErrorFormatter
from sessiontape.loader.validator import (
    ValidationErrorDetail,
    validate_script_file,
    validate_script_string,
)
from sessiontape.loader.yaml_parser import (
    YAMLParseError,
    parse_yaml_file,
    parse_yaml_with_lines,
)

__all__ = [
    "ErrorFormatter",
    "ValidationErrorDetail",
    "YAMLParseError",
    "parse_yaml_file",
    "parse_yaml_with_lines",
    "validate_script_file",
    "validate_script_string",
]
