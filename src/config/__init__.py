"""Runtime settings and form definition loading."""

from src.config.forms import (
    DirectoryFormLoader,
    FormConfigCache,
    FormLoader,
    StaticFormLoader,
    parse_form_definition,
)
from src.config.settings import PipelineSettings

__all__ = [
    "DirectoryFormLoader",
    "FormConfigCache",
    "FormLoader",
    "PipelineSettings",
    "StaticFormLoader",
    "parse_form_definition",
]
