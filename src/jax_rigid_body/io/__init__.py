"""I/O utilities for loading and saving model descriptions.

Model documents come in a JSON and an XML rendition of the same fields.
"""

from .model_file import (
    load_model,
    load_model_def,
    model_def_from_json,
    model_def_from_xml,
    model_def_to_json,
    model_def_to_xml,
    save_model_def,
)

__all__ = [
    "load_model",
    "load_model_def",
    "model_def_from_json",
    "model_def_from_xml",
    "model_def_to_json",
    "model_def_to_xml",
    "save_model_def",
]
