"""Utility helpers for the scanner."""

from .fileio import read_bounded, read_yaml_file
from .iac import DocNode, load_documents
from .permissions import parse_mode

__all__ = [
    "read_bounded",
    "read_yaml_file",
    "DocNode",
    "load_documents",
    "parse_mode",
]
