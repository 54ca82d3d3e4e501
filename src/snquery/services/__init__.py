"""Collaborators of the builder: record sources, metadata and saved filters."""

from .records import RecordSource, JsonRecordSource, record_field
from .metadata import DictionaryMetadataProvider
from .saved import SavedFilter, SavedFilterStore

__all__ = [
    "RecordSource",
    "JsonRecordSource",
    "record_field",
    "DictionaryMetadataProvider",
    "SavedFilter",
    "SavedFilterStore",
]
