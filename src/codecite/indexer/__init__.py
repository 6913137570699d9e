"""
Indexer module for codecite.

This module turns repository files into chunks, structural facts and
factsheets, and keeps the SQLite index in sync with the source hosts.
"""

from codecite.indexer.chunker import chunk
from codecite.indexer.database import Database
from codecite.indexer.facts import extract
from codecite.indexer.indexer import Indexer
from codecite.indexer.models import (
    Chunk,
    Document,
    Edge,
    Endpoint,
    Facts,
    Finding,
    RepoFilter,
    Retrieved,
    Symbol,
    SyncStats,
)

__all__ = [
    "Chunk",
    "Database",
    "Document",
    "Edge",
    "Endpoint",
    "Facts",
    "Finding",
    "Indexer",
    "RepoFilter",
    "Retrieved",
    "Symbol",
    "SyncStats",
    "chunk",
    "extract",
]
