"""AppForge persistence: the SQLite database, constraint memory and build history."""

from .constraints import CLASSIFIERS, ConstraintMemory, classify, pattern_for
from .database import Database
from .records import BuildRecordStore

__all__ = [
    "Database",
    "ConstraintMemory",
    "BuildRecordStore",
    "CLASSIFIERS",
    "classify",
    "pattern_for",
]
