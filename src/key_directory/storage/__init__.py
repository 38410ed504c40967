"""Object store backends, the key record façade and the rotation journal."""
from .filesystem import FilesystemObjectStore
from .journal import FileStepJournal, MemoryStepJournal, StepEntry, StepJournal, StepStatus
from .memory import MemoryObjectStore
from .objects import ObjectStore, StoredObject
from .records import KeyRecordStore

__all__ = [
    "ObjectStore",
    "StoredObject",
    "MemoryObjectStore",
    "FilesystemObjectStore",
    "KeyRecordStore",
    "StepJournal",
    "StepEntry",
    "StepStatus",
    "MemoryStepJournal",
    "FileStepJournal",
]
