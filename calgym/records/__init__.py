"""Validated record store for classes, students and evaluations."""

from .errors import CalGymError, ErrorCode, StorageError, UnauthorizedError
from .models import (
    Backup,
    ClassRecord,
    Evaluation,
    OperationResult,
    Settings,
    Student,
    StoreData,
)
from .persistence import FilePersistence, InMemoryPersistence, Persistence
from .store import RecordStore, Session, dump_store, load_store
from .validator import (
    validate_class_level,
    validate_class_name,
    validate_evaluation_input,
    validate_student_name,
)

__all__ = [
    'CalGymError',
    'ErrorCode',
    'StorageError',
    'UnauthorizedError',
    'Backup',
    'ClassRecord',
    'Evaluation',
    'OperationResult',
    'Settings',
    'Student',
    'StoreData',
    'FilePersistence',
    'InMemoryPersistence',
    'Persistence',
    'RecordStore',
    'Session',
    'dump_store',
    'load_store',
    'validate_class_level',
    'validate_class_name',
    'validate_evaluation_input',
    'validate_student_name',
]
