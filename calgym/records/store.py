"""Record store for one teacher's classes, students and evaluations.

The store is bound to a ``Session`` carrying the teacher identity, and to a
``Persistence`` backend. Each call reads the persisted state, applies one
change and writes it back, so two stores over the same backend and identity
see each other's changes. Only one writer at a time is supported.

Before any change is written, the previous state is appended to a bounded
backup log (oldest snapshots are dropped first), giving every mutation an
undo point.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from calgym.libs.config_loader import ConfigType, get_config, load_default_configs
from calgym.scoring.rules import ClassLevel
from .errors import ErrorCode, StorageError, UnauthorizedError
from .models import (
    Backup,
    BackupLog,
    ClassRecord,
    OperationResult,
    Settings,
    Student,
    StoreData,
)
from .persistence import Persistence
from .validator import (
    validate_class_name,
    validate_evaluation_input,
    validate_report_title,
    validate_student_name,
    validate_teacher_name,
)

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """The active teacher identity. ``teacher_id`` is None when signed out."""
    teacher_id: Optional[str] = None


def dump_yaml(payload: dict) -> str:
    return yaml.safe_dump(payload, default_flow_style=False, sort_keys=False, allow_unicode=True)


def _parse_yaml(blob: str, what: str) -> dict:
    try:
        payload = yaml.safe_load(blob)
    except yaml.YAMLError as e:
        raise StorageError(f"Corrupted {what}: {e}") from e
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise StorageError(f"Corrupted {what}: expected a mapping")
    return payload


def dump_store(data: StoreData) -> str:
    """Serialize store data to YAML text."""
    return dump_yaml(data.to_yaml_dict())


def load_store(blob: str) -> StoreData:
    """Parse YAML text produced by ``dump_store``."""
    try:
        return StoreData.model_validate(_parse_yaml(blob, "gradebook data"))
    except ValidationError as e:
        raise StorageError(f"Corrupted gradebook data: {e}") from e


class RecordStore:
    """CRUD operations with referential integrity and write-through backups."""

    def __init__(self, persistence: Persistence, session: Session,
                 configs: Optional[ConfigType] = None):
        """
        Initialize the store.

        Args:
            persistence: Backend providing load/store by key
            session: Active teacher identity
            configs: Configuration dictionary (defaults to the shipped config)
        """
        self.persistence = persistence
        self.session = session
        self.configs = configs if configs is not None else load_default_configs()

        self.max_students_per_class = get_config(
            "limits.max_students_per_class", self.configs, default=100)
        self.max_classes_per_teacher = get_config(
            "limits.max_classes_per_teacher", self.configs, default=50)
        self.max_evaluations_per_student = get_config(
            "limits.max_evaluations_per_student", self.configs, default=200)
        self.max_backups = get_config("storage.max_backups", self.configs, default=10)
        self.key_prefix = get_config("storage.key_prefix", self.configs, default="calgym_")

    # --- identity and persistence ---

    def _teacher_id(self) -> str:
        if not self.session or not self.session.teacher_id:
            raise UnauthorizedError("No authenticated teacher: cannot access the gradebook")
        return self.session.teacher_id

    @property
    def data_key(self) -> str:
        return f"{self.key_prefix}data_{self._teacher_id()}"

    @property
    def backups_key(self) -> str:
        return f"{self.key_prefix}backups_{self._teacher_id()}"

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.persistence.load(key)
        except (OSError, UnicodeError) as e:
            raise StorageError(f"Could not read {key}: {e}") from e

    def _write(self, key: str, blob: str) -> None:
        try:
            self.persistence.store(key, blob)
        except (OSError, UnicodeError) as e:
            raise StorageError(f"Could not write {key}: {e}") from e

    def _default_settings(self) -> Settings:
        return Settings(
            teacher_name=get_config("settings.teacher_name", self.configs, default=""),
            report_title=get_config("settings.report_title", self.configs, default=""),
        )

    def _load(self) -> StoreData:
        blob = self._read(self.data_key)
        if not blob:
            return StoreData(settings=self._default_settings())
        return load_store(blob)

    def _load_backups(self) -> List[Backup]:
        blob = self._read(self.backups_key)
        if not blob:
            return []
        try:
            return BackupLog.model_validate(_parse_yaml(blob, "backup log")).backups
        except ValidationError as e:
            raise StorageError(f"Corrupted backup log: {e}") from e

    def _commit(self, previous: StoreData, current: StoreData) -> None:
        """Snapshot the previous state, prune old snapshots, then write the new state."""
        backups = self._load_backups()
        backups.append(Backup(taken_at=datetime.now(timezone.utc), data=previous))
        if len(backups) > self.max_backups:
            backups = backups[len(backups) - self.max_backups:]
        self._write(self.backups_key, dump_yaml(BackupLog(backups=backups).model_dump(mode="json")))
        self._write(self.data_key, dump_store(current))

    def _begin(self):
        """Load the current state and keep an untouched copy for the backup."""
        data = self._load()
        return data, data.model_copy(deep=True)

    # --- read-only accessors ---

    def snapshot(self) -> StoreData:
        return self._load()

    def classes(self) -> Dict[str, ClassRecord]:
        return self._load().classes

    def students(self) -> Dict[str, Student]:
        return self._load().students

    def settings(self) -> Settings:
        return self._load().settings

    def get_class(self, name: str) -> Optional[ClassRecord]:
        return self._load().classes.get(name)

    def get_student(self, student_id: str) -> Optional[Student]:
        return self._load().students.get(student_id)

    def students_in_class(self, class_name: str) -> List[Student]:
        return [s for s in self._load().students.values() if s.class_id == class_name]

    def find_student(self, name: str, class_name: str) -> Optional[Student]:
        """Find a student by exact (stripped) name within a class."""
        name = name.strip()
        for student in self.students_in_class(class_name):
            if student.name == name:
                return student
        return None

    def list_backups(self) -> List[Backup]:
        return self._load_backups()

    # --- classes ---

    def add_class(self, name: str, level: Any) -> OperationResult:
        if not validate_class_name(name):
            return OperationResult.fail(ErrorCode.INVALID_INPUT, f"Invalid class name: {name!r}")
        parsed_level = ClassLevel.parse(level)
        if parsed_level is None:
            return OperationResult.fail(ErrorCode.INVALID_INPUT, f"Invalid class level: {level!r}")
        name = name.strip()

        data, previous = self._begin()
        if name in data.classes:
            return OperationResult.fail(ErrorCode.ALREADY_EXISTS, f"Class '{name}' already exists")
        if len(data.classes) >= self.max_classes_per_teacher:
            return OperationResult.fail(
                ErrorCode.LIMIT_EXCEEDED,
                f"Class limit reached ({self.max_classes_per_teacher})")

        data.classes[name] = ClassRecord(name=name, level=parsed_level)
        self._commit(previous, data)
        LOG.info(f"Added class {name} ({parsed_level.value})")
        return OperationResult.ok(f"Class '{name}' added")

    def edit_class(self, old_name: str, new_name: str, new_level: Any) -> OperationResult:
        """Rename and/or re-level a class, moving its students along with it."""
        if not validate_class_name(new_name):
            return OperationResult.fail(ErrorCode.INVALID_INPUT, f"Invalid class name: {new_name!r}")
        parsed_level = ClassLevel.parse(new_level)
        if parsed_level is None:
            return OperationResult.fail(ErrorCode.INVALID_INPUT, f"Invalid class level: {new_level!r}")
        new_name = new_name.strip()

        data, previous = self._begin()
        if old_name not in data.classes:
            return OperationResult.fail(ErrorCode.NOT_FOUND, f"Class '{old_name}' not found")
        if new_name != old_name and new_name in data.classes:
            return OperationResult.fail(
                ErrorCode.ALREADY_EXISTS, f"Another class named '{new_name}' already exists")

        if new_name != old_name:
            del data.classes[old_name]
        data.classes[new_name] = ClassRecord(name=new_name, level=parsed_level)

        moved = 0
        for student in data.students.values():
            if student.class_id == old_name:
                student.class_id = new_name
                moved += 1

        self._commit(previous, data)
        LOG.info(f"Updated class {old_name} -> {new_name} ({parsed_level.value}), {moved} student(s) moved")
        return OperationResult.ok(f"Class '{new_name}' updated", data={"students_moved": moved})

    def delete_class(self, name: str) -> OperationResult:
        data, previous = self._begin()
        if name not in data.classes:
            return OperationResult.fail(ErrorCode.NOT_FOUND, f"Class '{name}' not found")
        dependents = sum(1 for s in data.students.values() if s.class_id == name)
        if dependents:
            return OperationResult.fail(
                ErrorCode.HAS_DEPENDENTS,
                f"Class '{name}' still has {dependents} student(s)")

        del data.classes[name]
        self._commit(previous, data)
        LOG.info(f"Deleted class {name}")
        return OperationResult.ok(f"Class '{name}' deleted")

    # --- students ---

    def _duplicate_student(self, data: StoreData, name: str, class_id: str,
                           exclude_id: Optional[str] = None) -> bool:
        return any(
            s.name == name and s.class_id == class_id and s.id != exclude_id
            for s in data.students.values()
        )

    def _class_size(self, data: StoreData, class_id: str) -> int:
        return sum(1 for s in data.students.values() if s.class_id == class_id)

    def add_student(self, name: str, class_id: str) -> OperationResult:
        """Add a student to an existing class. Result data is the new student id."""
        if not validate_student_name(name):
            return OperationResult.fail(ErrorCode.INVALID_INPUT, f"Invalid student name: {name!r}")
        name = name.strip()

        data, previous = self._begin()
        if class_id not in data.classes:
            return OperationResult.fail(ErrorCode.NOT_FOUND, f"Class '{class_id}' not found")
        if self._duplicate_student(data, name, class_id):
            return OperationResult.fail(
                ErrorCode.ALREADY_EXISTS, f"A student named '{name}' already exists in '{class_id}'")
        if self._class_size(data, class_id) >= self.max_students_per_class:
            return OperationResult.fail(
                ErrorCode.LIMIT_EXCEEDED,
                f"Class '{class_id}' is full ({self.max_students_per_class} students)")

        student_id = f"student_{uuid.uuid4().hex}"
        data.students[student_id] = Student(id=student_id, name=name, class_id=class_id)
        self._commit(previous, data)
        LOG.info(f"Added student {student_id} to {class_id}")
        return OperationResult.ok(f"Student '{name}' added", data=student_id)

    def edit_student(self, student_id: str, new_name: str, new_class_id: str) -> OperationResult:
        if not validate_student_name(new_name):
            return OperationResult.fail(ErrorCode.INVALID_INPUT, f"Invalid student name: {new_name!r}")
        new_name = new_name.strip()

        data, previous = self._begin()
        student = data.students.get(student_id)
        if student is None:
            return OperationResult.fail(ErrorCode.NOT_FOUND, f"Student '{student_id}' not found")
        if new_class_id not in data.classes:
            return OperationResult.fail(ErrorCode.NOT_FOUND, f"Class '{new_class_id}' not found")
        if self._duplicate_student(data, new_name, new_class_id, exclude_id=student_id):
            return OperationResult.fail(
                ErrorCode.ALREADY_EXISTS,
                f"A student named '{new_name}' already exists in '{new_class_id}'")
        if (new_class_id != student.class_id
                and self._class_size(data, new_class_id) >= self.max_students_per_class):
            return OperationResult.fail(
                ErrorCode.LIMIT_EXCEEDED,
                f"Class '{new_class_id}' is full ({self.max_students_per_class} students)")

        student.name = new_name
        student.class_id = new_class_id
        self._commit(previous, data)
        LOG.info(f"Updated student {student_id}")
        return OperationResult.ok(f"Student '{new_name}' updated")

    def delete_student(self, student_id: str) -> OperationResult:
        data, previous = self._begin()
        if student_id not in data.students:
            return OperationResult.fail(ErrorCode.NOT_FOUND, f"Student '{student_id}' not found")

        del data.students[student_id]
        self._commit(previous, data)
        LOG.info(f"Deleted student {student_id}")
        return OperationResult.ok("Student deleted")

    # --- evaluations ---

    def save_evaluation(self, student_id: str, raw_evaluation: Mapping[str, Any]) -> OperationResult:
        """
        Validate and append an evaluation to a student's history.

        A payload without a level is graded against the student's class level.
        Result data is the position of the new evaluation.
        """
        data, previous = self._begin()
        student = data.students.get(student_id)
        if student is None:
            return OperationResult.fail(ErrorCode.NOT_FOUND, f"Student '{student_id}' not found")

        payload = raw_evaluation
        if isinstance(raw_evaluation, Mapping) and not any(
                raw_evaluation.get(k) is not None for k in ("level", "year")):
            klass = data.classes.get(student.class_id)
            if klass is not None:
                payload = {**raw_evaluation, "level": klass.level}

        evaluation = validate_evaluation_input(payload)
        if evaluation is None:
            return OperationResult.fail(ErrorCode.INVALID_INPUT, "Evaluation payload must be a mapping")
        if len(student.evaluations) >= self.max_evaluations_per_student:
            return OperationResult.fail(
                ErrorCode.LIMIT_EXCEEDED,
                f"Evaluation limit reached ({self.max_evaluations_per_student}) for '{student.name}'")

        student.evaluations.append(evaluation)
        self._commit(previous, data)
        LOG.info(f"Saved evaluation for {student_id}: {evaluation.total_score:.2f}/20")
        return OperationResult.ok("Evaluation saved", data=len(student.evaluations) - 1)

    def delete_evaluation(self, student_id: str, index: int) -> OperationResult:
        """Remove an evaluation by position; later evaluations shift down."""
        data, previous = self._begin()
        student = data.students.get(student_id)
        if student is None:
            return OperationResult.fail(ErrorCode.NOT_FOUND, f"Student '{student_id}' not found")
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(student.evaluations):
            return OperationResult.fail(ErrorCode.NOT_FOUND, f"Evaluation {index!r} not found")

        del student.evaluations[index]
        self._commit(previous, data)
        LOG.info(f"Deleted evaluation {index} of {student_id}")
        return OperationResult.ok("Evaluation deleted")

    # --- settings and backups ---

    def update_settings(self, teacher_name: str, report_title: str) -> OperationResult:
        if not validate_teacher_name(teacher_name):
            return OperationResult.fail(ErrorCode.INVALID_INPUT, "Teacher name must be 2-100 characters")
        if not validate_report_title(report_title):
            return OperationResult.fail(ErrorCode.INVALID_INPUT, "Report title must be 5-200 characters")

        data, previous = self._begin()
        data.settings = Settings(teacher_name=teacher_name.strip(), report_title=report_title.strip())
        self._commit(previous, data)
        return OperationResult.ok("Settings updated")

    def restore_backup(self, position: int = -1) -> OperationResult:
        """Replace the current state with a snapshot (default: the most recent)."""
        backups = self._load_backups()
        if not backups or not -len(backups) <= position < len(backups):
            return OperationResult.fail(ErrorCode.NOT_FOUND, f"Backup {position} not found")

        target = backups[position]
        self._commit(self._load(), target.data)
        LOG.info(f"Restored backup taken at {target.taken_at.isoformat()}")
        return OperationResult.ok(f"Restored backup from {target.taken_at:%Y-%m-%d %H:%M:%S}")
