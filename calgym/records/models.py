"""Pydantic models for the persisted gradebook."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from calgym.scoring.rules import ClassLevel, TOTAL_MAX
from .errors import ErrorCode


class Evaluation(BaseModel):
    """One graded attempt. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    level: ClassLevel = Field(description="Class level the attempt was graded against")
    performed_a: int = Field(ge=0, description="A elements performed")
    performed_b: int = Field(ge=0, description="B elements performed")
    performed_c: int = Field(ge=0, description="C elements performed")
    specific_req_score: float = Field(ge=0, description="Specific requirements (0-1.5)")
    linking_quality: str = Field(description="excellent, good, average or weak")
    execution_score: float = Field(ge=0, description="Execution (0-2)")
    co_cn_score: float = Field(ge=0, description="Knowledge CO CN (0-3)")
    co_cm_score: float = Field(ge=0, description="Conduct CO CM (0-level max)")
    difficulty_score: float = Field(ge=0, description="Derived difficulty (0-6)")
    linking_score: float = Field(ge=0, description="Derived linking points")
    total_score: float = Field(ge=0, le=TOTAL_MAX, description="Sum of the six components")
    created_at: datetime = Field(description="When the evaluation was recorded")


class ClassRecord(BaseModel):
    """A class, identified by its name."""
    name: str
    level: ClassLevel


class Student(BaseModel):
    """A student and their evaluations, oldest first."""
    id: str
    name: str
    class_id: str = Field(description="Name of the class the student belongs to")
    evaluations: List[Evaluation] = Field(default_factory=list)

    @property
    def latest_evaluation(self) -> Optional[Evaluation]:
        return self.evaluations[-1] if self.evaluations else None


class Settings(BaseModel):
    """Per-teacher report settings."""
    teacher_name: str = ""
    report_title: str = ""


class StoreData(BaseModel):
    """Everything persisted for one teacher, minus the backups."""
    classes: Dict[str, ClassRecord] = Field(default_factory=dict)
    students: Dict[str, Student] = Field(default_factory=dict)
    settings: Settings = Field(default_factory=Settings)

    def to_yaml_dict(self) -> dict:
        """Convert to plain types suitable for YAML serialization."""
        return self.model_dump(mode="json")


class Backup(BaseModel):
    """A whole-store snapshot taken before a mutation."""
    taken_at: datetime
    data: StoreData


class BackupLog(BaseModel):
    backups: List[Backup] = Field(default_factory=list)


class OperationResult(BaseModel):
    """Outcome of a store operation."""
    success: bool
    message: str
    code: Optional[ErrorCode] = None
    data: Optional[Any] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, code: ErrorCode, message: str) -> "OperationResult":
        return cls(success=False, message=message, code=code)

    def __bool__(self) -> bool:
        return self.success
