"""Pydantic validation models for all authoring and assignment entry points."""

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from programmes.errors import ValidationError
from programmes.models import CREATION_METHODS, LOAD_DIRECTIVES, OWNER_TYPES, WEIGHT_UNITS

ModelT = TypeVar("ModelT", bound=BaseModel)


def _blank_to_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


class ExerciseEntryInput(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    exercise_id: Optional[int] = Field(default=None, gt=0)
    custom_exercise_name: Optional[str] = Field(default=None, max_length=200)
    day_number: int = Field(ge=1, le=7)
    order_in_day: Optional[int] = Field(default=None, ge=1)
    sets: int = Field(default=3, ge=1, le=20)
    reps_min: Optional[int] = Field(default=None, ge=1, le=100)
    reps_max: Optional[int] = Field(default=None, ge=1, le=100)
    rest_seconds: Optional[int] = Field(default=None, ge=0, le=900)
    notes: Optional[str] = Field(default=None, max_length=2000)
    superset_group: Optional[str] = Field(default=None, max_length=10)
    load_directive: str = "open"
    target_weight_kg: Optional[float] = Field(default=None, ge=0)
    entered_weight_value: Optional[float] = Field(default=None, ge=0)
    entered_weight_unit: Optional[str] = None
    special_instructions: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("custom_exercise_name", "notes", "superset_group", "special_instructions", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _blank_to_none(v)

    @field_validator("load_directive")
    @classmethod
    def valid_load_directive(cls, v):
        if v not in LOAD_DIRECTIVES:
            raise ValueError(f"load_directive must be one of {set(LOAD_DIRECTIVES)}")
        return v

    @field_validator("entered_weight_unit")
    @classmethod
    def valid_unit(cls, v):
        if v is not None and v not in WEIGHT_UNITS:
            raise ValueError(f"entered_weight_unit must be one of {set(WEIGHT_UNITS)}")
        return v

    @model_validator(mode="after")
    def check_prescription(self):
        if self.exercise_id is None and not self.custom_exercise_name:
            raise ValueError("either exercise_id or custom_exercise_name is required")
        if self.reps_min is not None and self.reps_max is not None and self.reps_max < self.reps_min:
            raise ValueError("reps_max must be >= reps_min")
        if (self.entered_weight_value is None) != (self.entered_weight_unit is None):
            raise ValueError("entered_weight_value and entered_weight_unit must be given together")
        if self.load_directive == "bodyweight":
            self.target_weight_kg = None
        return self


class ExerciseEntryUpdate(BaseModel):
    """Partial update for a single entry; unset fields are left alone."""

    exercise_id: Optional[int] = Field(default=None, gt=0)
    custom_exercise_name: Optional[str] = Field(default=None, max_length=200)
    day_number: Optional[int] = Field(default=None, ge=1, le=7)
    sets: Optional[int] = Field(default=None, ge=1, le=20)
    reps_min: Optional[int] = Field(default=None, ge=1, le=100)
    reps_max: Optional[int] = Field(default=None, ge=1, le=100)
    rest_seconds: Optional[int] = Field(default=None, ge=0, le=900)
    notes: Optional[str] = Field(default=None, max_length=2000)
    superset_group: Optional[str] = Field(default=None, max_length=10)
    load_directive: Optional[str] = None
    target_weight_kg: Optional[float] = Field(default=None, ge=0)
    entered_weight_value: Optional[float] = Field(default=None, ge=0)
    entered_weight_unit: Optional[str] = None
    special_instructions: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("load_directive")
    @classmethod
    def valid_load_directive(cls, v):
        if v is not None and v not in LOAD_DIRECTIVES:
            raise ValueError(f"load_directive must be one of {set(LOAD_DIRECTIVES)}")
        return v


class BlueprintCreateInput(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=4000)
    owner_type: str = "professional"
    owner_id: Optional[int] = Field(default=None, gt=0)
    created_for_client_id: Optional[int] = Field(default=None, gt=0)
    creation_method: str = "manual"
    goal_type_id: Optional[int] = Field(default=None, gt=0)
    equipment_profile: Optional[list[str]] = None
    duration_weeks: Optional[int] = Field(default=None, ge=1, le=104)
    sessions_per_week: Optional[int] = Field(default=None, ge=1, le=7)
    is_template: bool = False

    @field_validator("owner_type")
    @classmethod
    def valid_owner_type(cls, v):
        if v not in OWNER_TYPES:
            raise ValueError(f"owner_type must be one of {set(OWNER_TYPES)}")
        return v

    @field_validator("creation_method")
    @classmethod
    def valid_creation_method(cls, v):
        if v not in CREATION_METHODS:
            raise ValueError(f"creation_method must be one of {set(CREATION_METHODS)}")
        return v

    @model_validator(mode="after")
    def owner_consistency(self):
        if self.owner_type != "platform" and self.owner_id is None:
            raise ValueError("owner_id is required unless owner_type is 'platform'")
        if self.owner_type == "client_proxy" and self.created_for_client_id is None:
            raise ValueError("created_for_client_id is required for client_proxy blueprints")
        return self


class BlueprintUpdateInput(BaseModel):
    """Metadata patch; ownership and creation fields are fixed after creation."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=4000)
    goal_type_id: Optional[int] = Field(default=None, gt=0)
    equipment_profile: Optional[list[str]] = None
    duration_weeks: Optional[int] = Field(default=None, ge=1, le=104)
    sessions_per_week: Optional[int] = Field(default=None, ge=1, le=7)
    is_template: Optional[bool] = None
    is_archived: Optional[bool] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, v):
        return _blank_to_none(v)

    @model_validator(mode="after")
    def name_not_cleared(self):
        if "name" in self.model_fields_set and self.name is None:
            raise ValueError("name cannot be removed")
        return self


class AssignmentDetailsInput(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("notes", mode="before")
    @classmethod
    def strip_notes(cls, v):
        return _blank_to_none(v)

    @model_validator(mode="after")
    def date_order(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class UpdateNotesInput(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("notes", mode="before")
    @classmethod
    def strip_notes(cls, v):
        return _blank_to_none(v)


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def parse_input(model: type[ModelT], data: Any) -> ModelT:
    """Validate ``data`` into ``model``, raising the service ValidationError."""
    if isinstance(data, model):
        return data
    try:
        if isinstance(data, dict):
            return model.model_validate(data)
        return model.model_validate(data, from_attributes=True)
    except PydanticValidationError as exc:
        raise ValidationError(_describe(exc)) from exc


def parse_entries(entries: Iterable[Any]) -> list[ExerciseEntryInput]:
    return [parse_input(ExerciseEntryInput, e) for e in entries]
