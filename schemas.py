"""Request bodies accepted by the API, with the plausibility bounds users see."""

import re
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from categories import BMICategory, BodyFatCategory, Sex

WEEK_DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

EXERCISE_CATEGORIES = ["Push", "Pull", "Leg", "Full Body", "Cardio"]
DIFFICULTIES = ["Beginner", "Intermediate", "Advanced"]

MUSCLE_GROUPS = [
    "Chest", "Back", "Shoulders", "Biceps", "Triceps", "Forearms",
    "Abs", "Obliques", "Quadriceps", "Hamstrings", "Glutes", "Calves",
    "Upper Traps", "Middle Traps", "Lower Traps", "Lats", "Rhomboids",
    "Rear Delts", "Front Delts", "Side Delts", "Core",
]

EQUIPMENT = [
    "Barbell", "Dumbbell", "Kettlebell", "Cable Machine", "Pull-up Bar",
    "Bench", "Incline Bench", "Decline Bench", "Squat Rack", "Leg Press Machine",
    "Lat Pulldown Machine", "Seated Row Machine", "Leg Curl Machine",
    "Leg Extension Machine", "Calf Raise Machine", "Smith Machine",
    "Treadmill", "Stationary Bike", "Elliptical", "Rowing Machine",
    "Resistance Bands", "Bodyweight", "Medicine Ball", "Stability Ball",
    "TRX", "Battle Ropes", "Foam Roller", "Yoga Mat",
]

YOUTUBE_URL = re.compile(
    r"^(https?://)?(www\.)?(youtube\.com/watch\?v=|youtu\.be/)([a-zA-Z0-9_-]{11})(&.*)?$"
)

Status = Literal["active", "completed", "cancelled"]


def validation_errors(exc):
    """Flatten a pydantic ValidationError into [{field, message}]."""
    errors = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "body"
        message = err["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append({"field": field, "message": message})
    return errors


def _reject_fields(data, blocked):
    if isinstance(data, dict):
        for field, message in blocked.items():
            if field in data:
                raise ValueError(message)
    return data


# ---------------------------------------------------------
# Auth
# ---------------------------------------------------------
class RegisterIn(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)
    gender: Sex

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be between 2 and 100 characters")
        return v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower()


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower()


# ---------------------------------------------------------
# Consultations
# ---------------------------------------------------------
class ConsultationIn(BaseModel):
    weight: float = Field(ge=1, le=500)
    height: float = Field(ge=50, le=300)
    body_fat_percentage: Optional[float] = Field(default=None, ge=1, le=70)
    notes: Optional[str] = Field(default=None, max_length=500)


class ConsultationUpdate(BaseModel):
    status: Optional[Status] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class ResolvePreviewIn(BaseModel):
    weight: float = Field(ge=1, le=500)
    height: float = Field(ge=50, le=300)
    body_fat_percentage: Optional[float] = Field(default=None, ge=1, le=70)
    gender: Sex


# ---------------------------------------------------------
# Programs
# ---------------------------------------------------------
def _check_schedule(value):
    if value is None:
        return value
    missing = [day for day in WEEK_DAYS if day not in value]
    if missing:
        raise ValueError(f"Missing schedule for days: {', '.join(missing)}")
    return value


class ProgramCreate(BaseModel):
    code: str = Field(min_length=2, max_length=10)
    name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    bmi_category: BMICategory
    body_fat_category: BodyFatCategory
    cardio_ratio: str = Field(default="50% Cardio - 50% Weights", max_length=50)
    diet_recommendation: Optional[str] = Field(default=None, max_length=1000)
    schedule: Dict[str, str]
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def upper_code(cls, v):
        return v.strip().upper()

    @field_validator("schedule")
    @classmethod
    def check_schedule_days(cls, v):
        return _check_schedule(v)


class ProgramUpdate(BaseModel):
    """Content fields only; a program's code and condition are fixed."""

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    cardio_ratio: Optional[str] = Field(default=None, max_length=50)
    diet_recommendation: Optional[str] = Field(default=None, max_length=1000)
    schedule: Optional[Dict[str, str]] = None
    is_active: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def reject_fixed_fields(cls, data):
        return _reject_fields(data, {
            "code": "Program code cannot be modified",
            "bmi_category": "BMI category cannot be modified",
            "body_fat_category": "Body fat category cannot be modified",
        })

    @field_validator("schedule")
    @classmethod
    def check_schedule_days(cls, v):
        return _check_schedule(v)


# ---------------------------------------------------------
# Rules
# ---------------------------------------------------------
class RuleCreate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    bmi_category: BMICategory
    body_fat_category: BodyFatCategory
    program_id: int = Field(ge=1)
    is_active: bool = True


class RuleUpdate(BaseModel):
    """Assignment only: point the rule at another program."""

    program_id: int = Field(ge=1)

    @model_validator(mode="before")
    @classmethod
    def reject_fixed_fields(cls, data):
        return _reject_fields(data, {
            "name": "Rule name cannot be modified",
            "bmi_category": "BMI category cannot be modified",
            "body_fat_category": "Body fat category cannot be modified",
        })


class RuleBulkIn(BaseModel):
    rules: List[RuleCreate] = Field(min_length=1)


# ---------------------------------------------------------
# Exercises
# ---------------------------------------------------------
class _ExerciseFields(BaseModel):
    @field_validator("youtube_url", check_fields=False)
    @classmethod
    def check_youtube_url(cls, v):
        if v and v.strip():
            if not YOUTUBE_URL.match(v.strip()):
                raise ValueError("Invalid YouTube URL format")
            return v.strip()
        return None

    @field_validator("muscle_groups", check_fields=False)
    @classmethod
    def check_muscle_groups(cls, v):
        if v:
            invalid = [g for g in v if g not in MUSCLE_GROUPS]
            if invalid:
                raise ValueError(f"Invalid muscle groups: {', '.join(invalid)}")
        return v

    @field_validator("equipment", check_fields=False)
    @classmethod
    def check_equipment(cls, v):
        if v:
            invalid = [e for e in v if e not in EQUIPMENT]
            if invalid:
                raise ValueError(f"Invalid equipment: {', '.join(invalid)}")
        return v


class ExerciseCreate(_ExerciseFields):
    name: str = Field(min_length=2, max_length=100)
    category: Literal["Push", "Pull", "Leg", "Full Body", "Cardio"]
    description: Optional[str] = Field(default=None, max_length=1000)
    instructions: Optional[str] = Field(default=None, max_length=2000)
    sets: Optional[str] = Field(default=None, max_length=50)
    duration: Optional[str] = Field(default=None, max_length=50)
    difficulty: Literal["Beginner", "Intermediate", "Advanced"] = "Beginner"
    youtube_url: Optional[str] = None
    muscle_groups: List[str] = Field(default_factory=list)
    equipment: List[str] = Field(default_factory=list)
    is_active: bool = True


class ExerciseUpdate(_ExerciseFields):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    category: Optional[Literal["Push", "Pull", "Leg", "Full Body", "Cardio"]] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    instructions: Optional[str] = Field(default=None, max_length=2000)
    sets: Optional[str] = Field(default=None, max_length=50)
    duration: Optional[str] = Field(default=None, max_length=50)
    difficulty: Optional[Literal["Beginner", "Intermediate", "Advanced"]] = None
    youtube_url: Optional[str] = None
    muscle_groups: Optional[List[str]] = None
    equipment: Optional[List[str]] = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------
# Users
# ---------------------------------------------------------
class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    gender: Optional[Sex] = None
    role: Optional[Literal["user", "admin"]] = None
    is_active: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower() if v else v


class PasswordReset(BaseModel):
    new_password: str = Field(min_length=6)
