from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Text,
    Boolean,
    DateTime,
    JSON,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship

from categories import bmi_display, body_fat_display, condition_key, condition_label
from database import Base, engine


def utcnow():
    # naive UTC; SQLite has no timezone-aware DateTime
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    gender = Column(String(10), nullable=False)        # male / female
    role = Column(String(10), nullable=False, default="user")   # user / admin
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    consultations = relationship("Consultation", back_populates="user")

    @property
    def is_admin(self):
        return self.role == "admin"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "gender": self.gender,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
        }


class Program(Base):
    __tablename__ = "programs"

    id = Column(Integer, primary_key=True)
    code = Column(String(10), unique=True, nullable=False)     # P1..P10
    name = Column(String(100), nullable=False)
    description = Column(Text)

    # condition this program was written for; informational, rules do the mapping
    bmi_category = Column(String(2), nullable=False)
    body_fat_category = Column(String(2), nullable=False)

    cardio_ratio = Column(String(50), nullable=False, default="50% Cardio - 50% Weights")
    diet_recommendation = Column(Text)
    schedule = Column(JSON, nullable=False, default=dict)     # weekday -> session text
    is_active = Column(Boolean, nullable=False, default=True)

    rules = relationship("Rule", back_populates="program")
    consultations = relationship("Consultation", back_populates="program")

    def summary(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "cardio_ratio": self.cardio_ratio,
        }

    def to_dict(self, with_rules=False):
        data = {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "bmi_category": self.bmi_category,
            "body_fat_category": self.body_fat_category,
            "condition": condition_key(self.bmi_category, self.body_fat_category),
            "condition_label": condition_label(self.bmi_category, self.body_fat_category),
            "bmi_display": bmi_display(self.bmi_category),
            "body_fat_display": body_fat_display(self.body_fat_category),
            "cardio_ratio": self.cardio_ratio,
            "diet_recommendation": self.diet_recommendation,
            "schedule": self.schedule or {},
            "is_active": self.is_active,
        }
        if with_rules:
            data["rules"] = [
                {"id": r.id, "name": r.name, "description": r.description}
                for r in self.rules
            ]
        return data


class Rule(Base):
    __tablename__ = "rules"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    bmi_category = Column(String(2), nullable=False)
    body_fat_category = Column(String(2), nullable=False)
    program_id = Column(Integer, ForeignKey("programs.id"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    program = relationship("Program", back_populates="rules")

    @property
    def condition(self):
        return condition_key(self.bmi_category, self.body_fat_category)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "bmi_category": self.bmi_category,
            "body_fat_category": self.body_fat_category,
            "condition": self.condition,
            "condition_label": condition_label(self.bmi_category, self.body_fat_category),
            "bmi_display": bmi_display(self.bmi_category),
            "body_fat_display": body_fat_display(self.body_fat_category),
            "program_id": self.program_id,
            "program": self.program.summary() if self.program else None,
            "is_active": self.is_active,
        }


# at most one active rule per (BMI, body fat) pair
Index(
    "uq_active_rule_pair",
    Rule.bmi_category,
    Rule.body_fat_category,
    unique=True,
    sqlite_where=Rule.is_active.is_(True),
    postgresql_where=Rule.is_active.is_(True),
)


class Exercise(Base):
    __tablename__ = "exercises"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    category = Column(String(20), nullable=False)      # Push / Pull / Leg / Full Body / Cardio
    description = Column(Text)
    instructions = Column(Text)
    sets = Column(String(50))
    duration = Column(String(50))
    difficulty = Column(String(20), nullable=False, default="Beginner")
    youtube_url = Column(String(255))
    muscle_groups = Column(JSON, nullable=False, default=list)
    equipment = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "instructions": self.instructions,
            "sets": self.sets,
            "duration": self.duration,
            "difficulty": self.difficulty,
            "youtube_url": self.youtube_url,
            "muscle_groups": self.muscle_groups or [],
            "equipment": self.equipment or [],
            "is_active": self.is_active,
        }


class Consultation(Base):
    __tablename__ = "consultations"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    program_id = Column(Integer, ForeignKey("programs.id"), nullable=False, index=True)
    rule_id = Column(Integer, ForeignKey("rules.id"), nullable=True)

    weight = Column(Float, nullable=False)
    height = Column(Float, nullable=False)
    body_fat_percentage = Column(Float, nullable=True)    # None for BMI-only

    bmi = Column(Float, nullable=False)
    bmi_category = Column(String(2), nullable=False)
    body_fat_category = Column(String(2), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)   # fallback program used

    notes = Column(Text)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    user = relationship("User", back_populates="consultations")
    program = relationship("Program", back_populates="consultations")
    rule = relationship("Rule")

    @property
    def is_bmi_only(self):
        return self.body_fat_percentage is None

    def to_dict(self):
        return {
            "id": self.id,
            "user": (
                {"id": self.user.id, "name": self.user.name, "email": self.user.email,
                 "gender": self.user.gender}
                if self.user else None
            ),
            "weight": self.weight,
            "height": self.height,
            "body_fat_percentage": self.body_fat_percentage,
            "bmi": self.bmi,
            "bmi_category": self.bmi_category,
            "body_fat_category": self.body_fat_category,
            "bmi_display": bmi_display(self.bmi_category),
            "body_fat_display": body_fat_display(self.body_fat_category),
            "is_bmi_only": self.is_bmi_only,
            "consultation_type": "bmi_only" if self.is_bmi_only else "complete",
            "is_default": self.is_default,
            "program": self.program.to_dict() if self.program else None,
            "rule": {"id": self.rule.id, "name": self.rule.name} if self.rule else None,
            "notes": self.notes,
            "status": self.status,
            "created_at": _iso(self.created_at),
        }


def init_db():
    """Create all tables."""
    Base.metadata.create_all(bind=engine)
