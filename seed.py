"""
Seed data: the ten programs, the rules that map conditions to them,
an admin account and a starter exercise catalog.
"""

import logging

from categories import BMICategory as B, BodyFatCategory as L, bmi_display, body_fat_display
from models import Program, Rule, Exercise, User
from rule_engine import DEFAULT_RULES

logger = logging.getLogger(__name__)

_PUSH = (
    "1. Bench Press: 3x6-8\n2. Shoulder Press: 3x8-10\n"
    "3. Incline Dumbbell Flyes: 3x10-15\n4. Triceps Pushdowns: 3x10-15"
)
_PULL = (
    "1. Rows: 3x6-8\n2. Pull-Ups or Lat Pull-Downs: 3x8-10\n"
    "3. Face Pulls: 3x10-15\n4. Dumbbell Curls: 3x10-15"
)
_LEGS = (
    "1. Squats: 3x6-8\n2. Romanian Deadlifts: 3x6-8\n"
    "3. Leg Press: 3x8-10\n4. Standing Calf Raises: 3x10-15"
)
_FULL = (
    "1. Goblet Squat: 3x10-12\n2. Push-Ups: 3x10-15\n"
    "3. Dumbbell Rows: 3x10-12\n4. Plank: 3x30-45s"
)


def _cardio(minutes, style="steady treadmill or stationary bike"):
    return f"Cardio: {minutes} min {style}"


def _week(mon, tue, wed, thu, fri, sat, sun="Rest"):
    return {
        "Monday": mon,
        "Tuesday": tue,
        "Wednesday": wed,
        "Thursday": thu,
        "Friday": fri,
        "Saturday": sat,
        "Sunday": sun,
    }


PROGRAMS = [
    {
        "code": "P1",
        "name": "Fat Loss Program",
        "description": "Weights-led program with light cardio to build lean mass while keeping fat in check.",
        "bmi_category": B.UNDERWEIGHT,
        "body_fat_category": L.LOW,
        "cardio_ratio": "10% Cardio - 90% Weights",
        "diet_recommendation": "Calorie surplus of 300-500 kcal from protein- and carbohydrate-rich food.",
        "schedule": _week(_PUSH, _PULL, _PUSH, _PULL, _LEGS, _LEGS, _cardio(20)),
    },
    {
        "code": "P2",
        "name": "Muscle Gain Program",
        "description": "Balanced hypertrophy program for an ideal weight and healthy body fat.",
        "bmi_category": B.IDEAL,
        "body_fat_category": L.NORMAL,
        "cardio_ratio": "40% Cardio - 60% Weights",
        "diet_recommendation": "Maintenance calories plus 200 kcal, 1.6-2.2 g protein per kg body weight.",
        "schedule": _week(_PUSH, _PULL, _LEGS, _cardio(30), _PUSH, _PULL),
    },
    {
        "code": "P3",
        "name": "Weight Loss Program",
        "description": "Cardio-led program with supporting full-body strength work.",
        "bmi_category": B.OVERWEIGHT,
        "body_fat_category": L.HIGH,
        "cardio_ratio": "70% Cardio - 30% Weights",
        "diet_recommendation": "Calorie deficit of 500 kcal, high protein and fibre, limit added sugar.",
        "schedule": _week(_cardio(40), _FULL, _cardio(40), _FULL, _cardio(45, "intervals"), _cardio(60, "brisk walk")),
    },
    {
        "code": "P4",
        "name": "Extreme Weight Loss Program",
        "description": "Low-impact, high-volume cardio with gentle strength sessions.",
        "bmi_category": B.OBESE,
        "body_fat_category": L.HIGH,
        "cardio_ratio": "80% Cardio - 20% Weights",
        "diet_recommendation": "Supervised calorie deficit of 500-750 kcal, whole foods, no sugary drinks.",
        "schedule": _week(
            _cardio(30, "low-impact cycling"), _cardio(30, "brisk walk"), _FULL,
            _cardio(30, "elliptical"), _cardio(40, "brisk walk"), _FULL,
        ),
    },
    {
        "code": "P5",
        "name": "Lean Muscle Program",
        "description": "Progressive strength work to add lean muscle to a light frame.",
        "bmi_category": B.UNDERWEIGHT,
        "body_fat_category": L.NORMAL,
        "cardio_ratio": "20% Cardio - 80% Weights",
        "diet_recommendation": "Calorie surplus of 300-400 kcal with protein at every meal.",
        "schedule": _week(_PUSH, _PULL, _LEGS, _cardio(20), _PUSH, _LEGS),
    },
    {
        "code": "P6",
        "name": "Strength & Definition Program",
        "description": "Heavy compound lifts with accessory work for definition.",
        "bmi_category": B.IDEAL,
        "body_fat_category": L.LOW,
        "cardio_ratio": "15% Cardio - 85% Weights",
        "diet_recommendation": "Maintenance calories, high protein, carbohydrates around training.",
        "schedule": _week(_PUSH, _PULL, _LEGS, _PUSH, _PULL, _LEGS, _cardio(20, "easy walk")),
    },
    {
        "code": "P7",
        "name": "Fat Burning & Toning Program",
        "description": "Circuit-style training mixing cardio and moderate weights.",
        "bmi_category": B.IDEAL,
        "body_fat_category": L.HIGH,
        "cardio_ratio": "60% Cardio - 40% Weights",
        "diet_recommendation": "Calorie deficit of 300 kcal, lean protein and vegetables.",
        "schedule": _week(_FULL, _cardio(40), _FULL, _cardio(30, "intervals"), _FULL, _cardio(45)),
    },
    {
        "code": "P8",
        "name": "Body Recomposition Program",
        "description": "Even split of cardio and weights to trade fat for muscle.",
        "bmi_category": B.OVERWEIGHT,
        "body_fat_category": L.NORMAL,
        "cardio_ratio": "50% Cardio - 50% Weights",
        "diet_recommendation": "Slight deficit of 200-300 kcal with 2 g protein per kg body weight.",
        "schedule": _week(_PUSH, _cardio(35), _PULL, _cardio(35), _LEGS, _cardio(45)),
    },
    {
        "code": "P9",
        "name": "Beginner Muscle Building Program",
        "description": "Full-body sessions teaching the main lifts with some conditioning.",
        "bmi_category": B.UNDERWEIGHT,
        "body_fat_category": L.HIGH,
        "cardio_ratio": "35% Cardio - 65% Weights",
        "diet_recommendation": "Maintenance calories shifting toward a small surplus as strength improves.",
        "schedule": _week(_FULL, _cardio(25), _FULL, "Rest", _FULL, _cardio(30)),
    },
    {
        "code": "P10",
        "name": "Advanced Strength Program",
        "description": "Heavy powerlifting-style program for dense, muscular builds.",
        "bmi_category": B.OVERWEIGHT,
        "body_fat_category": L.LOW,
        "cardio_ratio": "10% Cardio - 90% Weights",
        "diet_recommendation": "Maintenance calories or slight surplus, 2 g protein per kg body weight.",
        "schedule": _week(_LEGS, _PUSH, _PULL, _cardio(20, "easy walk"), _LEGS, _PUSH),
    },
]

EXERCISES = [
    {
        "name": "Bench Press",
        "category": "Push",
        "description": "Horizontal press for chest, front delts and triceps.",
        "sets": "3x6-8",
        "difficulty": "Intermediate",
        "muscle_groups": ["Chest", "Front Delts", "Triceps"],
        "equipment": ["Barbell", "Bench"],
    },
    {
        "name": "Shoulder Press",
        "category": "Push",
        "sets": "3x8-10",
        "difficulty": "Beginner",
        "muscle_groups": ["Shoulders", "Triceps"],
        "equipment": ["Dumbbell"],
    },
    {
        "name": "Pull-Ups",
        "category": "Pull",
        "sets": "3x8-10",
        "difficulty": "Intermediate",
        "muscle_groups": ["Lats", "Biceps"],
        "equipment": ["Pull-up Bar"],
    },
    {
        "name": "Barbell Rows",
        "category": "Pull",
        "sets": "3x6-8",
        "difficulty": "Intermediate",
        "muscle_groups": ["Back", "Rhomboids", "Biceps"],
        "equipment": ["Barbell"],
    },
    {
        "name": "Squats",
        "category": "Leg",
        "sets": "3x6-8",
        "difficulty": "Intermediate",
        "muscle_groups": ["Quadriceps", "Glutes", "Hamstrings"],
        "equipment": ["Barbell", "Squat Rack"],
    },
    {
        "name": "Romanian Deadlifts",
        "category": "Leg",
        "sets": "3x6-8",
        "difficulty": "Intermediate",
        "muscle_groups": ["Hamstrings", "Glutes"],
        "equipment": ["Barbell"],
    },
    {
        "name": "Burpees",
        "category": "Full Body",
        "sets": "3x12",
        "difficulty": "Beginner",
        "muscle_groups": ["Chest", "Quadriceps", "Core"],
        "equipment": ["Bodyweight"],
    },
    {
        "name": "Treadmill Walk",
        "category": "Cardio",
        "duration": "30 min",
        "difficulty": "Beginner",
        "muscle_groups": ["Calves", "Quadriceps"],
        "equipment": ["Treadmill"],
    },
]


def rule_description(bmi_category, body_fat_category, program_code):
    return (
        f"IF BMI = {bmi_display(bmi_category)} AND Body Fat = "
        f"{body_fat_display(body_fat_category)} THEN Program = {program_code}"
    )


def seed_catalog(db):
    """Replace programs and rules with the default catalog. Returns (programs, rules)."""
    db.query(Rule).delete()
    db.query(Program).delete()

    programs = {}
    for data in PROGRAMS:
        program = Program(
            **{**data, "bmi_category": data["bmi_category"].value,
               "body_fat_category": data["body_fat_category"].value}
        )
        db.add(program)
        programs[program.code] = program
    db.flush()

    rules = []
    for bmi, body_fat, code in DEFAULT_RULES:
        program = programs[code]
        rules.append(
            Rule(
                name=f"Rule for {program.name}",
                description=rule_description(bmi, body_fat, code),
                bmi_category=bmi.value,
                body_fat_category=body_fat.value,
                program_id=program.id,
                is_active=True,
            )
        )
    db.add_all(rules)
    db.commit()

    logger.info("Seeded %d programs and %d rules", len(programs), len(rules))
    return list(programs.values()), rules


def seed_exercises(db):
    if db.query(Exercise).count():
        logger.info("Exercises already present, skipping")
        return []
    exercises = [Exercise(**data) for data in EXERCISES]
    db.add_all(exercises)
    db.commit()
    logger.info("Seeded %d exercises", len(exercises))
    return exercises


def seed_admin(db, bcrypt, email, password):
    admin = db.query(User).filter_by(email=email).first()
    if admin:
        logger.warning("Admin user %s already exists", email)
        return admin

    admin = User(
        name="Administrator",
        email=email,
        password_hash=bcrypt.generate_password_hash(password).decode("utf-8"),
        gender="male",
        role="admin",
    )
    db.add(admin)
    db.commit()
    logger.info("Admin user %s created; change the password after first login", email)
    return admin
