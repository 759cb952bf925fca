"""
Shared category vocabulary for FitRule Advisor.

Every place that needs a BMI or body-fat label (API payloads, rule
descriptions, seed data) reads it from here instead of keeping its own copy.
Stored codes are the short ones used in the database: B1..B4 and L1..L3.
"""

from enum import Enum


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"


class BMICategory(str, Enum):
    UNDERWEIGHT = "B1"
    IDEAL = "B2"
    OVERWEIGHT = "B3"
    OBESE = "B4"


class BodyFatCategory(str, Enum):
    LOW = "L1"
    NORMAL = "L2"
    HIGH = "L3"


BMI_DISPLAY = {
    BMICategory.UNDERWEIGHT: "Underweight",
    BMICategory.IDEAL: "Ideal",
    BMICategory.OVERWEIGHT: "Overweight",
    BMICategory.OBESE: "Obese",
}

BMI_RANGES = {
    BMICategory.UNDERWEIGHT: "<18.5",
    BMICategory.IDEAL: "18.5-24.9",
    BMICategory.OVERWEIGHT: "25-29.9",
    BMICategory.OBESE: ">=30",
}

BODY_FAT_DISPLAY = {
    BodyFatCategory.LOW: "Low",
    BodyFatCategory.NORMAL: "Normal",
    BodyFatCategory.HIGH: "High",
}

BODY_FAT_RANGES = {
    Sex.MALE: {
        BodyFatCategory.LOW: "<10%",
        BodyFatCategory.NORMAL: "10-20%",
        BodyFatCategory.HIGH: ">20%",
    },
    Sex.FEMALE: {
        BodyFatCategory.LOW: "<20%",
        BodyFatCategory.NORMAL: "20-30%",
        BodyFatCategory.HIGH: ">30%",
    },
}

NOT_MEASURED = "Not measured"


def bmi_display(category):
    if category is None:
        return "Unknown"
    try:
        return BMI_DISPLAY[BMICategory(category)]
    except ValueError:
        return "Unknown"


def body_fat_display(category):
    # BMI-only consultations carry no body-fat category
    if category is None:
        return NOT_MEASURED
    try:
        return BODY_FAT_DISPLAY[BodyFatCategory(category)]
    except ValueError:
        return "Unknown"


def bmi_range(category):
    return BMI_RANGES[BMICategory(category)]


def body_fat_ranges(category):
    """Per-sex percentage band for a body-fat code, e.g. {'male': '10-20%', ...}."""
    category = BodyFatCategory(category)
    return {sex.value: BODY_FAT_RANGES[sex][category] for sex in Sex}


def condition_key(bmi_category, body_fat_category):
    """'B2-L2' style key used in admin listings."""
    return f"{BMICategory(bmi_category).value}-{BodyFatCategory(body_fat_category).value}"


def condition_label(bmi_category, body_fat_category):
    return f"{bmi_display(bmi_category)} + {body_fat_display(body_fat_category)}"


def all_conditions():
    """Full 4x3 cross-product, in code order."""
    return [(b, f) for b in BMICategory for f in BodyFatCategory]
