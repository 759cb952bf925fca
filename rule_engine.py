"""
Rule-based program resolver for FitRule Advisor.

Input: weight_kg, height_cm, sex ("male" / "female") and an optional
body-fat percentage.

Output: one program code, "P1".."P10".

Resolution is a single lookup:
  * no body-fat reading  -> BMI-only table (one program per BMI band)
  * with a reading       -> (BMI, body fat) rule table, falling back to
                            DEFAULT_PROGRAM when the pair has no rule

Everything here is pure: no database access, no logging, no shared state.
"""

import math
from typing import NamedTuple, Optional

from categories import BMICategory, BodyFatCategory, Sex, all_conditions

DEFAULT_PROGRAM = "P2"

BMI_ONLY_PROGRAMS = {
    BMICategory.UNDERWEIGHT: "P1",
    BMICategory.IDEAL: "P2",
    BMICategory.OVERWEIGHT: "P3",
    BMICategory.OBESE: "P4",
}

DEFAULT_RULES = [
    (BMICategory.UNDERWEIGHT, BodyFatCategory.LOW, "P1"),
    (BMICategory.UNDERWEIGHT, BodyFatCategory.NORMAL, "P5"),
    (BMICategory.UNDERWEIGHT, BodyFatCategory.HIGH, "P9"),
    (BMICategory.IDEAL, BodyFatCategory.LOW, "P6"),
    (BMICategory.IDEAL, BodyFatCategory.NORMAL, "P2"),
    (BMICategory.IDEAL, BodyFatCategory.HIGH, "P7"),
    (BMICategory.OVERWEIGHT, BodyFatCategory.LOW, "P10"),
    (BMICategory.OVERWEIGHT, BodyFatCategory.NORMAL, "P8"),
    (BMICategory.OVERWEIGHT, BodyFatCategory.HIGH, "P3"),
    (BMICategory.OBESE, BodyFatCategory.HIGH, "P4"),
]

# (low_upper, normal_upper): Low below the first, High above the second
_BODY_FAT_BOUNDS = {
    Sex.MALE: (10.0, 20.0),
    Sex.FEMALE: (20.0, 30.0),
}


class InvalidInput(ValueError):
    """A measurement is missing, non-numeric, non-finite or not positive."""


class InvalidRuleTable(ValueError):
    """A rule table has duplicate, malformed or (when required) missing pairs."""


class BmiOnly(NamedTuple):
    bmi: BMICategory


class Full(NamedTuple):
    bmi: BMICategory
    body_fat: BodyFatCategory


def _positive_number(value, name):
    # bool is an int subclass, but True is not a weight
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"{name} must be a number")
    if not math.isfinite(value) or value <= 0:
        raise InvalidInput(f"{name} must be greater than 0")
    return float(value)


def calc_bmi(weight_kg, height_cm):
    weight = _positive_number(weight_kg, "weight")
    height = _positive_number(height_cm, "height")
    h_m = height / 100.0
    return weight / (h_m * h_m)


def bmi_category_for(bmi):
    if bmi < 18.5:
        return BMICategory.UNDERWEIGHT
    if bmi < 25:
        return BMICategory.IDEAL
    if bmi < 30:
        return BMICategory.OVERWEIGHT
    return BMICategory.OBESE


def classify_bmi(weight_kg, height_cm) -> BMICategory:
    return bmi_category_for(calc_bmi(weight_kg, height_cm))


def classify_body_fat(percentage, sex) -> BodyFatCategory:
    value = _positive_number(percentage, "body fat percentage")
    try:
        low_upper, normal_upper = _BODY_FAT_BOUNDS[Sex(sex)]
    except ValueError:
        raise InvalidInput(f"unknown sex: {sex!r}") from None

    if value < low_upper:
        return BodyFatCategory.LOW
    if value <= normal_upper:
        return BodyFatCategory.NORMAL
    return BodyFatCategory.HIGH


class RuleTable:
    """
    Immutable (BMI, body fat) -> program code mapping.

    Built from (bmi_category, body_fat_category, program_code) rows. Rows
    naming the same pair twice are rejected instead of letting the last one
    win. Pairs may be left out; lookups on them return None and the resolver
    falls back to DEFAULT_PROGRAM. Pass require_complete=True to demand all
    twelve pairs.
    """

    __slots__ = ("_rules",)

    def __init__(self, rows, require_complete=False):
        rules = {}
        for row in rows:
            try:
                bmi, body_fat, program = row
                key = (BMICategory(bmi), BodyFatCategory(body_fat))
            except (TypeError, ValueError) as exc:
                raise InvalidRuleTable(f"malformed rule {row!r}: {exc}") from None
            if not isinstance(program, str) or not program.strip():
                raise InvalidRuleTable(f"rule {key[0].value}-{key[1].value} has no program")
            if key in rules:
                raise InvalidRuleTable(
                    f"duplicate rule for {key[0].value}-{key[1].value}"
                )
            rules[key] = program.strip().upper()

        object.__setattr__(self, "_rules", rules)

        if require_complete:
            missing = self.missing()
            if missing:
                names = ", ".join(f"{b.value}-{f.value}" for b, f in missing)
                raise InvalidRuleTable(f"missing rules for {names}")

    def __setattr__(self, name, value):
        raise AttributeError("RuleTable is immutable")

    def lookup(self, bmi_category, body_fat_category) -> Optional[str]:
        return self._rules.get(
            (BMICategory(bmi_category), BodyFatCategory(body_fat_category))
        )

    def missing(self):
        return [pair for pair in all_conditions() if pair not in self._rules]

    def items(self):
        return sorted(self._rules.items(), key=lambda kv: (kv[0][0].value, kv[0][1].value))

    def __contains__(self, pair):
        bmi, body_fat = pair
        return (BMICategory(bmi), BodyFatCategory(body_fat)) in self._rules

    def __len__(self):
        return len(self._rules)

    def __repr__(self):
        return f"RuleTable({len(self._rules)} rules)"


DEFAULT_RULE_TABLE = RuleTable(DEFAULT_RULES)


def assess(weight_kg, height_cm, sex, body_fat_percentage=None):
    """Classify raw measurements into a BmiOnly or Full condition."""
    bmi = classify_bmi(weight_kg, height_cm)
    if body_fat_percentage is None:
        return BmiOnly(bmi)
    return Full(bmi, classify_body_fat(body_fat_percentage, sex))


def resolve(condition, table=None) -> str:
    if isinstance(condition, Full):
        table = DEFAULT_RULE_TABLE if table is None else table
        return table.lookup(condition.bmi, condition.body_fat) or DEFAULT_PROGRAM
    if isinstance(condition, BmiOnly):
        return BMI_ONLY_PROGRAMS[BMICategory(condition.bmi)]
    raise TypeError(f"expected BmiOnly or Full, got {type(condition).__name__}")


def resolve_program(bmi_category, body_fat_category=None, table=None) -> str:
    if body_fat_category is None:
        return resolve(BmiOnly(BMICategory(bmi_category)))
    return resolve(
        Full(BMICategory(bmi_category), BodyFatCategory(body_fat_category)), table
    )


def is_fallback(condition, table=None):
    """True when `condition` resolves through DEFAULT_PROGRAM rather than a rule."""
    if not isinstance(condition, Full):
        return False
    table = DEFAULT_RULE_TABLE if table is None else table
    return table.lookup(condition.bmi, condition.body_fat) is None
