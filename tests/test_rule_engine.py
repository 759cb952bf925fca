import math

import pytest

from categories import BMICategory, BodyFatCategory, Sex, all_conditions
from rule_engine import (
    BMI_ONLY_PROGRAMS,
    DEFAULT_PROGRAM,
    DEFAULT_RULE_TABLE,
    BmiOnly,
    Full,
    InvalidInput,
    InvalidRuleTable,
    RuleTable,
    assess,
    calc_bmi,
    classify_body_fat,
    classify_bmi,
    is_fallback,
    resolve,
    resolve_program,
)

BMI_BANDS = {
    BMICategory.UNDERWEIGHT: (0, 18.5),
    BMICategory.IDEAL: (18.5, 25),
    BMICategory.OVERWEIGHT: (25, 30),
    BMICategory.OBESE: (30, math.inf),
}


# ---------------------------------------------------------
# BMI
# ---------------------------------------------------------
def test_ideal_example():
    assert round(calc_bmi(60, 170), 2) == 20.76
    assert classify_bmi(60, 170) == BMICategory.IDEAL


def test_obese_example():
    assert round(calc_bmi(100, 170), 1) == 34.6
    assert classify_bmi(100, 170) == BMICategory.OBESE


@pytest.mark.parametrize(
    "weight, expected",
    [
        (18.4, BMICategory.UNDERWEIGHT),
        (18.5, BMICategory.IDEAL),
        (24.95, BMICategory.IDEAL),
        (25, BMICategory.OVERWEIGHT),
        (29.99, BMICategory.OVERWEIGHT),
        (30, BMICategory.OBESE),
    ],
)
def test_bmi_band_lower_bounds_are_inclusive(weight, expected):
    # height 100 cm makes BMI equal to the weight
    assert classify_bmi(weight, 100) == expected


def test_bmi_between_24_9_and_25_is_not_rounded_up():
    assert classify_bmi(24.95, 100) == BMICategory.IDEAL


@pytest.mark.parametrize("height", [150, 165, 180, 200])
@pytest.mark.parametrize("weight", [40, 55, 72.5, 90, 130])
def test_category_band_contains_bmi(weight, height):
    bmi = calc_bmi(weight, height)
    low, high = BMI_BANDS[classify_bmi(weight, height)]
    assert low <= bmi < high


@pytest.mark.parametrize(
    "weight, height",
    [(0, 170), (-5, 170), (60, 0), (60, -170), ("60", 170), (None, 170), (True, 170),
     (float("nan"), 170), (60, float("inf"))],
)
def test_invalid_measurements_raise(weight, height):
    with pytest.raises(InvalidInput):
        classify_bmi(weight, height)


def test_invalid_input_is_a_value_error():
    with pytest.raises(ValueError):
        classify_bmi(0, 0)


# ---------------------------------------------------------
# Body fat
# ---------------------------------------------------------
@pytest.mark.parametrize(
    "percentage, expected",
    [
        (8, BodyFatCategory.LOW),
        (9.9, BodyFatCategory.LOW),
        (10, BodyFatCategory.NORMAL),
        (20, BodyFatCategory.NORMAL),
        (20.1, BodyFatCategory.HIGH),
        (35, BodyFatCategory.HIGH),
    ],
)
def test_male_body_fat(percentage, expected):
    assert classify_body_fat(percentage, Sex.MALE) == expected


@pytest.mark.parametrize(
    "percentage, expected",
    [
        (8, BodyFatCategory.LOW),
        (19.9, BodyFatCategory.LOW),
        (20, BodyFatCategory.NORMAL),
        (30, BodyFatCategory.NORMAL),
        (30.5, BodyFatCategory.HIGH),
    ],
)
def test_female_body_fat(percentage, expected):
    assert classify_body_fat(percentage, "female") == expected


def test_same_reading_differs_by_sex():
    assert classify_body_fat(15, "male") == BodyFatCategory.NORMAL
    assert classify_body_fat(15, "female") == BodyFatCategory.LOW


@pytest.mark.parametrize("percentage", [0, -3, "12", None, float("nan")])
def test_invalid_body_fat_raises(percentage):
    with pytest.raises(InvalidInput):
        classify_body_fat(percentage, "male")


def test_unknown_sex_raises():
    with pytest.raises(InvalidInput):
        classify_body_fat(15, "other")


# ---------------------------------------------------------
# Resolution
# ---------------------------------------------------------
@pytest.mark.parametrize("bmi, body_fat", all_conditions())
def test_resolution_is_total(bmi, body_fat):
    code = resolve_program(bmi, body_fat)
    assert code in {f"P{i}" for i in range(1, 11)}


@pytest.mark.parametrize("bmi", list(BMICategory))
def test_bmi_only_resolution_is_total(bmi):
    assert resolve_program(bmi) == BMI_ONLY_PROGRAMS[bmi]


def test_ideal_normal_maps_to_its_rule():
    assert resolve_program(BMICategory.IDEAL, BodyFatCategory.NORMAL) == "P2"
    assert not is_fallback(Full(BMICategory.IDEAL, BodyFatCategory.NORMAL))


def test_full_table_mapping():
    assert resolve_program("B1", "L1") == "P1"
    assert resolve_program("B1", "L2") == "P5"
    assert resolve_program("B1", "L3") == "P9"
    assert resolve_program("B2", "L1") == "P6"
    assert resolve_program("B2", "L3") == "P7"
    assert resolve_program("B3", "L1") == "P10"
    assert resolve_program("B3", "L2") == "P8"
    assert resolve_program("B3", "L3") == "P3"
    assert resolve_program("B4", "L3") == "P4"


def test_bmi_only_uses_its_own_table():
    # Underweight alone is P1; Underweight+Normal in the full table is P5
    assert resolve_program(BMICategory.UNDERWEIGHT) == "P1"
    assert resolve(BmiOnly(BMICategory.OVERWEIGHT)) == "P3"
    assert resolve(BmiOnly(BMICategory.OVERWEIGHT)) != resolve_program("B3", "L2")


@pytest.mark.parametrize("body_fat", [BodyFatCategory.LOW, BodyFatCategory.NORMAL])
def test_unmapped_pairs_fall_back_to_default(body_fat):
    condition = Full(BMICategory.OBESE, body_fat)
    assert resolve(condition) == DEFAULT_PROGRAM == "P2"
    assert is_fallback(condition)


def test_bmi_only_is_never_a_fallback():
    assert not is_fallback(BmiOnly(BMICategory.OBESE))


def test_resolution_is_idempotent():
    first = resolve_program("B3", "L2")
    second = resolve_program("B3", "L2")
    assert first == second == "P8"


def test_resolve_uses_given_table():
    table = RuleTable([("B4", "L1", "P4")])
    assert resolve(Full(BMICategory.OBESE, BodyFatCategory.LOW), table) == "P4"
    assert resolve(Full(BMICategory.IDEAL, BodyFatCategory.NORMAL), table) == DEFAULT_PROGRAM


def test_resolve_rejects_unknown_condition():
    with pytest.raises(TypeError):
        resolve(("B1", "L1"))


def test_assess_builds_variants():
    assert assess(60, 170, "male") == BmiOnly(BMICategory.IDEAL)
    assert assess(60, 170, "male", 15) == Full(BMICategory.IDEAL, BodyFatCategory.NORMAL)
    assert assess(60, 170, "female", 15) == Full(BMICategory.IDEAL, BodyFatCategory.LOW)


def test_assess_without_body_fat_ignores_sex():
    assert assess(45, 170, None) == BmiOnly(BMICategory.UNDERWEIGHT)


# ---------------------------------------------------------
# Rule table
# ---------------------------------------------------------
def test_default_table_has_ten_rules_and_two_gaps():
    assert len(DEFAULT_RULE_TABLE) == 10
    assert DEFAULT_RULE_TABLE.missing() == [
        (BMICategory.OBESE, BodyFatCategory.LOW),
        (BMICategory.OBESE, BodyFatCategory.NORMAL),
    ]
    assert ("B2", "L2") in DEFAULT_RULE_TABLE
    assert ("B4", "L1") not in DEFAULT_RULE_TABLE


def test_duplicate_pairs_are_rejected():
    with pytest.raises(InvalidRuleTable, match="duplicate"):
        RuleTable([("B1", "L1", "P1"), (BMICategory.UNDERWEIGHT, "L1", "P5")])


@pytest.mark.parametrize(
    "row", [("B9", "L1", "P1"), ("B1", "L7", "P1"), ("B1", "L1", ""), ("B1", "L1"), None]
)
def test_malformed_rows_are_rejected(row):
    with pytest.raises(InvalidRuleTable):
        RuleTable([row])


def test_require_complete_rejects_gaps():
    with pytest.raises(InvalidRuleTable, match="B4-L1"):
        RuleTable(
            [(b, f, code) for (b, f), code in DEFAULT_RULE_TABLE.items()],
            require_complete=True,
        )


def test_require_complete_accepts_full_table():
    rows = [(b, f, "P2") for b, f in all_conditions()]
    table = RuleTable(rows, require_complete=True)
    assert table.missing() == []
    assert len(table) == 12


def test_table_is_immutable():
    with pytest.raises(AttributeError):
        DEFAULT_RULE_TABLE.extra = 1


def test_program_codes_are_normalised():
    table = RuleTable([("B1", "L1", " p7 ")])
    assert table.lookup("B1", "L1") == "P7"
