from categories import (
    BMICategory,
    BodyFatCategory,
    NOT_MEASURED,
    all_conditions,
    bmi_display,
    bmi_range,
    body_fat_display,
    body_fat_ranges,
    condition_key,
    condition_label,
)


def test_bmi_display_accepts_codes_and_enums():
    assert bmi_display("B1") == "Underweight"
    assert bmi_display(BMICategory.OBESE) == "Obese"
    assert bmi_display("B9") == "Unknown"
    assert bmi_display(None) == "Unknown"


def test_body_fat_display():
    assert body_fat_display("L1") == "Low"
    assert body_fat_display(BodyFatCategory.HIGH) == "High"
    assert body_fat_display(None) == NOT_MEASURED


def test_condition_key_and_label():
    assert condition_key("B2", BodyFatCategory.NORMAL) == "B2-L2"
    assert condition_label(BMICategory.OVERWEIGHT, "L3") == "Overweight + High"


def test_all_conditions_is_the_full_cross_product():
    pairs = all_conditions()
    assert len(pairs) == 12
    assert len(set(pairs)) == 12
    assert pairs[0] == (BMICategory.UNDERWEIGHT, BodyFatCategory.LOW)
    assert pairs[-1] == (BMICategory.OBESE, BodyFatCategory.HIGH)


def test_ranges():
    assert bmi_range("B2") == "18.5-24.9"
    assert bmi_range(BMICategory.OBESE) == ">=30"
    assert body_fat_ranges("L2") == {"male": "10-20%", "female": "20-30%"}
    assert body_fat_ranges(BodyFatCategory.LOW) == {"male": "<10%", "female": "<20%"}
