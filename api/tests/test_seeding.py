import random
from datetime import date

from realsingles.services.onboarding import age_on, validate_field_value
from realsingles.services.onboarding_steps import get_field
from realsingles.services.seeding import DEMO_PRODUCTS, build_seed_profile

TODAY = date(2026, 1, 1)


def test_seed_profiles_are_deterministic_and_adult():
    first = [build_seed_profile(i, random.Random(7), TODAY) for i in range(10)]
    second = [build_seed_profile(i, random.Random(7), TODAY) for i in range(10)]
    assert first == second
    for profile in first:
        assert age_on(profile["date_of_birth"], TODAY) >= 18
        assert profile["gender"] in {"male", "female"}
        assert profile["looking_for"]


def test_seed_profiles_alternate_gender_for_a_matchable_pool():
    rng = random.Random(1)
    genders = [build_seed_profile(i, rng, TODAY)["gender"] for i in range(4)]
    assert genders == ["female", "male", "female", "male"]


def test_demo_products_include_unlimited_stock_item():
    assert any(p["stock_quantity"] is None for p in DEMO_PRODUCTS)
    assert all(p["points_cost"] > 0 for p in DEMO_PRODUCTS)


def test_seed_profiles_pass_onboarding_field_validation():
    rng = random.Random(42)
    for idx in range(40):
        profile = build_seed_profile(idx, rng, TODAY)
        for column, value in profile.items():
            field = get_field(column)
            if field is None:
                continue
            assert validate_field_value(field, value, TODAY) is not None, column
