import json
import random
import uuid
from datetime import date, timedelta
from typing import Any

from sqlalchemy import text

from realsingles.auth.security import hash_password
from realsingles.services.onboarding import zodiac_sign_for
from realsingles.services.onboarding_steps import INTEREST_OPTIONS

SEED_EMAIL_DOMAIN = "seed.realsingles.test"
SEED_SIGNUP_POINTS = 500

FIRST_NAMES = [
    "Ava", "Maya", "Zoe", "Nia", "Leah", "Iris", "Sofia", "Chloe", "Jade", "Ruby",
    "Liam", "Noah", "Eli", "Omar", "Jonah", "Theo", "Marcus", "Kai", "Felix", "Andre",
]
CITIES = [
    ("New York", 40.7128, -74.0060),
    ("Brooklyn", 40.6782, -73.9442),
    ("Jersey City", 40.7178, -74.0431),
    ("Atlanta", 33.7490, -84.3880),
    ("Chicago", 41.8781, -87.6298),
]
BIOS = [
    "Sunday brunch enthusiast and weekday runner.",
    "Looking for someone to try every taco spot with.",
    "Family first. Big laugh. Bigger heart.",
    "Museum dates and late-night diners.",
]

DEMO_PRODUCTS = [
    {"name": "RealSingles Mug", "description": "Ceramic 12oz mug", "points_cost": 200, "stock_quantity": 50},
    {"name": "Date Night Gift Card", "description": "$25 restaurant gift card", "points_cost": 1000, "stock_quantity": 20},
    {"name": "Profile Boost", "description": "Top of discovery for 24 hours", "points_cost": 150, "stock_quantity": None},
]

# gender -> possible looking_for sets
SEEKING_PROFILES: dict[str, list[list[str]]] = {
    "female": [["male"], ["male"], ["female"], ["male", "female"]],
    "male": [["female"], ["female"], ["male"], ["female", "male"]],
}


def _seed_email(idx: int) -> str:
    return f"user{idx:03d}@{SEED_EMAIL_DOMAIN}"


def _random_dob(rng: random.Random, today: date) -> date:
    return today - timedelta(days=rng.randint(22 * 365, 45 * 365))


def _reset_seeded_users(db) -> int:
    result = db.execute(
        text("DELETE FROM user_account WHERE email LIKE :pattern"),
        {"pattern": f"%@{SEED_EMAIL_DOMAIN}"},
    )
    return int(result.rowcount or 0)


def _upsert_seed_user(db, *, email: str, password: str, display_name: str, points: int) -> str:
    row = db.execute(
        text(
            """
            INSERT INTO user_account (email, password_hash, display_name, points_balance, last_active_at)
            VALUES (:email, :password_hash, :display_name, :points, NOW())
            ON CONFLICT (email)
            DO UPDATE SET
              password_hash = EXCLUDED.password_hash,
              display_name = EXCLUDED.display_name,
              status = 'active'
            RETURNING id::text AS id, (xmax = 0) AS inserted
            """
        ),
        {"email": email, "password_hash": hash_password(password), "display_name": display_name, "points": points},
    ).mappings().first()
    user_id = str(row["id"])
    if row["inserted"] and points:
        db.execute(
            text(
                """
                INSERT INTO point_transaction (user_id, amount, balance_after, transaction_type, description)
                VALUES (CAST(:user_id AS uuid), :amount, :amount, 'signup_bonus', 'Seed signup bonus')
                """
            ),
            {"user_id": user_id, "amount": points},
        )
    return user_id


def _upsert_seed_profile(db, user_id: str, profile: dict[str, Any]) -> None:
    db.execute(
        text(
            """
            INSERT INTO profile (
              user_id, display_name, date_of_birth, zodiac_sign, gender, looking_for,
              profile_image_url, bio, city, country, latitude, longitude, height_inches,
              interests, can_start_matching, profile_completion_step, updated_at
            )
            VALUES (
              CAST(:user_id AS uuid), :display_name, :date_of_birth, :zodiac_sign, :gender,
              CAST(:looking_for AS jsonb), :profile_image_url, :bio, :city, 'US', :latitude,
              :longitude, :height_inches, CAST(:interests AS jsonb), TRUE, :step, NOW()
            )
            ON CONFLICT (user_id)
            DO UPDATE SET
              display_name = EXCLUDED.display_name,
              date_of_birth = EXCLUDED.date_of_birth,
              zodiac_sign = EXCLUDED.zodiac_sign,
              gender = EXCLUDED.gender,
              looking_for = EXCLUDED.looking_for,
              profile_image_url = EXCLUDED.profile_image_url,
              bio = EXCLUDED.bio,
              city = EXCLUDED.city,
              latitude = EXCLUDED.latitude,
              longitude = EXCLUDED.longitude,
              height_inches = EXCLUDED.height_inches,
              interests = EXCLUDED.interests,
              can_start_matching = TRUE,
              updated_at = NOW()
            """
        ),
        {
            **profile,
            "user_id": user_id,
            "looking_for": json.dumps(profile["looking_for"]),
            "interests": json.dumps(profile["interests"]),
        },
    )
    db.execute(text("DELETE FROM user_gallery WHERE user_id = CAST(:user_id AS uuid)"), {"user_id": user_id})
    db.execute(
        text(
            """
            INSERT INTO user_gallery (user_id, media_url, media_type, is_primary, display_order)
            VALUES (CAST(:user_id AS uuid), :url, 'image', TRUE, 0)
            """
        ),
        {"user_id": user_id, "url": profile["profile_image_url"]},
    )


def _seed_products(db) -> int:
    created = 0
    for product in DEMO_PRODUCTS:
        exists = db.execute(text("SELECT 1 FROM product WHERE name = :name"), {"name": product["name"]}).first()
        if exists:
            continue
        db.execute(
            text(
                """
                INSERT INTO product (name, description, points_cost, stock_quantity)
                VALUES (:name, :description, :points_cost, :stock_quantity)
                """
            ),
            product,
        )
        created += 1
    return created


def build_seed_profile(idx: int, rng: random.Random, today: date) -> dict[str, Any]:
    """Deterministic demo profile for seed index ``idx``; every profile is discoverable."""
    gender = "female" if idx % 2 == 0 else "male"
    city, lat, lon = CITIES[idx % len(CITIES)]
    dob = _random_dob(rng, today)
    return {
        "display_name": f"{FIRST_NAMES[idx % len(FIRST_NAMES)]} {chr(65 + idx % 26)}.",
        "date_of_birth": dob,
        "zodiac_sign": zodiac_sign_for(dob),
        "gender": gender,
        "looking_for": rng.choice(SEEKING_PROFILES[gender]),
        "profile_image_url": f"https://picsum.photos/seed/{uuid.UUID(int=idx)}/600/800",
        "bio": rng.choice(BIOS),
        "city": city,
        # jitter within a few miles so distance sorting has something to do
        "latitude": round(lat + rng.uniform(-0.05, 0.05), 5),
        "longitude": round(lon + rng.uniform(-0.05, 0.05), 5),
        "height_inches": rng.randint(60, 76),
        "interests": rng.sample(INTEREST_OPTIONS, k=3),
        "step": 37,
    }


def seed_dummy_data(
    db,
    n_users: int = 40,
    reset: bool = False,
    seed: int = 42,
    password: str = "realsingles123",
    today: date | None = None,
) -> dict[str, Any]:
    rng = random.Random(seed)
    today = today or date.today()

    removed = 0
    if reset:
        removed = _reset_seeded_users(db)
        db.commit()

    user_ids: list[str] = []
    for idx in range(n_users):
        profile = build_seed_profile(idx, rng, today)
        user_id = _upsert_seed_user(
            db,
            email=_seed_email(idx),
            password=password,
            display_name=profile["display_name"],
            points=SEED_SIGNUP_POINTS,
        )
        _upsert_seed_profile(db, user_id, profile)
        user_ids.append(user_id)

    products = _seed_products(db)
    db.commit()
    return {
        "users_seeded": len(user_ids),
        "users_removed": removed,
        "products_created": products,
        "login_example": _seed_email(0) if user_ids else None,
    }
