import argparse
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from realsingles.database import SessionLocal
from realsingles.services.seeding import seed_dummy_data


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed demo RealSingles members and shop products")
    parser.add_argument("--n-users", type=int, default=40)
    parser.add_argument("--reset", action="store_true")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--password", type=str, default="realsingles123")
    args = parser.parse_args()

    with SessionLocal() as db:
        summary = seed_dummy_data(
            db=db,
            n_users=args.n_users,
            reset=args.reset,
            seed=args.seed,
            password=args.password,
        )

    print("Seed completed")
    for k, v in summary.items():
        print(f"- {k}: {v}")


if __name__ == "__main__":
    main()
