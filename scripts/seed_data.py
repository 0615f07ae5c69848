"""
Seed Data Script - Loads the sample role directory into MongoDB
Run: python -m scripts.seed_data
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from infoflow.repositories.mongo_client import create_indexes
from infoflow.repositories.user_repo import MongoUserRepository
from infoflow.repositories.seed import sample_principals


def seed_directory():
    """Upsert one principal per tier for the sample state"""
    repo = MongoUserRepository()
    for principal in sample_principals():
        repo.upsert_user(principal)
        roles = ", ".join(
            f"{a.role.value}" + (f" ({a.state}/{a.division})" if a.division else f" ({a.state})" if a.state else "")
            for a in principal.roles
        )
        print(f"Upserted {principal.user_id}: {roles}")


def main():
    print("=== Seeding directory ===")
    print("-" * 40)

    create_indexes()
    seed_directory()

    print("-" * 40)
    print("Done!")


if __name__ == "__main__":
    main()
