#!/usr/bin/env python3
"""
Bootstrap script: create tables and register an operator, a provider and a patient.

Usage: python seed_directory.py [provider_fee_minor_units]
"""
import os
import sys

from sqlmodel import Session

from consult_booking.core.config import settings
from consult_booking.database import engine, create_db_and_tables
from consult_booking.application.ports.principal_repo import Role
from consult_booking.application.services.directory_service import PrincipalDirectory
from consult_booking.infrastructure.persistence.sqlalchemy.repositories.calendar_repository_sql import SqlCalendarRepository
from consult_booking.infrastructure.persistence.sqlalchemy.repositories.principal_repository_sql import SqlPrincipalRepository


def seed(fee: int):
    print(f"Creating tables on {settings.DATABASE_URL}...")
    create_db_and_tables()

    password = os.environ.get("SEED_PASSWORD", "change-me")
    with Session(engine) as session:
        directory = PrincipalDirectory(SqlPrincipalRepository(session), SqlCalendarRepository(session))
        try:
            operator = directory.register_principal("operator@example.com", password, Role.OPERATOR, "Front Desk")
            provider = directory.register_provider("provider@example.com", password, "Dr. Example", fee, settings.CURRENCY, "General Medicine")
            patient = directory.register_principal("patient@example.com", password, Role.PATIENT, "Example Patient")
        except Exception as e:
            if "unique" in str(e).lower():
                print("✓ Seed principals already exist")
                return
            raise

    print(f"✓ operator {operator.id}")
    print(f"✓ provider {provider.id} (fee {provider.fee_per_slot} {provider.currency})")
    print(f"✓ patient  {patient.id}")


if __name__ == "__main__":
    fee_arg = int(sys.argv[1]) if len(sys.argv) > 1 else 500
    try:
        seed(fee_arg)
    except Exception as e:
        print(f"❌ Seeding failed: {e}")
        sys.exit(1)
    print("✅ Seeding completed!")
