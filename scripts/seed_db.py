"""
Database Seeding Script.

Creates a handful of sample directory entries (one per role family) for
local testing. Entries go through the normal lifecycle, so accounts,
profiles and satellite rows are provisioned exactly as the admin API
would. Entries that already exist are skipped.

Usage:
    SEED_PASSWORD=... python scripts/seed_db.py
"""

import asyncio
import os
import secrets
import sys

# Add project root to path so we can import directory_service
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from directory_service.exceptions import ConflictError, DirectoryError
from directory_service.logging_config import setup_logging, get_logger
from directory_service.schemas.directory_entry import DirectoryEntryCreate
from directory_service.services.entry_lifecycle import get_entry_lifecycle

setup_logging()
logger = get_logger(__name__)

SAMPLE_ENTRIES = [
    {
        "role": "medecin",
        "name": "Dr. Amina Belkacem",
        "email": "amina.belkacem@example.dz",
        "phone": "+213550101010",
        "region": "Alger",
        "sub_region": "Hydra",
        "bio": "Oncologue médicale, consultations sur rendez-vous.",
        "role_data": {
            "specialization": "Oncologie médicale",
            "licenseNumber": "MED-16-0421",
            "yearsOfExperience": "12",
            "languagesSpoken": "Français, Arabe",
            "acceptsNewPatients": "oui",
        },
    },
    {
        "role": "centre_cancer",
        "name": "Centre Pierre et Marie Curie",
        "email": "contact@cpmc.example.dz",
        "phone": "+213550202020",
        "region": "Alger",
        "sub_region": "Sidi M'Hamed",
        "role_data": {
            "centerName": "Centre Pierre et Marie Curie",
            "registrationNumber": "CC-16-0007",
            "address": "Place du 1er Mai, Alger",
            "services": ["Radiothérapie", "Chimiothérapie"],
            "bedCapacity": 180,
        },
    },
    {
        "role": "pharmacie",
        "name": "Pharmacie El Amel",
        "email": "elamel@example.dz",
        "phone": "+213550303030",
        "region": "Oran",
        "sub_region": "Bir El Djir",
        "role_data": {
            "pharmacyName": "Pharmacie El Amel",
            "licenseNumber": "PH-31-1180",
            "address": "Cité USTO, Oran",
            "is24Hours": "true",
            "servicesOffered": "Préparations magistrales\nLivraison",
        },
    },
    {
        "role": "association",
        "name": "Association Nour",
        "email": "bonjour@nour.example.dz",
        "phone": "+213550404040",
        "region": "Constantine",
        "sub_region": "El Khroub",
        "role_data": {
            "associationName": "Association Nour",
            "registrationNumber": "ASSO-25-033",
            "address": "Rue des Frères Bouchama, El Khroub",
            "focusAreas": "Accompagnement, Hébergement",
            "website": "https://nour.example.dz",
        },
    },
]


async def seed():
    lifecycle = get_entry_lifecycle()
    password = os.environ.get("SEED_PASSWORD") or secrets.token_urlsafe(12)

    logger.info("seeding_started", entries=len(SAMPLE_ENTRIES))

    for sample in SAMPLE_ENTRIES:
        payload = DirectoryEntryCreate.model_validate({**sample, "password": password})
        try:
            result = await lifecycle.create_entry(payload)
        except ConflictError:
            logger.info("seed_entry_skipped", name=sample["name"], role=sample["role"])
            continue
        except DirectoryError as e:
            logger.error("seed_entry_failed", name=sample["name"], error_code=e.error_code, message=e.message)
            continue

        logger.info("seed_entry_created", name=sample["name"], entry_id=result.data.id)

    logger.info("seeding_complete")


if __name__ == "__main__":
    asyncio.run(seed())
