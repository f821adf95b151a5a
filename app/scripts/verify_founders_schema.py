"""
Verify Founders Schema Script
Checks that the live Supabase project matches what the provisioning code
expects: founders columns, no legacy duplicate columns, anonymous access
denied outright, stored profile_progress matching its formula, and the
avatar bucket present under its configured name.
Can be run manually or as part of a deploy check.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from app.config import settings
from app.core.errors import HiveError
from app.database.supabase_client import create_service_supabase, create_supabase
from app.modules.founders.models import FOUNDER_COLUMNS, FOUNDERS_TABLE, LEGACY_COLUMNS
from app.modules.founders.service import compute_profile_progress
from app.modules.founders.storage import AvatarStorage
from postgrest.exceptions import APIError
from supabase import Client
from typing import List
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def check_columns(supabase: Client) -> List[str]:
    """Every expected column must be selectable"""
    logger.info("Checking founders columns...")
    try:
        supabase.table(FOUNDERS_TABLE).select(",".join(FOUNDER_COLUMNS)).limit(1).execute()
    except APIError as e:
        return [f"founders columns do not match: {e.message}"]
    return []


def check_legacy_columns(supabase: Client) -> List[str]:
    """Legacy columns must be gone; selecting them has to fail"""
    logger.info("Checking for legacy columns...")
    problems = []
    for column in LEGACY_COLUMNS:
        try:
            supabase.table(FOUNDERS_TABLE).select(column).limit(1).execute()
        except APIError:
            logger.debug(f"Legacy column {column} absent")
            continue
        problems.append(f"legacy column founders.{column} still exists")
    return problems


def check_anonymous_denied(anon: Client) -> List[str]:
    """Anonymous reads must be an explicit denial, not an empty list"""
    logger.info("Checking anonymous access...")
    try:
        result = anon.table(FOUNDERS_TABLE).select("id").limit(1).execute()
    except APIError as e:
        if str(e.code) == "42501":
            return []
        return [f"anonymous read failed with unexpected error {e.code}: {e.message}"]
    return [f"anonymous read was allowed and returned {len(result.data or [])} row(s)"]


def check_profile_progress(supabase: Client, sample: int = 50) -> List[str]:
    """Stored progress must match the formula; a mismatch means the write trigger is missing"""
    logger.info("Checking profile_progress on recent rows...")
    try:
        result = supabase.table(FOUNDERS_TABLE).select("*").order("created_at", desc=True).limit(sample).execute()
    except APIError as e:
        return [f"could not read founders: {e.message}"]
    problems = []
    for row in result.data or []:
        expected = compute_profile_progress(row)
        if row.get("profile_progress") != expected:
            problems.append(
                f"founder {row['id']} has profile_progress {row.get('profile_progress')}, expected {expected}"
            )
    return problems


def check_avatar_bucket(supabase: Client) -> List[str]:
    logger.info(f"Checking avatar bucket '{settings.avatar_bucket}'...")
    try:
        AvatarStorage(supabase).verify_bucket(force=True)
    except HiveError as e:
        return [e.message]
    return []


def verify(service: Client, anon: Client) -> List[str]:
    problems = []
    problems += check_columns(service)
    problems += check_legacy_columns(service)
    problems += check_anonymous_denied(anon)
    problems += check_profile_progress(service)
    problems += check_avatar_bucket(service)
    return problems


def main():
    """Main verification function"""
    logger.info("Starting founders schema verification...")
    problems = verify(create_service_supabase(), create_supabase())
    for problem in problems:
        logger.error(problem)
    if problems:
        logger.error(f"Verification failed: {len(problems)} problem(s)")
        return 1
    logger.info("Founders schema verified")
    return 0


if __name__ == "__main__":
    sys.exit(main())
