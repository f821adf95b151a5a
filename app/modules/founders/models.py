# Supabase table: founders
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py
# Table, policies and helper functions are declared in
# app/database/migrations/001_founders.sql

"""
Expected Supabase table structure:

founders:
- id: uuid (primary key, references auth.users.id) - the identity id itself, no separate user_id column
- email: text (unique, not null) - lowercased copy of auth.users.email at creation
- full_name: text (nullable)
- company_name: text (nullable)
- role: text (nullable)
- industry: text (nullable)
- bio: text (nullable)
- tags_or_interests: text[] (nullable, ordered)
- location_city: text (nullable)
- linkedin_url: text (nullable)
- profile_photo_url: text (nullable) - public URL in the avatar bucket
- profile_visible: boolean (not null, default: true) - the only discoverability column
- onboarding_completed: boolean (not null, default: false) - never reset once true
- profile_progress: integer (not null, default: 0) - 0..100
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""

FOUNDERS_TABLE = "founders"

DISCOVERABILITY_COLUMN = "profile_visible"

# Columns from earlier schema iterations; must not coexist with the above
LEGACY_COLUMNS = ("is_visible", "user_id")

FOUNDER_COLUMNS = (
    "id",
    "email",
    "full_name",
    "company_name",
    "role",
    "industry",
    "bio",
    "tags_or_interests",
    "location_city",
    "linkedin_url",
    "profile_photo_url",
    DISCOVERABILITY_COLUMN,
    "onboarding_completed",
    "profile_progress",
    "created_at",
    "updated_at",
)

# Provisioning option name -> column
FIELD_COLUMNS = {
    "full_name": "full_name",
    "company_name": "company_name",
    "role": "role",
    "industry": "industry",
    "location": "location_city",
    "bio": "bio",
    "tags": "tags_or_interests",
    "linkedin_url": "linkedin_url",
    "discoverability": DISCOVERABILITY_COLUMN,
}

# Columns counted towards profile_progress
PROGRESS_COLUMNS = (
    "full_name",
    "company_name",
    "role",
    "industry",
    "location_city",
    "bio",
    "tags_or_interests",
    "linkedin_url",
    "profile_photo_url",
)

EMAIL_UNIQUE_CONSTRAINT = "founders_email_key"

ADOPT_ORPHAN_FUNCTION = "adopt_orphan_founder"
