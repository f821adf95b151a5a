from supabase import Client
from postgrest.exceptions import APIError
from app.config import settings
from app.core.errors import ConflictError, StoreError, ValidationError, translate_store_error
from app.core.retry import retry_read
from app.modules.auth.schemas import Identity
from app.modules.founders.models import (
    ADOPT_ORPHAN_FUNCTION, DISCOVERABILITY_COLUMN, EMAIL_UNIQUE_CONSTRAINT,
    FIELD_COLUMNS, FOUNDERS_TABLE, PROGRESS_COLUMNS
)
from app.modules.founders.policy import Operation, authorize, require_authenticated
from app.modules.founders.schemas import (
    FetchResult, FounderFilters, FounderProfile, FounderUpdate,
    OnboardingData, ProvisionFields
)
from app.modules.founders.storage import AvatarStorage
from email_validator import EmailNotValidError, validate_email
from typing import Any, Callable, Dict, List, Optional
import httpx
import logging
import re
import time
import uuid

logger = logging.getLogger(__name__)

_SEARCH_UNSAFE = re.compile(r"[,()%*\\]")


def validate_identity_id(identity_id: Any) -> str:
    """Return the canonical form of an identity-service UUID or raise ValidationError."""
    if not isinstance(identity_id, str) or not identity_id.strip():
        raise ValidationError("identity_id is required")
    try:
        return str(uuid.UUID(identity_id.strip()))
    except ValueError:
        raise ValidationError(f"identity_id is not a valid identity id: {identity_id!r}")


def normalize_email(email: Any) -> str:
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("email is required")
    email = email.strip().lower()
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"email is not valid: {e}")
    return email


def compute_profile_progress(row: Dict[str, Any]) -> int:
    """
    Percent of profile columns filled in; 100 once onboarding is complete.

    The stored value is written by the founders_profile_progress() SQL
    function on every insert and update. This is the same formula, used to
    check stored rows against it.
    """
    if row.get("onboarding_completed"):
        return 100
    filled = sum(1 for column in PROGRESS_COLUMNS if row.get(column) not in (None, "", []))
    return round(100 * filled / len(PROGRESS_COLUMNS))


def _columns_from(fields: Optional[FounderUpdate]) -> Dict[str, Any]:
    """Non-null option values keyed by column name."""
    data: Dict[str, Any] = {}
    if fields is None:
        return data
    for name, column in FIELD_COLUMNS.items():
        value = getattr(fields, name)
        if value is not None:
            data[column] = value
    return data


class FounderService:
    def __init__(
        self,
        supabase: Client,
        actor: Optional[Identity] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.supabase = supabase
        self.actor_id = actor.id if actor else None
        self.sleep = sleep

    def _table(self):
        return self.supabase.table(FOUNDERS_TABLE)

    def _execute(self, query):
        try:
            return query.execute()
        except (APIError, httpx.TransportError) as e:
            raise translate_store_error(e) from e

    def _select_one(self, column: str, value: Any) -> Optional[Dict[str, Any]]:
        # limit(1) instead of single(): zero rows is a normal outcome, not an error
        result = self._execute(self._table().select("*").eq(column, value).limit(1))
        return result.data[0] if result.data else None

    def _upsert(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        result = self._execute(self._table().upsert(payload, on_conflict="id"))
        if not result.data:
            raise StoreError(f"Upsert of founder {payload['id']} returned no row")
        return result.data[0]

    def _update(self, founder_id: str, data: Dict[str, Any]) -> Optional[FounderProfile]:
        # profile_progress and updated_at are set by the founders_before_write trigger
        result = self._execute(self._table().update(data).eq("id", founder_id))
        if not result.data:
            return None
        return FounderProfile(**result.data[0])

    # Provisioning

    def _provision_payload(self, identity_id: str, email: str, fields: ProvisionFields) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": identity_id, "email": email}
        payload.update(_columns_from(fields))
        if fields.onboarding_completed:
            payload["onboarding_completed"] = True
        return payload

    def _adopt_orphan(self, email: str) -> Optional[Dict[str, Any]]:
        """Re-key an orphaned row holding `email` to the caller. Runs server-side."""
        try:
            result = self._execute(self.supabase.rpc(ADOPT_ORPHAN_FUNCTION, {"p_email": email}))
        except ConflictError as e:
            raise ConflictError(
                f"Email {email} already belongs to another identity's founder profile",
                constraint=e.constraint or EMAIL_UNIQUE_CONSTRAINT,
                code=e.code,
            ) from e
        data = result.data
        if isinstance(data, list):
            data = data[0] if data else None
        if not data or not data.get("id"):
            return None
        return data

    def provision(
        self,
        identity_id: str,
        email: str,
        initial_fields: Optional[ProvisionFields] = None,
    ) -> FounderProfile:
        """
        Create or merge the founder profile for an identity.

        Idempotent: the row is keyed on the identity id and written with
        `on conflict (id) do update`, so repeating the call (e.g. after a
        timeout) merges instead of failing. If the email is held by an
        orphaned row from an older identity, that row is adopted and
        re-keyed before the merge.
        """
        identity_id = validate_identity_id(identity_id)
        email = normalize_email(email)
        fields = initial_fields or ProvisionFields()
        authorize(Operation.INSERT, self.actor_id, {"id": identity_id})

        payload = self._provision_payload(identity_id, email, fields)
        try:
            row = self._upsert(payload)
            logger.info("Provisioned founder %s", identity_id)
        except ConflictError as e:
            if e.constraint not in (None, EMAIL_UNIQUE_CONSTRAINT):
                raise
            logger.info("Email for founder %s held by an orphaned row, adopting", identity_id)
            adopted = self._adopt_orphan(email)
            row = self._upsert(payload)
            logger.info(
                "Provisioned founder %s (%s)", identity_id, "adopted orphan" if adopted else "retried"
            )
        return FounderProfile(**row)

    # Reads

    def get_profile(self, founder_id: str) -> Optional[FounderProfile]:
        """Single read. None when no visible row matches."""
        founder_id = validate_identity_id(founder_id)
        require_authenticated(self.actor_id, Operation.SELECT)
        row = self._select_one("id", founder_id)
        return FounderProfile(**row) if row else None

    def fetch_profile(
        self,
        identity_id: str,
        max_attempts: Optional[int] = None,
        backoff: Optional[float] = None,
    ) -> FetchResult:
        """Read a profile that may have just been written, retrying with bounded backoff."""
        identity_id = validate_identity_id(identity_id)
        require_authenticated(self.actor_id, Operation.SELECT)
        outcome = retry_read(
            lambda: self.get_profile(identity_id),
            max_attempts=settings.fetch_max_attempts if max_attempts is None else max_attempts,
            backoff=settings.fetch_backoff_seconds if backoff is None else backoff,
            exponential=settings.fetch_backoff_exponential,
            sleep=self.sleep,
            label=f"fetch founder {identity_id}",
        )
        return FetchResult(
            profile=outcome.value,
            attempts=outcome.attempts,
            retry_exhausted=outcome.retry_exhausted,
        )

    def list_founders(self, filters: Optional[FounderFilters] = None) -> List[FounderProfile]:
        """Discoverable founders who finished onboarding."""
        filters = filters or FounderFilters()
        require_authenticated(self.actor_id, Operation.SELECT)
        query = self._table()\
            .select("*")\
            .eq(DISCOVERABILITY_COLUMN, True)\
            .eq("onboarding_completed", True)
        if filters.industry:
            query = query.eq("industry", filters.industry)
        if filters.location_city:
            query = query.eq("location_city", filters.location_city)
        if filters.role:
            query = query.eq("role", filters.role)
        if filters.search:
            term = _SEARCH_UNSAFE.sub(" ", filters.search).strip()
            if term:
                query = query.or_(
                    f"full_name.ilike.%{term}%,company_name.ilike.%{term}%,bio.ilike.%{term}%"
                )
        result = self._execute(
            query.order("created_at", desc=True).limit(filters.limit).offset(filters.offset)
        )
        return [FounderProfile(**row) for row in result.data or []]

    # Owner mutations

    def update_profile(self, founder_id: str, updates: FounderUpdate) -> Optional[FounderProfile]:
        founder_id = validate_identity_id(founder_id)
        authorize(Operation.UPDATE, self.actor_id, {"id": founder_id})
        return self._update(founder_id, _columns_from(updates))

    def set_discoverability(self, founder_id: str, visible: bool) -> Optional[FounderProfile]:
        founder_id = validate_identity_id(founder_id)
        authorize(Operation.UPDATE, self.actor_id, {"id": founder_id})
        return self._update(founder_id, {DISCOVERABILITY_COLUMN: bool(visible)})

    def complete_onboarding(
        self,
        founder_id: str,
        onboarding_data: Optional[OnboardingData] = None,
    ) -> Optional[FounderProfile]:
        founder_id = validate_identity_id(founder_id)
        authorize(Operation.UPDATE, self.actor_id, {"id": founder_id})
        data = _columns_from(onboarding_data)
        data["onboarding_completed"] = True
        profile = self._update(founder_id, data)
        if profile:
            logger.info("Founder %s completed onboarding", founder_id)
        return profile

    def upload_avatar(
        self,
        founder_id: str,
        content: bytes,
        content_type: str,
        storage: AvatarStorage,
    ) -> Optional[FounderProfile]:
        founder_id = validate_identity_id(founder_id)
        authorize(Operation.UPDATE, self.actor_id, {"id": founder_id})
        url = storage.upload_avatar(founder_id, content, content_type)
        return self._update(founder_id, {"profile_photo_url": url})

    def delete_profile(self, founder_id: str) -> bool:
        founder_id = validate_identity_id(founder_id)
        authorize(Operation.DELETE, self.actor_id, {"id": founder_id})
        result = self._execute(self._table().delete().eq("id", founder_id))
        return bool(result.data)
