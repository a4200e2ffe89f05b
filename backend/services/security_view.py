"""
Account-security panel — 2FA flag, signed-in sessions, password changes
and session expiry.

The profile row's updated_at is the change marker: each newer updated_at
is one security change. A flipped 2FA flag is reported as such; any other
newer change counts as a password change and raises a warning.

Once the channel is open the current session is validated: no session is
an error notification, one expiring within the warning window a warning.
"""
import logging
import math
from datetime import datetime
from typing import Optional

from config import settings
from domain import fallback_data
from domain.constants import PROFILES_TABLE, SESSIONS_TABLE
from domain.enums import EventKind
from domain.view_models import SecurityProfile
from exceptions import StoreError
from services.fallback import Dataset
from services.lifecycle import LiveView
from services.row_store import RowFilter
from services.snapshot_loader import SnapshotQuery
from services.subscriber import Inserted
from services.transition_tracker import StatusTracker
from services.view_mapper import map_session, parse_timestamp

logger = logging.getLogger(__name__)


def newer_change(previous: datetime, current: datetime) -> bool:
    return current > previous


class SecurityView(LiveView):
    kind = "security"

    def __init__(self, store, warning_minutes: int | None = None, **kwargs):
        self.warning_minutes = (
            settings.session_expiry_warning_minutes if warning_minutes is None else warning_minutes
        )
        self.tracker = StatusTracker(newer_change, name="security")
        self.two_factor_enabled = False
        self.password_last_changed: Optional[datetime] = None
        self.password_change_count = 0
        self.session_rows: list[dict] = []
        self.session_expires_at: Optional[datetime] = None
        super().__init__(store, **kwargs)

    def snapshot_queries(self, identity: str) -> list[SnapshotQuery]:
        mine = {"user_id": identity}
        return [
            SnapshotQuery("profile", PROFILES_TABLE, RowFilter(eq=mine, limit=1), seed_tracker=False),
            SnapshotQuery("sessions", SESSIONS_TABLE, RowFilter(eq=mine, order_by="created_at"),
                          seed_tracker=False),
        ]

    def channels(self, identity: str):
        return [
            (self.scope(PROFILES_TABLE, "profile"), (EventKind.UPDATE,),
             RowFilter(eq={"user_id": identity})),
        ]

    def fallback_dataset(self) -> Optional[Dataset]:
        return {"profile": [], "sessions": fallback_data.security_sessions(self.now())}

    def reset_state(self) -> None:
        self.tracker.reset()
        self.two_factor_enabled = False
        self.password_last_changed = None
        self.password_change_count = 0
        self.session_rows = []
        self.session_expires_at = None

    def apply_dataset(self, dataset: Dataset) -> None:
        profiles = dataset.get("profile", [])
        self.session_rows = list(dataset.get("sessions", []))
        if not self.session_rows and self.fallback.enabled:
            self.session_rows = fallback_data.security_sessions(self.now())
        if profiles:
            profile = profiles[0]
            self.two_factor_enabled = bool(profile.get("two_factor_enabled"))
            self.password_last_changed = parse_timestamp(profile.get("updated_at"))
            if profile.get("id") is not None and self.password_last_changed is not None:
                self.tracker.seed(profile["id"], self.password_last_changed)
        else:
            self.two_factor_enabled = False
            self.password_last_changed = None
        self.recomputed()

    def handle_event(self, event) -> None:
        row = event.row if isinstance(event, Inserted) else event.new_row
        if row.get("id") is None:
            return
        updated_at = parse_timestamp(row.get("updated_at"))
        if updated_at is None:
            return
        transition = self.tracker.observe(str(row["id"]), updated_at)
        if transition is None:
            return

        two_factor = bool(row.get("two_factor_enabled"))
        went_live = self.go_live()
        if went_live or transition.is_first_sighting:
            # No live baseline yet: the row is taken as-is
            self.two_factor_enabled = two_factor
            self.password_last_changed = updated_at
        elif two_factor != self.two_factor_enabled:
            self.two_factor_enabled = two_factor
            self.dispatcher.two_factor_changed(two_factor)
        else:
            self.password_change_count += 1
            self.password_last_changed = updated_at
            self.dispatcher.security_updated()
        self.recomputed()

    async def after_subscribe(self) -> None:
        try:
            expires_at = await self.store.get_session_expiry(self.identity)
        except StoreError as e:
            logger.warning(f"[security] session lookup failed for {self.identity}: {e}")
            return
        self.session_expires_at = parse_timestamp(expires_at)
        if self.session_expires_at is None:
            self.dispatcher.session_invalid()
            return
        minutes_left = math.floor((self.session_expires_at - self.now()).total_seconds() / 60)
        if 0 < minutes_left < self.warning_minutes:
            self.dispatcher.session_expiring(minutes_left)

    def profile(self) -> SecurityProfile:
        now = self.now()
        return SecurityProfile(
            two_factor_enabled=self.two_factor_enabled,
            sessions=tuple(map_session(r, now) for r in self.session_rows),
            password_last_changed=self.password_last_changed,
            password_change_count=self.password_change_count,
        )

    def render(self) -> dict:
        return {
            "profile": self.profile(),
            "session_expires_at": self.session_expires_at,
        }
