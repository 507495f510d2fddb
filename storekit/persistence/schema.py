"""
Table Schemas

Row shapes of the marketing/CRM tables. The cache treats rows as opaque
mappings; these models are only applied at the backend boundary, where a row
is validated and server-side defaults (``id``, timestamps) are filled in.

JSON attribute columns (``attributes``, ``criteria``, ``properties``) are open
string-keyed maps and are not validated further.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    """Generate a new row id"""
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string"""
    return datetime.now(timezone.utc).isoformat()


class TableRow(BaseModel):
    """Base for all rows: server-assigned id, unknown columns kept as-is"""
    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=new_id)


class TimestampedRow(TableRow):
    created_at: str = Field(default_factory=utc_now_iso)


class AccountScopedRow(TimestampedRow):
    account_id: str


# Tenant roots

class Account(TimestampedRow):
    """An account (tenant)"""
    name: str
    logo_image_path: Optional[str] = None
    hero_image_path: Optional[str] = None


class User(TimestampedRow):
    name: str
    email: str
    profile_image_path: Optional[str] = None
    hero_image_path: Optional[str] = None


# Membership

class AccountInvite(AccountScopedRow):
    invited_by_user_id: Optional[str] = None
    email: Optional[str] = None
    role: str = "standard"
    invite_code: str
    accepted_at: Optional[str] = None
    declined_at: Optional[str] = None
    expires_at: Optional[str] = None
    is_active: bool = True


class AccountMembership(AccountScopedRow):
    last_accessed_at: Optional[str] = None
    user_id: str
    role: str = "standard"


# Audience

class Profile(AccountScopedRow):
    """A customer profile"""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    device_id: Optional[str] = None
    address_street: Optional[str] = None
    address_city: Optional[str] = None
    address_state: Optional[str] = None
    address_zip: Optional[str] = None
    address_country: Optional[str] = None
    job_title: Optional[str] = None
    department: Optional[str] = None
    company: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    external_id: Optional[str] = None


class ChannelSubscription(AccountScopedRow):
    profile_id: str
    channel: str
    status: str = "pending"
    address: Optional[str] = None
    subscribed_at: Optional[str] = None
    unsubscribed_at: Optional[str] = None
    last_bounced_at: Optional[str] = None
    is_primary: bool = False


class Segment(AccountScopedRow):
    name: str
    description: Optional[str] = None
    criteria: Dict[str, Any] = Field(default_factory=dict)
    is_dynamic: bool = False


class SegmentProfile(TableRow):
    """Membership of a profile in a segment; timestamped by ``added_at``"""
    added_at: str = Field(default_factory=utc_now_iso)
    account_id: str
    segment_id: str
    profile_id: str


class Event(AccountScopedRow):
    occurred_at: str = Field(default_factory=utc_now_iso)
    profile_id: Optional[str] = None
    event_type: str
    channel: Optional[str] = None
    message_id: Optional[str] = None
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    page_url: Optional[str] = None
    product_id: Optional[str] = None
    order_id: Optional[str] = None
    revenue: Optional[float] = None
    currency: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)


# Messaging

class MessageCategory(AccountScopedRow):
    name: str
    description: Optional[str] = None
    thumbnail_image_path: Optional[str] = None


class Message(AccountScopedRow):
    category_id: Optional[str] = None
    name: str
    external_source: str = "manual"
    external_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class MessageVariant(AccountScopedRow):
    message_id: str
    channel: str
    email_subject: Optional[str] = None
    email_html: Optional[str] = None
    email_text: Optional[str] = None
    sms_text: Optional[str] = None
    push_title: Optional[str] = None
    push_body: Optional[str] = None
    preview_image_path: Optional[str] = None


# Decisioning agent configuration

class Agent(AccountScopedRow):
    name: str
    default_email_from: Optional[str] = None
    default_sms_from: Optional[str] = None
    segment_id: str
    holdout_percentage: float = 0
    message_category_id: str
    send_frequency: str
    send_days: List[int] = Field(default_factory=list)
    send_time_windows: List[str] = Field(default_factory=list)
    is_active: bool = False
    activated_at: Optional[str] = None
    deactivated_at: Optional[str] = None
    desired_outcome_description: Optional[str] = None


class AgentDecision(AccountScopedRow):
    decisioned_at: str = Field(default_factory=utc_now_iso)
    agent_id: str
    profile_id: str
    message_id: Optional[str] = None
    message_variant_id: Optional[str] = None
    channel: Optional[str] = None
    scheduled_send_at: Optional[str] = None
    reasoning: Optional[str] = None
    is_holdout: bool = False
    was_sent: Optional[bool] = None
    sent_at: Optional[str] = None
    send_error: Optional[str] = None


class OutcomeMapping(AccountScopedRow):
    agent_id: str
    event_type: str
    outcome: str
    weight: Optional[float] = None


TABLE_SCHEMAS: Dict[str, Type[TableRow]] = {
    "account": Account,
    "account_invite": AccountInvite,
    "account_membership": AccountMembership,
    "agent": Agent,
    "agent_decision": AgentDecision,
    "channel_subscription": ChannelSubscription,
    "event": Event,
    "message": Message,
    "message_category": MessageCategory,
    "message_variant": MessageVariant,
    "outcome_mapping": OutcomeMapping,
    "profile": Profile,
    "segment": Segment,
    "segment_profile": SegmentProfile,
    "user": User,
}

# Tables whose rows are not scoped to a single account
TENANT_ROOTS = frozenset({"account", "user"})


__all__ = [
    "TableRow", "TABLE_SCHEMAS", "TENANT_ROOTS", "new_id", "utc_now_iso",
    "Account", "AccountInvite", "AccountMembership", "Agent", "AgentDecision",
    "ChannelSubscription", "Event", "Message", "MessageCategory",
    "MessageVariant", "OutcomeMapping", "Profile", "Segment",
    "SegmentProfile", "User"
]
