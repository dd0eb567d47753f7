"""
Growth Coach — Contact analytics and table queries.
Pure functions over an already-fetched contact list; nothing here talks to HubSpot.
"""
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from crm.models import Contact

LIFECYCLE_LABELS = {
    "subscriber": "Subscriber",
    "lead": "Lead",
    "marketingqualifiedlead": "MQL",
    "salesqualifiedlead": "SQL",
    "opportunity": "Opportunity",
    "customer": "Customer",
    "evangelist": "Evangelist",
    "unknown": "Unknown",
}

LEAD_STATUS_LABELS = {
    "new": "New",
    "open": "Open",
    "in_progress": "In Progress",
    "open_deal": "Open Deal",
    "unqualified": "Unqualified",
    "attempted_to_contact": "Attempted to Contact",
    "connected": "Connected",
    "bad_timing": "Bad Timing",
    "unknown": "Unknown",
}

SORT_FIELDS = ("name", "status", "email", "company", "created", "modified")


def lifecycle_label(stage: Optional[str]) -> str:
    stage = stage or "unknown"
    return LIFECYCLE_LABELS.get(stage.lower(), stage)


def lead_status_label(status: Optional[str]) -> str:
    status = status or "unknown"
    return LEAD_STATUS_LABELS.get(status.lower(), status)


def parse_hubspot_timestamp(value: Optional[str]) -> Optional[datetime]:
    """HubSpot sends ISO-8601 strings, older portals epoch milliseconds. UTC-aware result."""
    if not value:
        return None
    value = value.strip()
    try:
        if value.isdigit():
            return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, OverflowError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


# ============================================================
# Dashboard summary
# ============================================================

@dataclass
class ContactAnalytics:
    total_contacts: int
    lifecycle_distribution: Dict[str, int] = field(default_factory=dict)
    lead_status_distribution: Dict[str, int] = field(default_factory=dict)
    recent_contacts: int = 0
    companies_with_multiple_contacts: int = 0
    leads_today: int = 0
    leads_this_week: int = 0
    leads_this_month: int = 0


def summarize_contacts(contacts: Iterable[Contact], now: datetime = None) -> ContactAnalytics:
    """
    Headline numbers for the CRM dashboard.
    "Recent" means created since the first of the current month; weeks start on Sunday.
    """
    contacts = list(contacts)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    month_start = today.replace(day=1)

    lifecycle = Counter((c.lifecycle_stage or "unknown") for c in contacts)
    lead_status = Counter(lead_status_label(c.lead_status) for c in contacts)
    companies = Counter(
        c.get("company").strip() for c in contacts if (c.get("company") or "").strip()
    )

    created = [(c, parse_hubspot_timestamp(c.get("createdate"))) for c in contacts]
    leads = [(c, ts) for c, ts in created if (c.lifecycle_stage or "").lower() == "lead"]

    return ContactAnalytics(
        total_contacts=len(contacts),
        lifecycle_distribution=dict(lifecycle),
        lead_status_distribution=dict(lead_status),
        recent_contacts=sum(1 for _, ts in created if ts and ts >= month_start),
        companies_with_multiple_contacts=sum(1 for n in companies.values() if n > 1),
        leads_today=sum(1 for _, ts in leads if ts and ts >= today),
        leads_this_week=sum(1 for _, ts in leads if ts and ts >= week_start),
        leads_this_month=sum(1 for _, ts in leads if ts and ts >= month_start),
    )


# ============================================================
# Contacts table: search, filter, sort, paginate
# ============================================================

@dataclass
class ContactPage:
    items: List[Contact]
    total_items: int
    total_pages: int
    page: int
    per_page: int


def _matches_search(contact: Contact, term: str) -> bool:
    if not term:
        return True
    for prop in ("firstname", "lastname", "email", "company", "phone"):
        value = contact.get(prop)
        if value and term in value.lower():
            return True
    return False


def _sort_key(contact: Contact, sort_field: str):
    if sort_field == "name":
        return contact.full_name.lower()
    if sort_field == "status":
        return (contact.lifecycle_stage or "").lower()
    if sort_field in ("email", "company"):
        return (contact.get(sort_field) or "").lower()
    prop = "createdate" if sort_field == "created" else "lastmodifieddate"
    ts = parse_hubspot_timestamp(contact.get(prop))
    return ts.timestamp() if ts else 0.0


def query_contacts(contacts: Iterable[Contact], search: str = "", status: str = "all",
                   sort_field: str = "name", direction: str = "asc",
                   page: int = 1, per_page: int = 10) -> ContactPage:
    """Filter, sort and slice contacts for the table view. The input is left untouched."""
    if sort_field not in SORT_FIELDS:
        raise ValueError(f"Unknown sort field '{sort_field}' — expected one of {', '.join(SORT_FIELDS)}")
    if per_page < 1:
        raise ValueError("per_page must be at least 1")

    term = (search or "").strip().lower()
    status = (status or "all").lower()

    filtered = [
        c for c in contacts
        if _matches_search(c, term)
        and (status == "all" or (c.lifecycle_stage or "").lower() == status)
    ]
    ordered = sorted(filtered, key=lambda c: _sort_key(c, sort_field), reverse=(direction == "desc"))

    page = max(1, page)
    start = (page - 1) * per_page
    return ContactPage(
        items=ordered[start:start + per_page],
        total_items=len(ordered),
        total_pages=math.ceil(len(ordered) / per_page),
        page=page,
        per_page=per_page,
    )
