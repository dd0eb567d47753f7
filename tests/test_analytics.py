"""Unit tests for contact analytics and the contacts table query."""
from datetime import datetime, timezone

import pytest

from crm.analytics import (
    lead_status_label,
    lifecycle_label,
    parse_hubspot_timestamp,
    query_contacts,
    summarize_contacts,
)
from crm.models import Contact

# Wednesday; the week started Sunday 2024-05-12
NOW = datetime(2024, 5, 15, 15, 0, tzinfo=timezone.utc)


def _contact(id, first="", last="", email=None, company=None, stage=None,
             status=None, created=None, modified=None, phone=None):
    props = {
        "firstname": first, "lastname": last, "email": email, "company": company,
        "lifecyclestage": stage, "hs_lead_status": status, "createdate": created,
        "lastmodifieddate": modified, "phone": phone,
    }
    return Contact(id=id, properties=props)


CONTACTS = [
    _contact("1", "Ada", "Lovelace", "ada@engine.io", "Engine Co", "lead", "NEW",
             "2024-05-15T09:00:00Z", "2024-05-15T10:00:00Z"),
    _contact("2", "Bob", "Builder", "bob@build.it", "Engine Co", "customer", "CONNECTED",
             "2024-05-13T09:00:00Z", "2024-05-14T10:00:00Z", phone="555-0100"),
    _contact("3", "Cy", "Young", "cy@pitch.com", "Mound LLC", "lead", None,
             "2024-05-02T09:00:00Z", "2024-05-03T10:00:00Z"),
    _contact("4", "Dee", "Dee", None, None, None, None,
             "2024-04-20T09:00:00Z", "2024-04-21T10:00:00Z"),
    _contact("5", "Al", "Zed", "al@zed.io", "Zed", "lead", "OPEN",
             "1715500000000", None),  # epoch ms, 2024-05-12 07:46 UTC
]


# ============================================================
# Summary
# ============================================================

def test_summary_counts():
    summary = summarize_contacts(CONTACTS, now=NOW)

    assert summary.total_contacts == 5
    assert summary.lifecycle_distribution == {"lead": 3, "customer": 1, "unknown": 1}
    assert summary.lead_status_distribution == {"New": 1, "Connected": 1, "Unknown": 2, "Open": 1}
    assert summary.recent_contacts == 4
    assert summary.companies_with_multiple_contacts == 1
    assert summary.leads_today == 1
    assert summary.leads_this_week == 2
    assert summary.leads_this_month == 3


def test_summary_of_nothing():
    summary = summarize_contacts([], now=NOW)
    assert summary.total_contacts == 0
    assert summary.lifecycle_distribution == {}


def test_labels():
    assert lifecycle_label("marketingqualifiedlead") == "MQL"
    assert lifecycle_label(None) == "Unknown"
    assert lifecycle_label("custom_stage") == "custom_stage"
    assert lead_status_label("ATTEMPTED_TO_CONTACT") == "Attempted to Contact"


def test_timestamps():
    assert parse_hubspot_timestamp("2024-05-15T09:00:00Z") == datetime(2024, 5, 15, 9, tzinfo=timezone.utc)
    assert parse_hubspot_timestamp("0") == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert parse_hubspot_timestamp("garbage") is None
    assert parse_hubspot_timestamp(None) is None


# ============================================================
# Table query
# ============================================================

def test_search_is_case_insensitive_across_fields():
    assert [c.id for c in query_contacts(CONTACTS, search="ENGINE").items] == ["1", "2"]
    assert [c.id for c in query_contacts(CONTACTS, search="555-01").items] == ["2"]
    assert query_contacts(CONTACTS, search="nobody").total_items == 0


def test_empty_search_matches_everything():
    assert query_contacts(CONTACTS, search="   ").total_items == len(CONTACTS)


def test_status_filter():
    page = query_contacts(CONTACTS, status="lead", sort_field="name")
    assert [c.id for c in page.items] == ["1", "5", "3"]


def test_sort_and_direction():
    asc = query_contacts(CONTACTS, sort_field="created")
    desc = query_contacts(CONTACTS, sort_field="created", direction="desc")
    assert [c.id for c in asc.items] == ["4", "3", "5", "2", "1"]
    assert [c.id for c in desc.items] == ["1", "2", "5", "3", "4"]


def test_pagination():
    page = query_contacts(CONTACTS, sort_field="name", page=2, per_page=2)
    assert [c.id for c in page.items] == ["2", "3"]
    assert page.total_items == 5
    assert page.total_pages == 3

    past_end = query_contacts(CONTACTS, page=9, per_page=2)
    assert past_end.items == []

    assert query_contacts(CONTACTS, page=0, per_page=2).page == 1


def test_input_order_untouched():
    original = list(CONTACTS)
    query_contacts(CONTACTS, sort_field="email", direction="desc")
    assert CONTACTS == original


def test_bad_arguments():
    with pytest.raises(ValueError):
        query_contacts(CONTACTS, sort_field="shoe_size")
    with pytest.raises(ValueError):
        query_contacts(CONTACTS, per_page=0)
