from datetime import datetime
from decimal import Decimal

import pytest

from mh26.db.models.category import Category
from mh26.db.models.enums import ProviderStatus
from mh26.services.analytics import last_months, platform_analytics
from mh26.services.directory import pending_providers, search_providers
from mh26.services.ledger import LedgerService

APRIL = datetime(2026, 4, 10, 12, 0, 0)


@pytest.fixture()
def cleaning(db):
    category = Category(name="Cleaning")
    db.add(category)
    db.commit()
    return category


@pytest.fixture()
def directory(db, factory, cleaning):
    """Three approved providers in two cities plus a pending and a suspended one."""
    top = factory.provider()
    top.business_name, top.description = "Sparkle Homes", "Deep cleaning and sofa shampoo"
    top.category_id, top.average_rating, top.total_ratings = cleaning.id, 4.8, 12

    plain = factory.provider()
    plain.business_name, plain.average_rating = "Quick Fix Plumbing", 3.9

    delhi = factory.provider()
    delhi.business_name, delhi.city, delhi.category_id, delhi.average_rating = "Delhi Shine", "Delhi", cleaning.id, 4.5

    factory.provider(status=ProviderStatus.PENDING)
    factory.provider(status=ProviderStatus.SUSPENDED)
    db.commit()
    return top, plain, delhi


def test_search_lists_only_approved_best_rated_first(db, directory):
    top, plain, delhi = directory
    result = search_providers(db)
    assert [p.id for p in result["data"]] == [top.id, delhi.id, plain.id]
    assert result["pagination"] == {"page": 1, "limit": 10, "total": 3, "total_pages": 1}


def test_search_filters_by_city_category_and_text(db, directory, cleaning):
    top, plain, delhi = directory
    assert [p.id for p in search_providers(db, city="mumbai")["data"]] == [top.id, plain.id]
    assert [p.id for p in search_providers(db, category_id=cleaning.id)["data"]] == [top.id, delhi.id]
    assert [p.id for p in search_providers(db, q="SOFA")["data"]] == [top.id]
    assert search_providers(db, city="Pune")["data"] == []


def test_search_pages(db, directory):
    top, plain, delhi = directory
    second = search_providers(db, page=2, limit=2)
    assert [p.id for p in second["data"]] == [plain.id]
    assert second["pagination"]["total_pages"] == 2


def test_pending_queue_holds_applications_only(db, directory, factory):
    later = factory.provider(status=ProviderStatus.PENDING)
    queue = pending_providers(db)
    assert len(queue) == 2
    assert queue[-1].id == later.id
    assert all(p.status == ProviderStatus.PENDING for p in queue)


def test_last_months_cross_the_year():
    assert last_months(datetime(2026, 2, 15), count=4) == ["2025-11", "2025-12", "2026-01", "2026-02"]


def test_analytics_counts_fee_revenue_by_completion_month(db, completed_booking, factory):
    factory.provider(status=ProviderStatus.PENDING)
    report = platform_analytics(db, now=APRIL)

    stats = report["stats"]
    assert stats["total_bookings"] == 1
    assert stats["completed_bookings"] == 1
    assert stats["total_providers"] == 1
    assert stats["pending_providers"] == 1
    assert stats["total_revenue"] == Decimal("85.00")

    growth = {point["month"]: point["revenue"] for point in report["revenue_growth"]}
    assert list(growth) == last_months(APRIL)
    assert growth["2026-03"] == Decimal("85.00")
    assert growth["2026-04"] == Decimal("0.00")
    assert [b.id for b in report["recent_bookings"]] == [completed_booking.id]


def test_refunded_jobs_earn_no_revenue(db, completed_booking):
    ledger = LedgerService(db)
    ledger.record_payment(completed_booking.id, Decimal("850.00"), "upi", now=APRIL)
    ledger.refund(completed_booking.id, Decimal("850.00"), now=APRIL)

    assert platform_analytics(db, now=APRIL)["stats"]["total_revenue"] == Decimal("0.00")


def test_category_distribution_counts_approved_providers(db, directory):
    report = platform_analytics(db, now=APRIL)
    assert report["category_distribution"] == [{"name": "Cleaning", "value": 2}]
    assert report["top_providers"][0].business_name == "Sparkle Homes"


def test_directory_over_http(client, auth_headers, directory, admin, customer):
    top, plain, delhi = directory
    listed = client.get("/providers/", params={"city": "Mumbai", "limit": 1})
    assert listed.status_code == 200
    body = listed.json()
    assert [p["id"] for p in body["data"]] == [top.id]
    assert body["pagination"]["total"] == 2

    assert client.get("/admin/providers/pending", headers=auth_headers(customer)).status_code == 403
    pending = client.get("/admin/providers/pending", headers=auth_headers(admin))
    assert pending.status_code == 200
    assert [p["status"] for p in pending.json()] == ["PENDING"]


def test_analytics_over_http(client, auth_headers, completed_booking, admin, customer):
    assert client.get("/admin/analytics", headers=auth_headers(customer)).status_code == 403

    response = client.get("/admin/analytics", headers=auth_headers(admin))
    assert response.status_code == 200
    body = response.json()
    assert body["stats"]["completed_bookings"] == 1
    assert Decimal(body["stats"]["total_revenue"]) == Decimal("85.00")
    assert len(body["revenue_growth"]) == 6
    assert [b["id"] for b in body["recent_bookings"]] == [completed_booking.id]
