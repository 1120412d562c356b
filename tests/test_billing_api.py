from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from fastapi import status
from fastapi.testclient import TestClient

from app.main import app
from app.models.billing import BillingRecord, BillingStatus

API = "/api/v1/payments"


def seed(store, student_id, amount, record_status, month="2026-02"):
    record = BillingRecord(
        student_id=student_id,
        course_id="c-math",
        month=month,
        amount=Decimal(amount),
        status=record_status,
        payment_date=date(2026, 2, 1),
    )
    store.records[student_id + month] = record.model_copy(update={"id": student_id + month})


def test_list_requires_auth(test_client):
    """Listing without a bearer token is refused."""
    response = test_client.get(API, params={"month": "2026-02"})

    assert response.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN)


def test_list_requires_month(test_client, admin_headers):
    """The month query parameter is required."""
    response = test_client.get(API, headers=admin_headers)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["kind"] == "validation"


def test_list_rejects_unpadded_month(test_client, admin_headers, store):
    """A month without zero padding is a 400 and reconciles nothing."""
    response = test_client.get(API, headers=admin_headers, params={"month": "2026-2"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert store.records == {}


def test_list_reconciles_and_orders(test_client, admin_headers):
    """Listing fills in the month and returns records by surname."""
    response = test_client.get(API, headers=admin_headers, params={"month": "2026-02"})

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert [item["student"]["last_name"] for item in data] == ["Ivanov", "Ivanov", "Smirnova"]
    assert all(item["status"] == "pending" for item in data)
    assert data[0]["payment_date"] == "2026-02-01"
    assert data[0]["due_date"] == "2026-02-28"


def test_list_twice_creates_nothing_new(test_client, admin_headers, store):
    """A second listing of the same month creates no new records."""
    test_client.get(API, headers=admin_headers, params={"month": "2026-02"})
    test_client.get(f"{API}/month/2026-02", headers=admin_headers)

    assert len(store.records) == 3


def test_month_path_variant_validates(test_client, admin_headers):
    """The month path variant validates its month too."""
    response = test_client.get(f"{API}/month/2026-2", headers=admin_headers)

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_student_sees_own_records(test_client, student_headers):
    """A student only sees their own records."""
    response = test_client.get(f"{API}/month/2026-02", headers=student_headers)

    assert response.status_code == status.HTTP_200_OK
    assert [item["student_id"] for item in response.json()] == ["s-1"]


def test_stats_scenario(test_client, teacher_headers, roster, store):
    """Stats for a month with paid, pending and overdue records."""
    roster.students.clear()
    seed(store, "s-1", "100", BillingStatus.PAID)
    seed(store, "s-2", "50", BillingStatus.PENDING)
    seed(store, "s-3", "20", BillingStatus.OVERDUE)

    response = test_client.get(f"{API}/stats", headers=teacher_headers, params={"month": "2026-02"})

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["total"] == 3
    assert Decimal(data["totalAmount"]) == Decimal("170")
    assert (data["paid"], Decimal(data["paidAmount"])) == (1, Decimal("100"))
    assert (data["pending"], Decimal(data["pendingAmount"])) == (1, Decimal("50"))
    assert (data["overdue"], Decimal(data["overdueAmount"])) == (1, Decimal("20"))


def test_stats_rejects_bad_month(test_client, admin_headers):
    """Stats reject a malformed month."""
    response = test_client.get(f"{API}/stats", headers=admin_headers, params={"month": "2026-2"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_stats_forbidden_for_students(test_client, student_headers):
    """Students may not read stats."""
    response = test_client.get(f"{API}/stats", headers=student_headers, params={"month": "2026-02"})

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_create_and_conflict(test_client, admin_headers):
    """A second record for the same student and month is a 409."""
    payload = {"student_id": "s-1", "course_id": "c-math", "month": "2026-05", "amount": "800", "due_date": ""}

    first = test_client.post(API, headers=admin_headers, json=payload)
    second = test_client.post(API, headers=admin_headers, json=payload)

    assert first.status_code == status.HTTP_201_CREATED
    assert first.json()["payment_date"] == "2026-05-01"
    assert first.json()["due_date"] is None
    assert second.status_code == status.HTTP_409_CONFLICT
    assert second.json()["kind"] == "conflict"


def test_create_requires_admin(test_client, teacher_headers):
    """Only admins create records."""
    payload = {"student_id": "s-1", "month": "2026-05", "amount": "800"}

    response = test_client.post(API, headers=teacher_headers, json=payload)

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_update_cannot_change_month(test_client, admin_headers, store):
    """An update that changes the month is a 400 and leaves the record alone."""
    created = test_client.post(
        API, headers=admin_headers, json={"student_id": "s-1", "month": "2026-05", "amount": "800"}
    ).json()

    response = test_client.put(f"{API}/{created['id']}", headers=admin_headers, json={"month": "2026-06"})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert store.records[created["id"]].month == "2026-05"


def test_mark_paid_and_get(test_client, admin_headers):
    """Marking paid stores the method and the course is embedded on read."""
    created = test_client.post(
        API, headers=admin_headers, json={"student_id": "s-1", "month": "2026-05", "amount": "800"}
    ).json()

    paid = test_client.patch(
        f"{API}/{created['id']}/mark-paid", headers=admin_headers, json={"payment_method": "card"}
    )
    fetched = test_client.get(f"{API}/{created['id']}", headers=admin_headers)

    assert paid.status_code == status.HTTP_200_OK
    assert paid.json()["status"] == "paid"
    assert fetched.json()["payment_method"] == "card"
    assert fetched.json()["course"]["name"] == "Math"


def test_mark_paid_without_body(test_client, admin_headers):
    """Mark-paid works without a request body."""
    created = test_client.post(
        API, headers=admin_headers, json={"student_id": "s-1", "month": "2026-05", "amount": "800"}
    ).json()

    response = test_client.patch(f"{API}/{created['id']}/mark-paid", headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "paid"


def test_get_and_delete_missing(test_client, admin_headers):
    """Unknown record ids are 404 for get and delete."""
    assert test_client.get(f"{API}/missing", headers=admin_headers).status_code == status.HTTP_404_NOT_FOUND
    assert test_client.delete(f"{API}/missing", headers=admin_headers).status_code == status.HTTP_404_NOT_FOUND


def test_delete(test_client, admin_headers, store):
    """Deleting a record removes it from the ledger."""
    created = test_client.post(
        API, headers=admin_headers, json={"student_id": "s-1", "month": "2026-05", "amount": "800"}
    ).json()

    response = test_client.delete(f"{API}/{created['id']}", headers=admin_headers)

    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert store.records == {}


def test_reconcile_endpoint(test_client, admin_headers):
    """Explicit reconciliation reports what it did."""
    response = test_client.post(f"{API}/reconcile/2026-03", headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"month": "2026-03", "created": 3, "existing": 0, "skipped": 2, "failed": 0}


def test_enrollment_charge_endpoint(test_client, admin_headers):
    """The enrollment charge prorates the first month."""
    response = test_client.post(
        f"{API}/enrollment-charge",
        headers=admin_headers,
        json={"student_id": "s-1", "enrolled_at": "2026-02-09T10:00:00Z"},
    )

    assert response.status_code == status.HTTP_200_OK
    assert Decimal(response.json()["amount"]) == Decimal("600.00")
    assert response.json()["month"] == "2026-02"


def test_create_for_unknown_student_is_not_found(test_client, admin_headers, store):
    """Creating a record for a student missing from the roster returns 404."""
    payload = {"student_id": "ghost", "month": "2026-05", "amount": "800"}

    response = test_client.post(API, headers=admin_headers, json=payload)

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["kind"] == "not_found"
    assert store.records == {}


def test_lifespan_opens_and_closes_mongo():
    """The app connects to MongoDB on startup and disconnects on shutdown."""
    with patch("app.main.connect_to_mongo", new=AsyncMock()) as connect, \
            patch("app.main.close_mongo_connection", new=AsyncMock()) as close:
        with TestClient(app) as client:
            response = client.get("/")
            connect.assert_awaited_once()
            close.assert_not_awaited()

    assert response.status_code == status.HTTP_200_OK
    close.assert_awaited_once()
