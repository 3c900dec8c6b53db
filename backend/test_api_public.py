"""Public endpoints: catalogue, loan requests, status checks and returns."""
import os
from datetime import date, timedelta

import pytest

from lendbox.core.config import settings
from lendbox.core.exceptions import InsufficientStock, InvalidState
from lendbox.core.rate_limiter import RateLimiter, browse_limiter, limiter_for, submit_limiter
from lendbox.models.audit_log import AuditLogEntry
from lendbox.models.loan import Loan, LoanStatus
from lendbox.models.notification import NEW_LOAN_REQUEST, Notification
from lendbox.services import loan_service, storage_service


def _submit(client, slug, item_id, photo, **overrides):
    body = {
        "item_id": item_id,
        "borrower_name": "Budi Santoso",
        "borrower_phone": "08123456789",
        "borrower_class": "XII IPA 1",
        "borrower_photo": photo,
        "quantity": 1,
        "loan_purpose": "Class presentation",
    }
    body.update(overrides)
    return client.post(f"/public/organizations/{slug}/loans", json=body)


# ------------------------------------------------------------------------------
# Catalogue
# ------------------------------------------------------------------------------

def test_organization_list_counts_loanable_items(client, organization, other_organization, make_item):
    make_item(name="Camera")
    make_item(name="Microscope", is_loanable=False, reason="Lab only")

    resp = client.get("/public/organizations")

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    counts = {org["slug"]: org["items_count"] for org in body["data"]}
    assert counts == {"alpha-school": 1, "beta-club": 0}


def test_unknown_organization_slug(client):
    resp = client.get("/public/organizations/nowhere")
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "Organization not found"}


def test_catalogue_lists_non_loanable_items_with_flag(client, organization, make_item):
    make_item(name="Camera", stock=2)
    make_item(name="Microscope", is_loanable=False, reason="Lab only")

    data = client.get("/public/organizations/alpha-school/items").json()["data"]

    assert data["total"] == 2
    availability = {i["name"]: i["is_available"] for i in data["items"]}
    assert availability == {"Camera": True, "Microscope": False}

    loanable = client.get("/public/organizations/alpha-school/items/loanable").json()["data"]
    assert [i["name"] for i in loanable["items"]] == ["Camera"]


def test_catalogue_search_and_categories(client, organization, make_item):
    make_item(name="Camera")
    make_item(name="Tripod")

    data = client.get("/public/organizations/alpha-school/items", params={"search": "trip"}).json()["data"]
    assert [i["name"] for i in data["items"]] == ["Tripod"]

    categories = client.get("/public/organizations/alpha-school/categories").json()["data"]
    assert categories == ["Electronics"]


def test_item_detail_is_scoped_to_the_organization(client, organization, other_organization, make_item):
    foreign = make_item(organization_id=other_organization.id)
    assert client.get(f"/public/organizations/alpha-school/items/{foreign.id}").status_code == 404
    assert client.get(f"/public/organizations/beta-club/items/{foreign.id}").status_code == 200


def test_catalogue_is_paginated(client, organization, make_item):
    for n in range(3):
        make_item(name=f"Item {n}")
    data = client.get("/public/organizations/alpha-school/items", params={"per_page": 2, "page": 2}).json()["data"]
    assert data["total"] == 3
    assert data["last_page"] == 2
    assert len(data["items"]) == 1


# ------------------------------------------------------------------------------
# Loan requests
# ------------------------------------------------------------------------------

def test_submit_loan_request(client, db, organization, make_item, photo):
    item = make_item(stock=3)

    resp = _submit(client, "alpha-school", item.id, photo, quantity=2)

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["status"] == "Awaiting Verification"
    assert body["data"]["item"] == "Projector"

    loan = db.query(Loan).filter(Loan.loan_code == body["data"]["loan_code"]).one()
    assert loan.status == LoanStatus.PENDING
    assert loan.quantity == 2
    assert loan.borrower_photo.startswith("loan_photos/")
    assert os.path.exists(os.path.join(settings.UPLOAD_DIR, loan.borrower_photo))

    # Nothing is reserved until an admin approves
    db.refresh(item)
    assert item.available_stock == 3

    [entry] = db.query(AuditLogEntry).filter(AuditLogEntry.action == "create", AuditLogEntry.entity_type == "Loan").all()
    assert entry.entity_id == loan.id
    assert entry.new_values["loan_code"] == loan.loan_code
    assert entry.new_values["status"] == "pending"


def test_submit_notifies_organization_admins(client, db, organization, org_admin, other_admin, make_item, photo):
    item = make_item()

    code = _submit(client, "alpha-school", item.id, photo).json()["data"]["loan_code"]

    [notification] = db.query(Notification).all()
    assert notification.user_id == org_admin.id
    assert notification.type == NEW_LOAN_REQUEST
    assert notification.data["loan_code"] == code
    assert notification.data["item_name"] == "Projector"


def test_submit_more_than_available(client, organization, make_item, photo):
    item = make_item(stock=2)

    resp = _submit(client, "alpha-school", item.id, photo, quantity=3)

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["available"] == 2
    assert body["requested"] == 3


def test_submit_non_loanable_item(client, organization, make_item, photo):
    item = make_item(is_loanable=False, reason="Reserved for exams")

    resp = _submit(client, "alpha-school", item.id, photo)

    assert resp.status_code == 400
    assert resp.json()["reason"] == "Reserved for exams"


def _photo_count(folder=storage_service.LOAN_PHOTOS):
    folder = os.path.join(settings.UPLOAD_DIR, folder)
    return len(os.listdir(folder)) if os.path.isdir(folder) else 0


def test_refused_submission_stores_no_photo(client, organization, make_item, photo):
    item = make_item(stock=1)
    before = _photo_count()
    assert _submit(client, "alpha-school", item.id, photo, quantity=5).status_code == 400
    assert _photo_count() == before


def test_submission_losing_the_final_check_removes_its_photo(client, monkeypatch, organization, make_item, photo):
    item = make_item(stock=1)

    def out_of_stock(*args, **kwargs):
        raise InsufficientStock(available=0, requested=1)

    monkeypatch.setattr(loan_service, "submit_loan", out_of_stock)
    before = _photo_count()

    assert _submit(client, "alpha-school", item.id, photo).status_code == 400
    assert _photo_count() == before


@pytest.mark.parametrize("field", ["borrower_name", "borrower_phone"])
def test_submit_refuses_blank_borrower_details(client, db, organization, make_item, photo, field):
    item = make_item()

    resp = _submit(client, "alpha-school", item.id, photo, **{field: "   "})

    assert resp.status_code == 422
    assert resp.json()["errors"][0]["field"] == field
    assert db.query(Loan).count() == 0


def test_submit_validation_errors(client, organization, make_item, photo):
    item = make_item()

    missing_name = _submit(client, "alpha-school", item.id, photo, borrower_name="")
    assert missing_name.status_code == 422
    body = missing_name.json()
    assert body["success"] is False
    assert body["errors"][0]["field"] == "borrower_name"

    zero = _submit(client, "alpha-school", item.id, photo, quantity=0)
    assert zero.status_code == 422

    past = _submit(client, "alpha-school", item.id, photo, expected_return_date=str(date.today()))
    assert past.status_code == 422
    assert "after today" in past.json()["message"]


def test_submit_accepts_future_return_date(client, db, organization, make_item, photo):
    item = make_item()
    tomorrow = date.today() + timedelta(days=1)
    code = _submit(client, "alpha-school", item.id, photo, expected_return_date=str(tomorrow)).json()["data"]["loan_code"]
    loan = db.query(Loan).filter(Loan.loan_code == code).one()
    assert loan.expected_return_date.date() == tomorrow


def test_submit_rejects_undecodable_photo(client, organization, make_item):
    item = make_item()
    resp = _submit(client, "alpha-school", item.id, "this is not base64!!")
    assert resp.status_code == 422
    assert "photo" in resp.json()["message"]


def test_submit_to_item_of_another_organization(client, organization, other_organization, make_item, photo):
    foreign = make_item(organization_id=other_organization.id)
    assert _submit(client, "alpha-school", foreign.id, photo).status_code == 404


# ------------------------------------------------------------------------------
# Status checks and returns
# ------------------------------------------------------------------------------

def test_check_status(client, organization, make_item, make_loan):
    loan = make_loan(make_item())

    resp = client.post("/public/loans/check-status", json={"loan_code": loan.loan_code.lower()})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["loan_code"] == loan.loan_code
    assert data["status"] == "pending"
    assert data["status_label"] == "Awaiting Verification"
    assert data["can_return"] is False


def test_check_status_unknown_code(client):
    resp = client.post("/public/loans/check-status", json={"loan_code": "LOAN-20200101-ZZZZZZ"})
    assert resp.status_code == 404


def test_return_flow(client, db, organization, org_admin, make_item, make_loan, photo):
    item = make_item(stock=2)
    loan = make_loan(item)
    loan_service.approve(db, loan, org_admin.id)

    resp = client.post(
        "/public/loans/return",
        json={"loan_code": loan.loan_code, "return_photo": photo, "notes": "All good"},
    )

    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "Awaiting Return Check"
    db.expire_all()
    loan = db.get(Loan, loan.id)
    assert loan.status == LoanStatus.RETURN_PENDING
    assert loan.return_photo.startswith("return_photos/")
    assert loan.return_condition_notes == "All good"

    status = client.post("/public/loans/check-status", json={"loan_code": loan.loan_code}).json()["data"]
    assert status["can_return"] is False


def test_return_of_pending_loan_is_refused(client, organization, make_item, make_loan, photo):
    loan = make_loan(make_item())

    resp = client.post("/public/loans/return", json={"loan_code": loan.loan_code, "return_photo": photo})

    assert resp.status_code == 409
    assert resp.json()["status"] == "pending"


def test_return_losing_the_final_check_removes_its_photo(client, db, monkeypatch, organization, org_admin, make_item, make_loan, photo):
    loan = make_loan(make_item())
    loan_service.approve(db, loan, org_admin.id)

    def already_returned(*args, **kwargs):
        raise InvalidState("Loan is not currently borrowed", status="return_pending")

    monkeypatch.setattr(loan_service, "submit_return", already_returned)
    before = _photo_count(storage_service.RETURN_PHOTOS)

    resp = client.post("/public/loans/return", json={"loan_code": loan.loan_code, "return_photo": photo})

    assert resp.status_code == 409
    assert _photo_count(storage_service.RETURN_PHOTOS) == before


def test_failed_photo_write_leaves_no_temporary_file(monkeypatch):
    def disk_full(src, dst):
        raise OSError("No space left on device")

    monkeypatch.setattr(storage_service.os, "replace", disk_full)

    with pytest.raises(OSError):
        storage_service.store(b"\xff\xd8\xff", storage_service.ITEM_IMAGES)

    folder = os.path.join(settings.UPLOAD_DIR, storage_service.ITEM_IMAGES)
    assert not [name for name in os.listdir(folder) if name.endswith(".tmp")]


def test_public_routes_send_rate_limit_headers(client, organization):
    resp = client.get("/public/organizations")
    assert "X-RateLimit-Limit" in resp.headers
    assert client.get("/health").headers.get("X-RateLimit-Limit") is None


def test_rate_limiter_window():
    limiter = RateLimiter(limit=2, window=60)
    assert limiter.hit("10.0.0.1") == (True, 1)
    assert limiter.hit("10.0.0.1") == (True, 0)
    assert limiter.hit("10.0.0.1") == (False, 0)
    assert limiter.hit("10.0.0.2")[0] is True
    limiter.reset()
    assert limiter.hit("10.0.0.1")[0] is True


def test_submissions_use_their_own_bucket():
    assert limiter_for("POST", "/public/organizations/alpha-school/loans") is submit_limiter
    assert limiter_for("POST", "/public/loans/return") is submit_limiter
    assert limiter_for("POST", "/public/loans/check-status") is browse_limiter
    assert limiter_for("GET", "/public/organizations") is browse_limiter
