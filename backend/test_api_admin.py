"""Admin endpoints: login, loan and return verification, items, reports, master admin tools."""
from datetime import datetime, timezone

from lendbox.models.audit_log import AuditLogEntry
from lendbox.models.item import Item
from lendbox.models.loan import Loan, LoanStatus
from lendbox.services import loan_service, notification_service

ADMIN_PASSWORD = "org-admin-pass-1"


def _login(client, email, password):
    return client.post("/auth/login", json={"email": email, "password": password})


# ------------------------------------------------------------------------------
# Auth
# ------------------------------------------------------------------------------

def test_login_and_me(client, org_admin):
    resp = _login(client, "Alpha.Admin@example.com", ADMIN_PASSWORD)

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["token_type"] == "bearer"
    assert data["user"]["role"] == "admin_org"
    assert data["user"]["organization"]["slug"] == "alpha-school"
    assert "lendbox_admin_token" in resp.headers.get("set-cookie", "")

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "alpha.admin@example.com"


def test_login_with_wrong_password(client, org_admin):
    resp = _login(client, "alpha.admin@example.com", "wrong-password")
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "Invalid email or password"}


def test_master_admin_is_created_on_startup(client):
    resp = _login(client, "master@example.com", "master-password-1")
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["role"] == "admin_master"


def test_protected_routes_require_a_token(client):
    assert client.get("/auth/me").status_code == 401
    assert client.get("/admin-org/dashboard", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_role_guards(client, org_admin, master_admin, auth):
    assert client.get("/admin-master/dashboard", headers=auth(org_admin)).status_code == 403
    assert client.get("/admin-org/dashboard", headers=auth(master_admin)).status_code == 403


def test_profile_and_password_change(client, org_admin, auth):
    headers = auth(org_admin)

    resp = client.put("/auth/profile", json={"name": "Alpha Admin", "phone": "0811"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["name"] == "Alpha Admin"

    wrong = client.put(
        "/auth/password",
        json={"current_password": "nope", "password": "new-password-1", "password_confirmation": "new-password-1"},
        headers=headers,
    )
    assert wrong.status_code == 422

    mismatch = client.put(
        "/auth/password",
        json={"current_password": ADMIN_PASSWORD, "password": "new-password-1", "password_confirmation": "other"},
        headers=headers,
    )
    assert mismatch.status_code == 422

    ok = client.put(
        "/auth/password",
        json={"current_password": ADMIN_PASSWORD, "password": "new-password-1", "password_confirmation": "new-password-1"},
        headers=headers,
    )
    assert ok.status_code == 200
    assert _login(client, "alpha.admin@example.com", "new-password-1").status_code == 200


def test_logout_clears_cookie(client, org_admin, auth):
    resp = client.post("/auth/logout", headers=auth(org_admin))
    assert resp.status_code == 200
    assert 'lendbox_admin_token=""' in resp.headers.get("set-cookie", "")


# ------------------------------------------------------------------------------
# Loan verification
# ------------------------------------------------------------------------------

def test_approve_via_api(client, db, org_admin, auth, make_item, make_loan):
    item = make_item(stock=5)
    loan = make_loan(item, quantity=2)

    pending = client.get("/admin-org/loans/pending", headers=auth(org_admin)).json()["data"]
    assert [l["loan_code"] for l in pending["items"]] == [loan.loan_code]

    resp = client.post(f"/admin-org/loans/{loan.id}/approve", headers=auth(org_admin))

    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "borrowed"
    db.expire_all()
    assert db.get(Item, item.id).available_stock == 3

    again = client.post(f"/admin-org/loans/{loan.id}/approve", headers=auth(org_admin))
    assert again.status_code == 409
    assert again.json()["success"] is False


def test_approve_with_insufficient_stock_via_api(client, db, org_admin, auth, make_item, make_loan):
    item = make_item(stock=3)
    first = make_loan(item, quantity=2)
    second = make_loan(item, quantity=2)
    client.post(f"/admin-org/loans/{first.id}/approve", headers=auth(org_admin))

    resp = client.post(f"/admin-org/loans/{second.id}/approve", headers=auth(org_admin))

    assert resp.status_code == 400
    assert resp.json()["available"] == 1
    detail = client.get(f"/admin-org/loans/{second.id}", headers=auth(org_admin)).json()["data"]
    assert detail["status"] == "pending"
    assert detail["verifier"] is None


def test_reject_via_api(client, org_admin, auth, make_item, make_loan):
    loan = make_loan(make_item())

    empty = client.post(f"/admin-org/loans/{loan.id}/reject", json={"reason": "   "}, headers=auth(org_admin))
    assert empty.status_code == 422

    resp = client.post(f"/admin-org/loans/{loan.id}/reject", json={"reason": "Not available this week"}, headers=auth(org_admin))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "rejected"
    assert data["rejection_reason"] == "Not available this week"


def test_other_organization_gets_403(client, other_admin, auth, make_item, make_loan):
    loan = make_loan(make_item())
    headers = auth(other_admin)

    assert client.get(f"/admin-org/loans/{loan.id}", headers=headers).status_code == 403
    assert client.post(f"/admin-org/loans/{loan.id}/approve", headers=headers).status_code == 403
    assert client.get("/admin-org/loans/pending", headers=headers).json()["data"]["total"] == 0


def test_complete_return_via_api(client, db, org_admin, auth, make_item, make_loan):
    item = make_item(stock=5)
    loan = make_loan(item)
    loan_service.approve(db, loan, org_admin.id)
    loan_service.submit_return(db, loan, "return_photos/r.jpg")

    returns = client.get("/admin-org/returns/pending", headers=auth(org_admin)).json()["data"]
    assert returns["total"] == 1

    bad = client.post(f"/admin-org/returns/{loan.id}/complete", json={"condition": "stolen"}, headers=auth(org_admin))
    assert bad.status_code == 422

    resp = client.post(
        f"/admin-org/returns/{loan.id}/complete",
        json={"condition": "lost", "notes": "Borrower reported it lost"},
        headers=auth(org_admin),
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "completed_lost"
    db.expire_all()
    item = db.get(Item, item.id)
    assert (item.stock, item.available_stock) == (5, 4)


def test_loan_list_filters(client, db, org_admin, auth, make_item, make_loan):
    item = make_item(stock=5)
    make_loan(item, borrower_name="Ani")
    approved = make_loan(item, borrower_name="Budi")
    loan_service.approve(db, approved, org_admin.id)

    headers = auth(org_admin)
    borrowed = client.get("/admin-org/loans", params={"status": "borrowed"}, headers=headers).json()["data"]
    assert [l["borrower_name"] for l in borrowed["items"]] == ["Budi"]

    search = client.get("/admin-org/loans", params={"search": "ani"}, headers=headers).json()["data"]
    assert [l["borrower_name"] for l in search["items"]] == ["Ani"]

    assert client.get("/admin-org/loans", params={"status": "bogus"}, headers=headers).status_code == 422


# ------------------------------------------------------------------------------
# Items
# ------------------------------------------------------------------------------

def test_item_crud(client, db, org_admin, auth):
    headers = auth(org_admin)

    missing_reason = client.post("/admin-org/items", json={"name": "Globe", "stock": 1, "is_loanable": False}, headers=headers)
    assert missing_reason.status_code == 422

    created = client.post(
        "/admin-org/items",
        json={"name": "Laptop", "code": "lap-01", "category": "Computers", "stock": 10, "is_loanable": True},
        headers=headers,
    )
    assert created.status_code == 201
    item = created.json()["data"]
    assert item["code"] == "LAP-01"
    assert item["available_stock"] == 10

    duplicate = client.post(
        "/admin-org/items", json={"name": "Laptop 2", "code": "LAP-01", "stock": 1, "is_loanable": True}, headers=headers
    )
    assert duplicate.status_code == 422

    # Three units out on loan
    db.query(Item).filter(Item.id == item["id"]).update({"available_stock": 7})
    db.commit()

    updated = client.put(f"/admin-org/items/{item['id']}", json={"stock": 12}, headers=headers)
    assert updated.status_code == 200
    assert (updated.json()["data"]["stock"], updated.json()["data"]["available_stock"]) == (12, 9)

    shrunk = client.put(f"/admin-org/items/{item['id']}", json={"stock": 2}, headers=headers).json()["data"]
    assert (shrunk["stock"], shrunk["available_stock"]) == (2, 0)

    not_loanable = client.put(
        f"/admin-org/items/{item['id']}",
        json={"is_loanable": False, "not_loanable_reason": "Under repair"},
        headers=headers,
    ).json()["data"]
    assert not_loanable["is_available"] is False

    shown = client.get(f"/admin-org/items/{item['id']}", headers=headers).json()["data"]
    assert shown["recent_loans"] == []
    assert client.get("/admin-org/categories", headers=headers).json()["data"] == ["Computers"]

    assert client.delete(f"/admin-org/items/{item['id']}", headers=headers).status_code == 200
    assert client.get(f"/admin-org/items/{item['id']}", headers=headers).status_code == 404


def test_item_of_another_organization_cannot_be_edited(client, other_admin, auth, make_item):
    item = make_item()
    resp = client.put(f"/admin-org/items/{item.id}", json={"stock": 1}, headers=auth(other_admin))
    assert resp.status_code == 403


def test_item_export_csv(client, org_admin, auth, make_item):
    make_item(name="Projector, HD")

    resp = client.get("/admin-org/items/export", headers=auth(org_admin))

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "attachment" in resp.headers["content-disposition"]
    assert resp.content.startswith(b"\xef\xbb\xbf")
    lines = resp.content.decode("utf-8-sig").splitlines()
    assert lines[0].startswith("Item Code,Item Name,Category")
    assert '"Projector, HD"' in lines[1]


# ------------------------------------------------------------------------------
# Dashboard and reports
# ------------------------------------------------------------------------------

def test_dashboard(client, org_admin, auth, make_item, make_loan):
    make_loan(make_item())
    data = client.get("/admin-org/dashboard", headers=auth(org_admin)).json()["data"]
    assert data["stats"]["pending_loans"] == 1
    assert data["stats"]["total_items"] == 1
    assert len(data["pending_loans"]) == 1


def test_inventory_report(client, db, org_admin, auth, make_item, make_loan):
    item = make_item(stock=4)
    loan_service.approve(db, make_loan(item), org_admin.id)
    make_item(name="Globe", is_loanable=False, reason="Display")

    data = client.get("/admin-org/reports/inventory", headers=auth(org_admin)).json()["data"]

    assert data["summary"]["total_stock"] == 9
    assert data["summary"]["available_stock"] == 8
    assert data["summary"]["non_loanable_items"] == 1
    rows = {row["name"]: row for row in data["items"]}
    assert rows["Projector"]["active_loans_count"] == 1


def test_monthly_loan_report(client, db, org_admin, auth, make_item, make_loan):
    item = make_item(stock=3)
    loan_service.reject(db, make_loan(item), org_admin.id, "No")
    loan_service.approve(db, make_loan(item), org_admin.id)
    now = datetime.now(timezone.utc)

    resp = client.get("/admin-org/reports/loans", params={"month": now.month, "year": now.year}, headers=auth(org_admin))

    assert resp.status_code == 200
    summary = resp.json()["data"]["summary"]
    assert summary["total_loans"] == 2
    assert summary["approved"] == 1
    assert summary["rejected"] == 1

    bad_month = client.get("/admin-org/reports/loans", params={"month": 13, "year": now.year}, headers=auth(org_admin))
    assert bad_month.status_code == 422


# ------------------------------------------------------------------------------
# Notifications
# ------------------------------------------------------------------------------

def test_notifications(client, org_admin, auth, make_item, make_loan):
    first = make_loan(make_item())
    second = make_loan(make_item(name="Camera"))
    notification_service.notify_new_loan_request(first.id)
    notification_service.notify_new_loan_request(second.id)
    headers = auth(org_admin)

    assert client.get("/auth/notifications/unread-count", headers=headers).json()["data"] == {"count": 2}

    listed = client.get("/auth/notifications", headers=headers).json()["data"]
    assert len(listed) == 2

    read = client.put(f"/auth/notifications/{listed[0]['id']}/read", headers=headers)
    assert read.json()["data"]["read_at"] is not None
    assert client.get("/auth/notifications/unread-count", headers=headers).json()["data"]["count"] == 1

    assert client.put("/auth/notifications/read-all", headers=headers).json()["data"] == {"updated": 1}
    assert client.get("/auth/notifications/unread-count", headers=headers).json()["data"]["count"] == 0


def test_notifications_belong_to_their_owner(client, org_admin, other_admin, auth, make_item, make_loan):
    notification_service.notify_new_loan_request(make_loan(make_item()).id)
    [notification] = client.get("/auth/notifications", headers=auth(org_admin)).json()["data"]

    resp = client.put(f"/auth/notifications/{notification['id']}/read", headers=auth(other_admin))
    assert resp.status_code == 404


# ------------------------------------------------------------------------------
# Master admin
# ------------------------------------------------------------------------------

def test_organization_management(client, master_admin, auth):
    headers = auth(master_admin)

    created = client.post("/admin-master/organizations", json={"name": "SMK Negeri 1 Bandung!"}, headers=headers)
    assert created.status_code == 201
    org = created.json()["data"]
    assert org["slug"] == "smk-negeri-1-bandung"

    twin = client.post("/admin-master/organizations", json={"name": "SMK Negeri 1 Bandung"}, headers=headers)
    assert twin.json()["data"]["slug"] == "smk-negeri-1-bandung-2"

    listed = client.get("/admin-master/organizations", params={"search": "bandung"}, headers=headers).json()["data"]
    assert listed["total"] == 2
    assert listed["items"][0]["users_count"] == 0

    renamed = client.put(f"/admin-master/organizations/{org['id']}", json={"name": "SMAN 3"}, headers=headers)
    assert renamed.json()["data"]["slug"] == "sman-3"

    client.put(f"/admin-master/organizations/{org['id']}", json={"status": "inactive"}, headers=headers)
    assert client.get("/public/organizations/sman-3").status_code == 404

    assert client.delete(f"/admin-master/organizations/{org['id']}", headers=headers).status_code == 200
    assert client.get(f"/admin-master/organizations/{org['id']}", headers=headers).status_code == 404


def test_admin_management_and_suspension(client, master_admin, organization, auth):
    headers = auth(master_admin)

    bad_org = client.post(
        "/admin-master/admins",
        json={"name": "Siti", "email": "siti@example.com", "password": "siti-pass-1", "organization_id": 999},
        headers=headers,
    )
    assert bad_org.status_code == 422

    short = client.post(
        "/admin-master/admins",
        json={"name": "Siti", "email": "siti@example.com", "password": "short", "organization_id": organization.id},
        headers=headers,
    )
    assert short.status_code == 422

    created = client.post(
        "/admin-master/admins",
        json={"name": "Siti", "email": "Siti@Example.com", "password": "siti-pass-1", "organization_id": organization.id},
        headers=headers,
    )
    assert created.status_code == 201
    admin = created.json()["data"]
    assert admin["email"] == "siti@example.com"

    duplicate = client.post(
        "/admin-master/admins",
        json={"name": "Siti 2", "email": "siti@example.com", "password": "siti-pass-1", "organization_id": organization.id},
        headers=headers,
    )
    assert duplicate.status_code == 422

    login = _login(client, "siti@example.com", "siti-pass-1")
    assert login.status_code == 200
    token = login.json()["data"]["access_token"]

    toggled = client.put(f"/admin-master/admins/{admin['id']}/toggle-status", headers=headers)
    assert toggled.json()["data"]["status"] == "suspended"
    assert _login(client, "siti@example.com", "siti-pass-1").status_code == 403
    assert client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 403

    client.put(f"/admin-master/admins/{admin['id']}/toggle-status", headers=headers)
    reset = client.put(f"/admin-master/admins/{admin['id']}/reset-password", json={"password": "fresh-pass-1"}, headers=headers)
    assert reset.status_code == 200
    assert _login(client, "siti@example.com", "fresh-pass-1").status_code == 200

    assert client.delete(f"/admin-master/admins/{admin['id']}", headers=headers).status_code == 200
    assert _login(client, "siti@example.com", "fresh-pass-1").status_code == 401


def test_master_admin_cannot_manage_itself_as_org_admin(client, master_admin, auth):
    resp = client.put(f"/admin-master/admins/{master_admin.id}/toggle-status", headers=auth(master_admin))
    assert resp.status_code == 422


def test_monitoring_and_audit_logs(client, db, master_admin, other_organization, org_admin, auth, make_item, make_loan):
    make_item(organization_id=other_organization.id, name="Drum")
    loan = make_loan(make_item())
    client.post(f"/admin-org/loans/{loan.id}/approve", headers=auth(org_admin))
    headers = auth(master_admin)

    items = client.get("/admin-master/items", headers=headers).json()["data"]
    assert items["total"] == 2
    scoped = client.get("/admin-master/items", params={"organization_id": other_organization.id}, headers=headers).json()["data"]
    assert [i["name"] for i in scoped["items"]] == ["Drum"]

    loans = client.get("/admin-master/loans", params={"status": "borrowed"}, headers=headers).json()["data"]
    assert loans["total"] == 1

    logs = client.get("/admin-master/audit-logs", params={"action": "approve"}, headers=headers).json()["data"]
    assert logs["total"] == 1
    entry = logs["items"][0]
    assert entry["entity_id"] == loan.id
    assert entry["user"]["email"] == "alpha.admin@example.com"
    assert db.query(AuditLogEntry).filter(AuditLogEntry.action == "approve").count() == 1

    dashboard = client.get("/admin-master/dashboard", headers=headers).json()["data"]
    assert dashboard["stats"]["total_organizations"] == 2
    assert dashboard["stats"]["active_loans"] == 1
    assert dashboard["recent_logs"]


def test_organization_detail(client, db, master_admin, organization, org_admin, auth, make_item, make_loan):
    make_loan(make_item())
    data = client.get(f"/admin-master/organizations/{organization.id}", headers=auth(master_admin)).json()["data"]
    assert data["slug"] == "alpha-school"
    assert [a["email"] for a in data["admins"]] == ["alpha.admin@example.com"]
    assert data["items_count"] == 1
    assert len(data["recent_loans"]) == 1
    assert db.query(Loan).filter(Loan.status == LoanStatus.PENDING).count() == 1
