"""
Authorization tests for Agendo.

Verifies:
- Requests without identity headers return 401
- Professionals are denied front-desk and admin operations (403)
- Staff is denied admin-only operations (403)
- Admin role can perform privileged operations
"""

import pytest

from conftest import actor_headers, at


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without identity headers."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/appointments"),
            ("POST", "/api/appointments"),
            ("POST", "/api/appointments/1/checkout"),
            ("POST", "/api/sales/direct"),
            ("GET", "/api/cash/transactions"),
            ("GET", "/api/cash/balance"),
            ("POST", "/api/cash/reconcile"),
            ("GET", "/api/cash/commissions"),
            ("GET", "/api/stock/movements"),
            ("POST", "/api/stock/purchases"),
            ("GET", "/api/stock/drift"),
            ("POST", "/api/clients/1/balance"),
            ("GET", "/api/realtime/stream"),
            ("GET", "/api/appointments/availability"),
            ("PUT", "/api/settings/booking"),
        ],
    )
    def test_requires_identity(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_health_is_public(self, client, db_session):
        assert client.get("/api/health").status_code == 200


# =============================================================================
# PROFESSIONAL DENIED FRONT-DESK OPERATIONS: 403
# =============================================================================


class TestProfessionalDenied:
    """Professionals work their own agenda only."""

    def test_cannot_view_cash(self, client, pro_actor):
        resp = client.get("/api/cash/transactions", headers=actor_headers(pro_actor))
        assert resp.status_code == 403

    def test_cannot_record_cash(self, client, pro_actor):
        resp = client.post("/api/cash/transactions", json={
            "type": "INCOME", "amount": "10", "description": "x",
        }, headers=actor_headers(pro_actor))
        assert resp.status_code == 403

    def test_cannot_move_stock(self, client, pro_actor, pomada):
        resp = client.post("/api/stock/movements", json={
            "product_id": pomada.id, "direction": "EXIT", "quantity": 1,
        }, headers=actor_headers(pro_actor))
        assert resp.status_code == 403

    def test_cannot_sell_over_the_counter(self, client, pro_actor, pomada):
        resp = client.post("/api/sales/direct", json={
            "lines": [{"product_id": pomada.id, "quantity": 1}], "payment_method": "CASH",
        }, headers=actor_headers(pro_actor))
        assert resp.status_code == 403

    def test_cannot_book_for_colleague(self, client, pro_actor, other_professional, haircut, customer):
        resp = client.post("/api/appointments", json={
            "client_id": customer.id,
            "professional_id": other_professional.id,
            "service_id": haircut.id,
            "starts_at": at(10).isoformat(),
        }, headers=actor_headers(pro_actor))
        assert resp.status_code == 403

    def test_can_view_stock(self, client, pro_actor, pomada):
        resp = client.get("/api/stock/movements", headers=actor_headers(pro_actor))
        assert resp.status_code == 200


# =============================================================================
# STAFF DENIED ADMIN OPERATIONS: 403
# =============================================================================


class TestStaffDeniedAdminOnly:

    def test_cannot_reconcile(self, client, staff):
        resp = client.post("/api/cash/reconcile", json={"counted": "0"}, headers=actor_headers(staff))
        assert resp.status_code == 403

    def test_cannot_pay_commission(self, client, staff):
        resp = client.post("/api/cash/commissions/1/pay", headers=actor_headers(staff))
        assert resp.status_code == 403

    def test_cannot_delete_appointment(self, client, staff):
        resp = client.delete("/api/appointments/1", headers=actor_headers(staff))
        assert resp.status_code == 403


# =============================================================================
# ADMIN ALLOWED: 2xx
# =============================================================================


class TestAdminAllowed:

    def test_can_reconcile(self, client, admin):
        resp = client.post("/api/cash/reconcile", json={"counted": "0"}, headers=actor_headers(admin))
        assert resp.status_code == 200

    def test_can_list_commissions(self, client, admin):
        resp = client.get("/api/cash/commissions", headers=actor_headers(admin))
        assert resp.status_code == 200
        assert resp.get_json() == {"commissions": []}

    def test_can_view_drift(self, client, admin, pomada):
        resp = client.get("/api/stock/drift", headers=actor_headers(admin))
        assert resp.status_code == 200
