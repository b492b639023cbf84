"""
HTTP tests for the payment-milestone and project-milestone routers.

Exercise authentication, role checks, status codes and the error mapping of
the domain exceptions; business rules are covered by the service tests.
"""

from decimal import Decimal

from app.services import project_milestone_service
from app.schemas.project_milestone import ProjectMilestoneCreate
from tests.conftest import bearer, jkt

PM = "/api/payment-milestones"
MS = "/api/milestones"


def _tranche(number, percentage, **extra):
    body = {"milestone_number": number, "name": f"Termin {number}", "payment_percentage": percentage}
    body.update(extra)
    return body


class TestAuth:
    def test_health_is_public(self, api):
        response = api.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_missing_token(self, api, quotation):
        response = api.get(f"{PM}/quotation/{quotation.id}")
        assert response.status_code == 401

    def test_garbage_token(self, api, quotation):
        response = api.get(
            f"{PM}/quotation/{quotation.id}", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    def test_inactive_user(self, api, quotation, make_user):
        retired = make_user("retired", is_active=False)
        response = api.get(f"{PM}/quotation/{quotation.id}", headers=bearer(retired))
        assert response.status_code == 401

    def test_viewer_can_read_but_not_write(self, api, quotation, make_user):
        headers = bearer(make_user("viewer", role="VIEWER"))
        assert api.get(f"{PM}/quotation/{quotation.id}", headers=headers).status_code == 200

        response = api.post(f"{PM}/quotation/{quotation.id}", json=_tranche(1, 30), headers=headers)
        assert response.status_code == 403

    def test_project_manager_cannot_bill(self, api, quotation, make_user):
        headers = bearer(make_user("pm", role="PROJECT_MANAGER"))
        response = api.post(f"{PM}/quotation/{quotation.id}", json=_tranche(1, 30), headers=headers)
        assert response.status_code == 403


class TestPaymentMilestoneEndpoints:
    def test_schedule_lifecycle(self, api, auth_headers, quotation):
        response = api.post(
            f"{PM}/quotation/{quotation.id}",
            json=_tranche(1, 30, due_date="2025-02-15T00:00:00+07:00"),
            headers=auth_headers,
        )
        assert response.status_code == 201
        first = response.json()
        assert first["payment_amount"] == 30_000_000
        assert first["is_invoiced"] is False

        response = api.post(
            f"{PM}/quotation/{quotation.id}", json=_tranche(2, 70, due_days_from_prev=30),
            headers=auth_headers,
        )
        assert response.status_code == 201
        second = response.json()

        listing = api.get(f"{PM}/quotation/{quotation.id}", headers=auth_headers).json()
        assert [m["milestone_number"] for m in listing] == [1, 2]

        validation = api.get(f"{PM}/quotation/{quotation.id}/validate", headers=auth_headers).json()
        assert validation["valid"] is True
        assert validation["total_percentage"] == 100

        response = api.post(f"{PM}/{second['id']}/generate-invoice", headers=auth_headers)
        assert response.status_code == 201
        invoice = response.json()
        assert invoice["total_amount"] == 70_000_000
        assert invoice["materai_required"] is True
        assert invoice["invoice_number"].startswith("INV-")

        progress = api.get(f"{PM}/quotation/{quotation.id}/progress", headers=auth_headers).json()
        assert progress["milestones_invoiced"] == 1
        assert progress["total_invoiced"] == 70_000_000
        assert progress["outstanding_amount"] == 30_000_000

        # already billed
        response = api.post(f"{PM}/{second['id']}/generate-invoice", headers=auth_headers)
        assert response.status_code == 409
        response = api.delete(f"{PM}/{second['id']}", headers=auth_headers)
        assert response.status_code == 409

        response = api.delete(f"{PM}/{first['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert "message" in response.json()
        assert api.get(f"{PM}/{first['id']}", headers=auth_headers).status_code == 404

    def test_over_hundred_is_unprocessable(self, api, auth_headers, quotation):
        api.post(f"{PM}/quotation/{quotation.id}", json=_tranche(1, 60), headers=auth_headers)
        response = api.post(f"{PM}/quotation/{quotation.id}", json=_tranche(2, 50), headers=auth_headers)
        assert response.status_code == 422
        assert "100" in response.json()["detail"]

    def test_duplicate_number_conflicts(self, api, auth_headers, quotation):
        api.post(f"{PM}/quotation/{quotation.id}", json=_tranche(1, 30), headers=auth_headers)
        response = api.post(f"{PM}/quotation/{quotation.id}", json=_tranche(1, 20), headers=auth_headers)
        assert response.status_code == 409

    def test_zero_percentage_rejected_by_schema(self, api, auth_headers, quotation):
        response = api.post(f"{PM}/quotation/{quotation.id}", json=_tranche(1, 0), headers=auth_headers)
        assert response.status_code == 422

    def test_unknown_quotation(self, api, auth_headers):
        assert api.get(f"{PM}/quotation/9999", headers=auth_headers).status_code == 404
        response = api.post(f"{PM}/quotation/9999", json=_tranche(1, 30), headers=auth_headers)
        assert response.status_code == 404

    def test_update_and_recalculate(self, api, auth_headers, quotation, db):
        created = api.post(
            f"{PM}/quotation/{quotation.id}", json=_tranche(1, 40), headers=auth_headers
        ).json()

        response = api.put(
            f"{PM}/{created['id']}", json={"payment_percentage": 50}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["payment_amount"] == 50_000_000

        quotation.total_amount = Decimal("120000000")
        db.commit()
        response = api.post(f"{PM}/quotation/{quotation.id}/recalculate", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()[0]["payment_amount"] == 60_000_000

    def test_link_to_project_milestone(self, api, auth_headers, quotation, project, db):
        phase = project_milestone_service.create_milestone(
            db,
            ProjectMilestoneCreate(
                project_id=project.id,
                milestone_number=1,
                name="Design",
                planned_start_date=jkt(2025, 2, 1),
                planned_end_date=jkt(2025, 2, 28),
            ),
        )
        created = api.post(
            f"{PM}/quotation/{quotation.id}", json=_tranche(1, 30), headers=auth_headers
        ).json()

        response = api.post(
            f"{PM}/{created['id']}/link",
            json={"project_milestone_id": phase.id},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["project_milestone_id"] == phase.id


class TestProjectMilestoneEndpoints:
    def _create(self, api, headers, project, number, **extra):
        body = {
            "project_id": project.id,
            "milestone_number": number,
            "name": f"Phase {number}",
            "planned_start_date": "2025-02-01T09:00:00+07:00",
            "planned_end_date": "2025-02-28T17:00:00+07:00",
        }
        body.update(extra)
        return api.post(f"{MS}/", json=body, headers=headers)

    def test_create_and_read(self, api, auth_headers, project):
        response = self._create(api, auth_headers, project, 1)
        assert response.status_code == 201
        created = response.json()
        assert created["planned_revenue"] == 50_000_000
        assert created["status"] == "PENDING"

        assert api.get(f"{MS}/{created['id']}", headers=auth_headers).status_code == 200
        listing = api.get(f"{MS}/project/{project.id}", headers=auth_headers).json()
        assert len(listing) == 1

        summary = api.get(f"{MS}/project/{project.id}/summary", headers=auth_headers).json()
        assert summary["milestone_count"] == 1
        assert summary["total_planned_revenue"] == 50_000_000

    def test_project_manager_can_plan(self, api, project, make_user):
        headers = bearer(make_user("pm", role="PROJECT_MANAGER"))
        assert self._create(api, headers, project, 1).status_code == 201

    def test_viewer_cannot_plan(self, api, project, make_user):
        headers = bearer(make_user("viewer", role="VIEWER"))
        assert self._create(api, headers, project, 1).status_code == 403

    def test_invalid_dates(self, api, auth_headers, project):
        response = self._create(
            api, auth_headers, project, 1, planned_end_date="2025-01-15T17:00:00+07:00"
        )
        assert response.status_code == 422

    def test_cycle_rejected(self, api, auth_headers, project):
        a = self._create(api, auth_headers, project, 1).json()
        b = self._create(api, auth_headers, project, 2, predecessor_id=a["id"]).json()

        response = api.put(f"{MS}/{a['id']}", json={"predecessor_id": b["id"]}, headers=auth_headers)
        assert response.status_code == 422

        response = api.delete(f"{MS}/{a['id']}", headers=auth_headers)
        assert response.status_code == 422

        deps = api.get(f"{MS}/{b['id']}/dependencies", headers=auth_headers).json()
        assert deps["can_start"] is False

    def test_progress_complete_accept(self, api, auth_headers, project):
        m = self._create(api, auth_headers, project, 1).json()

        response = api.patch(f"{MS}/{m['id']}/progress", json={"percentage": 45}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "IN_PROGRESS"

        response = api.patch(f"{MS}/{m['id']}/progress", json={"percentage": 120}, headers=auth_headers)
        assert response.status_code == 422

        response = api.post(f"{MS}/{m['id']}/complete", headers=auth_headers)
        assert response.json()["status"] == "COMPLETED"

        response = api.post(
            f"{MS}/{m['id']}/accept", json={"accepted_by": "Budi Santoso"}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "ACCEPTED"

    def test_recognize_revenue_requires_finance(self, api, project, make_user, auth_headers):
        m = self._create(api, auth_headers, project, 1).json()
        pm_headers = bearer(make_user("pm", role="PROJECT_MANAGER"))

        body = {"completion_percentage": 40}
        response = api.post(f"{MS}/{m['id']}/recognize-revenue", json=body, headers=pm_headers)
        assert response.status_code == 403

        response = api.post(f"{MS}/{m['id']}/recognize-revenue", json=body, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["recognized_revenue"] == 20_000_000

    def test_analytics_route_is_not_an_id(self, api, auth_headers, project):
        self._create(api, auth_headers, project, 1)
        response = api.get(
            f"{MS}/analytics",
            params={"start_date": "2025-01-01T00:00:00+07:00", "end_date": "2025-12-31T00:00:00+07:00"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["on_time_payment_rate"] == 100
        assert len(body["milestone_metrics"]) == 1
        assert body["cash_flow_forecast"][0]["date"] == "2025-02-01"

    def test_analytics_rejects_unknown_range(self, api, auth_headers):
        response = api.get(f"{MS}/analytics", params={"time_range": "7d"}, headers=auth_headers)
        assert response.status_code == 422

    def test_unknown_milestone(self, api, auth_headers):
        assert api.get(f"{MS}/9999", headers=auth_headers).status_code == 404
