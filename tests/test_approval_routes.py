"""
Approval Route Tests
HTTP surface of approvals and approval configuration
"""

import pytest

from conftest import auth_headers
from approval_routing.models.approval_matrix import ApprovalMatrix
from approval_routing.models.user import UserRole


@pytest.fixture
def report(factory, org):
    return factory.report(org.company, org.employee, total_amount=6000, name="Client visit")


def submit(client, report, user):
    return client.post(f"/api/approvals/reports/{report.id}/submit", headers=auth_headers(user))


def decide(client, report, user, action, comment=None):
    return client.post(
        f"/api/approvals/reports/{report.id}/decision",
        json={"action": action, "comment": comment},
        headers=auth_headers(user)
    )


class TestHealth:

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_request_id_is_echoed(self, client):
        generated = client.get("/health")
        supplied = client.get("/health", headers={"X-Request-ID": "trace-42"})

        assert generated.headers["X-Request-ID"]
        assert supplied.headers["X-Request-ID"] == "trace-42"


class TestApprovalRoutes:
    """Submission, decisions and worklists"""

    def test_requires_token(self, client, report):
        response = client.get(f"/api/approvals/reports/{report.id}/chain")

        assert response.status_code == 401

    def test_chain_preview(self, client, factory, org, report):
        factory.rule(org.company, threshold_value=5000, approver_user_id=org.cfo.id)

        response = client.get(f"/api/approvals/reports/{report.id}/chain", headers=auth_headers(org.employee))

        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "hierarchy"
        assert [level["level_number"] for level in data["levels"]] == [1, 2, 3]
        additional = data["levels"][2]
        assert additional["is_additional"]
        assert additional["approvers"][0]["user_id"] == org.cfo.id
        assert "5,000" in additional["approvers"][0]["trigger_reason"]

    def test_report_of_other_company_is_hidden(self, client, factory, org, report):
        other = factory.company(name="Globex")
        outsider = factory.user(other, "Outsider", UserRole.ADMIN)

        response = client.get(f"/api/approvals/reports/{report.id}/chain", headers=auth_headers(outsider))

        assert response.status_code == 404
        assert response.json()["code"] == "RESOURCE_NOT_FOUND"

    def test_submit(self, client, org, report):
        response = submit(client, report, org.employee)

        assert response.status_code == 200
        data = response.json()
        assert data["report_status"] == "pending_approval"
        assert data["current_level"] == 1
        assert [a["user_id"] for a in data["approvers"]] == [org.manager.id, org.sales_bh.id]
        assert data["instance"]["status"] == "PENDING"
        assert data["instance"]["chain_source"] == "hierarchy"

    def test_submit_by_other_employee_forbidden(self, client, org, report):
        response = submit(client, report, org.manager)

        assert response.status_code == 403

    def test_submit_twice_is_validation_error(self, client, org, report):
        submit(client, report, org.employee)

        response = submit(client, report, org.employee)

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "code": "VALIDATION_ERROR",
            "message": f"Report {report.id} cannot be submitted from status pending_approval"
        }

    def test_decision_advances(self, client, org, report):
        submit(client, report, org.employee)

        response = decide(client, report, org.manager, "approve", "fine")

        assert response.status_code == 200
        data = response.json()
        assert data["transition"] == "advanced"
        assert data["current_level"] == 2
        assert data["instance"]["history"][0]["status"] == "APPROVED"
        assert data["instance"]["history"][0]["comments"] == "fine"

    def test_decision_by_non_approver_forbidden(self, client, org, report):
        submit(client, report, org.employee)

        response = decide(client, report, org.sales_bh, "approve")

        assert response.status_code == 403
        assert response.json()["code"] == "UNAUTHORIZED_DECISION"

    def test_request_changes_needs_comment(self, client, org, report):
        submit(client, report, org.employee)

        response = decide(client, report, org.manager, "request_changes")

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_unknown_action_rejected_by_schema(self, client, org, report):
        submit(client, report, org.employee)

        response = decide(client, report, org.manager, "escalate")

        assert response.status_code == 422
        assert response.json()["success"] is False

    def test_instance(self, client, org, report):
        submit(client, report, org.employee)
        decide(client, report, org.manager, "reject", "not billable")

        response = client.get(f"/api/approvals/reports/{report.id}/instance", headers=auth_headers(org.employee))

        assert response.status_code == 200
        data = response.json()
        assert data["report_status"] == "rejected"
        assert data["instance"]["status"] == "REJECTED"
        assert data["approvers"][0]["action"] == "reject"

    def test_instance_missing_before_submission(self, client, org, report):
        response = client.get(f"/api/approvals/reports/{report.id}/instance", headers=auth_headers(org.employee))

        assert response.status_code == 404

    def test_pending_and_history(self, client, org, report):
        submit(client, report, org.employee)

        pending = client.get("/api/approvals/pending", headers=auth_headers(org.manager)).json()
        assert pending["count"] == 1
        assert pending["reports"][0]["id"] == report.id

        decide(client, report, org.manager, "approve")

        assert client.get("/api/approvals/pending", headers=auth_headers(org.manager)).json()["count"] == 0
        assert client.get("/api/approvals/pending", headers=auth_headers(org.sales_bh)).json()["count"] == 1

        history = client.get("/api/approvals/history", headers=auth_headers(org.manager)).json()
        assert history["count"] == 1
        assert history["history"][0]["status"] == "APPROVED"


class TestApprovalConfigRoutes:
    """Admin configuration endpoints"""

    def test_employee_is_forbidden(self, client, org):
        response = client.get("/api/approval-config/rules", headers=auth_headers(org.employee))

        assert response.status_code == 403

    def test_profile_lifecycle(self, client, org):
        url = f"/api/approval-config/profiles/{org.employee.id}"
        body = {
            "approver_chain": [
                {"level": 1, "mode": "PARALLEL", "approvalType": "ANY",
                 "approverUserIds": [org.cfo.id, org.accountant.id]},
            ],
            "reasoning_summary": "Finance approves travel"
        }

        first = client.put(url, json=body, headers=auth_headers(org.admin))
        second = client.put(url, json=body, headers=auth_headers(org.admin))

        assert first.status_code == 200
        assert second.json()["version"] == 2
        assert second.json()["approver_chain"][0]["approvalType"] == "ANY"
        assert client.get(url, headers=auth_headers(org.admin)).json()["id"] == second.json()["id"]

        assert client.delete(url, headers=auth_headers(org.admin)).json()["success"]
        assert client.get(url, headers=auth_headers(org.admin)).status_code == 404

    def test_profile_with_self_approval_rejected(self, client, org):
        response = client.put(
            f"/api/approval-config/profiles/{org.employee.id}",
            json={"approver_chain": [{"level": 1, "approverUserIds": [org.employee.id]}]},
            headers=auth_headers(org.admin)
        )

        assert response.status_code == 400
        assert response.json()["code"] == "CONFIGURATION_ERROR"

    def test_mapping_upsert_and_delete(self, client, org):
        url = f"/api/approval-config/mappings/{org.employee.id}"

        response = client.put(url, json={"level1_approver_id": org.cfo.id}, headers=auth_headers(org.admin))

        assert response.status_code == 200
        assert response.json()["level1_approver_id"] == org.cfo.id
        assert response.json()["level2_approver_id"] is None

        assert client.delete(url, headers=auth_headers(org.admin)).status_code == 200
        assert client.delete(url, headers=auth_headers(org.admin)).status_code == 404

    def test_rule_crud(self, client, org):
        created = client.post(
            "/api/approval-config/rules",
            json={"trigger_type": "REPORT_AMOUNT_EXCEEDS", "threshold_value": 5000, "approver_user_id": org.cfo.id},
            headers=auth_headers(org.admin)
        )
        assert created.status_code == 201
        rule_id = created.json()["id"]

        updated = client.patch(
            f"/api/approval-config/rules/{rule_id}",
            json={"threshold_value": 7500},
            headers=auth_headers(org.admin)
        )
        assert updated.json()["threshold_value"] == 7500

        assert client.get("/api/approval-config/rules", headers=auth_headers(org.admin)).json()["count"] == 1
        client.delete(f"/api/approval-config/rules/{rule_id}", headers=auth_headers(org.admin))
        assert client.get("/api/approval-config/rules", headers=auth_headers(org.admin)).json()["count"] == 0

    def test_amount_rule_without_threshold_rejected(self, client, org):
        response = client.post(
            "/api/approval-config/rules",
            json={"trigger_type": "REPORT_AMOUNT_EXCEEDS", "approver_user_id": org.cfo.id},
            headers=auth_headers(org.admin)
        )

        assert response.status_code == 400
        assert response.json()["code"] == "CONFIGURATION_ERROR"

    def test_matrix_activation(self, client, db, factory, org):
        current = factory.matrix(org.company, [{"level_number": 1, "approver_user_ids": [org.manager.id]}])
        candidate = factory.matrix(
            org.company, [{"level_number": 1, "approver_user_ids": [org.cfo.id]}], name="Finance", is_active=False
        )

        response = client.post(
            f"/api/approval-config/matrices/{candidate.id}/activate", headers=auth_headers(org.admin)
        )

        assert response.status_code == 200
        assert response.json()["enabled_levels"] == [1]
        db.expire_all()
        assert db.get(ApprovalMatrix, candidate.id).is_active
        assert not db.get(ApprovalMatrix, current.id).is_active

    def test_explain_business_head(self, client, org):
        response = client.get(
            f"/api/approval-config/business-head/{org.employee.id}", headers=auth_headers(org.admin)
        )

        assert response.status_code == 200
        assert response.json()["method"] == "managers_manager"
        assert response.json()["business_head_id"] == org.sales_bh.id

    def test_matrix_create_and_get(self, client, org):
        created = client.post(
            "/api/approval-config/matrices",
            json={
                "name": "Finance review",
                "levels": [
                    {"level_number": 1, "approver_user_ids": [org.manager.id]},
                    {"level_number": 2, "approval_type": "PARALLEL", "parallel_rule": "ANY",
                     "approver_role_ids": [org.finance.id]},
                ]
            },
            headers=auth_headers(org.admin)
        )

        assert created.status_code == 201
        matrix = created.json()
        assert matrix["is_active"]
        assert [level["level_number"] for level in matrix["levels"]] == [1, 2]
        assert matrix["levels"][1]["parallel_rule"] == "ANY"

        fetched = client.get(f"/api/approval-config/matrices/{matrix['id']}", headers=auth_headers(org.admin))
        assert fetched.json()["levels"][1]["approver_role_ids"] == [org.finance.id]

        listing = client.get("/api/approval-config/matrices", headers=auth_headers(org.admin)).json()
        assert listing["count"] == 1

    def test_matrix_with_duplicate_levels_rejected(self, client, org):
        response = client.post(
            "/api/approval-config/matrices",
            json={
                "name": "Broken",
                "levels": [
                    {"level_number": 1, "approver_user_ids": [org.manager.id]},
                    {"level_number": 1, "approver_user_ids": [org.cfo.id]},
                ]
            },
            headers=auth_headers(org.admin)
        )

        assert response.status_code == 400
        assert response.json()["code"] == "CONFIGURATION_ERROR"

    def test_unknown_matrix_not_found(self, client, org):
        response = client.get("/api/approval-config/matrices/9999", headers=auth_headers(org.admin))

        assert response.status_code == 404

    def test_role_crud(self, client, org):
        created = client.post(
            "/api/approval-config/roles", json={"name": "Project Lead"}, headers=auth_headers(org.admin)
        )
        assert created.status_code == 201
        role_id = created.json()["id"]

        duplicate = client.post("/api/approval-config/roles", json={"name": "Finance"}, headers=auth_headers(org.admin))
        assert duplicate.status_code == 400

        updated = client.patch(
            f"/api/approval-config/roles/{role_id}",
            json={"description": "Owns project budgets"},
            headers=auth_headers(org.admin)
        )
        assert updated.json()["name"] == "Project Lead"
        assert updated.json()["description"] == "Owns project budgets"

        assert client.get("/api/approval-config/roles", headers=auth_headers(org.admin)).json()["count"] == 2
        assert client.delete(f"/api/approval-config/roles/{role_id}", headers=auth_headers(org.admin)).status_code == 200
        assert client.get("/api/approval-config/roles", headers=auth_headers(org.admin)).json()["count"] == 1

    def test_roles_require_admin(self, client, org):
        response = client.post("/api/approval-config/roles", json={"name": "Shadow"}, headers=auth_headers(org.manager))

        assert response.status_code == 403
