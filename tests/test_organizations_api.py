"""Tests for organization API endpoints"""

from uuid import uuid4

BASE = "/api/v1/organizations"


class TestAuthentication:
    """Bearer token handling"""

    def test_missing_token(self, client):
        response = client.get(BASE)

        assert response.status_code == 401
        assert response.json()["detail"]["status"] == 401
        assert response.json()["detail"]["detail"] == "Authorization header missing"

    def test_malformed_header(self, client):
        response = client.get(BASE, headers={"Authorization": "Token abc"})

        assert response.status_code == 401
        assert response.json()["detail"]["detail"] == "Invalid authorization header format"

    def test_invalid_token(self, client):
        response = client.get(BASE, headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401


class TestCreateOrganization:
    """Test suite for POST /api/v1/organizations"""

    def test_create(self, client, admin_headers, admin_user):
        response = client.post(
            BASE, json={"type": "company", "name": "Acme Corp", "code": "ACME"}, headers=admin_headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Acme Corp"
        assert data["status"] == "active"
        assert data["manager_id"] == str(admin_user.id)
        assert data["depth"] == 0
        assert data["full_path"] == "Acme Corp"
        assert data["type_label"] == "Company"
        assert data["is_root"] is True

    def test_create_child(self, client, admin_headers, hierarchy):
        response = client.post(
            BASE,
            json={"type": "division", "name": "QA", "code": "QA",
                  "parent_id": str(hierarchy["it"].id)},
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["full_path"] == "Acme Corp > NY Branch > IT Dept > QA"
        assert response.json()["depth"] == 3

    def test_duplicate_code(self, client, admin_headers, hierarchy):
        response = client.post(
            BASE, json={"type": "company", "name": "Other", "code": "ACME"}, headers=admin_headers
        )

        assert response.status_code == 400
        problem = response.json()
        assert problem["title"] == "Validation Error"
        assert problem["errors"][0]["field"] == "code"

    def test_invalid_body(self, client, admin_headers):
        response = client.post(BASE, json={"type": "company", "code": "X"}, headers=admin_headers)

        assert response.status_code == 400
        assert "name" in [error["field"] for error in response.json()["errors"]]

    def test_invalid_type(self, client, admin_headers):
        response = client.post(
            BASE, json={"type": "galaxy", "name": "X", "code": "X"}, headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["errors"] == [{"field": "type", "message": "The selected type is invalid."}]

    def test_forbidden_without_permission(self, client, plain_headers):
        response = client.post(
            BASE, json={"type": "company", "name": "X", "code": "X"}, headers=plain_headers
        )

        assert response.status_code == 403
        assert response.json()["title"] == "Forbidden"


class TestReadOrganizations:
    """Listing, detail, tree, search, statistics and path"""

    def test_list(self, client, admin_headers, hierarchy):
        response = client.get(BASE, params={"per_page": 2}, headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["per_page"] == 2
        assert [org["name"] for org in data["organizations"]] == ["Acme Corp", "IT Dept"]

    def test_list_per_page_capped(self, client, admin_headers, hierarchy):
        response = client.get(BASE, params={"per_page": 10000}, headers=admin_headers)

        assert response.json()["per_page"] == 100

    def test_list_filtered(self, client, admin_headers, hierarchy):
        response = client.get(BASE, params={"type": "branch"}, headers=admin_headers)

        assert [org["code"] for org in response.json()["organizations"]] == ["NY"]

    def test_get(self, client, admin_headers, hierarchy):
        response = client.get(f"{BASE}/{hierarchy['it'].id}", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["full_path"] == "Acme Corp > NY Branch > IT Dept"
        assert data["depth"] == 2
        assert data["is_leaf"] is True
        assert data["parent_id"] == str(hierarchy["ny"].id)

    def test_get_unknown(self, client, admin_headers):
        response = client.get(f"{BASE}/{uuid4()}", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["type"].endswith("/not_found")

    def test_get_malformed_id(self, client, admin_headers):
        response = client.get(f"{BASE}/not-a-uuid", headers=admin_headers)

        assert response.status_code == 400

    def test_member_can_view(self, client, plain_headers, plain_user, service, hierarchy):
        service.assign_user(hierarchy["ny"], plain_user.id, "member")

        assert client.get(f"{BASE}/{hierarchy['ny'].id}", headers=plain_headers).status_code == 200
        assert client.get(f"{BASE}/{hierarchy['it'].id}", headers=plain_headers).status_code == 403

    def test_tree(self, client, admin_headers, hierarchy):
        response = client.get(f"{BASE}/tree", headers=admin_headers)

        assert response.status_code == 200
        tree = response.json()
        assert [node["name"] for node in tree] == ["Acme Corp"]
        assert tree[0]["children"][0]["name"] == "NY Branch"
        assert tree[0]["children"][0]["children"][0]["name"] == "IT Dept"
        assert tree[0]["children"][0]["children"][0]["children"] == []

    def test_search(self, client, admin_headers, hierarchy):
        response = client.get(f"{BASE}/search", params={"q": "dept"}, headers=admin_headers)

        assert response.status_code == 200
        assert [org["name"] for org in response.json()] == ["IT Dept"]

    def test_search_query_too_short(self, client, admin_headers):
        response = client.get(f"{BASE}/search", params={"q": "a"}, headers=admin_headers)

        assert response.status_code == 400

    def test_statistics(self, client, admin_headers, hierarchy):
        response = client.get(f"{BASE}/statistics", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["total"] == 3
        assert response.json()["root_organizations"] == 1

    def test_path(self, client, admin_headers, hierarchy):
        response = client.get(f"{BASE}/{hierarchy['it'].id}/path", headers=admin_headers)

        assert response.status_code == 200
        assert [entry["name"] for entry in response.json()] == ["Acme Corp", "NY Branch", "IT Dept"]
        assert response.json()[0]["type"] == "company"


class TestModifyOrganizations:
    """Update, move and delete"""

    def test_update(self, client, admin_headers, hierarchy):
        response = client.patch(
            f"{BASE}/{hierarchy['ny'].id}", json={"name": "New York Branch"}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["name"] == "New York Branch"
        assert response.json()["code"] == "NY"

    def test_update_parent_cycle(self, client, admin_headers, hierarchy):
        response = client.patch(
            f"{BASE}/{hierarchy['acme'].id}",
            json={"parent_id": str(hierarchy["it"].id)},
            headers=admin_headers,
        )

        assert response.status_code == 409

    def test_move(self, client, admin_headers, hierarchy):
        response = client.post(
            f"{BASE}/{hierarchy['it'].id}/move",
            json={"parent_id": str(hierarchy["acme"].id)},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["full_path"] == "Acme Corp > IT Dept"

    def test_move_to_root(self, client, admin_headers, hierarchy):
        response = client.post(f"{BASE}/{hierarchy['ny'].id}/move", json={"parent_id": None}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["is_root"] is True

    def test_move_cycle(self, client, admin_headers, hierarchy):
        """Test a cyclic move is rejected as a conflict and nothing changes"""
        response = client.post(
            f"{BASE}/{hierarchy['acme'].id}/move",
            json={"parent_id": str(hierarchy["it"].id)},
            headers=admin_headers,
        )

        assert response.status_code == 409
        assert response.json()["title"] == "Structural Conflict"

        path = client.get(f"{BASE}/{hierarchy['it'].id}/path", headers=admin_headers).json()
        assert [entry["name"] for entry in path] == ["Acme Corp", "NY Branch", "IT Dept"]

    def test_delete(self, client, admin_headers, hierarchy):
        response = client.delete(f"{BASE}/{hierarchy['ny'].id}", headers=admin_headers)

        assert response.status_code == 200
        assert client.get(f"{BASE}/{hierarchy['ny'].id}", headers=admin_headers).status_code == 404

        it = client.get(f"{BASE}/{hierarchy['it'].id}", headers=admin_headers).json()
        assert it["parent_id"] == str(hierarchy["acme"].id)

    def test_delete_cascade(self, client, admin_headers, hierarchy):
        response = client.delete(
            f"{BASE}/{hierarchy['ny'].id}",
            params={"move_children_to_parent": "false"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert client.get(f"{BASE}/{hierarchy['it'].id}", headers=admin_headers).status_code == 404

    def test_delete_forbidden(self, client, plain_headers, hierarchy):
        response = client.delete(f"{BASE}/{hierarchy['ny'].id}", headers=plain_headers)

        assert response.status_code == 403


class TestUserAssignment:
    """Assigning and removing user roles"""

    def test_assign_and_remove(self, client, admin_headers, plain_user, hierarchy):
        url = f"{BASE}/{hierarchy['ny'].id}/users"

        response = client.post(url, json={"user_id": str(plain_user.id), "role": "manager"}, headers=admin_headers)
        assert response.status_code == 200
        client.post(url, json={"user_id": str(plain_user.id), "role": "supervisor"}, headers=admin_headers)

        response = client.delete(f"{url}/{plain_user.id}", params={"role": "manager"}, headers=admin_headers)
        assert response.status_code == 200
        assert plain_user.get_roles_in_organization(hierarchy["ny"].id) == ["supervisor"]

    def test_assign_missing_user(self, client, admin_headers, hierarchy):
        response = client.post(
            f"{BASE}/{hierarchy['ny'].id}/users", json={"user_id": str(uuid4())}, headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "user_id"

    def test_assign_invalid_role(self, client, admin_headers, plain_user, hierarchy):
        response = client.post(
            f"{BASE}/{hierarchy['ny'].id}/users",
            json={"user_id": str(plain_user.id), "role": "overlord"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "role"

    def test_remove_unassigned(self, client, admin_headers, plain_user, hierarchy):
        response = client.delete(f"{BASE}/{hierarchy['ny'].id}/users/{plain_user.id}", headers=admin_headers)

        assert response.status_code == 404


class TestTenantScopedApi:
    """Tenant resolution through the request"""

    def test_actor_tenant_scopes_results(self, client, db_session, admin_user, admin_headers, monkeypatch):
        from orgtree.config import settings
        from orgtree.models import Organization

        monkeypatch.setattr(settings, "tenancy_enabled", True)
        admin_user.tenant_id = "tenant-a"
        db_session.add(Organization(type="company", name="Other Tenant HQ", code="HQ", tenant_id="tenant-b"))
        db_session.commit()

        created = client.post(
            BASE, json={"type": "company", "name": "HQ", "code": "HQ"}, headers=admin_headers
        )
        assert created.status_code == 201
        assert created.json()["tenant_id"] == "tenant-a"

        listed = client.get(BASE, headers=admin_headers).json()
        assert [org["name"] for org in listed["organizations"]] == ["HQ"]

    def test_header_tenant(self, client, db_session, admin_headers, monkeypatch):
        from orgtree.config import settings

        monkeypatch.setattr(settings, "tenancy_enabled", True)

        response = client.post(
            BASE,
            json={"type": "company", "name": "HQ", "code": "HQ"},
            headers={**admin_headers, "X-Tenant-ID": "tenant-h"},
        )

        assert response.status_code == 201
        assert response.json()["tenant_id"] == "tenant-h"

    def test_unresolved_tenant(self, client, admin_headers, monkeypatch):
        from orgtree.config import settings

        monkeypatch.setattr(settings, "tenancy_enabled", True)

        response = client.post(BASE, json={"type": "company", "name": "HQ", "code": "HQ"}, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "tenant_id"

    def test_tenant_persists_between_requests(self, client, db_session, admin_headers, monkeypatch):
        """Test a tenant resolved from the header is remembered by the session"""
        from orgtree.config import settings
        from orgtree.models import Organization

        monkeypatch.setattr(settings, "tenancy_enabled", True)
        db_session.add(Organization(type="company", name="Other HQ", code="OHQ", tenant_id="tenant-x"))
        db_session.commit()

        first = client.get(BASE, headers={**admin_headers, "X-Tenant-ID": "tenant-h"})
        assert first.status_code == 200
        assert settings.session_cookie in client.cookies

        created = client.post(BASE, json={"type": "company", "name": "HQ", "code": "HQ"}, headers=admin_headers)
        assert created.status_code == 201
        assert created.json()["tenant_id"] == "tenant-h"

        listed = client.get(BASE, headers=admin_headers).json()
        assert [org["name"] for org in listed["organizations"]] == ["HQ"]

    def test_session_not_written_without_tenancy(self, client, admin_headers):
        from orgtree.config import settings

        response = client.get(BASE, headers={**admin_headers, "X-Tenant-ID": "tenant-h"})

        assert response.status_code == 200
        assert settings.session_cookie not in client.cookies
