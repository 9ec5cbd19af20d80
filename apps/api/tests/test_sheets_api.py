"""
HTTP tests for sheet create / read / update / delete and the crew routes.
"""

import json

from sheetvault.core.observability import emit


# =============================================================================
# Create
# =============================================================================


class TestCreate:
    def test_seeds_template_defaults(self, api):
        alice = api.login("alice")
        sheet = api.create_sheet(alice, "character", "Nyx")
        assert sheet["user_id"] == alice
        assert sheet["permission"] == "owner"
        assert sheet["data"]["stress"] == 0
        assert sheet["data"]["attributes"]["insight"]["hunt"] == 0

    def test_empty_data_counts_as_no_data(self, api):
        alice = api.login("alice")
        sheet = api.create_sheet(alice, "crew", "Redhook", data={})
        assert "heat" in sheet["data"]

    def test_defaults_are_not_shared_between_sheets(self, api, client):
        alice = api.login("alice")
        a = api.create_sheet(alice, "character", "A")
        b = api.create_sheet(alice, "character", "B")
        data = a["data"]
        data["harm"]["level1"][0] = "Broken wrist"
        r = client.put(f"/api/sheets/{a['id']}", params={"userId": alice}, json={"data": data})
        assert r.status_code == 200

        fresh = client.get(f"/api/sheets/{b['id']}").json()
        assert fresh["data"]["harm"]["level1"][0] == ""

    def test_explicit_data_is_kept_without_image(self, api):
        alice = api.login("alice")
        sheet = api.create_sheet(alice, "character", "Nyx", data={"playbook": "Whisper", "image": "forged.png"})
        assert sheet["data"] == {"playbook": "Whisper"}

    def test_missing_fields(self, api, client):
        alice = api.login("alice")
        r = client.post("/api/sheets", json={"userId": alice, "name": "Nyx"})
        assert r.status_code == 400
        assert r.json()["error"] == "missing_fields"

    def test_unknown_user(self, api, client):
        r = client.post(
            "/api/sheets",
            json={"userId": "ghost", "templateId": api.template_id("character"), "name": "Nyx"},
        )
        assert r.status_code == 404
        assert r.json()["error"] == "user_not_found"

    def test_unknown_template(self, api, client):
        alice = api.login("alice")
        r = client.post("/api/sheets", json={"userId": alice, "templateId": "nope", "name": "Nyx"})
        assert r.status_code == 404
        assert r.json()["error"] == "template_not_found"


# =============================================================================
# Read
# =============================================================================


class TestRead:
    def test_get_embeds_template(self, api, client):
        alice = api.login("alice")
        sheet = api.create_sheet(alice, "crew", "Redhook")
        body = client.get(f"/api/sheets/{sheet['id']}").json()
        assert body["template_slug"] == "blades-in-the-dark-crew"
        assert body["template_schema"]["type"] == "crew"
        assert body["user_name"] == "alice"
        assert "permission" not in body

    def test_get_with_user_includes_permission(self, api, client):
        alice = api.login("alice")
        bob = api.login("bob")
        sheet = api.create_sheet(alice)
        assert client.get(f"/api/sheets/{sheet['id']}", params={"userId": alice}).json()["permission"] == "owner"
        assert client.get(f"/api/sheets/{sheet['id']}", params={"userId": bob}).json()["permission"] == "none"

    def test_get_missing(self, client):
        r = client.get("/api/sheets/nope")
        assert r.status_code == 404
        assert r.json()["error"] == "sheet_not_found"

    def test_list_requires_user(self, client):
        r = client.get("/api/sheets")
        assert r.status_code == 400
        assert r.json()["error"] == "user_id_required"

    def test_list_redhook_scenario(self, api, client):
        alice = api.login("alice")
        bob = api.login("bob")
        redhook = api.create_sheet(alice, "crew", "Redhook Syndicate")
        api.create_sheet(alice, "character", "Nyx", data={"crew": redhook["id"]})
        api.create_sheet(bob, "character", "Vex", data={"crew": redhook["id"]})

        listing = client.get("/api/sheets", params={"userId": bob}).json()
        tagged = {s["name"]: s["permission"] for s in listing}
        assert tagged == {"Vex": "owner", "Redhook Syndicate": "crew_member"}


# =============================================================================
# Update
# =============================================================================


class TestUpdate:
    def test_partial_update_keeps_omitted_fields(self, api, client):
        alice = api.login("alice")
        sheet = api.create_sheet(alice, data={"playbook": "Lurk"})
        r = client.put(f"/api/sheets/{sheet['id']}", params={"userId": alice}, json={"name": "Nyx"})
        assert r.status_code == 200
        assert r.json()["name"] == "Nyx"
        assert r.json()["data"] == {"playbook": "Lurk"}

    def test_data_is_replaced_not_merged(self, api, client):
        alice = api.login("alice")
        sheet = api.create_sheet(alice, data={"playbook": "Lurk", "coin": 2})
        r = client.put(f"/api/sheets/{sheet['id']}", params={"userId": alice}, json={"data": {"coin": 3}})
        assert r.json()["data"] == {"coin": 3}

    def test_empty_update_refreshes_updated_at(self, api, client):
        alice = api.login("alice")
        sheet = api.create_sheet(alice)
        r = client.put(f"/api/sheets/{sheet['id']}", params={"userId": alice}, json={})
        assert r.status_code == 200
        assert r.json()["updated_at"] > sheet["updated_at"]

    def test_crew_member_can_edit_crew(self, api, client):
        alice = api.login("alice")
        bob = api.login("bob")
        redhook = api.create_sheet(alice, "crew", "Redhook")
        api.create_sheet(bob, "character", "Vex", data={"crew": redhook["id"]})
        r = client.put(f"/api/sheets/{redhook['id']}", params={"userId": bob}, json={"data": {"heat": 2}})
        assert r.status_code == 200
        assert r.json()["permission"] == "crew_member"

    def test_stranger_is_denied(self, api, client):
        alice = api.login("alice")
        bob = api.login("bob")
        sheet = api.create_sheet(alice)
        r = client.put(f"/api/sheets/{sheet['id']}", params={"userId": bob}, json={"name": "mine"})
        assert r.status_code == 403
        assert r.json()["error"] == "permission_denied"
        assert client.get(f"/api/sheets/{sheet['id']}").json()["name"] == "Sheet"

    def test_no_user_is_denied(self, api, client):
        alice = api.login("alice")
        sheet = api.create_sheet(alice)
        r = client.put(f"/api/sheets/{sheet['id']}", json={"name": "anon"})
        assert r.status_code == 403

    def test_missing_sheet_is_404_before_permission(self, api, client):
        bob = api.login("bob")
        r = client.put("/api/sheets/nope", params={"userId": bob}, json={"name": "x"})
        assert r.status_code == 404


# =============================================================================
# Delete
# =============================================================================


class TestDelete:
    def test_delete_cascades_shares(self, api, client):
        alice = api.login("alice")
        api.login("bob")
        sheet = api.create_sheet(alice)
        client.post(f"/api/sheets/{sheet['id']}/shares", json={"username": "bob", "userId": alice})

        r = client.delete(f"/api/sheets/{sheet['id']}")
        assert r.status_code == 200
        assert r.json() == {"success": True}
        assert client.get(f"/api/sheets/{sheet['id']}").status_code == 404
        assert client.get(f"/api/sheets/{sheet['id']}/shares").status_code == 404

    def test_delete_is_not_permission_gated(self, api, client):
        alice = api.login("alice")
        sheet = api.create_sheet(alice)
        assert client.delete(f"/api/sheets/{sheet['id']}").status_code == 200

    def test_delete_missing(self, client):
        r = client.delete("/api/sheets/nope")
        assert r.status_code == 404

    def test_delete_is_terminal(self, api, client):
        alice = api.login("alice")
        sheet = api.create_sheet(alice)
        client.delete(f"/api/sheets/{sheet['id']}")
        assert client.delete(f"/api/sheets/{sheet['id']}").status_code == 404
        r = client.put(f"/api/sheets/{sheet['id']}", params={"userId": alice}, json={"name": "back"})
        assert r.status_code == 404


# =============================================================================
# Crews
# =============================================================================


class TestCrewRoutes:
    def test_crews_and_members(self, api, client):
        alice = api.login("alice")
        bob = api.login("bob")
        redhook = api.create_sheet(alice, "crew", "Redhook Syndicate")
        api.create_sheet(bob, "character", "Vex", data={"crew": redhook["id"], "playbook": "Lurk"})

        crews = client.get("/api/sheets/crews").json()
        assert crews == [{"id": redhook["id"], "name": "Redhook Syndicate"}]

        members = client.get(f"/api/sheets/crews/{redhook['id']}/members").json()
        assert members == [{"id": members[0]["id"], "name": "Vex", "owner_name": "bob", "playbook": "Lurk"}]


# =============================================================================
# Envelope
# =============================================================================


class TestEnvelope:
    def test_errors_carry_request_id(self, client):
        r = client.get("/api/sheets/nope", headers={"X-Request-Id": "REQ-1"})
        assert r.headers["X-Request-Id"] == "REQ-1"
        body = r.json()
        assert body["request_id"] == "REQ-1"
        assert set(body) == {"error", "message", "request_id", "details"}

    def test_request_id_generated(self, client):
        r = client.get("/health")
        assert r.headers.get("X-Request-Id")
        assert r.json()["status"] == "ok"
        assert r.json()["db"]["status"] == "ok"

    def test_log_and_stored_timestamps_share_one_format(self, api, capsys):
        alice = api.login("alice")
        sheet = api.create_sheet(alice)
        capsys.readouterr()

        emit("info", "test.event", "hello", None, __name__)
        line = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        for ts in (line["ts"], sheet["created_at"]):
            assert ts.endswith("Z")
            assert len(ts) == len(sheet["updated_at"])
