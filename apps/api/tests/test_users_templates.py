"""
Tests for login-by-name users and template seeding.
"""

import json

import pytest

from conftest import CHARACTER_SLUG, CREW_SLUG
from sheetvault.core.errors import BadRequest
from sheetvault.modules.templates.service import get_template_by_slug, list_templates, seed_templates, template_type
from sheetvault.modules.users.service import upsert_user


def _write_template(directory, slug, version, type_=None):
    schema = {"version": version, "defaultData": {"notes": f"v{version}"}}
    if type_:
        schema["type"] = type_
    (directory / f"{slug}.json").write_text(
        json.dumps({"name": slug.title(), "slug": slug, "schema": schema}), encoding="utf-8"
    )


# =============================================================================
# Users
# =============================================================================


class TestUsers:
    def test_upsert_is_idempotent(self, engine):
        first = upsert_user(engine, "alice")
        second = upsert_user(engine, "alice")
        assert first["id"] == second["id"]

    def test_names_are_normalized(self, engine):
        a = upsert_user(engine, "  Alice ")
        assert a["username"] == "alice"
        assert upsert_user(engine, "ALICE")["id"] == a["id"]

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_blank_name_rejected(self, engine, name):
        with pytest.raises(BadRequest) as ei:
            upsert_user(engine, name)
        assert ei.value.detail["error"] == "missing_fields"

    def test_login_route(self, client):
        r = client.post("/api/users", json={"username": "Bob"})
        assert r.status_code == 200
        body = r.json()
        assert body["username"] == "bob"

        again = client.get("/api/users/BOB")
        assert again.status_code == 200
        assert again.json()["id"] == body["id"]

    def test_login_route_blank(self, client):
        r = client.post("/api/users", json={})
        assert r.status_code == 400
        assert r.json()["error"] == "missing_fields"

    def test_unknown_user(self, client):
        r = client.get("/api/users/nobody")
        assert r.status_code == 404
        assert r.json()["error"] == "user_not_found"


# =============================================================================
# Templates
# =============================================================================


class TestTemplates:
    def test_bundled_templates(self, engine):
        by_slug = {t["slug"]: t for t in list_templates(engine)}
        assert by_slug[CHARACTER_SLUG]["type"] == "character"
        assert by_slug[CREW_SLUG]["type"] == "crew"

    def test_seed_twice_changes_nothing(self, engine):
        assert seed_templates(engine) == {"inserted": 0, "updated": 0, "unchanged": 2}

    def test_version_bump_replaces_schema(self, engine, tmp_path):
        _write_template(tmp_path, "homebrew", 1)
        assert seed_templates(engine, tmp_path)["inserted"] == 1
        original = get_template_by_slug(engine, "homebrew")

        _write_template(tmp_path, "homebrew", 2)
        assert seed_templates(engine, tmp_path) == {"inserted": 0, "updated": 1, "unchanged": 0}
        replaced = get_template_by_slug(engine, "homebrew")
        assert replaced["id"] == original["id"]
        assert replaced["schema"]["defaultData"] == {"notes": "v2"}

    def test_same_version_is_not_rewritten(self, engine, tmp_path):
        _write_template(tmp_path, "homebrew", 1)
        seed_templates(engine, tmp_path)
        (tmp_path / "homebrew.json").write_text(
            json.dumps({"name": "Homebrew", "slug": "homebrew", "schema": {"version": 1, "defaultData": {}}}),
            encoding="utf-8",
        )
        assert seed_templates(engine, tmp_path)["unchanged"] == 1
        assert get_template_by_slug(engine, "homebrew")["schema"]["defaultData"] == {"notes": "v1"}

    def test_missing_dir_is_not_fatal(self, engine, tmp_path):
        assert seed_templates(engine, tmp_path / "nope") == {"inserted": 0, "updated": 0, "unchanged": 0}

    def test_type_defaults_to_character(self, engine, tmp_path):
        _write_template(tmp_path, "untyped", 1)
        seed_templates(engine, tmp_path)
        by_slug = {t["slug"]: t for t in list_templates(engine)}
        assert by_slug["untyped"]["type"] == "character"
        assert template_type({}) == "character"

    def test_routes(self, client):
        listing = client.get("/api/templates").json()
        assert {t["slug"] for t in listing} == {CHARACTER_SLUG, CREW_SLUG}

        r = client.get(f"/api/templates/{CREW_SLUG}")
        assert r.status_code == 200
        assert r.json()["schema"]["type"] == "crew"

        r = client.get("/api/templates/nope")
        assert r.status_code == 404
        assert r.json()["error"] == "template_not_found"
