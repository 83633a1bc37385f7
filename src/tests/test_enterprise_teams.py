import pytest

import enterprise_teams
import errors
from entities.github import EnterpriseTeamRequest
from tests.utils import make_response, route

TEAMS = "enterprises/acme/teams"
TEAM = {"id": 7, "name": "Engineering", "slug": "ent:engineering", "organization_selection_type": "selected"}


@pytest.mark.parametrize("raw", [TEAM, [TEAM]])
def test_parse_enterprise_team_accepts_object_or_array(raw):
    team = enterprise_teams.parse_enterprise_team(raw)
    assert team.id == 7
    assert team.slug == "ent:engineering"


def test_parse_enterprise_team_of_empty_array():
    assert enterprise_teams.parse_enterprise_team([]).is_empty()


def test_list_teams_follows_pages(client, session):
    route(
        session,
        {
            ("GET", TEAMS): [
                make_response(200, [TEAM], next_page=2),
                make_response(200, [{**TEAM, "id": 8, "slug": "ent:sales"}]),
            ]
        },
    )

    teams = enterprise_teams.list_teams(client, "acme")

    assert [t.id for t in teams] == [7, 8]
    assert session.request.call_args.kwargs["params"] == {"per_page": 100, "page": 2}


def test_find_team_by_id(client, session):
    route(session, {("GET", TEAMS): make_response(200, [TEAM])})
    assert enterprise_teams.find_team_by_id(client, "acme", 7).slug == "ent:engineering"
    assert enterprise_teams.find_team_by_id(client, "acme", 99) is None


def test_get_team_with_empty_body_is_not_found(client, session):
    route(session, {("GET", f"{TEAMS}/ent:ghost"): make_response(200, [])})
    with pytest.raises(errors.GitHubAPIError) as exc:
        enterprise_teams.get_team(client, "acme", "ent:ghost")
    assert exc.value.is_not_found


def test_create_and_update_team(client, session):
    route(
        session,
        {
            ("POST", TEAMS): make_response(201, TEAM),
            ("PATCH", f"{TEAMS}/ent:engineering"): make_response(200, {**TEAM, "description": "Builders"}),
        },
    )

    created = enterprise_teams.create_team(client, "acme", EnterpriseTeamRequest(name="Engineering"))
    assert session.request.call_args.kwargs["json"] == {"name": "Engineering"}
    updated = enterprise_teams.update_team(client, "acme", created.slug, EnterpriseTeamRequest(description="Builders"))
    assert updated.description == "Builders"


def test_delete_missing_team_returns_false(client, session):
    route(session, {("DELETE", f"{TEAMS}/ent:gone"): make_response(404, {"message": "Not Found"})})
    assert enterprise_teams.delete_team(client, "acme", "ent:gone") is False


def test_add_and_remove_organizations(client, session):
    route(
        session,
        {
            ("POST", f"{TEAMS}/ent:engineering/organizations/add"): make_response(200, []),
            ("POST", f"{TEAMS}/ent:engineering/organizations/remove"): make_response(204),
        },
    )

    enterprise_teams.add_team_organizations(client, "acme", "ent:engineering", ["acme-eng"])
    assert session.request.call_args.kwargs["json"] == {"organization_slugs": ["acme-eng"]}
    enterprise_teams.remove_team_organizations(client, "acme", "ent:engineering", ["acme-ops"])
    assert session.request.call_args.args[1].endswith("/organizations/remove")


def test_empty_organization_change_makes_no_request(client, session):
    enterprise_teams.add_team_organizations(client, "acme", "ent:engineering", [])
    session.request.assert_not_called()


def test_membership_lifecycle(client, session):
    path = f"{TEAMS}/ent:engineering/memberships/alice"
    route(
        session,
        {
            ("PUT", path): make_response(200, {"state": "active", "role": "member"}),
            ("GET", path): make_response(404, {"message": "Not Found"}),
            ("DELETE", path): make_response(204),
        },
    )

    assert enterprise_teams.add_team_member(client, "acme", "ent:engineering", "alice").state == "active"
    assert enterprise_teams.get_team_membership(client, "acme", "ent:engineering", "alice") is None
    enterprise_teams.remove_team_member(client, "acme", "ent:engineering", "alice")


def test_list_team_members_page(client, session):
    route(session, {("GET", f"{TEAMS}/ent:engineering/memberships"): make_response(200, [{"login": "alice", "id": 1}])})
    page = enterprise_teams.list_team_members_page(client, "acme", "ent:engineering", None)
    assert [m.login for m in page.items] == ["alice"]
    assert page.next_cursor is None


def test_list_team_organizations_follows_pages(client, session):
    path = f"{TEAMS}/ent:engineering/organizations"
    route(
        session,
        {
            ("GET", path): [
                make_response(200, [{"login": "acme-eng", "id": 1}], next_page=2),
                make_response(200, [{"login": "acme-ops", "id": 2}]),
            ]
        },
    )

    orgs = enterprise_teams.list_team_organizations(client, "acme", "ent:engineering", per_page=1)

    assert [org.login for org in orgs] == ["acme-eng", "acme-ops"]
    assert session.request.call_args.kwargs["params"] == {"per_page": 1, "page": 2}
