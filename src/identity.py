from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Optional, TypeVar

import config
import enterprise_teams
import errors

if TYPE_CHECKING:
    from cancellation import CancelToken
    from entities.github import EnterpriseTeam
    from github_client import GitHubClient

logger = config.get_logger(service="identity")

T = TypeVar("T")

ID_SEPARATOR = "/"


def parse_composite_id(composite_id: str, *parts: str) -> tuple[str, ...]:
    """Split an ``a/b[/c]`` identifier into exactly ``len(parts)`` non-empty pieces.

    Slashes are used because enterprise team slugs already contain ``:``.

    Raises:
        errors.ConfigurationError: wrong number of pieces or an empty piece.
    """
    pieces = tuple(composite_id.split(ID_SEPARATOR))
    if len(pieces) != len(parts) or not all(pieces):
        expected = ID_SEPARATOR.join(f"<{p}>" for p in parts)
        raise errors.ConfigurationError(f"unexpected ID format {composite_id!r}; expected {expected}")
    return pieces


def build_composite_id(*pieces: str) -> str:
    return ID_SEPARATOR.join(pieces)


def parse_team_id(composite_id: str) -> tuple[str, str]:
    enterprise_slug, team_slug = parse_composite_id(composite_id, "enterprise", "team")
    return enterprise_slug, team_slug


def parse_team_membership_id(composite_id: str) -> tuple[str, str, str]:
    enterprise_slug, team_slug, username = parse_composite_id(composite_id, "enterprise", "team", "username")
    return enterprise_slug, team_slug, username


class TeamResolver:
    """Finds an enterprise team by numeric ID or slug.

    An explicit ID always wins; a slug given alongside it is only advisory,
    since slugs change when a team is renamed.
    """

    def __init__(self, client: GitHubClient, enterprise_slug: str, per_page: int = 100, cancel: CancelToken | None = None) -> None:
        self.client = client
        self.enterprise_slug = enterprise_slug
        self.per_page = per_page
        self.cancel = cancel

    def resolve(self, slug: Optional[str] = None, team_id: Optional[int] = None) -> EnterpriseTeam:
        if team_id is not None:
            described = f"enterprise team with id {team_id} in enterprise {self.enterprise_slug}"
            with errors.classified(described):
                team = enterprise_teams.find_team_by_id(self.client, self.enterprise_slug, team_id, self.per_page, cancel=self.cancel)
            if team is None:
                raise errors.NotFoundFatal(described)
            if slug and slug != team.slug:
                logger.warning(
                    f"Team slug {slug} does not match team {team_id}, using {team.slug}",
                    extra={"team_id": team_id, "given_slug": slug, "actual_slug": team.slug},
                )
            return team

        if not slug:
            raise errors.ConfigurationError("either a team slug or a team id is required")
        with errors.classified(f"enterprise team {slug} in enterprise {self.enterprise_slug}"):
            return enterprise_teams.get_team(self.client, self.enterprise_slug, slug, cancel=self.cancel)

    def resolve_reference(self, reference: str) -> EnterpriseTeam:
        """Resolve a user-supplied reference; all-digit references are team IDs."""
        reference = reference.strip()
        if reference.isdigit():
            return self.resolve(team_id=int(reference))
        return self.resolve(slug=reference)


def _is_not_found(e: Exception) -> bool:
    if isinstance(e, errors.PhaseError):
        e = e.cause
    if isinstance(e, errors.GitHubAPIError):
        return e.is_not_found
    return isinstance(e, errors.NotFoundFatal)


def resolve_with_refresh(resolve: Callable[[], str], operation: Callable[[str], T]) -> T:
    """Run ``operation`` against a resolved key, re-resolving once if the key has gone stale.

    A team renamed since it was resolved answers 404 on its old slug; the
    operation is retried once with the freshly resolved key if it differs.
    """
    key = resolve()
    try:
        return operation(key)
    except (errors.ReconcileError, errors.GitHubAPIError) as e:
        if not _is_not_found(e):
            raise
        fresh_key = resolve()
        if fresh_key == key:
            raise
        logger.info(f"Key {key} went stale, retrying with {fresh_key}")
        return operation(fresh_key)
