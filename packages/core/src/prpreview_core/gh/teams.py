from __future__ import annotations

import logging
from typing import Iterable

from github import Github, UnknownObjectException

logger = logging.getLogger(__name__)


def get_organization(gh: Github, org: str):
    return gh.get_organization(org)


def is_member_by_slug(gh: Github, org, login: str, team_slugs: Iterable[str]) -> bool:
    """Return True if ``login`` is a member of any of the given teams.

    Teams are checked in order and the lookup stops at the first match, so a
    member of the first team costs a single membership call. A slug that does
    not exist in the organisation is skipped.
    """
    user = gh.get_user(login)
    for slug in team_slugs:
        try:
            team = org.get_team_by_slug(slug)
        except UnknownObjectException:
            logger.warning("Team %r not found in organisation %s; skipping.", slug, org.login)
            continue
        if team.has_in_members(user):
            logger.debug("User %s is a member of team %s.", login, slug)
            return True
    return False
