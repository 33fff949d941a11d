from __future__ import annotations

import re

from github import Github


def get_github(token: str) -> Github:
    return Github(token)


def get_repo(gh: Github, org: str, repo_name: str):
    return gh.get_repo(f"{org}/{repo_name}")


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_open_pull_numbers(repo) -> set[int]:
    return {pr.number for pr in repo.get_pulls(state="open")}


def has_label(pr, label: str) -> bool:
    return any(lbl.name == label for lbl in pr.labels)


def touches_significant_files(pr, pattern: str) -> bool:
    """Return True if any file changed by the PR matches ``pattern`` (a regex, searched from the start)."""
    regex = re.compile(pattern)
    return any(regex.match(f.filename) for f in pr.get_files())


def add_comment(repo, pr_number: int, body: str) -> None:
    # PR conversation comments live on the issue side of the API.
    repo.get_issue(pr_number).create_comment(body)
