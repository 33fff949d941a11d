"""Wire config into a ready-to-run set of components.

This lives in prpreview_cli so neither prpreview_core nor prpreview_store
know about the config file format.
"""

from __future__ import annotations

from dataclasses import dataclass

from prpreview_cli.service import PreviewService
from prpreview_core.circleci import CircleCiApi
from prpreview_core.config import validate_config
from prpreview_core.events import EventQueue
from prpreview_core.fetcher import ArtifactFetcher
from prpreview_core.gh.pull_request import get_github, get_repo
from prpreview_core.gh.teams import get_organization
from prpreview_core.notifier import EventNotifier
from prpreview_core.trust import TrustEvaluator
from prpreview_store.filesystem import FileSystemBuildStore


@dataclass
class Components:
    service: PreviewService
    notifier: EventNotifier
    events: EventQueue
    store: FileSystemBuildStore
    fetcher: ArtifactFetcher
    circleci: CircleCiApi

    def close(self) -> None:
        self.circleci.close()
        self.store.close()

    def purge_leftovers(self, max_age: float) -> list:
        """Remove abandoned temporaries from the builds and downloads directories."""
        return self.store.purge_leftovers(max_age) + self.fetcher.purge_leftovers(max_age)


def build_store(config: dict, events: EventQueue | None = None) -> FileSystemBuildStore:
    validate_config(config, required=("builds_dir",))
    return FileSystemBuildStore(config["builds_dir"], events=events)


def build_components(config: dict) -> Components:
    validate_config(config)

    gh = get_github(config["github_token"])
    repo = get_repo(gh, config["github_org"], config["github_repo"])
    org = get_organization(gh, config["github_org"])

    events = EventQueue()
    store = build_store(config, events)
    circleci = CircleCiApi(config["github_org"], config["github_repo"], config["circleci_token"])
    fetcher = ArtifactFetcher(
        circleci,
        config["download_size_limit"],
        config["downloads_dir"],
        download_timeout=config.get("download_timeout"),
    )
    evaluator = TrustEvaluator(gh, repo, org, config["github_team_slugs"], config["trusted_pr_label"])
    notifier = EventNotifier(repo, config["domain_name"])
    service = PreviewService(fetcher, evaluator, store, repo, config)

    return Components(
        service=service, notifier=notifier, events=events, store=store, fetcher=fetcher, circleci=circleci
    )
