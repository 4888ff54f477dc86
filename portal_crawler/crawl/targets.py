"""
Crawl target construction and per-kind request building.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from portal_crawler.config import PortalSettings
from portal_crawler.transport.executor import RequestSpec
from portal_crawler.types import CrawlTarget, TargetKind

CURRICULUM_EPOCH = "curriculum"


def schedule_targets(epoch: str, departments: Iterable[str]) -> list[CrawlTarget]:
    return [
        CrawlTarget(epoch=epoch, entity=code, kind=TargetKind.SCHEDULE)
        for code in departments
        if code and code.strip()
    ]


def curriculum_targets(
    degrees: Iterable[str | tuple[str, str]],
    *,
    epoch: str = CURRICULUM_EPOCH,
) -> list[CrawlTarget]:
    """
    Targets for curriculum pages. Items are degree codes or (code, label) pairs.
    """

    targets: list[CrawlTarget] = []
    for item in degrees:
        code, label = (item, None) if isinstance(item, str) else item
        if not code or not code.strip():
            continue
        targets.append(CrawlTarget(epoch=epoch, entity=code, kind=TargetKind.CURRICULUM, label=label))
    return targets


def unique_targets(targets: Sequence[CrawlTarget]) -> list[CrawlTarget]:
    """
    Drop repeated targets, keeping first-seen order.
    """

    seen: set[tuple[str, str, str]] = set()
    ordered: list[CrawlTarget] = []
    for target in targets:
        if target.key in seen:
            continue
        seen.add(target.key)
        ordered.append(target)
    return ordered


class PortalRequestBuilder:
    """
    Issues a fresh request spec for each attempt at a target.
    """

    def __init__(self, settings: PortalSettings) -> None:
        self._settings = settings

    def __call__(self, target: CrawlTarget) -> RequestSpec:
        if target.kind is TargetKind.CURRICULUM:
            form = {"command": "displayResults", "degCode": target.entity}
            path = self._settings.curriculum_path
        else:
            form = {
                "command": "displayResults",
                "applicablePeriod": target.epoch,
                "deptCode": target.entity,
                "subjCode": "ALL",
            }
            path = self._settings.schedule_path
        form.update(dict(target.params))
        return RequestSpec.post(path, form)
