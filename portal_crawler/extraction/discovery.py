"""
Reading epochs and entities from the portal's `<select>` dropdowns.
"""

from __future__ import annotations

from dataclasses import dataclass

from bs4 import BeautifulSoup

from portal_crawler.errors import DiscoveryError


@dataclass(frozen=True)
class SelectOption:
    value: str
    label: str
    selected: bool = False


def parse_select_options(body: str, name: str) -> list[SelectOption]:
    """
    Options of ``select[name=...]``, skipping blank values.

    Raises:
        DiscoveryError: The page has no such dropdown.
    """

    soup = BeautifulSoup(body or "", "html.parser")
    select = soup.find("select", attrs={"name": name})
    if select is None:
        raise DiscoveryError(f"No <select name={name!r}> on page.")

    options: list[SelectOption] = []
    for option in select.find_all("option"):
        value = str(option.get("value") or "").strip()
        if not value:
            continue
        options.append(
            SelectOption(
                value=value,
                label=" ".join(option.get_text(" ", strip=True).split()) or value,
                selected=option.has_attr("selected"),
            )
        )
    return options


def current_epoch(options: list[SelectOption]) -> str:
    """
    The pre-selected option, else the first one.
    """

    if not options:
        raise DiscoveryError("Dropdown has no usable options.")
    for option in options:
        if option.selected:
            return option.value
    return options[0].value
