"""User-facing display and polling settings.

Every setting is declared once in ``SettingsRegistry`` with its getter, setter
and whether a change should re-trigger a refresh of the presentation.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from .config import DEFAULT_REFRESH_INTERVAL_SECONDS, clamp_refresh_interval
from .errors import ConfigurationError
from .models import PRStatus

logger = logging.getLogger(__name__)

SettingsListener = Callable[[str, Any, bool], None]


@dataclass(frozen=True)
class Settings:
    """Snapshot of all user settings."""

    display_pr_number: bool = True
    display_pr_title: bool = True
    display_repo_name: bool = True
    display_account_name: bool = True
    display_pr_status: bool = True
    show_archived_repos: bool = False
    visible_status_groups: FrozenSet[PRStatus] = field(default_factory=lambda: frozenset(PRStatus))
    refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL_SECONDS


@dataclass(frozen=True)
class SettingDefinition:
    getter: Callable[[Settings], Any]
    setter: Callable[[Settings, Any], Settings]
    affects_refresh_presentation: bool


def _bool_setting(name: str, affects_refresh_presentation: bool) -> SettingDefinition:
    def setter(settings: Settings, value: Any) -> Settings:
        if not isinstance(value, bool):
            raise ConfigurationError(f"Setting '{name}' expects a boolean.")
        return replace(settings, **{name: value})

    return SettingDefinition(
        getter=lambda settings: getattr(settings, name),
        setter=setter,
        affects_refresh_presentation=affects_refresh_presentation,
    )


def _set_visible_statuses(settings: Settings, value: Any) -> Settings:
    try:
        statuses = frozenset(PRStatus(status) for status in value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid status group in {value!r}.") from exc
    return replace(settings, visible_status_groups=statuses)


def _set_refresh_interval(settings: Settings, value: Any) -> Settings:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError("Setting 'refresh_interval_seconds' expects a number of seconds.")
    return replace(settings, refresh_interval_seconds=clamp_refresh_interval(value))


SETTING_DEFINITIONS: Dict[str, SettingDefinition] = {
    "display_pr_number": _bool_setting("display_pr_number", True),
    "display_pr_title": _bool_setting("display_pr_title", True),
    "display_repo_name": _bool_setting("display_repo_name", True),
    "display_account_name": _bool_setting("display_account_name", False),
    "display_pr_status": _bool_setting("display_pr_status", False),
    "show_archived_repos": _bool_setting("show_archived_repos", True),
    "visible_status_groups": SettingDefinition(
        getter=lambda settings: settings.visible_status_groups,
        setter=_set_visible_statuses,
        affects_refresh_presentation=True,
    ),
    "refresh_interval_seconds": SettingDefinition(
        getter=lambda settings: settings.refresh_interval_seconds,
        setter=_set_refresh_interval,
        affects_refresh_presentation=False,
    ),
}


class SettingsRegistry:
    """Thread-safe owner of the current ``Settings`` with change observers."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._lock = threading.Lock()
        self._settings = settings or Settings()
        self._listeners: List[SettingsListener] = []

    @property
    def current(self) -> Settings:
        with self._lock:
            return self._settings

    @staticmethod
    def names() -> List[str]:
        return list(SETTING_DEFINITIONS)

    def _definition(self, name: str) -> SettingDefinition:
        try:
            return SETTING_DEFINITIONS[name]
        except KeyError:
            raise ConfigurationError(f"Unknown setting '{name}'.") from None

    def subscribe(self, listener: SettingsListener) -> None:
        """Register ``listener(name, value, affects_refresh_presentation)``."""
        self._listeners.append(listener)

    def get(self, name: str) -> Any:
        return self._definition(name).getter(self.current)

    def set(self, name: str, value: Any) -> Any:
        """Update one setting and notify listeners. Returns the stored value."""
        definition = self._definition(name)
        with self._lock:
            self._settings = definition.setter(self._settings, value)
            stored = definition.getter(self._settings)

        logger.debug("Setting changed", extra={"setting": name, "value": stored})
        for listener in list(self._listeners):
            listener(name, stored, definition.affects_refresh_presentation)
        return stored

    def toggle(self, name: str) -> bool:
        current = self.get(name)
        if not isinstance(current, bool):
            raise ConfigurationError(f"Setting '{name}' is not a boolean toggle.")
        return self.set(name, not current)

    def toggle_status_group(self, status: PRStatus) -> bool:
        """Show or hide one status group. Returns True if it is now visible."""
        visible = set(self.current.visible_status_groups)
        if status in visible:
            visible.discard(status)
        else:
            visible.add(status)
        self.set("visible_status_groups", visible)
        return status in visible

    def refresh_interval_description(self) -> str:
        return describe_interval(self.current.refresh_interval_seconds)


def describe_interval(seconds: int) -> str:
    """Render an interval as ``1 minute``, ``N minutes``, ``1 hour`` or ``N hours``."""
    if seconds == 60:
        return "1 minute"
    if seconds < 3600:
        return f"{seconds // 60} minutes"
    if seconds == 3600:
        return "1 hour"
    return f"{seconds // 3600} hours"
