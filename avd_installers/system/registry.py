from __future__ import annotations

import fnmatch
import logging
from typing import Iterable

from avd_installers.framework.models import InstalledSoftwareRecord

logger = logging.getLogger(__name__)

UNINSTALL_KEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"


def matches_display_name(display_name: str, pattern: str) -> bool:
    """Case-insensitive wildcard match, the same semantics as PowerShell ``-like``."""
    return fnmatch.fnmatchcase(display_name.casefold(), pattern.casefold())


def filter_records(
    records: Iterable[InstalledSoftwareRecord], name_pattern: str
) -> list[InstalledSoftwareRecord]:
    """Keep records whose display name matches, dropping duplicates seen in several registry views."""
    seen: set[InstalledSoftwareRecord] = set()
    matched: list[InstalledSoftwareRecord] = []
    for record in records:
        if not matches_display_name(record.display_name, name_pattern):
            continue
        if record in seen:
            continue
        seen.add(record)
        matched.append(record)
    return matched


class WindowsInstalledSoftware:
    """Reads ``DisplayName``/``DisplayVersion`` from the uninstall registry keys."""

    def find(self, name_pattern: str) -> list[InstalledSoftwareRecord]:
        return filter_records(self._iter_records(), name_pattern)

    def _iter_records(self) -> Iterable[InstalledSoftwareRecord]:
        import winreg

        views = (
            (winreg.HKEY_LOCAL_MACHINE, "HKLM", winreg.KEY_WOW64_64KEY),
            (winreg.HKEY_LOCAL_MACHINE, "HKLM", winreg.KEY_WOW64_32KEY),
            (winreg.HKEY_CURRENT_USER, "HKCU", 0),
        )
        for hive, hive_name, view_flag in views:
            try:
                root = winreg.OpenKey(hive, UNINSTALL_KEY, 0, winreg.KEY_READ | view_flag)
            except FileNotFoundError:
                logger.debug("Uninstall key not present in %s (view=%s)", hive_name, view_flag)
                continue
            with root:
                subkey_count = winreg.QueryInfoKey(root)[0]
                for index in range(subkey_count):
                    subkey_name = winreg.EnumKey(root, index)
                    with winreg.OpenKey(root, subkey_name) as subkey:
                        name = _read_string(winreg, subkey, "DisplayName")
                        if not name:
                            continue
                        version = _read_string(winreg, subkey, "DisplayVersion") or ""
                        yield InstalledSoftwareRecord(
                            display_name=name,
                            display_version=version,
                            source=f"{hive_name}\\{UNINSTALL_KEY}\\{subkey_name}",
                        )


def _read_string(winreg, key, value_name: str) -> str | None:
    try:
        value, reg_type = winreg.QueryValueEx(key, value_name)
    except FileNotFoundError:
        return None
    if reg_type not in (winreg.REG_SZ, winreg.REG_EXPAND_SZ):
        return None
    return str(value).strip()
