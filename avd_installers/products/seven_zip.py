from __future__ import annotations

from avd_installers.products import ProductRef

SEVEN_ZIP = ProductRef(
    id="7zip",
    doc="Latest 7-Zip release from GitHub, x64 MSI",
    defaults={
        "display_name": "7-Zip",
        "resolver": "github_release",
        "release_api_url": "https://api.github.com/repos/ip7z/7zip/releases/latest",
        "asset_pattern": r"-x64\.msi$",
        "architecture": "x64",
        "artifact_name": "7zip.msi",
        "registry_name_pattern": "7-Zip*",
        # Release tags are "24.08" while the MSI registers "24.08.00.0".
        "version_policy": "major_minor",
    },
)
