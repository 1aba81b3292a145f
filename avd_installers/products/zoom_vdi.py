from __future__ import annotations

from avd_installers.framework.config import ProductConfig
from avd_installers.products import ProductRef

SSO_HOST_PROPERTY = "ZSSOHOST"


def zoom_installer_options(product: ProductConfig) -> list[tuple[str, str]]:
    """Configured options in order, with ``sso_host`` pre-seeded as ``ZSSOHOST``."""
    options = [(name, value) for name, value in product.installer_options if name != SSO_HOST_PROPERTY]
    sso_host = product.sso_host
    if sso_host is None:
        sso_host = dict(product.installer_options).get(SSO_HOST_PROPERTY)
    if sso_host:
        options.append((SSO_HOST_PROPERTY, sso_host))
    return options


ZOOM_VDI = ProductRef(
    id="zoom_vdi",
    doc="Pinned Zoom VDI plugin version from the vendor download host",
    defaults={
        "display_name": "Zoom VDI plugin",
        "resolver": "pinned_url",
        "download_host": "zoom.us",
        "url_template": "https://{host}/download/vdi/{version}/ZoomVDIUniversalPlugin{architecture}.msi",
        "architecture": "x64",
        "artifact_name": "ZoomVDIUniversalPlugin.msi",
        "registry_name_pattern": "Zoom*VDI*",
        "version_policy": "exact",
        "installer_options": {"ZNoDesktopShortCut": "true"},
    },
    installer_options=zoom_installer_options,
)
