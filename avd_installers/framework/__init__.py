"""Installer framework: configuration, data model, error kinds and the stage driver.

Common entrypoints:

- `avd_installers.framework.config`: YAML config validation (`InstallerConfig.from_dict`)
- `avd_installers.framework.pipeline`: `ProvisioningPipeline`, `Stage`, `StageResult`
- `avd_installers.framework.errors`: the error taxonomy and exit codes
"""
