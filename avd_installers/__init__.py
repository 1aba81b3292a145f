"""Unattended MSI installers for Azure Virtual Desktop image builds."""

__version__ = "0.1.0"
