"""Configuration for provisioning runs."""

from .settings import ProvisionSettings, load_settings


__all__ = ["ProvisionSettings", "load_settings"]
