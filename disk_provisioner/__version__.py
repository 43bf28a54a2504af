"""Version information for disk-provisioner."""

__version__ = "0.3.0"
