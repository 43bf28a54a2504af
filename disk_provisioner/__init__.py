"""Provision a ZFS-backed data volume and move a service's data onto it."""

from .__version__ import __version__


__all__ = ["__version__"]
