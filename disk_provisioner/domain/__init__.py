"""Domain models for a provisioning run."""

from __future__ import annotations

from .models import (
    DiskClassification,
    DiskIdentifier,
    DiskRole,
    MatchMode,
    MountTableEntry,
    ProvisioningReport,
    RelocationState,
    ServiceDataLink,
    Stage,
)


__all__ = [
    "DiskClassification",
    "DiskIdentifier",
    "DiskRole",
    "MatchMode",
    "MountTableEntry",
    "ProvisioningReport",
    "RelocationState",
    "ServiceDataLink",
    "Stage",
]
