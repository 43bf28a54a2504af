"""Provisioning run orchestration and service relocation."""
