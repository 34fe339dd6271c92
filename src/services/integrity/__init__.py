"""Integrity reconciliation between blob storage and the document store."""

from src.services.integrity.integrity_checker import BackupStorageRemediator, DocumentIntegrityChecker

__all__ = ["BackupStorageRemediator", "DocumentIntegrityChecker"]
