"""
Apply update plans to disk under the backup, validate and rollback protocol.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from datetime import timedelta
from typing import Dict, Iterable, Iterator, List, Optional

from .backup import BackupStore, expand_backup_paths
from .cancellation import CancellationToken, check_cancelled
from .config import UpdateOptions
from .exceptions import (
    BackupError,
    BuildValidationError,
    NuVetError,
    OperationCancelled,
    PackageVersionNotFoundError,
)
from .interfaces import BuildValidator, RegistryClient
from .models import (
    PackageUpdate,
    ScanResult,
    UpdateBackup,
    UpdateResult,
    UpdateStatus,
    UpdateType,
)
from .planner import UpdatePlanner
from .project_writer import ProjectFileWriter
from .validator import DotNetBuildValidator, validate_projects


logger = logging.getLogger(__name__)

ALREADY_AT_TARGET = "Target version {version} is already declared; no changes made"
REVERTED_BY_BATCH = "Reverted by batch rollback"
NOT_ATTEMPTED = "Not attempted: batch rolled back after an earlier failure"
NOT_DECLARED = (
    "{package} is not declared by any affected project; "
    "update the package that depends on it or add a direct reference"
)


class UpdateExecutor:
    """Execute ``PackageUpdate`` plans.

    A plan holds the locks of every file it touches, acquired in sorted order,
    from backup through rollback, so two plans never rewrite the same project
    file at once.
    """

    def __init__(
        self,
        registry: RegistryClient,
        backup_store: BackupStore,
        writer: Optional[ProjectFileWriter] = None,
        validator: Optional[BuildValidator] = None,
        planner: Optional[UpdatePlanner] = None,
    ) -> None:
        self.registry = registry
        self.backup_store = backup_store
        self.writer = writer or ProjectFileWriter()
        self.validator = validator or DotNetBuildValidator()
        self.planner = planner or UpdatePlanner()
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _hold(self, paths: Iterable[str]) -> Iterator[None]:
        with self._locks_guard:
            locks = [self._locks.setdefault(p, threading.Lock()) for p in sorted(set(paths))]
        acquired = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    @staticmethod
    def skip_reason(update: PackageUpdate, options: UpdateOptions) -> Optional[str]:
        """Why ``update`` may not be applied automatically, or None."""
        if update.update_type == UpdateType.MANUAL:
            return None
        if update.update_type in (UpdateType.MAJOR, UpdateType.MINOR):
            if not options.auto_approve_minor_updates:
                return f"{update.update_type.value.capitalize()} updates are not auto-approved"
        elif not options.auto_approve_patch_updates:
            return f"{update.update_type.value.capitalize()} updates are not auto-approved"
        return None

    def _declaring_projects(self, update: PackageUpdate) -> List[str]:
        """Affected projects that declare ``update.package_id`` themselves."""
        declaring = []
        for project_path in sorted(set(update.affected_projects)):
            try:
                declared = self.writer.current_versions(project_path, update.package_id)
            except OSError as e:
                # Kept so the write reports the failure.
                logger.debug("Could not read %s: %s", project_path, e)
                declaring.append(project_path)
                continue
            if declared:
                declaring.append(project_path)
        return declaring

    def _already_at_target(self, update: PackageUpdate, projects: List[str]) -> bool:
        for project_path in projects:
            try:
                declared = self.writer.current_versions(project_path, update.package_id)
            except OSError:
                return False
            if not declared or any(v != update.target_version for v in declared):
                return False
        return bool(projects)

    def update_package(
        self,
        update: PackageUpdate,
        options: Optional[UpdateOptions] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> UpdateResult:
        options = options or UpdateOptions()
        started = time.monotonic()

        def finish(status: UpdateStatus, **kwargs) -> UpdateResult:
            return UpdateResult(
                update=update,
                status=status,
                duration=timedelta(seconds=time.monotonic() - started),
                **kwargs,
            )

        reason = self.skip_reason(update, options)
        if reason is not None:
            logger.info("Skipping %s: %s", update.package_id, reason)
            return finish(UpdateStatus.SKIPPED, error_message=reason)

        check_cancelled(cancellation)
        projects = self._declaring_projects(update)
        if not projects:
            message = NOT_DECLARED.format(package=update.package_id)
            logger.warning("%s", message)
            return finish(UpdateStatus.REQUIRES_MANUAL_INTERVENTION, error_message=message)

        target = str(update.target_version)
        logger.info(
            "Updating %s from %s to %s", update.package_id, update.current_package.version, target
        )

        try:
            if not self.registry.version_exists(update.package_id, target):
                raise PackageVersionNotFoundError(update.package_id, target)
        except NuVetError as e:
            logger.error("Verification failed for %s: %s", update.package_id, e)
            return finish(UpdateStatus.FAILED, error_message=str(e))

        if self._already_at_target(update, projects):
            return finish(UpdateStatus.SUCCESS, warnings=[ALREADY_AT_TARGET.format(version=target)])
        if options.dry_run:
            return finish(UpdateStatus.SKIPPED, error_message="Dry run: no files changed")

        with self._hold(expand_backup_paths(projects)):
            check_cancelled(cancellation)
            try:
                backup = self.backup_store.create(
                    projects, f"Update {update.package_id} to {target}"
                )
            except BackupError as e:
                logger.error("%s", e)
                return finish(UpdateStatus.FAILED, error_message=str(e))

            warnings: List[str] = []
            try:
                for project_path in projects:
                    check_cancelled(cancellation)
                    self.writer.update_package_version(
                        project_path, update.package_id, update.target_version
                    )
                if options.validate_after_update:
                    check_cancelled(cancellation)
                    validation = validate_projects(self.validator, projects)
                    warnings.extend(validation.warnings)
                    if not validation.is_valid:
                        raise BuildValidationError("; ".join(validation.errors))
            except OperationCancelled:
                logger.warning("Update of %s cancelled, restoring backup %s", update.package_id, backup.backup_id)
                self.backup_store.restore(backup)
                raise
            except NuVetError as e:
                message = str(e)
                logger.error("Update of %s failed: %s", update.package_id, message)
                if options.rollback_on_failure:
                    message += self._rollback(backup)
                return finish(
                    UpdateStatus.FAILED, error_message=message, warnings=warnings, backup=backup
                )

        logger.info("Updated %s to %s", update.package_id, target)
        return finish(UpdateStatus.SUCCESS, warnings=warnings, backup=backup)

    def _rollback(self, backup: UpdateBackup, scope: str = "") -> str:
        try:
            self.backup_store.restore(backup)
        except BackupError as e:
            logger.error("Rollback to backup %s failed: %s", backup.backup_id, e)
            return f" ({scope}rollback to backup {backup.backup_id} failed: {e})"
        return f" ({scope}rolled back to backup {backup.backup_id})"

    def update_vulnerable_packages(
        self,
        scan_result: ScanResult,
        options: Optional[UpdateOptions] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[UpdateResult]:
        options = options or UpdateOptions()
        plan = self.planner.plan(scan_result, options)
        for skipped in plan.skipped:
            logger.info("Not updating %s: %s", skipped.package, skipped.reason)
        return self.execute(plan.updates, options, cancellation)

    def execute(
        self,
        updates: List[PackageUpdate],
        options: Optional[UpdateOptions] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[UpdateResult]:
        """Run ``updates`` in order, with one batch backup taken up front."""
        options = options or UpdateOptions()
        if not updates:
            return []

        check_cancelled(cancellation)
        batch_backup = None
        if options.create_backup and not options.dry_run:
            projects = sorted({p for u in updates for p in u.affected_projects})
            with self._hold(expand_backup_paths(projects)):
                batch_backup = self.backup_store.create(
                    projects, f"Batch update of {len(updates)} packages"
                )

        results: List[UpdateResult] = []
        for index, update in enumerate(updates):
            try:
                result = self.update_package(update, options, cancellation)
            except OperationCancelled:
                if batch_backup is not None:
                    self.backup_store.restore(batch_backup)
                raise
            results.append(result)

            if (
                result.status == UpdateStatus.FAILED
                and options.rollback_on_failure
                and batch_backup is not None
            ):
                result.error_message = (result.error_message or "") + self._rollback(batch_backup, "batch ")
                for earlier in results[:-1]:
                    if earlier.status == UpdateStatus.SUCCESS and earlier.backup is not None:
                        earlier.status = UpdateStatus.SKIPPED
                        earlier.error_message = REVERTED_BY_BATCH
                results.extend(
                    UpdateResult(update=remaining, status=UpdateStatus.SKIPPED, error_message=NOT_ATTEMPTED)
                    for remaining in updates[index + 1:]
                )
                break

        succeeded = sum(1 for r in results if r.status == UpdateStatus.SUCCESS)
        failed = sum(1 for r in results if r.status == UpdateStatus.FAILED)
        logger.info(
            "Update batch finished: %s succeeded, %s failed, %s skipped",
            succeeded, failed, len(results) - succeeded - failed,
        )
        return results
