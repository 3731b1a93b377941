"""Extract an API key and a service-account key from a provisioned project.

The two branches share nothing but the project id and a stop event. Each one reports
its own ``CredentialResult``; a failure in one never stops the other. An operator abort
in either branch sets the stop event, and the other branch gives up at its next step
without writing anything.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from pdum.provision.config import ProvisionConfig
from pdum.provision.control_plane import ControlPlane
from pdum.provision.decoders import ResponseDecoder, default_decoder
from pdum.provision.filesystem import LocalFilesystem
from pdum.provision.log import ConsoleLogger
from pdum.provision.retry import RetryExecutor
from pdum.provision.types import (
    APIKey,
    CredentialKind,
    CredentialResult,
    CredentialStatus,
    RoleBinding,
    ServiceAccountKey,
)
from pdum.provision.types.exceptions import ControlPlaneError, OperatorAbort

KEY_STRING_FIELD = "keyString"


def _checkpoint(stop: Optional[threading.Event], step: str) -> None:
    if stop is not None and stop.is_set():
        raise OperatorAbort(f"Stopped before {step}")


class CredentialExtractor:
    def __init__(
        self,
        control_plane: ControlPlane,
        retry: RetryExecutor,
        config: ProvisionConfig,
        *,
        filesystem: Optional[LocalFilesystem] = None,
        decoder: Optional[ResponseDecoder] = None,
        logger: Optional[ConsoleLogger] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.control_plane = control_plane
        self.retry = retry
        self.config = config
        self.filesystem = filesystem or LocalFilesystem()
        self.decoder = decoder or default_decoder()
        self.logger = logger or ConsoleLogger()
        self._now = now

    def _key_dir(self) -> Path:
        return self.filesystem.make_private_dir(self.config.key_dir)

    def extract_api_key(self, project_id: str, stop: Optional[threading.Event] = None) -> CredentialResult:
        """Create an API key restricted to the configured target service."""
        kind = CredentialKind.API_KEY
        _checkpoint(stop, "creating the API key")
        try:
            payload = self.retry.execute(
                lambda: self.control_plane.create_api_key(
                    project_id,
                    self.config.api_key_display_name,
                    self.config.api_key_target_service,
                ),
                description="create API key",
            )
        except ControlPlaneError as e:
            self.logger.error("API key creation failed.")
            return CredentialResult(kind, CredentialStatus.CALL_FAILED, error=str(e))

        value = self.decoder.field(payload, KEY_STRING_FIELD)
        if not value:
            self.logger.error("API key was created but its key string could not be parsed.")
            return CredentialResult(
                kind,
                CredentialStatus.UNPARSABLE,
                error=f"No {KEY_STRING_FIELD} in create response",
            )

        if stop is not None and stop.is_set():
            self.logger.warning("Run aborted; the new API key was not saved.")
            raise OperatorAbort("Stopped before saving the API key")

        try:
            path = self.filesystem.write_private(self._key_dir() / f"{project_id}-api-key.txt", value + "\n")
        except OSError as e:
            self.logger.error(f"API key created but could not be saved: {e}")
            return CredentialResult(
                kind,
                CredentialStatus.WRITE_FAILED,
                credential=APIKey(value=value),
                error=str(e),
            )

        self.logger.success("API key extracted")
        return CredentialResult(kind, CredentialStatus.SUCCEEDED, credential=APIKey(value=value, file_path=path))

    def _ensure_service_account(self, project_id: str, email: str) -> None:
        try:
            exists = self.retry.execute(
                lambda: self.control_plane.service_account_exists(project_id, email),
                description="describe service account",
            )
        except ControlPlaneError:
            exists = False

        if exists:
            self.logger.info("Service account already exists")
            return

        self.logger.info("Creating service account...")
        try:
            self.retry.execute(
                lambda: self.control_plane.create_service_account(
                    project_id,
                    self.config.service_account_name,
                    self.config.service_account_display_name,
                ),
                description="create service account",
            )
        except ControlPlaneError:
            # An earlier attempt may have succeeded before its response was lost.
            if not self.control_plane.service_account_exists(project_id, email):
                raise

    def _bind_roles(self, project_id: str, email: str, stop: Optional[threading.Event] = None) -> list[RoleBinding]:
        bindings = []
        self.logger.info("Granting IAM roles...")
        for role in self.config.roles:
            _checkpoint(stop, f"granting {role}")
            binding = RoleBinding(service_account_email=email, project_id=project_id, role=role)
            try:
                self.retry.execute(
                    lambda: self.control_plane.bind_role(project_id, email, role),
                    description=f"grant {role}",
                )
            except ControlPlaneError as e:
                self.logger.warning(f"Failed to grant role: {role}")
                binding.error = str(e)
            else:
                self.logger.success(f"Granted role: {role}")
                binding.bound = True
            bindings.append(binding)
        return bindings

    def extract_service_account_key(self, project_id: str, stop: Optional[threading.Event] = None) -> CredentialResult:
        """Ensure the service account, bind roles, and mint a JSON key file."""
        kind = CredentialKind.SERVICE_ACCOUNT_KEY
        email = self.config.service_account_email(project_id)

        _checkpoint(stop, "creating the service account")
        try:
            self._ensure_service_account(project_id, email)
        except ControlPlaneError as e:
            self.logger.error("Failed to create service account")
            return CredentialResult(kind, CredentialStatus.CALL_FAILED, error=str(e))

        bindings = self._bind_roles(project_id, email, stop)

        try:
            key_dir = self._key_dir()
        except OSError as e:
            self.logger.error(f"Cannot create key directory {self.config.key_dir}: {e}")
            return CredentialResult(kind, CredentialStatus.WRITE_FAILED, error=str(e), role_bindings=bindings)

        _checkpoint(stop, "minting the service account key")
        self.logger.info("Generating service account key...")
        try:
            data = self.retry.execute(
                lambda: self.control_plane.create_service_account_key(project_id, email),
                description="create service account key",
            )
        except ControlPlaneError as e:
            self.logger.error("Failed to generate key")
            return CredentialResult(kind, CredentialStatus.CALL_FAILED, error=str(e), role_bindings=bindings)

        if stop is not None and stop.is_set():
            self.logger.warning("Run aborted; the new service account key was discarded.")
            raise OperatorAbort("Stopped before saving the service account key")

        stamp = self._now().strftime("%Y%m%d-%H%M%S")
        path = key_dir / f"{project_id}-{self.config.service_account_name}-{stamp}.json"
        try:
            self.filesystem.write_private(path, data)
        except OSError as e:
            self.logger.error(f"Could not write key file {path}: {e}")
            return CredentialResult(kind, CredentialStatus.WRITE_FAILED, error=str(e), role_bindings=bindings)

        self.logger.success(f"Key saved: {path}")
        return CredentialResult(
            kind,
            CredentialStatus.SUCCEEDED,
            credential=ServiceAccountKey(file_path=path, service_account_email=email),
            role_bindings=bindings,
        )

    def extract_all(
        self,
        project_id: str,
        *,
        parallel: bool = True,
        stop: Optional[threading.Event] = None,
    ) -> tuple[CredentialResult, CredentialResult]:
        """Run both branches and return ``(api_key_result, service_account_result)``.

        Only an operator abort escapes from here; every control-plane failure is
        already folded into the branch's result. On abort the stop event is set and
        both workers are joined before the abort propagates, so no key file appears
        after this method returns.
        """
        if not parallel:
            return self.extract_api_key(project_id, stop), self.extract_service_account_key(project_id, stop)

        stop = stop or threading.Event()

        def branch(extract: Callable[..., CredentialResult]) -> CredentialResult:
            try:
                return extract(project_id, stop)
            except BaseException:
                stop.set()
                raise

        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="credentials")
        try:
            api_future = pool.submit(branch, self.extract_api_key)
            sa_future = pool.submit(branch, self.extract_service_account_key)
            return api_future.result(), sa_future.result()
        except BaseException:
            stop.set()
            raise
        finally:
            pool.shutdown(wait=True, cancel_futures=True)


__all__ = ["CredentialExtractor", "KEY_STRING_FIELD"]
