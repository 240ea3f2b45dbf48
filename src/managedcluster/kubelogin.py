"""Kubeconfig conversion via the kubelogin helper.

Converts an interactive-login kubeconfig into a non-interactive one that
authenticates with the cluster's service principal. The work is delegated to
the external ``kubelogin`` executable, which rewrites the file in place:

    kubelogin convert-kubeconfig -l spn --client-id ... --client-secret ...
        --tenant-id ... --kubeconfig <path>

Resource discipline: the kubeconfig is written to a unique temp file and
KUBECONFIG points at it for the duration of the call. On every exit path the
previous KUBECONFIG value is restored (or the variable is cleared) and the
temp file is removed. Because KUBECONFIG is process-wide, at most one
conversion runs at a time, across event loops and threads. The client secret
is resolved before KUBECONFIG is overridden so that secret lookups use the
caller's cluster configuration.

The helper receives the path explicitly through ``--kubeconfig`` and runs
with only HOME and PATH in its environment.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import tempfile
import threading
from collections.abc import AsyncIterator, Iterator, Sequence
from pathlib import Path

from .config import KUBECONFIG_ENV_VAR, MAX_KUBECONFIG_SIZE_BYTES, Config
from .credentials import CredentialsProvider
from .errors import (
    ConfigurationError,
    ExternalProcessError,
    HelperNotFoundError,
    KubeconfigIOError,
    SecretResolutionError,
)
from .security import log_security_audit_event, mask_identifier, redact_command, scrub

logger = logging.getLogger(__name__)

CONVERT_SUBCOMMAND = "convert-kubeconfig"
SPN_LOGIN_MODE = "spn"

# Environment passed through to the helper unchanged
PROPAGATED_ENV_VARS: tuple[str, ...] = ("HOME", "PATH")

# Serializes conversions: KUBECONFIG is shared by the whole process
_conversion_lock = threading.Lock()
LOCK_POLL_INTERVAL_SECONDS = 0.05


@contextlib.asynccontextmanager
async def exclusive_conversion() -> AsyncIterator[None]:
    """Hold the process-wide conversion lock from any thread or event loop.

    The lock is polled without blocking so a cancelled waiter never ends up
    owning it.
    """
    while not _conversion_lock.acquire(blocking=False):
        await asyncio.sleep(LOCK_POLL_INTERVAL_SECONDS)
    try:
        yield
    finally:
        _conversion_lock.release()


@contextlib.contextmanager
def scoped_env(name: str, value: str) -> Iterator[None]:
    """Set an environment variable, restoring the prior state on exit."""
    previous = os.environ.get(name)
    os.environ[name] = value
    try:
        yield
    finally:
        if previous is None:
            os.environ.pop(name, None)
        else:
            os.environ[name] = previous


def find_helper(name: str) -> str:
    """Resolve the helper executable on PATH.

    Raises:
        HelperNotFoundError: If it cannot be found.
    """
    path = shutil.which(name)
    if path is None:
        raise HelperNotFoundError(f"kubelogin helper '{name}' not found on PATH")
    return path


def _write_temp_kubeconfig(cluster_name: str, config_data: bytes) -> str:
    if len(config_data) > MAX_KUBECONFIG_SIZE_BYTES:
        raise KubeconfigIOError(
            f"Kubeconfig for cluster '{cluster_name}' exceeds "
            f"{MAX_KUBECONFIG_SIZE_BYTES} bytes"
        )
    try:
        fd, path = tempfile.mkstemp(prefix=f"kubeconfig-{cluster_name}-")
    except OSError as e:
        raise KubeconfigIOError(f"Cannot create temp kubeconfig: {e}") from e

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(config_data)
    except OSError as e:
        _remove_temp_file(path)
        raise KubeconfigIOError(f"Cannot write temp kubeconfig {path}: {e}") from e

    logger.debug(f"Wrote kubeconfig to temp file {path}")
    return path


def _read_temp_kubeconfig(path: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise KubeconfigIOError(f"Cannot read converted kubeconfig {path}: {e}") from e


def _remove_temp_file(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove temp kubeconfig {path}: {e}")


async def run_helper(
    args: Sequence[str],
    *,
    timeout: float,
    secrets: Sequence[str] = (),
) -> None:
    """Run the helper, capturing stderr.

    The process is killed if the caller is cancelled or the timeout expires.

    Raises:
        ExternalProcessError: On timeout or non-zero exit.
    """
    env = {name: os.environ.get(name, "") for name in PROPAGATED_ENV_VARS}
    logger.debug("Running helper", extra={"command": redact_command(args, secrets)})

    process = await asyncio.create_subprocess_exec(
        *args,
        stderr=asyncio.subprocess.PIPE,
        env=env,
    )
    try:
        _, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError as e:
        await _terminate(process)
        raise ExternalProcessError(f"kubelogin timed out after {timeout}s") from e
    except asyncio.CancelledError:
        await _terminate(process)
        raise

    stderr = scrub(stderr_bytes.decode("utf-8", errors="replace"), secrets).strip()
    if process.returncode != 0:
        raise ExternalProcessError(
            f"could not convert kubeconfig to non interactive format: {stderr}",
            stderr=stderr,
            returncode=process.returncode,
        )


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()


async def _resolve_client_secret(credentials_provider: CredentialsProvider) -> str:
    try:
        return await credentials_provider.get_client_secret()
    except SecretResolutionError as e:
        raise SecretResolutionError(f"failed to get client secret: {e}") from e


class CredentialExchanger:
    """Converts kubeconfigs to service principal authentication."""

    def __init__(self, config: Config | None = None) -> None:
        self._config = config

    async def convert(
        self,
        cluster_name: str,
        config_data: bytes,
        credentials_provider: CredentialsProvider | None,
    ) -> bytes:
        """Return ``config_data`` rewritten for non-interactive login.

        Raises:
            ConfigurationError: If no credentials provider is given (before
                any file or process work happens).
            SecretResolutionError: If the client secret cannot be resolved.
            HelperNotFoundError: If the helper is not on PATH.
            ExternalProcessError: If the helper fails or times out.
            KubeconfigIOError: If the temp file cannot be written or read.
        """
        if credentials_provider is None:
            raise ConfigurationError("cannot convert kubeconfig without credentials provider")

        config = self._config or Config.kubelogin_from_env()

        async with exclusive_conversion():
            path = _write_temp_kubeconfig(cluster_name, config_data)
            try:
                client_secret = await _resolve_client_secret(credentials_provider)
                with scoped_env(KUBECONFIG_ENV_VAR, path):
                    return await self._convert_file(
                        path, cluster_name, credentials_provider, client_secret, config
                    )
            finally:
                _remove_temp_file(path)

    async def _convert_file(
        self,
        path: str,
        cluster_name: str,
        credentials_provider: CredentialsProvider,
        client_secret: str,
        config: Config,
    ) -> bytes:
        helper = find_helper(config.helper_executable)
        client_id = credentials_provider.get_client_id()
        args = [
            helper,
            CONVERT_SUBCOMMAND,
            "-l",
            SPN_LOGIN_MODE,
            "--client-id",
            client_id,
            "--client-secret",
            client_secret,
            "--tenant-id",
            credentials_provider.get_tenant_id(),
            "--kubeconfig",
            path,
        ]

        try:
            await run_helper(
                args,
                timeout=config.kubelogin_timeout_seconds,
                secrets=[client_secret],
            )
        except ExternalProcessError:
            log_security_audit_event(
                "kubeconfig_conversion", cluster_name, action="convert", result="failure"
            )
            raise

        log_security_audit_event(
            "kubeconfig_conversion", cluster_name, action="convert", result="success"
        )
        logger.info(
            f"Converted kubeconfig for cluster '{cluster_name}'",
            extra={"client_id": mask_identifier(client_id)},
        )
        return _read_temp_kubeconfig(path)


async def convert_kubeconfig(
    cluster_name: str,
    config_data: bytes,
    credentials_provider: CredentialsProvider | None,
    *,
    config: Config | None = None,
) -> bytes:
    """Convenience wrapper around CredentialExchanger.convert."""
    return await CredentialExchanger(config).convert(
        cluster_name, config_data, credentials_provider
    )
