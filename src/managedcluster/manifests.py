"""Manifest file loading with validation.

A manifest is a multi-document YAML file holding the declarative objects of
one cluster: Cluster, AzureManagedControlPlane, AzureClusterIdentity and any
number of MachinePool / AzureManagedMachinePool pairs (paired by name).

SECURITY: File size is checked before reading to prevent DoS via large files.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_MANIFEST_FILE_SIZE_BYTES
from .errors import ManifestLoadError
from .models import (
    AzureClusterIdentity,
    AzureManagedControlPlane,
    AzureManagedMachinePool,
    Cluster,
    MachinePool,
    get_model_class,
)

logger = logging.getLogger(__name__)


@dataclass
class ManifestBundle:
    """Validated objects of one cluster."""

    cluster: Cluster | None = None
    control_plane: AzureManagedControlPlane | None = None
    identity: AzureClusterIdentity | None = None
    machine_pools: dict[str, MachinePool] = field(default_factory=dict)
    infra_pools: dict[str, AzureManagedMachinePool] = field(default_factory=dict)

    def pools(self) -> Iterator[tuple[MachinePool, AzureManagedMachinePool]]:
        """Machine pools paired with their infrastructure pool, in file order."""
        for name, machine_pool in self.machine_pools.items():
            infra_pool = self.infra_pools.get(name)
            if infra_pool is not None:
                yield machine_pool, infra_pool

    def pool(self, name: str) -> tuple[MachinePool, AzureManagedMachinePool]:
        """Look up one pool pair by name.

        Raises:
            ManifestLoadError: If either half of the pair is missing.
        """
        machine_pool = self.machine_pools.get(name)
        infra_pool = self.infra_pools.get(name)
        if machine_pool is None or infra_pool is None:
            raise ManifestLoadError(
                f"Pool '{name}' needs both MachinePool and AzureManagedMachinePool"
            )
        return machine_pool, infra_pool


def _format_validation_error(kind: str, error: ValidationError) -> str:
    errors = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        errors.append(f"  - {loc}: {item['msg']}")
    return f"Validation failed for {kind}:\n" + "\n".join(errors)


def _add_object(bundle: ManifestBundle, kind: str, obj: Any) -> None:
    singletons = {
        "Cluster": "cluster",
        "AzureManagedControlPlane": "control_plane",
        "AzureClusterIdentity": "identity",
    }
    if kind in singletons:
        attr = singletons[kind]
        if getattr(bundle, attr) is not None:
            raise ManifestLoadError(f"Manifest contains more than one {kind}")
        setattr(bundle, attr, obj)
    elif kind == "MachinePool":
        bundle.machine_pools[obj.metadata.name] = obj
    elif kind == "AzureManagedMachinePool":
        bundle.infra_pools[obj.metadata.name] = obj


def parse_manifests(content: str, source: str = "<string>") -> ManifestBundle:
    """Parse and validate manifest YAML.

    Raises:
        ManifestLoadError: On invalid YAML, unknown kinds or validation failure.
    """
    try:
        documents = [d for d in yaml.safe_load_all(content) if d is not None]
    except yaml.YAMLError as e:
        raise ManifestLoadError(f"Invalid YAML in {source}: {e}") from e

    bundle = ManifestBundle()
    for document in documents:
        if not isinstance(document, dict):
            raise ManifestLoadError(f"Each document must be a YAML mapping: {source}")

        kind = document.get("kind")
        if not kind:
            raise ManifestLoadError(f"Document without 'kind' in {source}")

        try:
            model_class = get_model_class(kind)
        except ValueError as e:
            raise ManifestLoadError(str(e)) from e

        try:
            obj = model_class.model_validate(document)
        except ValidationError as e:
            raise ManifestLoadError(_format_validation_error(kind, e)) from e

        _add_object(bundle, kind, obj)

    return bundle


def load_manifests(path: Path) -> ManifestBundle:
    """Load and validate a manifest file.

    Raises:
        ManifestLoadError: If the file cannot be read or fails validation.
    """
    if not path.exists():
        raise ManifestLoadError(f"Manifest file not found: {path}")

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise ManifestLoadError(f"Failed to stat manifest file {path}: {e}") from e

    if file_size > MAX_MANIFEST_FILE_SIZE_BYTES:
        raise ManifestLoadError(
            f"Manifest file exceeds maximum size of {MAX_MANIFEST_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestLoadError(f"Failed to read manifest file {path}: {e}") from e

    bundle = parse_manifests(content, str(path))
    logger.info(
        "Loaded manifests from %s (%d pools)",
        path,
        len(list(bundle.pools())),
    )
    return bundle
