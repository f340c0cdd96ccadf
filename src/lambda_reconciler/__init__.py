"""
lambda-reconciler: Declarative AWS Lambda deployments.

Packages function code into a deterministic archive, provisions a basic
execution role when none is given, and converges the deployed function to
the desired configuration: create, update code, update configuration, or
leave it alone when nothing changed.

Example:
    from lambda_reconciler import (
        AwsSettings,
        Clients,
        DeploymentManifest,
        FileStateStore,
        Reconciler,
    )

    manifest = DeploymentManifest.from_file("lambda.yaml")
    reconciler = Reconciler(
        Clients.from_settings(AwsSettings(region=manifest.region)),
        FileStateStore(),
    )
    result = reconciler.deploy(manifest.to_config(reconciler.previous_name()))
    print(result.action, result.state.arn)
"""

from importlib.metadata import PackageNotFoundError, version

from .archiver import hash_file, pack, pack_code
from .differ import Action, Plan, decide, plan
from .exceptions import (
    ConfigurationError,
    InvalidFormatError,
    LambdaReconcilerError,
    PackagingError,
    PackagingFailedError,
    ProviderCallFailedError,
    ProviderError,
    RemoteReadFailedError,
    RoleProvisioningFailedError,
    StateError,
    ValidationError,
)
from .manifest import DeploymentManifest
from .models import (
    Artifact,
    AwsSettings,
    DesiredConfig,
    LayerRef,
    PersistedState,
    RemoteRecord,
)
from .reconciler import Clients, Phase, Reconciler, ReconcileResult, reconcile, teardown
from .state import FileStateStore

try:
    __version__ = version("lambda-reconciler")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    # Reconciliation
    "Reconciler",
    "ReconcileResult",
    "Clients",
    "Phase",
    "reconcile",
    "teardown",
    # Diff
    "Action",
    "Plan",
    "decide",
    "plan",
    # Packaging
    "pack",
    "pack_code",
    "hash_file",
    # Models
    "Artifact",
    "AwsSettings",
    "DesiredConfig",
    "LayerRef",
    "PersistedState",
    "RemoteRecord",
    "DeploymentManifest",
    "FileStateStore",
    # Exceptions
    "LambdaReconcilerError",
    "PackagingError",
    "ProviderError",
    "ConfigurationError",
    "InvalidFormatError",
    "PackagingFailedError",
    "RemoteReadFailedError",
    "ProviderCallFailedError",
    "RoleProvisioningFailedError",
    "ValidationError",
    "StateError",
]
