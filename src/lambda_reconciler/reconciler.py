"""Reconciliation of a Lambda function with its desired configuration.

``reconcile()`` walks a function from its previous persisted state to the
desired one through fixed phases::

    NOT_DEPLOYED -> ROLE_READY -> PACKAGED -> CODE_PLACED -> CONFIGURED -> PUBLISHED

It takes the previous state, the desired config and the AWS clients, and
returns the new state plus a log of the steps taken. Persisting that state
is left to ``Reconciler``, which reads the store once before a run and
writes it once after, so a failed run leaves the stored state untouched.

No call is retried here. Re-running is safe: the diff is always taken
against the function as Lambda reports it, so a run that died half way is
resumed by the next one.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

import boto3

from .archiver import pack_code
from .differ import Action, Plan, plan
from .exceptions import ProviderCallFailedError
from .models import Artifact, AwsSettings, DesiredConfig, LayerRef, PersistedState
from .naming import role_name_for
from .provider import ComputeProvider
from .remote import RemoteStateReader
from .roles import RoleManager
from .state import StateStore
from .storage import LayerPackager, ObjectStorage, S3LayerPackager, S3Storage

logger = logging.getLogger(__name__)


class Phase(Enum):
    NOT_DEPLOYED = "not_deployed"
    ROLE_READY = "role_ready"
    PACKAGED = "packaged"
    CODE_PLACED = "code_placed"
    CONFIGURED = "configured"
    PUBLISHED = "published"
    REMOVED = "removed"


@dataclass
class Clients:
    """AWS collaborators used by a reconciliation pass."""

    compute: ComputeProvider
    reader: RemoteStateReader
    roles: RoleManager
    storage: ObjectStorage | None = None
    layers: LayerPackager | None = None

    @classmethod
    def from_settings(cls, settings: AwsSettings, session: Any = None) -> Clients:
        """Build boto3-backed clients from explicit settings.

        Args:
            settings: Region, profile and endpoint to connect with
            session: Optional pre-built ``boto3.Session``
        """
        if session is None:
            session = boto3.Session(profile_name=settings.profile)
        kwargs = settings.client_kwargs()
        lambda_client = session.client("lambda", **kwargs)
        storage = S3Storage(session.client("s3", **kwargs))
        return cls(
            compute=ComputeProvider(lambda_client),
            reader=RemoteStateReader(lambda_client),
            roles=RoleManager(session.client("iam", **kwargs)),
            storage=storage,
            layers=S3LayerPackager(lambda_client, storage),
        )


@dataclass
class ReconcileResult:
    """
    Outcome of one reconciliation or teardown pass.

    Attributes:
        state: State to persist (None after teardown)
        plan: The diff decision (None for teardown)
        phase: Last phase reached
        steps: Human-readable log of the side-effecting steps taken
    """

    state: PersistedState | None
    plan: Plan | None
    phase: Phase
    steps: list[str] = field(default_factory=list)

    @property
    def action(self) -> Action | None:
        return self.plan.action if self.plan else None


class _Run:
    """Bookkeeping for one pass: current phase and the step log."""

    def __init__(self) -> None:
        self.phase = Phase.NOT_DEPLOYED
        self.steps: list[str] = []

    def step(self, message: str, *args: Any) -> None:
        text = message % args if args else message
        logger.info(text)
        self.steps.append(text)

    def advance(self, phase: Phase) -> None:
        logger.debug("Phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase


def _prepare_role(
    config: DesiredConfig,
    previous: PersistedState | None,
    clients: Clients,
    run: _Run,
) -> DesiredConfig:
    if not config.role_arn:
        auto_role_arn = clients.roles.ensure_role(config.name)
        return replace(config, auto_role_arn=auto_role_arn)

    if previous is not None and previous.auto_role_arn:
        run.step("Explicit role provided, removing auto-created role %s", previous.auto_role_arn)
        clients.roles.remove_role(previous.auto_role_arn)
    return replace(config, auto_role_arn=None)


def _layer_source(config: DesiredConfig, clients: Clients) -> Path | None:
    """Dependency directory to ship as a layer; layers need a bucket to upload through."""
    if not config.bucket or clients.layers is None:
        return None
    return config.dependencies_path()


def _code_excludes(config: DesiredConfig, deps_dir: Path | None) -> list[str]:
    if deps_dir is None:
        return []
    return [f"{deps_dir.relative_to(config.code).as_posix()}/**"]


def _package(
    config: DesiredConfig,
    previous: PersistedState | None,
    clients: Clients,
    run: _Run,
) -> tuple[Artifact, LayerRef | None]:
    deps_dir = _layer_source(config, clients)
    if deps_dir is None:
        run.step("Packaging code from %s", config.code)
        return pack_code(config.code, config.shims), None

    assert config.bucket is not None and clients.layers is not None
    exclude = _code_excludes(config, deps_dir)
    previous_layer = previous.layer if previous is not None else None

    run.step("Packaging code from %s and dependencies from %s", config.code, deps_dir)
    # Two independent archives; both must succeed before continuing
    with ThreadPoolExecutor(max_workers=2) as pool:
        code_future = pool.submit(pack_code, config.code, config.shims, exclude)
        layer_future = pool.submit(
            clients.layers.package,
            deps_dir,
            function_name=config.name,
            runtime=config.runtime,
            prefix=config.layer_prefix,
            bucket=config.bucket,
            previous=previous_layer,
        )
        artifact = code_future.result()
        try:
            layer = layer_future.result()
        except Exception:
            _discard(artifact, config)
            raise
    return artifact, layer


def _upload(config: DesiredConfig, artifact: Artifact, clients: Clients, run: _Run) -> str | None:
    if not config.bucket:
        return None
    if clients.storage is None:
        raise ProviderCallFailedError(
            "upload", config.bucket, ValueError("no object storage configured")
        )
    run.step("Uploading %s to bucket %s", artifact.path.name, config.bucket)
    return clients.storage.upload(config.bucket, artifact.path)


def reconcile(
    previous: PersistedState | None,
    desired: DesiredConfig,
    clients: Clients,
    *,
    wait: bool = True,
) -> ReconcileResult:
    """
    Converge a function to its desired configuration.

    Args:
        previous: State persisted by the last successful run, if any
        desired: Desired configuration
        clients: AWS collaborators
        wait: Wait for Lambda to settle after create/code updates

    Returns:
        ReconcileResult with the new state to persist

    Raises:
        LambdaReconcilerError: The first error encountered; nothing is persisted
    """
    run = _Run()
    logger.debug("Starting reconciliation of %s in %s", desired.name, desired.region)

    config = _prepare_role(desired, previous, clients, run)
    run.advance(Phase.ROLE_READY)

    artifact, layer = _package(config, previous, clients, run)
    config = replace(config.with_artifact(artifact), layer=layer)
    run.advance(Phase.PACKAGED)

    try:
        decision, arn, content_hash = _place(config, artifact, previous, clients, run, wait)
    finally:
        _discard(artifact, config)

    state = PersistedState.from_config(config, arn=arn, content_hash=content_hash)
    run.advance(Phase.PUBLISHED)
    logger.debug("Reconciled %s (%s)", config.name, arn)
    return ReconcileResult(state=state, plan=decision, phase=run.phase, steps=run.steps)


def _place(
    config: DesiredConfig,
    artifact: Artifact,
    previous: PersistedState | None,
    clients: Clients,
    run: _Run,
    wait: bool,
) -> tuple[Plan, str, str]:
    """Diff against Lambda and issue the create/update/replace calls.

    Returns:
        The plan, the function ARN and the code hash Lambda reports
    """
    remote = clients.reader.get_remote(config.name)
    decision = plan(remote, config, previous)
    logger.info(
        "Plan for %s: %s (changed: %s)",
        config.name,
        decision.action.value,
        ", ".join(decision.changed) or "none",
    )

    if decision.action is Action.CREATE:
        s3_key = _upload(config, artifact, clients, run)
        run.step("Creating function %s", config.name)
        result = clients.compute.create_function(config, artifact, s3_key)
        arn, content_hash = result.arn, result.content_hash
        if wait:
            clients.compute.wait_until_active(config.name)
    else:
        assert remote is not None
        arn, content_hash = remote.arn, remote.content_hash
        if decision.action is Action.UPDATE_CODE_AND_CONFIG:
            s3_key = _upload(config, artifact, clients, run)
            run.step("Updating code of %s", config.name)
            result = clients.compute.update_function_code(config, artifact, s3_key)
            # Persist the hash Lambda stored, which may differ from the local one
            arn, content_hash = result.arn, result.content_hash
            # Lambda rejects a configuration update while the code update is in progress
            if wait or decision.needs_config_update:
                clients.compute.wait_until_updated(config.name)
    run.advance(Phase.CODE_PLACED)

    if decision.needs_config_update:
        run.step("Updating configuration of %s", config.name)
        result = clients.compute.update_function_configuration(config)
        arn = result.arn
        if decision.action is Action.UPDATE_CONFIG_ONLY:
            content_hash = result.content_hash
    run.advance(Phase.CONFIGURED)

    stale_layer = previous.layer if previous is not None else None
    if (
        stale_layer is not None
        and config.layer is not None
        and stale_layer.arn != config.layer.arn
        and clients.layers is not None
    ):
        run.step("Removing superseded dependency layer %s", stale_layer.arn)
        clients.layers.remove(stale_layer)

    if decision.replaces is not None:
        if clients.reader.get_remote(config.name) is None:
            raise ProviderCallFailedError(
                "replace",
                decision.replaces,
                RuntimeError(f"replacement function {config.name} is not reachable"),
            )
        run.step("Replacing function %s with %s", decision.replaces, config.name)
        clients.compute.delete_function(decision.replaces)

        # The old function's auto-created role is named after the old function
        stale_role = previous.auto_role_arn if previous is not None else None
        if stale_role and config.auto_role_arn and stale_role != config.auto_role_arn:
            run.step("Removing auto-created role %s of %s", stale_role, decision.replaces)
            clients.roles.remove_role(stale_role)

    return decision, arn, content_hash


def _discard(artifact: Artifact, config: DesiredConfig) -> None:
    """Delete a temporary archive; prebuilt archives passed as ``code`` are kept."""
    if artifact.path.resolve() == config.code.resolve():
        return
    artifact.path.unlink(missing_ok=True)


def teardown(previous: PersistedState | None, clients: Clients) -> ReconcileResult:
    """
    Remove a deployed function together with its auto-created role and layer.

    Missing resources count as already removed.
    """
    run = _Run()
    if previous is None or not previous.name:
        logger.info("Nothing to remove: no function name in state")
        return ReconcileResult(state=None, plan=None, phase=Phase.REMOVED, steps=run.steps)

    if previous.auto_role_arn:
        run.step("Removing auto-created role %s", previous.auto_role_arn)
        clients.roles.remove_role(previous.auto_role_arn)

    if previous.layer is not None and clients.layers is not None:
        run.step("Removing dependency layer %s", previous.layer.arn)
        clients.layers.remove(previous.layer)

    run.step("Removing function %s from %s", previous.name, previous.region)
    clients.compute.delete_function(previous.name)

    run.advance(Phase.REMOVED)
    return ReconcileResult(state=None, plan=None, phase=run.phase, steps=run.steps)


class Reconciler:
    """
    Runs reconciliation passes against a persisted state store.

    Example:
        clients = Clients.from_settings(AwsSettings(region="eu-west-1"))
        reconciler = Reconciler(clients, FileStateStore())
        result = reconciler.deploy(manifest.to_config(reconciler.previous_name()))
    """

    def __init__(self, clients: Clients, store: StateStore, *, wait: bool = True) -> None:
        self.clients = clients
        self.store = store
        self.wait = wait

    def previous_name(self) -> str | None:
        previous = self.store.load()
        return previous.name if previous else None

    def plan(self, desired: DesiredConfig) -> Plan:
        """Package and diff without making any change."""
        previous = self.store.load()
        config = desired
        if not config.role_arn:
            # Lookup only; the role is created by deploy()
            role_arn = self.clients.roles.get_role_arn(role_name_for(config.name))
            config = replace(config, auto_role_arn=role_arn)
        deps_dir = _layer_source(config, self.clients)
        artifact = pack_code(config.code, config.shims, _code_excludes(config, deps_dir))
        _discard(artifact, config)
        config = config.with_artifact(artifact)
        return plan(self.clients.reader.get_remote(config.name), config, previous)

    def deploy(self, desired: DesiredConfig) -> ReconcileResult:
        previous = self.store.load()
        result = reconcile(previous, desired, self.clients, wait=self.wait)
        assert result.state is not None
        self.store.save(result.state)
        return result

    def remove(self) -> ReconcileResult:
        previous = self.store.load()
        result = teardown(previous, self.clients)
        self.store.clear()
        return result

    def publish_version(self) -> str:
        """Publish a version of the deployed code, pinned to the persisted hash."""
        previous = self.store.load()
        if previous is None:
            raise ProviderCallFailedError(
                "publish_version", "<none>", ValueError("no deployment recorded in state")
            )
        version = self.clients.compute.publish_version(previous.name, previous.hash)
        logger.info("Published version %s of %s", version, previous.name)
        return version
