"""Data models for lambda-reconciler."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .exceptions import ValidationError
from .naming import validate_function_name

DEFAULT_DESCRIPTION = "AWS Lambda Component"
DEFAULT_MEMORY = 512
DEFAULT_TIMEOUT = 10
DEFAULT_RUNTIME = "python3.12"
DEFAULT_HANDLER = "handler.handler"
DEFAULT_REGION = "us-east-1"

MIN_MEMORY = 128
MAX_MEMORY = 10240
MAX_TIMEOUT = 900

# Runtime family -> (default dependency directory, path inside the layer zip)
# Lambda only puts a layer on the import path when its files live under the
# runtime-specific prefix.
LAYER_LAYOUTS: dict[str, tuple[str | None, str]] = {
    "nodejs": ("node_modules", "nodejs/node_modules"),
    "python": (None, "python"),
}


def _runtime_family(runtime: str) -> str:
    for family in LAYER_LAYOUTS:
        if runtime.startswith(family):
            return family
    return ""


@dataclass(frozen=True)
class LayerRef:
    """A published dependency layer version."""

    name: str
    version: int
    arn: str
    content_hash: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "arn": self.arn,
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> LayerRef:
        return cls(
            name=d["name"],
            version=int(d["version"]),
            arn=d["arn"],
            content_hash=d["content_hash"],
        )


@dataclass(frozen=True)
class Artifact:
    """A packaged archive and the base64 SHA-256 digest of its bytes.

    The digest uses the same encoding Lambda reports as ``CodeSha256``, so a
    local artifact can be compared directly against a deployed function.
    """

    path: Path
    content_hash: str

    @property
    def size_bytes(self) -> int:
        return self.path.stat().st_size


@dataclass(frozen=True)
class DesiredConfig:
    """
    Desired function configuration for one reconciliation pass.

    Attributes:
        name: Lambda function name
        code: Source directory, or an existing .zip/.tar archive
        description: Function description
        memory: Memory size in MB (128-10240)
        timeout: Timeout in seconds (1-900)
        runtime: Lambda runtime identifier (e.g. ``python3.12``)
        handler: Handler reference (e.g. ``handler.handler``)
        env: Environment variables
        role_arn: Explicit execution role. When unset, a role is auto-created.
        auto_role_arn: ARN of the auto-created role, filled in by the reconciler
        bucket: S3 bucket for code upload. When unset, code is sent inline.
        shims: Extra files appended to the archive root under their base name
        layer_dir: Dependency directory (relative to ``code``) shipped as a layer
        layer: Dependency layer attached to the function
        content_hash: Hash of the packaged code, filled in after packaging
        region: AWS region the function lives in
    """

    name: str
    code: Path
    description: str = DEFAULT_DESCRIPTION
    memory: int = DEFAULT_MEMORY
    timeout: int = DEFAULT_TIMEOUT
    runtime: str = DEFAULT_RUNTIME
    handler: str = DEFAULT_HANDLER
    env: dict[str, str] = field(default_factory=dict)
    role_arn: str | None = None
    auto_role_arn: str | None = None
    bucket: str | None = None
    shims: tuple[Path, ...] = ()
    layer_dir: str | None = None
    layer: LayerRef | None = None
    content_hash: str | None = None
    region: str = DEFAULT_REGION

    def __post_init__(self) -> None:
        validate_function_name(self.name)
        if not MIN_MEMORY <= self.memory <= MAX_MEMORY:
            raise ValidationError(
                "memory", self.memory, f"must be between {MIN_MEMORY} and {MAX_MEMORY} MB"
            )
        if not 1 <= self.timeout <= MAX_TIMEOUT:
            raise ValidationError(
                "timeout", self.timeout, f"must be between 1 and {MAX_TIMEOUT} seconds"
            )
        for key, value in self.env.items():
            if not isinstance(value, str):
                raise ValidationError(f"env.{key}", value, "environment values must be strings")

    @property
    def effective_role(self) -> str | None:
        """Role the function runs under: explicit role first, then the auto-created one."""
        return self.role_arn or self.auto_role_arn

    @property
    def layer_prefix(self) -> str | None:
        """Path prefix for dependency files inside the layer archive."""
        family = _runtime_family(self.runtime)
        return LAYER_LAYOUTS[family][1] if family else None

    def dependencies_path(self) -> Path | None:
        """Directory packaged as the dependency layer, if the runtime/config has one."""
        layer_dir = self.layer_dir
        if layer_dir is None:
            family = _runtime_family(self.runtime)
            layer_dir = LAYER_LAYOUTS[family][0] if family else None
        if layer_dir is None:
            return None
        path = self.code / layer_dir
        return path if path.is_dir() else None

    def with_artifact(self, artifact: Artifact) -> DesiredConfig:
        return replace(self, content_hash=artifact.content_hash)


@dataclass(frozen=True)
class RemoteRecord:
    """Normalized view of a deployed function's configuration."""

    name: str
    description: str
    timeout: int
    runtime: str
    role_arn: str
    handler: str
    memory: int
    content_hash: str
    env: dict[str, str]
    arn: str
    state: str | None = None
    last_update_status: str | None = None
    layers: tuple[str, ...] = ()

    @classmethod
    def from_api(cls, response: dict[str, Any]) -> RemoteRecord:
        """Build from a Lambda ``GetFunctionConfiguration`` response."""
        environment = response.get("Environment") or {}
        return cls(
            name=response["FunctionName"],
            description=response.get("Description", ""),
            timeout=response.get("Timeout", DEFAULT_TIMEOUT),
            runtime=response.get("Runtime", ""),
            role_arn=response.get("Role", ""),
            handler=response.get("Handler", ""),
            memory=response.get("MemorySize", MIN_MEMORY),
            content_hash=response.get("CodeSha256", ""),
            env=dict(environment.get("Variables") or {}),
            arn=response["FunctionArn"],
            state=response.get("State"),
            last_update_status=response.get("LastUpdateStatus"),
            layers=tuple(layer["Arn"] for layer in response.get("Layers") or ()),
        )


@dataclass(frozen=True)
class PersistedState:
    """Outputs of the last successful deployment, read back by the next run."""

    name: str
    hash: str
    arn: str
    description: str = DEFAULT_DESCRIPTION
    memory: int = DEFAULT_MEMORY
    timeout: int = DEFAULT_TIMEOUT
    code: str = "."
    bucket: str | None = None
    shims: tuple[str, ...] = ()
    handler: str = DEFAULT_HANDLER
    runtime: str = DEFAULT_RUNTIME
    env: dict[str, str] = field(default_factory=dict)
    role_arn: str | None = None
    auto_role_arn: str | None = None
    layer: LayerRef | None = None
    region: str = DEFAULT_REGION

    @classmethod
    def from_config(cls, config: DesiredConfig, *, arn: str, content_hash: str) -> PersistedState:
        return cls(
            name=config.name,
            hash=content_hash,
            arn=arn,
            description=config.description,
            memory=config.memory,
            timeout=config.timeout,
            code=str(config.code),
            bucket=config.bucket,
            shims=tuple(str(s) for s in config.shims),
            handler=config.handler,
            runtime=config.runtime,
            env=dict(config.env),
            role_arn=config.role_arn,
            auto_role_arn=config.auto_role_arn,
            layer=config.layer,
            region=config.region,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "hash": self.hash,
            "arn": self.arn,
            "description": self.description,
            "memory": self.memory,
            "timeout": self.timeout,
            "code": self.code,
            "bucket": self.bucket,
            "shims": list(self.shims),
            "handler": self.handler,
            "runtime": self.runtime,
            "env": dict(self.env),
            "role_arn": self.role_arn,
            "auto_role_arn": self.auto_role_arn,
            "layer": self.layer.to_dict() if self.layer else None,
            "region": self.region,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> PersistedState:
        layer = d.get("layer")
        return cls(
            name=d["name"],
            hash=d["hash"],
            arn=d["arn"],
            description=d.get("description", DEFAULT_DESCRIPTION),
            memory=d.get("memory", DEFAULT_MEMORY),
            timeout=d.get("timeout", DEFAULT_TIMEOUT),
            code=d.get("code", "."),
            bucket=d.get("bucket"),
            shims=tuple(d.get("shims", [])),
            handler=d.get("handler", DEFAULT_HANDLER),
            runtime=d.get("runtime", DEFAULT_RUNTIME),
            env=dict(d.get("env") or {}),
            role_arn=d.get("role_arn"),
            auto_role_arn=d.get("auto_role_arn"),
            layer=LayerRef.from_dict(layer) if layer else None,
            region=d.get("region", DEFAULT_REGION),
        )


@dataclass(frozen=True)
class AwsSettings:
    """Explicit AWS connection settings handed to the reconciler.

    Credentials are resolved by boto3 from ``profile`` (or its default
    chain); nothing in the reconciliation core reads the environment.
    """

    region: str = DEFAULT_REGION
    profile: str | None = None
    endpoint_url: str | None = None

    def client_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"region_name": self.region}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        return kwargs
