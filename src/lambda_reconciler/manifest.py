"""YAML manifest parsing for function deployments."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from .exceptions import ValidationError
from .models import (
    DEFAULT_DESCRIPTION,
    DEFAULT_HANDLER,
    DEFAULT_MEMORY,
    DEFAULT_REGION,
    DEFAULT_RUNTIME,
    DEFAULT_TIMEOUT,
    DesiredConfig,
)
from .naming import resolve_function_name


@dataclass(frozen=True)
class DeploymentManifest:
    """
    Parsed deployment manifest.

    Example::

        name: my-fn
        code: ./src
        runtime: python3.12
        handler: app.handler
        memory: 256
        env:
          STAGE: prod
    """

    name: str | None = None
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
    layer_dir: str | None = None
    region: str = DEFAULT_REGION

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> DeploymentManifest:
        d = d or {}
        if not isinstance(d, dict):
            raise ValidationError("manifest", type(d).__name__, "must be a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ValidationError("manifest", ", ".join(unknown), "unknown keys")

        values = dict(d)
        if "shims" in values:
            values["shims"] = tuple(str(s) for s in values["shims"] or ())
        if "env" in values:
            env = values["env"] or {}
            if not isinstance(env, dict):
                raise ValidationError("env", env, "must be a mapping")
            # YAML turns unquoted numbers/booleans into non-strings
            values["env"] = {str(k): str(v) for k, v in env.items()}
        for key in ("memory", "timeout"):
            if key in values:
                try:
                    values[key] = int(values[key])
                except (TypeError, ValueError) as e:
                    raise ValidationError(key, values[key], "must be an integer") from e
        return cls(**values)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> DeploymentManifest:
        import yaml

        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as e:
            raise ValidationError("manifest", "<yaml>", f"invalid YAML: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: str | Path) -> DeploymentManifest:
        """Load a manifest file. Relative ``code`` and ``shims`` resolve against its directory."""
        path = Path(path)
        manifest = cls.from_yaml(path.read_text())
        base = path.parent
        return replace(
            manifest,
            code=str(base / manifest.code),
            shims=tuple(str(base / s) for s in manifest.shims),
        )

    def merge(self, overrides: dict[str, Any]) -> DeploymentManifest:
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        if not values:
            return self
        merged = self.to_dict()
        if "env" in values:
            values["env"] = {**merged.get("env", {}), **values["env"]}
        merged.update(values)
        return DeploymentManifest.from_dict(merged)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, tuple):
                value = list(value)
            result[f.name] = value
        return result

    def to_config(self, previous_name: str | None = None) -> DesiredConfig:
        """
        Build the desired configuration for a reconciliation pass.

        Args:
            previous_name: Function name recorded by the last deployment,
                used when the manifest does not name the function

        Raises:
            ValidationError: If no name can be resolved or a value is invalid
        """
        return DesiredConfig(
            name=resolve_function_name(self.name, previous_name),
            code=Path(self.code),
            description=self.description,
            memory=self.memory,
            timeout=self.timeout,
            runtime=self.runtime,
            handler=self.handler,
            env=dict(self.env),
            role_arn=self.role_arn,
            bucket=self.bucket,
            shims=tuple(Path(s) for s in self.shims),
            layer_dir=self.layer_dir,
            region=self.region,
        )
