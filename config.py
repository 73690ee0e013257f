# config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from mode import APISERVER, ENDPOINTS, compute_port_policy, compute_sync_mode

Ref = Tuple[str, str]  # (namespace, name)


def _env_int(env: Mapping[str, str], name: str, default: int, minimum: Optional[int] = None) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        value = default
    else:
        try:
            value = int(raw)
        except ValueError as exc:
            raise ValueError(f"{name} must be an integer, got: {raw!r}") from exc
    if minimum is not None and value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {value}")
    return value


@dataclass(frozen=True)
class ControllerConfig:
    default_endpoint_name: str = "kubernetes"
    default_endpoint_namespace: str = "default"
    managed_endpoint_name: str = "kubernetes-vip"
    managed_endpoint_namespace: str = "default"
    apiserver_port: int = 6443
    apiserver_protocol: str = "TCP"
    sync_mode: str = ENDPOINTS
    port_policy: str = APISERVER
    workers: int = 2
    resync_seconds: int = 300
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def source_ref(self) -> Ref:
        return (self.default_endpoint_namespace, self.default_endpoint_name)

    @property
    def managed_ref(self) -> Ref:
        return (self.managed_endpoint_namespace, self.managed_endpoint_name)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ControllerConfig":
        env = os.environ if environ is None else environ
        sync_mode = compute_sync_mode(env)
        return cls(
            default_endpoint_name=env.get("DEFAULT_ENDPOINT_NAME", "kubernetes"),
            default_endpoint_namespace=env.get("DEFAULT_ENDPOINT_NAMESPACE", "default"),
            managed_endpoint_name=env.get("MANAGED_ENDPOINT_NAME", "kubernetes-vip"),
            managed_endpoint_namespace=env.get("MANAGED_ENDPOINT_NAMESPACE", "default"),
            apiserver_port=_env_int(env, "APISERVER_PORT", 6443, minimum=1),
            apiserver_protocol=env.get("APISERVER_PROTOCOL", "TCP").upper(),
            sync_mode=sync_mode,
            port_policy=compute_port_policy(sync_mode, env),
            workers=_env_int(env, "WORKERS", 2, minimum=1),
            resync_seconds=_env_int(env, "RESYNC_SECONDS", 300, minimum=1),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_json=env.get("LOG_JSON", "0") == "1",
        )

    def describe(self) -> List[Tuple[str, object]]:
        return [
            ("Default Endpoint Name", self.default_endpoint_name),
            ("Default Endpoint Namespace", self.default_endpoint_namespace),
            ("Managed Endpoint Name", self.managed_endpoint_name),
            ("Managed Endpoint Namespace", self.managed_endpoint_namespace),
            ("APIServer Port", self.apiserver_port),
            ("APIServer Protocol", self.apiserver_protocol),
            ("Sync Mode", self.sync_mode),
            ("Port Policy", self.port_policy),
            ("Workers", self.workers),
            ("Resync Seconds", self.resync_seconds),
        ]
