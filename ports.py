# ports.py
from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, List, Optional

from config import ControllerConfig
from mode import APISERVER, SERVICE, SLICE

Port = Dict[str, Any]


def map_addresses(items: Optional[Iterable[dict]]) -> List[dict]:
    """Copy source subsets/endpoints so the managed copy never aliases them."""
    return copy.deepcopy(list(items or []))


def _is_numeric(target_port: Any) -> bool:
    if isinstance(target_port, bool):
        return False
    if isinstance(target_port, int):
        return True
    return isinstance(target_port, str) and target_port.isdigit()


def resolve_port(service_port: dict) -> int:
    """Numeric targetPort wins; a named (or missing) targetPort falls back to `port`."""
    target = service_port.get("targetPort")
    if _is_numeric(target):
        return int(target)
    return int(service_port["port"])


class PortPolicy:
    """Computes the port list published on managed endpoints."""

    name = ""
    needs_service = True

    def compute_ports(self, service_ports: Optional[List[dict]]) -> List[Port]:
        raise NotImplementedError


class SlicePortPolicy(PortPolicy):
    name = SLICE

    def compute_ports(self, service_ports: Optional[List[dict]]) -> List[Port]:
        out: List[Port] = []
        for sp in service_ports or []:
            port: Port = {
                "name": sp.get("name", "") or "",
                "port": resolve_port(sp),
                "protocol": sp.get("protocol") or "TCP",
            }
            if sp.get("appProtocol"):
                port["appProtocol"] = sp["appProtocol"]
            out.append(port)
        return out


class ServicePortPolicy(PortPolicy):
    name = SERVICE

    def compute_ports(self, service_ports: Optional[List[dict]]) -> List[Port]:
        out: List[Port] = []
        for sp in service_ports or []:
            port: Port = {"port": resolve_port(sp), "protocol": sp.get("protocol") or "TCP"}
            if sp.get("name"):
                port["name"] = sp["name"]
            out.append(port)
        return out


class ApiserverPortPolicy(PortPolicy):
    """Ignores the service entirely: one fixed (port, protocol) for every subset."""

    name = APISERVER
    needs_service = False

    def __init__(self, port: int, protocol: str = "TCP"):
        self.port = int(port)
        self.protocol = protocol

    def compute_ports(self, service_ports: Optional[List[dict]] = None) -> List[Port]:
        return [{"port": self.port, "protocol": self.protocol}]


def policy_from_config(cfg: ControllerConfig) -> PortPolicy:
    if cfg.port_policy == APISERVER:
        return ApiserverPortPolicy(cfg.apiserver_port, cfg.apiserver_protocol)
    if cfg.port_policy == SERVICE:
        return ServicePortPolicy()
    if cfg.port_policy == SLICE:
        return SlicePortPolicy()
    raise ValueError(f"unknown port policy: {cfg.port_policy!r}")
