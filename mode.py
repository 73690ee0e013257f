# mode.py
from __future__ import annotations

import os
from typing import Mapping, Optional

ENDPOINTS = "ENDPOINTS"
ENDPOINTSLICE = "ENDPOINTSLICE"
SYNC_MODES = {ENDPOINTS, ENDPOINTSLICE}

APISERVER = "APISERVER"
SERVICE = "SERVICE"
SLICE = "SLICE"

POLICIES_BY_MODE = {
    ENDPOINTS: {APISERVER, SERVICE},
    ENDPOINTSLICE: {SLICE},
}
DEFAULT_POLICY = {ENDPOINTS: APISERVER, ENDPOINTSLICE: SLICE}


def compute_sync_mode(environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Decide how managed endpoints are written.
      ENDPOINTS     -> whole Endpoints object overwritten each cycle (legacy)
      ENDPOINTSLICE -> one EndpointSlice per source slice, server-side applied
    """
    env = os.environ if environ is None else environ
    mode = (env.get("SYNC_MODE") or ENDPOINTS).strip().upper()
    if mode not in SYNC_MODES:
        raise ValueError(f"SYNC_MODE must be one of {sorted(SYNC_MODES)}, got: {mode!r}")
    return mode


def compute_port_policy(sync_mode: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Decide which port policy publishes ports for the managed endpoints.
    Priority:
      1) Environment variable PORT_POLICY
      2) Default for the sync mode (APISERVER for ENDPOINTS, SLICE for ENDPOINTSLICE)
    """
    env = os.environ if environ is None else environ
    raw = env.get("PORT_POLICY")
    if not raw:
        return DEFAULT_POLICY[sync_mode]
    policy = raw.strip().upper()
    allowed = POLICIES_BY_MODE[sync_mode]
    if policy not in allowed:
        raise ValueError(
            f"PORT_POLICY={policy!r} is not valid with SYNC_MODE={sync_mode}; expected one of {sorted(allowed)}"
        )
    return policy
