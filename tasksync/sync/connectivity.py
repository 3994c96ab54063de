"""Cheap reachability check that gates a sync cycle."""

from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..configuration import ConfigurationBundle
from .client import RemoteSyncClient

logger = logging.getLogger("tasksync.sync.connectivity")

DEFAULT_CONNECTIVITY_TIMEOUT = 5.0
DEFAULT_TARGETS: Sequence[str] = ("google.com:443",)


@dataclass
class ConnectivitySettings:
    strategy: str = "health"  # "health" or "tcp"
    targets: Sequence[str] = DEFAULT_TARGETS
    timeout: float = DEFAULT_CONNECTIVITY_TIMEOUT

    @classmethod
    def from_bundle(cls, bundle: ConfigurationBundle) -> "ConnectivitySettings":
        raw = bundle.section("connectivity")

        timeout_raw = raw.get("timeout", DEFAULT_CONNECTIVITY_TIMEOUT)
        try:
            timeout = float(timeout_raw)
            if timeout <= 0:
                timeout = DEFAULT_CONNECTIVITY_TIMEOUT
        except (TypeError, ValueError):
            timeout = DEFAULT_CONNECTIVITY_TIMEOUT

        targets_raw = raw.get("targets", list(DEFAULT_TARGETS))
        if isinstance(targets_raw, str):
            targets_raw = [targets_raw]
        targets: List[str] = [str(t).strip() for t in targets_raw if str(t).strip()]

        return cls(
            strategy=str(raw.get("strategy", "health")),
            targets=tuple(targets) or DEFAULT_TARGETS,
            timeout=timeout,
        )


class ConnectivityProbe:
    """Answers "is the remote worth trying right now?".

    ``is_online`` never raises: DNS failures, timeouts and non-2xx health
    responses all mean offline.
    """

    def __init__(
        self,
        settings: ConnectivitySettings,
        client: Optional[RemoteSyncClient] = None,
    ):
        self.settings = settings
        self.client = client

    def is_online(self) -> bool:
        start = time.perf_counter()
        try:
            if self.settings.strategy == "health" and self.client is not None:
                online = self.client.check_health(timeout=self.settings.timeout)
            else:
                online = self._any_target_reachable()
        except Exception:
            logger.exception("Connectivity probe failed unexpectedly; treating as offline")
            online = False
        elapsed = (time.perf_counter() - start) * 1000
        logger.debug("Connectivity probe (%s): %s in %.1f ms", self.settings.strategy, online, elapsed)
        return online

    def _any_target_reachable(self) -> bool:
        for target in self.settings.targets:
            host, port = _parse_target(target)
            try:
                with socket.create_connection((host, port), timeout=self.settings.timeout):
                    return True
            except OSError as exc:
                logger.info("Connectivity target %s:%s unreachable: %s", host, port, exc)
        return False


def _parse_target(target: str) -> Tuple[str, int]:
    default_port = 443
    stripped = target.strip()
    if not stripped:
        return ("localhost", default_port)
    if stripped.count(":") == 1 and stripped.split(":", 1)[1].isdigit():
        host, raw_port = stripped.split(":", 1)
        return (host or "localhost", int(raw_port))
    return (stripped, default_port)


__all__ = ["ConnectivityProbe", "ConnectivitySettings"]
