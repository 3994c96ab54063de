"""Tests for the connectivity probe."""

from __future__ import annotations

import socket

from tasksync.sync import ConnectivityProbe, ConnectivitySettings
from tasksync.sync import connectivity as connectivity_module

from .fakes import FakeRemoteClient


class _Socket:
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return None


def test_health_strategy_uses_remote_client():
    client = FakeRemoteClient(healthy=False)
    probe = ConnectivityProbe(ConnectivitySettings(strategy="health", timeout=2.0), client)

    assert probe.is_online() is False
    assert client.health_checks == 1


def test_tcp_strategy_tries_each_target(monkeypatch):
    attempts = []

    def fake_create_connection(address, timeout=None):
        attempts.append((address, timeout))
        if address[0] == "down.example":
            raise socket.gaierror("no such host")
        return _Socket()

    monkeypatch.setattr(connectivity_module.socket, "create_connection", fake_create_connection)
    probe = ConnectivityProbe(
        ConnectivitySettings(strategy="tcp", targets=("down.example:443", "up.example:80"), timeout=1.5)
    )

    assert probe.is_online() is True
    assert attempts == [(("down.example", 443), 1.5), (("up.example", 80), 1.5)]


def test_tcp_strategy_reports_offline(monkeypatch):
    def refuse(address, timeout=None):
        raise OSError("unreachable")

    monkeypatch.setattr(connectivity_module.socket, "create_connection", refuse)
    probe = ConnectivityProbe(ConnectivitySettings(strategy="tcp"))

    assert probe.is_online() is False


def test_unexpected_error_means_offline():
    class _Broken:
        def check_health(self, timeout=None):
            raise RuntimeError("bug")

    probe = ConnectivityProbe(ConnectivitySettings(strategy="health"), _Broken())

    assert probe.is_online() is False


def test_settings_from_bundle(bundle):
    bundle.merged["connectivity"] = {"strategy": "tcp", "targets": "example.org:8443", "timeout": 0}

    settings = ConnectivitySettings.from_bundle(bundle)

    assert settings.strategy == "tcp"
    assert settings.targets == ("example.org:8443",)
    assert settings.timeout == connectivity_module.DEFAULT_CONNECTIVITY_TIMEOUT


def test_parse_target_defaults_port():
    assert connectivity_module._parse_target("example.org") == ("example.org", 443)
    assert connectivity_module._parse_target("example.org:80") == ("example.org", 80)
