"""Tests for the server entry point's startup guards."""

import pytest

from vitalsync.core.config.settings import Settings
from vitalsync.core.server.main import _check_bind_address, _is_loopback_host


@pytest.mark.parametrize("host", ["127.0.0.1", "::1", "localhost", "127.0.0.2"])
def test_loopback_hosts(host):
    assert _is_loopback_host(host) is True


@pytest.mark.parametrize("host", ["0.0.0.0", "192.168.1.20", "example.org"])
def test_non_loopback_hosts(host):
    assert _is_loopback_host(host) is False


def test_public_bind_refused():
    with pytest.raises(RuntimeError, match="VITALSYNC_ALLOW_INSECURE_BIND"):
        _check_bind_address(Settings(vitalsync_host="0.0.0.0"))


def test_public_bind_allowed_with_override():
    _check_bind_address(Settings(vitalsync_host="0.0.0.0", vitalsync_allow_insecure_bind=True))
