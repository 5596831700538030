import pytest
from keyring.errors import KeyringError

from ssh_sre_mcp.auth_manager import AuthManager, SSHCredentials
from ssh_sre_mcp.exceptions import CredentialError
from ssh_sre_mcp.settings import SSHSRESettings


def _fake_keyring(monkeypatch, store: dict) -> None:
    def get_password(service_name: str, key: str):
        return store.get((service_name, key))

    monkeypatch.setattr("keyring.get_password", get_password)


def test_auth_manager_get_password_from_keyring(monkeypatch):
    _fake_keyring(monkeypatch, {("test", "1.2.3.4|root|password"): "secret"})

    auth = AuthManager(service_name="test")
    creds = auth.get_credentials(host="1.2.3.4", username="root")
    assert creds.password == "secret"
    assert creds.private_key_path is None
    assert creds.auth_mode == "password"


def test_auth_manager_keys_are_lowercased(monkeypatch):
    _fake_keyring(monkeypatch, {("test", "nas.local|root|private_key_path"): "/id_ed25519"})

    auth = AuthManager(service_name="test")
    creds = auth.get_credentials(host="NAS.local", username="Root")
    assert creds.private_key_path == "/id_ed25519"
    assert creds.auth_mode == "key"


def test_credentials_repr_hides_secrets():
    creds = SSHCredentials(
        host="h",
        username="root",
        password="secret",
        private_key_path="/id_ed25519",
    )
    assert creds.auth_mode == "mixed"
    assert "secret" not in repr(creds)
    assert "/id_ed25519" not in repr(creds)


def test_resolve_prefers_explicit_settings(monkeypatch):
    def get_password(service_name: str, key: str):
        raise AssertionError("不应访问keyring")

    monkeypatch.setattr("keyring.get_password", get_password)

    settings = SSHSRESettings(host="nas", username="root", private_key_path="/k")
    creds = AuthManager().resolve(settings)
    assert creds.private_key_path == "/k"
    assert creds.auth_mode == "key"


def test_resolve_falls_back_to_keyring(monkeypatch):
    _fake_keyring(monkeypatch, {("ssh-sre-mcp", "nas|root|password"): "pw"})

    settings = SSHSRESettings(host="nas", username="root", password=None, private_key_path=None)
    creds = AuthManager().resolve(settings)
    assert creds.password == "pw"


def test_resolve_without_any_credentials(monkeypatch):
    _fake_keyring(monkeypatch, {})

    settings = SSHSRESettings(host="nas", username="root", password=None, private_key_path=None)
    with pytest.raises(CredentialError) as exc_info:
        AuthManager().resolve(settings)
    assert exc_info.value.details["host"] == "nas"


def test_resolve_requires_host_and_username():
    with pytest.raises(CredentialError):
        AuthManager().resolve(SSHSRESettings(host="", username="root"))
    with pytest.raises(CredentialError):
        AuthManager().resolve(SSHSRESettings(host="nas", username=""))


def test_resolve_wraps_keyring_errors(monkeypatch):
    def get_password(service_name: str, key: str):
        raise KeyringError("locked")

    monkeypatch.setattr("keyring.get_password", get_password)

    settings = SSHSRESettings(host="nas", username="root", password=None, private_key_path=None)
    with pytest.raises(CredentialError, match="keyring"):
        AuthManager().resolve(settings)
