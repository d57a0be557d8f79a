"""
Unit tests for RSA key file handling.
"""

import os
import stat

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from lockbox.core.exceptions import KeyFileError
from lockbox.security.keyfiles import (
    PRIVATE_KEY_NAME,
    PUBLIC_KEY_NAME,
    load_private_key,
    load_public_key,
    resolve_key_path,
    ssh_keygen,
)


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture(scope="module")
def alice_dir(tmp_path_factory):
    """Directory with an unencrypted id_rsa / id_rsa.pub pair."""
    return ssh_keygen(tmp_path_factory.mktemp("alice"))


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("USER_KEY", raising=False)
    monkeypatch.delenv("USER_PUBKEY", raising=False)


# ==============================================================================
# Tests: ssh_keygen
# ==============================================================================

def test_ssh_keygen_writes_pair(alice_dir):
    assert (alice_dir / PRIVATE_KEY_NAME).is_file()
    assert (alice_dir / PUBLIC_KEY_NAME).is_file()
    assert (alice_dir / PUBLIC_KEY_NAME).read_bytes().startswith(b"ssh-rsa ")


@pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
def test_ssh_keygen_private_key_is_owner_only(alice_dir):
    mode = stat.S_IMODE((alice_dir / PRIVATE_KEY_NAME).stat().st_mode)
    assert mode == 0o600


def test_ssh_keygen_pair_matches(alice_dir):
    priv = load_private_key(alice_dir)
    pub = load_public_key(alice_dir)
    assert priv.public_key().public_numbers() == pub.public_numbers()


def test_ssh_keygen_refuses_to_overwrite(alice_dir):
    before = (alice_dir / PRIVATE_KEY_NAME).read_bytes()
    with pytest.raises(KeyFileError, match="refusing to overwrite"):
        ssh_keygen(alice_dir)
    assert (alice_dir / PRIVATE_KEY_NAME).read_bytes() == before


def test_ssh_keygen_creates_missing_directory(tmp_path):
    target = tmp_path / "nested" / "bob"
    assert ssh_keygen(target) == target
    assert (target / PUBLIC_KEY_NAME).exists()


def test_ssh_keygen_with_password(tmp_path):
    directory = ssh_keygen(tmp_path / "carol", password="hunter2")
    assert b"ENCRYPTED" in (directory / PRIVATE_KEY_NAME).read_bytes()

    key = load_private_key(directory, password="hunter2")
    assert isinstance(key, rsa.RSAPrivateKey)

    with pytest.raises(KeyFileError, match="could not load private key"):
        load_private_key(directory)
    with pytest.raises(KeyFileError, match="could not load private key"):
        load_private_key(directory, password=b"wrong")


# ==============================================================================
# Tests: Resolution
# ==============================================================================

def test_resolve_file_path(alice_dir):
    path = alice_dir / PUBLIC_KEY_NAME
    assert resolve_key_path(path, PUBLIC_KEY_NAME, "USER_PUBKEY") == path


def test_resolve_missing(tmp_path):
    with pytest.raises(KeyFileError, match="key file not found"):
        resolve_key_path(tmp_path / "missing", PUBLIC_KEY_NAME, "USER_PUBKEY")


def test_resolve_from_environment(alice_dir, monkeypatch):
    monkeypatch.setenv("USER_PUBKEY", str(alice_dir))
    monkeypatch.setenv("USER_KEY", str(alice_dir / PRIVATE_KEY_NAME))

    assert load_public_key().public_numbers() == load_private_key().public_key().public_numbers()


def test_resolve_defaults_to_home_ssh(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("USERPROFILE", str(tmp_path))
    ssh_keygen(tmp_path / ".ssh")

    assert isinstance(load_public_key(), rsa.RSAPublicKey)


# ==============================================================================
# Tests: Formats
# ==============================================================================

def test_load_pem_and_der_public_keys(alice_dir, tmp_path):
    pub = load_public_key(alice_dir)
    pem = tmp_path / "pub.pem"
    der = tmp_path / "pub.der"
    pem.write_bytes(pub.public_bytes(serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo))
    der.write_bytes(pub.public_bytes(serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo))

    assert load_public_key(pem).public_numbers() == pub.public_numbers()
    assert load_public_key(der).public_numbers() == pub.public_numbers()


def test_load_openssh_private_key(alice_dir, tmp_path):
    priv = load_private_key(alice_dir)
    path = tmp_path / "id_openssh"
    path.write_bytes(
        priv.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.OpenSSH,
            serialization.NoEncryption(),
        )
    )
    assert load_private_key(path).private_numbers() == priv.private_numbers()


def test_load_garbage_public_key(tmp_path):
    path = tmp_path / "junk.pub"
    path.write_bytes(b"not a key at all")
    with pytest.raises(KeyFileError, match="could not parse public key"):
        load_public_key(path)


def test_load_non_rsa_key(tmp_path):
    ec_key = ec.generate_private_key(ec.SECP256R1())
    path = tmp_path / "ec.pem"
    path.write_bytes(
        ec_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    with pytest.raises(KeyFileError, match="is not an RSA key"):
        load_private_key(path)
