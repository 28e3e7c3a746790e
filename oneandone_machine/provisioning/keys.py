"""Local SSH key pair generation."""

import logging
import os

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

logger = logging.getLogger(__name__)

KEY_SIZE = 2048


def public_key_path(private_key_path):
    return f"{private_key_path}.pub"


def generate_key_pair(private_key_path):
    """Write a new RSA key pair to *private_key_path* and ``<path>.pub``."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)
    private_bytes = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.OpenSSH,
        serialization.NoEncryption(),
    )
    public_bytes = key.public_key().public_bytes(
        serialization.Encoding.OpenSSH,
        serialization.PublicFormat.OpenSSH,
    )

    os.makedirs(os.path.dirname(os.path.abspath(private_key_path)), exist_ok=True)
    fd = os.open(private_key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(private_bytes)
    with open(public_key_path(private_key_path), "wb") as f:
        f.write(public_bytes + b"\n")


def ensure_key_pair(private_key_path):
    """Generate a key pair unless one already exists; return the public key text."""
    private_key_path = os.path.expanduser(private_key_path)
    if os.path.exists(private_key_path) and os.path.exists(public_key_path(private_key_path)):
        logger.debug(f"Reusing SSH key pair at {private_key_path}")
    else:
        logger.info("Generating SSH key ...")
        generate_key_pair(private_key_path)
    with open(public_key_path(private_key_path)) as f:
        return f.read().strip()
