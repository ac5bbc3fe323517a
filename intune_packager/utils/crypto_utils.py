"""Content encryption for Intune app uploads"""

import hashlib
import os
from pathlib import Path
from typing import Tuple

from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..models.upload import EncryptionInfo
from .async_utils import sync_to_async

KEY_SIZE = 32
IV_SIZE = 16
MAC_SIZE = 32
READ_SIZE = 1024 * 1024


def encrypt_file(source: Path, destination: Path) -> Tuple[EncryptionInfo, int]:
    """
    Encrypt ``source`` into ``destination`` as ``HMAC || IV || ciphertext``

    AES-256-CBC with PKCS7 padding; the HMAC-SHA256 covers IV and
    ciphertext. Keys and IV are freshly generated for every call. The file
    is streamed, the HMAC slot is filled in once the ciphertext is complete.

    Args:
        source: Plaintext file
        destination: Encrypted output

    Returns:
        (encryption info, size of the encrypted file)
    """
    encryption_key = os.urandom(KEY_SIZE)
    mac_key = os.urandom(KEY_SIZE)
    iv = os.urandom(IV_SIZE)

    encryptor = Cipher(algorithms.AES(encryption_key), modes.CBC(iv)).encryptor()
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    signer = hmac.HMAC(mac_key, hashes.SHA256())
    digest = hashlib.sha256()

    signer.update(iv)
    with open(source, "rb") as src, open(destination, "wb") as dst:
        dst.write(b"\0" * MAC_SIZE)
        dst.write(iv)
        while True:
            chunk = src.read(READ_SIZE)
            if not chunk:
                break
            digest.update(chunk)
            block = encryptor.update(padder.update(chunk))
            signer.update(block)
            dst.write(block)

        tail = encryptor.update(padder.finalize()) + encryptor.finalize()
        signer.update(tail)
        dst.write(tail)

        mac = signer.finalize()
        dst.seek(0)
        dst.write(mac)

    info = EncryptionInfo(
        encryption_key=encryption_key,
        mac_key=mac_key,
        initialization_vector=iv,
        mac=mac,
        file_digest=digest.digest(),
    )
    return info, destination.stat().st_size


encrypt_file_async = sync_to_async(encrypt_file)
