"""
SSH module for sshcertauth.
Converts certificate keys to OpenSSH format and stages them for login.
"""

from .key_encoder import (
    PublicKeyMaterial,
    SshPublicKeyRecord,
    encode,
    encode_material,
    fingerprint,
)
from .certificate import extract_public_key, subject_of
from .key_stager import KeyStager, StagerResult

__all__ = [
    "PublicKeyMaterial", "SshPublicKeyRecord", "encode", "encode_material", "fingerprint",
    "extract_public_key", "subject_of",
    "KeyStager", "StagerResult",
]
