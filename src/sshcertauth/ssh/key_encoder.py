"""
RSA public key to OpenSSH public key line conversion.

The wire format is the one described in RFC4253 section 6.6:

    string  "ssh-rsa"
    mpint   e
    mpint   n

Every field is prefixed by its length as a 4-byte big-endian integer. The
integers are written as they are received: no 0x00 sign byte is added unless
the encoder is asked to (see ``sign_guard``).
"""

import base64
import hashlib
import re
import struct
from dataclasses import dataclass
from typing import Tuple, Union

from ..errors import EncodingError

KEY_TYPE = "ssh-rsa"
MAX_FIELD_LENGTH = 0xFFFFFFFF

# Separators printed by "openssl rsa -text" between hex octets
_HEX_SEPARATORS_RE = re.compile(r"[\s:]+")
_HEX_RE = re.compile(r"^[0-9A-Fa-f]+$")

KeyInteger = Union[bytes, bytearray, str]


@dataclass(frozen=True)
class PublicKeyMaterial:
    """RSA public numbers as unsigned big-endian byte strings."""
    modulus: bytes
    exponent: bytes


@dataclass(frozen=True)
class SshPublicKeyRecord:
    """Fields of an ssh-rsa public key, in wire order."""
    exponent: bytes
    modulus: bytes
    comment: str = ""
    key_type: str = KEY_TYPE


def normalize_hex(value: str) -> bytes:
    """
    Convert hexadecimal text to bytes.

    Colons and whitespace are ignored, an optional "0x" prefix is accepted,
    and an odd number of digits is left-padded with a single zero nibble.

    Raises:
        EncodingError: if the text is empty or not hexadecimal
    """
    digits = _HEX_SEPARATORS_RE.sub("", value)
    if digits[:2].lower() == "0x":
        digits = digits[2:]

    if not digits:
        raise EncodingError("Empty hexadecimal key material")
    if not _HEX_RE.match(digits):
        raise EncodingError("Key material contains non-hexadecimal characters")

    if len(digits) % 2:
        digits = "0" + digits
    return bytes.fromhex(digits)


def _as_bytes(value: KeyInteger, name: str) -> bytes:
    if isinstance(value, str):
        raw = normalize_hex(value)
    elif isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        raise EncodingError(f"Unsupported {name} type: {type(value).__name__}")

    if not raw:
        raise EncodingError(f"Empty RSA {name}")
    return raw


def _apply_sign_guard(value: bytes) -> bytes:
    # Leading bit set would read back as a negative mpint
    if value[0] & 0x80:
        return b"\x00" + value
    return value


def _pack_field(data: bytes) -> bytes:
    if len(data) > MAX_FIELD_LENGTH:
        raise EncodingError(f"Field of {len(data)} bytes exceeds the SSH length limit")
    return struct.pack(">I", len(data)) + data


def build_record(modulus: KeyInteger, exponent: KeyInteger, comment: str = "",
                 sign_guard: bool = False) -> SshPublicKeyRecord:
    """Validate key material and assemble an SshPublicKeyRecord."""
    n = _as_bytes(modulus, "modulus")
    e = _as_bytes(exponent, "exponent")

    if sign_guard:
        n = _apply_sign_guard(n)
        e = _apply_sign_guard(e)

    return SshPublicKeyRecord(exponent=e, modulus=n, comment=comment or "")


def build_blob(record: SshPublicKeyRecord) -> bytes:
    """Serialize a record into the binary SSH public key blob."""
    return (
        _pack_field(record.key_type.encode("ascii"))
        + _pack_field(record.exponent)
        + _pack_field(record.modulus)
    )


def format_line(record: SshPublicKeyRecord) -> str:
    """Render a record as an authorized_keys style line."""
    line = f"{record.key_type} {base64.b64encode(build_blob(record)).decode('ascii')}"
    if record.comment:
        line += f" {record.comment}"
    return line


def encode(modulus: KeyInteger, exponent: KeyInteger, comment: str = "",
           sign_guard: bool = False) -> str:
    """
    Encode RSA public numbers as an OpenSSH public key line.

    Args:
        modulus: RSA modulus, big-endian bytes or hexadecimal text
        exponent: RSA public exponent, big-endian bytes or hexadecimal text
        comment: Text appended after the key, omitted when empty
        sign_guard: Prefix 0x00 to values whose most significant bit is set

    Returns:
        "ssh-rsa <base64 blob>[ <comment>]"

    Raises:
        EncodingError: on empty or malformed key material
    """
    return format_line(build_record(modulus, exponent, comment, sign_guard=sign_guard))


def encode_material(material: PublicKeyMaterial, comment: str = "",
                    sign_guard: bool = False) -> str:
    """Encode extracted certificate key material."""
    return encode(material.modulus, material.exponent, comment, sign_guard=sign_guard)


def _read_field(blob: bytes, offset: int) -> Tuple[bytes, int]:
    if offset + 4 > len(blob):
        raise EncodingError("Truncated length field in SSH key blob")
    (length,) = struct.unpack(">I", blob[offset:offset + 4])
    start = offset + 4
    end = start + length
    if end > len(blob):
        raise EncodingError("Truncated data field in SSH key blob")
    return blob[start:end], end


def decode_blob(blob: bytes, comment: str = "") -> SshPublicKeyRecord:
    """
    Parse an ssh-rsa blob back into its fields.

    Raises:
        EncodingError: if the blob is truncated, has trailing data or is not ssh-rsa
    """
    key_type, offset = _read_field(blob, 0)
    if key_type != KEY_TYPE.encode("ascii"):
        raise EncodingError(f"Unsupported key type in blob: {key_type!r}")

    exponent, offset = _read_field(blob, offset)
    modulus, offset = _read_field(blob, offset)
    if offset != len(blob):
        raise EncodingError("Trailing data after SSH key blob")

    return SshPublicKeyRecord(exponent=exponent, modulus=modulus, comment=comment)


def parse_line(line: str) -> SshPublicKeyRecord:
    """Parse an "ssh-rsa <base64>[ comment]" line."""
    parts = line.strip().split(None, 2)
    if len(parts) < 2 or parts[0] != KEY_TYPE:
        raise EncodingError("Not an ssh-rsa public key line")

    try:
        blob = base64.b64decode(parts[1], validate=True)
    except ValueError as e:
        raise EncodingError(f"Invalid base64 in public key line: {e}") from e

    return decode_blob(blob, comment=parts[2] if len(parts) > 2 else "")


def fingerprint(line: str) -> str:
    """OpenSSH style SHA256 fingerprint of a public key line."""
    record = parse_line(line)
    digest = hashlib.sha256(build_blob(record)).digest()
    return f"SHA256:{base64.b64encode(digest).decode('ascii').rstrip('=')}"
