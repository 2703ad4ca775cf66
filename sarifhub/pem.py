"""Minimal PEM inspection for client certificates and keys.

Only the section labels (and the legacy encryption header) are examined;
the key material itself is handed to the TLS layer untouched.
"""

from dataclasses import dataclass
from pathlib import Path

from .core.exceptions import MissingCredentialError
from .core.files import read_text_file

PEM_SECTION_BEGIN = "-----BEGIN "
PEM_SECTION_END = "-----END "
PEM_LABEL_END = "-----"

LABEL_CERTIFICATE = "CERTIFICATE"
LABEL_PRIVATE_KEY = "PRIVATE KEY"
LABEL_ENCRYPTED_PRIVATE_KEY = "ENCRYPTED PRIVATE KEY"
LEGACY_PRIVATE_KEY_LABELS = frozenset({"RSA PRIVATE KEY", "EC PRIVATE KEY", "DSA PRIVATE KEY"})
LEGACY_ENCRYPTED_HEADER = "Proc-Type: 4,ENCRYPTED"

CERT_FILE_SUFFIX = ".cert"
KEY_FILE_SUFFIX = ".key"


@dataclass(frozen=True)
class PEMSection:
    label: str
    headers: tuple[str, ...] = ()

    @property
    def is_private(self) -> bool:
        return self.label == LABEL_PRIVATE_KEY or self.is_protected or self.label in LEGACY_PRIVATE_KEY_LABELS

    @property
    def is_protected(self) -> bool:
        if self.label == LABEL_ENCRYPTED_PRIVATE_KEY:
            return True
        return self.label in LEGACY_PRIVATE_KEY_LABELS and LEGACY_ENCRYPTED_HEADER in self.headers


def parse_pem_sections(text: str) -> list[PEMSection]:
    """Find the labelled sections of a PEM document (RFC 7468)."""
    sections: list[PEMSection] = []
    label: str | None = None
    headers: list[str] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if line.startswith(PEM_SECTION_BEGIN) and line.endswith(PEM_LABEL_END):
            label = line[len(PEM_SECTION_BEGIN):-len(PEM_LABEL_END)]
            headers = []
        elif line.startswith(PEM_SECTION_END) and label is not None:
            sections.append(PEMSection(label=label, headers=tuple(headers)))
            label = None
        elif label is not None and ":" in line:
            # RFC 1421 encapsulated headers only appear in legacy keys.
            headers.append(line)
    return sections


def guess_key_path(cert_path: str | Path) -> Path | None:
    """Guess `user.key` from `user.cert`."""
    path = Path(cert_path)
    if path.suffix == CERT_FILE_SUFFIX:
        return path.with_suffix(KEY_FILE_SUFFIX)
    return None


class HubUserKey:
    """A user's client certificate and private key, as PEM text."""

    def __init__(self, cert: str, key: str) -> None:
        if not cert:
            raise MissingCredentialError("Client certificate is empty.")
        if not key:
            raise MissingCredentialError("Client certificate key is empty.")
        self.cert = cert
        self.key = key
        self.key_is_protected = any(s.is_protected for s in parse_pem_sections(key))

    @classmethod
    async def load(cls, cert_path: str | Path, key_path: str | Path | None = None) -> "HubUserKey":
        """Read the certificate and key files.

        If `key_path` is omitted, it is guessed from a `.cert` certificate path.
        """
        if key_path is None:
            key_path = guess_key_path(cert_path)
            if key_path is None:
                raise MissingCredentialError(
                    f"No key file was given for client certificate '{cert_path}'."
                )
        cert = await read_text_file(cert_path)
        key = await read_text_file(key_path)
        return cls(cert, key)
