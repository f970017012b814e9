"""Durable client identity, kept on disk across reconnects and restarts."""

import json
import logging
import os
import secrets
import string
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path(os.environ.get("POKERROOM_HOME", Path.home() / ".pokerroom"))
IDENTITY_FILE = "identity.json"

_ALPHABET = string.ascii_lowercase + string.digits


def generate_client_id() -> str:
    """Return e.g. 'client_1718000000000_k3j9x0abz'."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"client_{int(time.time() * 1000)}_{suffix}"


@dataclass
class ClientIdentity:
    client_id: str
    user_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {"clientId": self.client_id, "userName": self.user_name}

    @classmethod
    def from_dict(cls, d: dict) -> "ClientIdentity":
        return cls(client_id=d["clientId"], user_name=d.get("userName"))


def identity_path(home: Optional[Path] = None) -> Path:
    return Path(home or DEFAULT_HOME) / IDENTITY_FILE


def load_identity(path: Optional[Path] = None) -> ClientIdentity:
    """Load the stored identity, creating and saving a fresh one if missing or unreadable."""
    p = path or identity_path()
    if p.exists():
        try:
            data = json.loads(p.read_text())
            if isinstance(data, dict) and isinstance(data.get("clientId"), str) and data["clientId"]:
                return ClientIdentity.from_dict(data)
        except (ValueError, OSError):
            pass
        logger.info("Identity file %s unreadable, generating a new identity", p)
    identity = ClientIdentity(client_id=generate_client_id())
    save_identity(identity, p)
    return identity


def save_identity(identity: ClientIdentity, path: Optional[Path] = None) -> None:
    p = path or identity_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(identity.to_dict(), indent=2))
