"""
Identity Store - the agent's single Solana keypair.
CRITICAL: the secret key is NEVER logged, returned, or included in errors.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from autonomy.errors import IdentityError
from autonomy.logging_config import short_address

logger = logging.getLogger(__name__)


class Identity:
    """
    Owns one keypair for the lifetime of the process.

    The keypair is stored in Solana CLI format (JSON array of the 64 secret
    key bytes) with owner-only permissions. It is generated on first run and
    never regenerated: a corrupt file is an error, not a reason to make a new
    key, because replacing it would orphan any funds held by the old one.
    """

    def __init__(self, keypair: Keypair, path: Optional[Path] = None):
        self._keypair = keypair
        self.path = path

    @classmethod
    def load_or_create(cls, path: Path) -> "Identity":
        path = Path(path)
        if path.exists():
            keypair = _read_keypair(path)
            identity = cls(keypair, path)
            logger.info(f"Identity loaded: {short_address(identity.address)}")
            return identity

        keypair = Keypair()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            os.chmod(path.parent, 0o700)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w") as f:
                json.dump(list(bytes(keypair)), f)
        except OSError as e:
            raise IdentityError(f"Failed to persist new identity: {type(e).__name__}")

        identity = cls(keypair, path)
        logger.info(f"New identity generated: {short_address(identity.address)}")
        return identity

    @property
    def pubkey(self) -> Pubkey:
        return self._keypair.pubkey()

    @property
    def address(self) -> str:
        return str(self._keypair.pubkey())

    @property
    def keypair(self) -> Keypair:
        """Signer for local transaction signing only."""
        return self._keypair

    def __repr__(self) -> str:
        return f"Identity({short_address(self.address)})"


def _read_keypair(path: Path) -> Keypair:
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise IdentityError(f"Identity file unreadable: {type(e).__name__}")

    if not isinstance(data, list) or len(data) != 64:
        raise IdentityError("Identity file is not a 64-byte keypair array")
    try:
        return Keypair.from_bytes(bytes(data))
    except (ValueError, TypeError) as e:
        raise IdentityError(f"Identity file rejected: {type(e).__name__}")
