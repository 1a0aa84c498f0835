"""Pending OAuth authorization handshakes.

Starting an authorization records the PKCE verifier under a random state
value in a small JSON file so the callback can be matched later. Exchanging
the authorization code for a token is not performed here; callers pass the
resulting access token to ``HubApplication.connect`` as the credential.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path

import httpx

from mcphub_core.config.servers import OAuthClientConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_SECONDS = 3600.0


@dataclass
class PendingAuthorization:
    """An authorization handshake waiting for its callback."""

    state: str
    server_id: str
    code_verifier: str
    redirect_uri: str
    created_at: float  # epoch seconds


def generate_pkce_pair() -> tuple[str, str]:
    """Return (code_verifier, S256 code_challenge)."""
    verifier = secrets.token_urlsafe(64)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


class OAuthStateStore:
    """JSON-file backed store of pending authorizations."""

    def __init__(self, path: str | Path | None = None, clock: Callable[[], float] = time.time):
        """Initialize the store.

        Args:
            path: JSON file location; None keeps state in memory only
            clock: Epoch time source (injectable for tests)
        """
        self._path = Path(path).expanduser() if path else None
        self._clock = clock
        self._pending: dict[str, PendingAuthorization] = self._load()

    def begin(self, server_id: str, client: OAuthClientConfig) -> tuple[str, str]:
        """Record a new handshake and build the authorization URL.

        Args:
            server_id: Server the token is for
            client: OAuth client registration

        Returns:
            (authorization_url, state)
        """
        verifier, challenge = generate_pkce_pair()
        state = secrets.token_urlsafe(32)
        self._pending[state] = PendingAuthorization(
            state=state,
            server_id=server_id,
            code_verifier=verifier,
            redirect_uri=client.redirect_uri,
            created_at=self._clock(),
        )
        self._save()

        params = {
            "response_type": "code",
            "client_id": client.client_id,
            "redirect_uri": client.redirect_uri,
            "state": state,
            "code_challenge": challenge,
            "code_challenge_method": "S256",
        }
        if client.scope:
            params["scope"] = client.scope
        url = httpx.URL(client.authorization_url).copy_merge_params(params)
        return str(url), state

    def pop(
        self, state: str, max_age: float = DEFAULT_MAX_AGE_SECONDS
    ) -> PendingAuthorization | None:
        """Consume a pending handshake; expired entries are treated as missing."""
        pending = self._pending.pop(state, None)
        if pending is not None:
            self._save()
            if self._clock() - pending.created_at > max_age:
                return None
        return pending

    def pending(self) -> list[PendingAuthorization]:
        return list(self._pending.values())

    def prune(self, max_age: float = DEFAULT_MAX_AGE_SECONDS) -> int:
        """Drop handshakes older than ``max_age`` seconds.

        Returns:
            Number of entries removed
        """
        cutoff = self._clock() - max_age
        expired = [state for state, entry in self._pending.items() if entry.created_at < cutoff]
        for state in expired:
            del self._pending[state]
        if expired:
            self._save()
            logger.info("Pruned %d expired OAuth states", len(expired))
        return len(expired)

    def _load(self) -> dict[str, PendingAuthorization]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text())
            return {item["state"]: PendingAuthorization(**item) for item in raw}
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.warning("Ignoring unreadable OAuth state file %s: %s", self._path, e)
            return {}

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = [asdict(entry) for entry in self._pending.values()]
        self._path.write_text(json.dumps(payload, indent=2))
