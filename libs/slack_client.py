# libs/slack_client.py
"""A *very* thin wrapper around :class:`slack_sdk.WebClient`.

* :meth:`SlackGateway.resolve_user_name` – ``users.info`` → display name.
  Never raises: failures degrade to the ``"Unknown User"`` placeholder.
* :meth:`SlackGateway.post_message` / :meth:`SlackGateway.post_ephemeral` –
  follow-up messages after the slash command was acknowledged.

The ``WebClient`` is injected so tests can hand in a ``MagicMock``.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from libs.models import UserLookup
from libs.sentry import sentry_capture

__all__ = ["SlackGateway", "build_web_client"]

logger = logging.getLogger(__name__)


def build_web_client(token: str) -> WebClient:
    return WebClient(token=token)


def _pick_name(user: Mapping[str, Any]) -> Optional[str]:
    """real_name → display_name → name, first non-empty wins."""
    profile = user.get("profile") or {}
    candidates = (
        user.get("real_name"),
        profile.get("real_name"),
        profile.get("display_name"),
        user.get("display_name"),
        user.get("name"),
    )
    for candidate in candidates:
        if candidate and str(candidate).strip():
            return str(candidate).strip()
    return None


class SlackGateway:
    def __init__(self, client: WebClient):
        self.client = client

    # ------------------------------------------------------------------ #
    # Users
    # ------------------------------------------------------------------ #
    def resolve_user_name(self, user_id: str) -> UserLookup:
        try:
            response = self.client.users_info(user=user_id)
            name = _pick_name(response["user"])
        except SlackApiError as exc:
            error = exc.response.get("error", str(exc)) if exc.response is not None else str(exc)
            logger.warning("users.info failed for %s: %s", user_id, error)
            if error != "user_not_found":
                sentry_capture(exc, extras={"user_id": user_id, "error": error})
            return UserLookup.placeholder(str(error))
        except Exception as exc:  # noqa: BLE001 – lookup must degrade, not abort
            logger.warning("Error getting user info for %s", user_id, exc_info=True)
            sentry_capture(exc, extras={"user_id": user_id})
            return UserLookup.placeholder(str(exc) or type(exc).__name__)

        if name is None:
            logger.warning("users.info returned no usable name for %s", user_id)
            return UserLookup.placeholder("user has no name fields")
        return UserLookup(name=name)

    # ------------------------------------------------------------------ #
    # Messages
    # ------------------------------------------------------------------ #
    def post_message(
        self,
        channel: str,
        text: str,
        blocks: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> None:
        """Channel-visible message; ``text`` doubles as the notification fallback."""
        self.client.chat_postMessage(channel=channel, text=text, blocks=blocks)
        logger.debug("Posted message to %s", channel)

    def post_ephemeral(self, channel: str, user: str, text: str) -> None:
        """Message visible only to *user* in *channel*."""
        self.client.chat_postEphemeral(channel=channel, user=user, text=text)
        logger.debug("Posted ephemeral message to %s in %s", user, channel)
