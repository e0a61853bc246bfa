"""Fire-and-forget webhook notifications for user-facing role events"""
import hashlib
import hmac
import json
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from coralguard_admin.utils.logger import logger

ROLE_CHANGED = "user.role_changed"


def _deliver(url: str, body: bytes, headers: Dict[str, str], timeout: float) -> None:
    """Deliver webhook payload in a daemon background thread (fire-and-forget)."""
    try:
        resp = requests.post(url, data=body, headers=headers, timeout=timeout)
        logger.debug(f"Webhook delivered ({resp.status_code}) to {url}")
    except Exception as exc:
        logger.warning(f"Webhook delivery failed to {url}: {exc}")


def _slack_body(payload: Dict[str, Any]) -> bytes:
    """Format a role change as a Slack incoming-webhook message."""
    name = payload.get("name") or payload.get("user_id", "unknown")
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")

    text = (
        f"*CoralGuard: Role Changed* :busts_in_silhouette:\n"
        f"User *{name}* moved from `{payload.get('previous_role')}` "
        f"to `{payload.get('new_role')}`."
    )
    reason = payload.get("reason")
    if reason:
        text += f"\n> {reason}"

    return json.dumps({
        "attachments": [{
            "color": "#0EA5E9",
            "text": text,
            "footer": f"CoralGuard | {ts}",
        }]
    }).encode()


class WebhookNotifier:
    """Outbound ``notify(user, event)`` capability.

    Configuration (backend/.env):
      - ``NOTIFY_WEBHOOK_URL``:   destination; Slack incoming webhooks are
                                    detected and formatted automatically.
      - ``NOTIFY_WEBHOOK_SECRET``: adds ``X-CoralGuard-Signature: sha256=<hex>``.

    ``notify`` returns as soon as the delivery thread is started. Without a URL
    it is a no-op that returns False.
    """

    def __init__(self, url: Optional[str] = None, secret: Optional[str] = None, timeout: float = 5.0):
        self.url = url
        self.secret = secret
        self.timeout = timeout

    def notify(self, user: Any, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        if not self.url:
            return False

        data: Dict[str, Any] = {
            "user_id": user.user_id,
            "email": user.email,
            "name": user.name,
            **(payload or {}),
        }

        if "hooks.slack.com" in self.url:
            body = _slack_body(data)
            headers: Dict[str, str] = {"Content-Type": "application/json"}
        else:
            body = json.dumps(
                {"event": event, "timestamp": datetime.now(timezone.utc).isoformat(), **data},
                default=str,
            ).encode()
            headers = {"Content-Type": "application/json"}

            if self.secret:
                sig = hmac.new(self.secret.encode(), body, hashlib.sha256).hexdigest()
                headers["X-CoralGuard-Signature"] = f"sha256={sig}"

        threading.Thread(
            target=_deliver, args=(self.url, body, headers, self.timeout), daemon=True
        ).start()
        return True
