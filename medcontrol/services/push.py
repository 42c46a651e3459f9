from typing import List, Optional, Dict, Any, Iterable
import logging
import httpx
from medcontrol.core.config import settings

logger = logging.getLogger(__name__)


EXPO_TOKEN_PREFIXES = ("ExponentPushToken[", "ExpoPushToken[")
DEVICE_NOT_REGISTERED = "DeviceNotRegistered"


#------This Function checks the Expo token format---------
def is_expo_token(token: str) -> bool:
    return isinstance(token, str) and token.startswith(EXPO_TOKEN_PREFIXES)


class PushService:

    def __init__(
        self,
        storage,
        push_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.storage = storage
        self.push_url = push_url or settings.expo_push_url
        self.timeout = timeout if timeout is not None else settings.push_timeout_seconds
        self.transport = transport

#------This Function collects deliverable tokens for users---------
    async def _collect_tokens(self, user_uids: List[str]) -> List[str]:
        tokens = []
        for uid in user_uids:
            for entry in await self.storage.get_push_tokens_by_user(uid):
                if is_expo_token(entry.token) and entry.token not in tokens:
                    tokens.append(entry.token)
        return tokens

#------This Function sends one push batch to users---------
    async def send_push_to_users(
        self,
        user_uids: Iterable[str],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> int:
        uids = list(dict.fromkeys(user_uids))
        if not uids:
            return 0

        try:
            tokens = await self._collect_tokens(uids)
        except Exception as e:
            logger.error(f"Failed to load push tokens: {str(e)}")
            return 0

        if not tokens:
            logger.debug(f"No push tokens found for {len(uids)} user(s)")
            return 0

        messages = [
            {
                "to": token,
                "sound": "default",
                "title": title,
                "body": body,
                "data": data or {},
            }
            for token in tokens
        ]

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(
                    self.push_url,
                    json=messages,
                    headers={"Accept": "application/json"},
                )
            if resp.status_code < 200 or resp.status_code >= 300:
                logger.error(f"Expo push send failed: {resp.status_code} {resp.text[:200]}")
                return 0
            payload = resp.json()
            items = payload.get("data") if isinstance(payload, dict) else None
            if not isinstance(items, list):
                logger.error(f"Expo push response malformed: {resp.text[:200]}")
                return 0
        except Exception as e:
            logger.error(f"Expo push send exception: {str(e)}")
            return 0

        return await self._handle_receipts(messages, items)

#------This Function applies per-token results---------
    async def _handle_receipts(self, messages: List[dict], items: List[dict]) -> int:
        sent = 0
        for index, item in enumerate(items):
            if index >= len(messages) or not isinstance(item, dict):
                continue
            token = messages[index]["to"]
            if item.get("status") != "error":
                sent += 1
                continue

            error_code = (item.get("details") or {}).get("error")
            if error_code == DEVICE_NOT_REGISTERED:
                try:
                    await self.storage.delete_push_token(token)
                except Exception as e:
                    logger.error(f"Failed to remove unregistered token {token[:20]}...: {str(e)}")
                continue

            logger.error(
                f"Expo push item error for token {token[:20]}...: {item.get('message') or error_code or 'Unknown error'}"
            )

        logger.info(f"Push delivered to {sent}/{len(messages)} device(s)")
        return sent
