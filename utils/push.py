import asyncio
import json
from pywebpush import webpush, WebPushException
from config import config
from constants import Collections
from logging_config import get_logger

logger = get_logger("push_utils")

async def send_push_notification(store, user_id: str, title: str, message: str, url: str = "/") -> int:
    """
    Send a Web Push Notification to all active subscriptions for a user.
    Returns the number of successful pushes.
    """
    if not config.VAPID_PRIVATE_KEY or not config.VAPID_CLAIM_EMAIL:
        logger.debug("VAPID keys not configured. Skipping push notification.")
        return 0

    subscriptions = await store.query(Collections.PUSH_SUBSCRIPTIONS, [("user_id", "==", user_id)], limit=10)
    if not subscriptions:
        return 0

    vapid_claims = {
        "sub": config.VAPID_CLAIM_EMAIL
    }

    payload = json.dumps({
        "title": title,
        "body": message,
        "data": {
            "url": url
        }
    })

    success_count = 0
    expired_ids = []

    for sub in subscriptions:
        try:
            sub_info = {
                "endpoint": sub["endpoint"],
                "keys": sub["keys"]
            }
            # webpush is a blocking HTTP call
            await asyncio.to_thread(
                webpush,
                subscription_info=sub_info,
                data=payload,
                vapid_private_key=config.VAPID_PRIVATE_KEY,
                vapid_claims=vapid_claims
            )
            success_count += 1
        except WebPushException as ex:
            # 410/404: the browser dropped the subscription
            if ex.response is not None and ex.response.status_code in (410, 404):
                expired_ids.append(sub["id"])
            else:
                logger.error(f"Failed to send Web Push: {repr(ex)}")

    for sub_id in expired_ids:
        await store.delete(Collections.PUSH_SUBSCRIPTIONS, sub_id)
    if expired_ids:
        logger.info(f"Removed {len(expired_ids)} expired push subscriptions for user {user_id}")

    return success_count
