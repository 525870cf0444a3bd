"""
Push backup requests to queue. Backend: Redis (LPUSH) or AWS SQS when SQS_BACKUP_QUEUE_URL is set.
"""
import json

from purchasing.config import settings
from purchasing.redis_client import get_redis
from purchasing.sqs_client import send_message

BACKUP_QUEUE_KEY = "queue:backups"


async def push_backup_request(body: dict) -> None:
    if settings.sqs_backup_queue_url:
        await send_message(body)
    else:
        r = await get_redis()
        await r.lpush(BACKUP_QUEUE_KEY, json.dumps(body))
