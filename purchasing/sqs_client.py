"""
AWS SQS helpers for backup requests. Used when SQS_BACKUP_QUEUE_URL is set.
"""
import asyncio
import json
from typing import Any

import boto3

from purchasing.config import settings

_sqs_client: Any = None


def _get_client():
    global _sqs_client
    if _sqs_client is None:
        _sqs_client = boto3.client("sqs", region_name=settings.aws_region)
    return _sqs_client


async def send_message(body: dict) -> None:
    """Send message to the backup queue (run boto3 in thread to not block)."""
    client = _get_client()
    await asyncio.to_thread(
        client.send_message,
        QueueUrl=settings.sqs_backup_queue_url,
        MessageBody=json.dumps(body),
    )


def receive_messages(max_number: int = 10, wait_seconds: int = 5) -> list[dict]:
    """Sync receive (used by worker in thread). Returns list of {ReceiptHandle, Body}."""
    client = _get_client()
    resp = client.receive_message(
        QueueUrl=settings.sqs_backup_queue_url,
        MaxNumberOfMessages=max_number,
        WaitTimeSeconds=wait_seconds,
    )
    return resp.get("Messages") or []


def delete_message(receipt_handle: str) -> None:
    """Sync delete after the snapshot is written."""
    client = _get_client()
    client.delete_message(
        QueueUrl=settings.sqs_backup_queue_url,
        ReceiptHandle=receipt_handle,
    )
