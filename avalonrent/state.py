"""Persistence of the alert state between runs."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import StorageError
from .models import AlertState, ListingRecord

logger = logging.getLogger(__name__)


def encode_state(state: AlertState) -> bytes:
    payload = {key: record.to_dict() for key, record in state.items()}
    return json.dumps(payload, ensure_ascii=False, sort_keys=True).encode("utf-8")


def decode_state(raw: bytes) -> AlertState:
    payload = json.loads(raw.decode("utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Unexpected alert state payload: {type(payload).__name__}")
    return {key: ListingRecord.from_dict(value) for key, value in payload.items()}


class StateStore(Protocol):
    """Protocol defining the alert state store contract."""

    def load(self) -> AlertState:
        ...

    def save(self, state: AlertState) -> None:
        ...


@dataclass
class S3StateStore:
    """Keep the alert state as a single JSON object in S3."""

    bucket: str = "avalon-alert"
    key: str = "alert-map"
    region: str = "us-west-2"
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.client is None:
            self.client = boto3.client("s3", region_name=self.region)

    def load(self) -> AlertState:
        """Return the stored state, or an empty one if it cannot be read."""
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self.key)
            body = response["Body"]
            try:
                raw = body.read()
            finally:
                body.close()
            state = decode_state(raw)
        except (BotoCoreError, ClientError, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "Could not load alert state from s3://%s/%s, starting empty: %s",
                self.bucket,
                self.key,
                exc,
            )
            return {}
        logger.info("Loaded %d alert entries from s3://%s/%s", len(state), self.bucket, self.key)
        return state

    def save(self, state: AlertState) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=encode_state(state),
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(
                f"Failed to upload alert state to s3://{self.bucket}/{self.key}"
            ) from exc
        logger.info("Uploaded %d alert entries to s3://%s/%s", len(state), self.bucket, self.key)


@dataclass
class FileStateStore:
    """Keep the alert state as a JSON file on local disk."""

    path: Path

    def load(self) -> AlertState:
        try:
            state = decode_state(self.path.read_bytes())
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Could not load alert state from %s, starting empty: %s", self.path, exc)
            return {}
        logger.info("Loaded %d alert entries from %s", len(state), self.path)
        return state

    def save(self, state: AlertState) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_bytes(encode_state(state))
        except OSError as exc:
            raise StorageError(f"Failed to write alert state to {self.path}") from exc
        logger.info("Wrote %d alert entries to %s", len(state), self.path)
