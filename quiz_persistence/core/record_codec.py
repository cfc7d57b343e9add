"""Versioned record codec.

Every persisted record is a JSON object carrying ``timestamp`` (epoch ms)
and ``version``. Decoding never raises: the outcome is a :class:`DecodeResult`
whose status tells the caller whether to use the payload, ignore it, or
delete the offending key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import json
import logging
from types import MappingProxyType
from typing import Any, Mapping

from quiz_persistence.constants.storage_constants import (
    AUTH_REDIRECT_TTL_MS,
    QUIZ_RESULT_TTL_MS,
    QUIZ_STATE_TTL_MS,
    SCHEMA_VERSION,
)
from quiz_persistence.core.clock import now_ms
from quiz_persistence.core.errors import CorruptedRecord, ExpiredRecord, InvalidShape
from quiz_persistence.core.models import VersionedRecord

logger = logging.getLogger(__name__)

_ENVELOPE_FIELDS = ("timestamp", "version")


class DecodeStatus(str, Enum):
    OK = "ok"
    LEGACY = "legacy"
    NOT_FOUND = "not_found"
    EMPTY = "empty"
    CORRUPTED = "corrupted"
    EXPIRED = "expired"
    INVALID_SHAPE = "invalid_shape"


_USABLE = {DecodeStatus.OK, DecodeStatus.LEGACY}
_REMOVE = {DecodeStatus.CORRUPTED, DecodeStatus.EXPIRED, DecodeStatus.INVALID_SHAPE}


@dataclass(slots=True, frozen=True)
class RecordSchema:
    """Describes one record kind: its fields, defaults, lifetime and strictness.

    ``required`` fields only reject a record when ``strict`` is set; permissive
    schemas backfill everything from ``defaults`` instead. ``renamed`` maps
    field names used by older records onto their current names.
    """

    name: str
    fields: tuple[str, ...]
    defaults: Mapping[str, Any] = field(default_factory=dict)
    required: tuple[str, ...] = ()
    ttl_ms: int | None = None
    strict: bool = False
    renamed: Mapping[str, str] = field(default_factory=dict)

    def with_ttl(self, ttl_ms: int | None) -> "RecordSchema":
        return RecordSchema(
            name=self.name,
            fields=self.fields,
            defaults=self.defaults,
            required=self.required,
            ttl_ms=ttl_ms,
            strict=self.strict,
            renamed=self.renamed,
        )

    def knows_any(self, data: Mapping[str, Any]) -> bool:
        return any(name in data for name in self.fields) or any(name in data for name in self.renamed)


@dataclass(slots=True)
class DecodeResult:
    status: DecodeStatus
    record: VersionedRecord[dict[str, Any]] | None = None

    @property
    def ok(self) -> bool:
        return self.status in _USABLE

    @property
    def should_remove(self) -> bool:
        return self.status in _REMOVE

    @property
    def payload(self) -> dict[str, Any] | None:
        return self.record.payload if self.record is not None else None


QUIZ_STATE_SCHEMA = RecordSchema(
    name="quiz_state",
    fields=(
        "quizId",
        "quizType",
        "slug",
        "currentQuestion",
        "totalQuestions",
        "startTime",
        "isCompleted",
        "userAnswers",
        "redirectPath",
    ),
    defaults=MappingProxyType(
        {
            "quizId": "",
            "quizType": "mcq",
            "slug": "",
            "currentQuestion": 0,
            "totalQuestions": 0,
            "startTime": 0,
            "isCompleted": False,
            "userAnswers": [],
            "redirectPath": None,
        }
    ),
    ttl_ms=QUIZ_STATE_TTL_MS,
    renamed=MappingProxyType({"answers": "userAnswers"}),
)

QUIZ_RESULT_SCHEMA = RecordSchema(
    name="quiz_result",
    fields=(
        "quizId",
        "slug",
        "quizType",
        "score",
        "answers",
        "totalTime",
        "isCompleted",
        "redirectPath",
    ),
    defaults=MappingProxyType(
        {
            "quizId": "",
            "slug": "",
            "quizType": "mcq",
            "score": 0,
            "answers": [],
            "totalTime": 0,
            "isCompleted": True,
            "redirectPath": None,
        }
    ),
    ttl_ms=QUIZ_RESULT_TTL_MS,
)

QUIZ_ANSWERS_SCHEMA = RecordSchema(
    name="quiz_answers",
    fields=("quizId", "quizType", "answers"),
    defaults=MappingProxyType({"quizId": "", "quizType": "mcq", "answers": []}),
    ttl_ms=QUIZ_STATE_TTL_MS,
)

AUTH_REDIRECT_SCHEMA = RecordSchema(
    name="auth_redirect",
    fields=("slug", "quizType", "quizId", "currentQuestion", "answers", "tempResults"),
    defaults=MappingProxyType(
        {
            "quizId": "",
            "currentQuestion": 0,
            "answers": [],
            "tempResults": None,
        }
    ),
    required=("slug", "quizType"),
    ttl_ms=AUTH_REDIRECT_TTL_MS,
    strict=True,
)

EVENT_LOG_SCHEMA = RecordSchema(
    name="progress_events",
    fields=("userId", "events"),
    defaults=MappingProxyType({"userId": "", "events": []}),
)


def encode(payload: Mapping[str, Any], version: str = SCHEMA_VERSION, now: int | None = None) -> str:
    """Serialize ``payload`` with a fresh timestamp and the given schema version."""
    record = dict(payload)
    record["timestamp"] = now_ms() if now is None else now
    record["version"] = version
    return json.dumps(record, separators=(",", ":"))


def decode(
    raw: str | None,
    schema: RecordSchema,
    now: int | None = None,
    version: str = SCHEMA_VERSION,
) -> DecodeResult:
    if raw is None:
        return DecodeResult(DecodeStatus.NOT_FOUND)
    current_time = now_ms() if now is None else now
    try:
        data = _parse(raw)
        if not schema.strict and not schema.knows_any(data):
            return DecodeResult(DecodeStatus.EMPTY)
        _check_shape(data, schema)
        _check_age(data, schema, current_time)
    except CorruptedRecord as exc:
        logger.info("Discarding corrupted %s record: %s", schema.name, exc)
        return DecodeResult(DecodeStatus.CORRUPTED)
    except InvalidShape as exc:
        logger.info("Discarding invalid %s record: %s", schema.name, exc)
        return DecodeResult(DecodeStatus.INVALID_SHAPE)
    except ExpiredRecord as exc:
        logger.info("Discarding expired %s record: %s", schema.name, exc)
        return DecodeResult(DecodeStatus.EXPIRED)

    legacy = "version" not in data
    payload = _backfill(data, schema)
    timestamp = _timestamp_of(data)
    record = VersionedRecord(
        payload=payload,
        timestamp=current_time if timestamp is None else timestamp,
        version=version if legacy else str(data["version"]),
    )
    if legacy:
        logger.debug("Migrated legacy %s record to version %s", schema.name, version)
        return DecodeResult(DecodeStatus.LEGACY, record)
    return DecodeResult(DecodeStatus.OK, record)


def _parse(raw: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise CorruptedRecord(f"not valid JSON ({exc})") from exc
    if not isinstance(data, dict):
        raise CorruptedRecord(f"expected a JSON object, got {type(data).__name__}")
    return data


def _check_shape(data: dict[str, Any], schema: RecordSchema) -> None:
    if not schema.strict:
        return
    missing = [name for name in schema.required if not data.get(name)]
    if missing:
        raise InvalidShape(missing)


def _timestamp_of(data: dict[str, Any]) -> int | None:
    value = data.get("timestamp")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _check_age(data: dict[str, Any], schema: RecordSchema, now: int) -> None:
    if schema.ttl_ms is None:
        return
    timestamp = _timestamp_of(data)
    if timestamp is None:
        return
    age = now - timestamp
    if age > schema.ttl_ms:
        raise ExpiredRecord(age, schema.ttl_ms)


def _backfill(data: dict[str, Any], schema: RecordSchema) -> dict[str, Any]:
    payload = {key: value for key, value in data.items() if key not in _ENVELOPE_FIELDS}
    for old_name, new_name in schema.renamed.items():
        if old_name in payload and payload.get(new_name) is None:
            payload[new_name] = payload.pop(old_name)
    for name, default in schema.defaults.items():
        if payload.get(name) is None:
            payload[name] = list(default) if isinstance(default, list) else default
    return payload
