from datetime import datetime, timezone
from typing import Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId


def parse_object_id(value) -> Optional[ObjectId]:
    # ObjectId(None) would mint a fresh id.
    if not isinstance(value, (str, ObjectId)):
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value


def serialize_document(document):
    if not document:
        return None
    return serialize_value(document)


def serialize_insert_result(result) -> Dict[str, object]:
    return {
        "acknowledged": bool(result.acknowledged),
        "insertedId": serialize_value(result.inserted_id),
    }


def serialize_write_result(result) -> Dict[str, object]:
    if hasattr(result, "inserted_id"):
        return serialize_insert_result(result)
    return serialize_update_result(result)


def serialize_update_result(result) -> Dict[str, object]:
    upserted_id = result.upserted_id
    return {
        "acknowledged": bool(result.acknowledged),
        "matchedCount": result.matched_count,
        "modifiedCount": result.modified_count,
        "upsertedCount": 1 if upserted_id is not None else 0,
        "upsertedId": serialize_value(upserted_id),
    }
