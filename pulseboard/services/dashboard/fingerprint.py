"""响应指纹（ETag）"""

from __future__ import annotations

import json

from pydantic import BaseModel

ETAG_SEED = 5381
_MASK_32 = 0xFFFFFFFF
# 不参与指纹的展示字段
VOLATILE_FIELDS = frozenset({"generated_at"})


def generate_etag(text: str) -> str:
    """djb2-xor 滚动哈希，32 位无符号，返回带引号的十六进制串"""
    value = ETAG_SEED
    for ch in text:
        value = (((value << 5) + value) ^ ord(ch)) & _MASK_32
    return f'"{value:x}"'


def serialize_for_etag(model: BaseModel) -> str:
    payload = model.model_dump(mode="json", by_alias=True, exclude=set(VOLATILE_FIELDS))
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def build_payload_etag(model: BaseModel) -> str:
    return generate_etag(serialize_for_etag(model))
