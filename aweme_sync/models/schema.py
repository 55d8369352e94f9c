"""
Logical column schema for destination video tables.

Column display names match the tables already in use so existing data keeps resolving.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Tuple


class FieldType(IntEnum):
    """Destination column types (values follow the datastore's own type ids)."""

    TEXT = 1
    NUMBER = 2
    DATETIME = 5
    URL = 15


@dataclass(frozen=True)
class FieldSpec:
    """One logical column: attribute key, column name and declared type."""

    key: str
    name: str
    field_type: FieldType
    primary: bool = False


VIDEO_ID_FIELD = FieldSpec("aweme_id", "视频编号", FieldType.TEXT, primary=True)
TRANSCRIPT_FIELD = FieldSpec("video_text", "文案", FieldType.TEXT)
PLAY_ADDR_FIELD = FieldSpec("play_addr", "下载链接", FieldType.URL)
AUDIO_ADDR_FIELD = FieldSpec("audio_addr", "音频链接", FieldType.URL)
DURATION_FIELD = FieldSpec("duration", "时长", FieldType.NUMBER)

VIDEO_SCHEMA: Tuple[FieldSpec, ...] = (
    FieldSpec("nickname", "昵称", FieldType.TEXT),
    VIDEO_ID_FIELD,
    FieldSpec("share_url", "分享链接", FieldType.URL),
    FieldSpec("conv_create_time", "发布日期", FieldType.DATETIME),
    FieldSpec("desc", "描述", FieldType.TEXT),
    FieldSpec("digg_count", "点赞数", FieldType.NUMBER),
    FieldSpec("collect_count", "收藏数", FieldType.NUMBER),
    FieldSpec("comment_count", "评论数", FieldType.NUMBER),
    DURATION_FIELD,
    PLAY_ADDR_FIELD,
    AUDIO_ADDR_FIELD,
    FieldSpec("share_count", "分享数", FieldType.NUMBER),
    TRANSCRIPT_FIELD,
)

SCHEMA_BY_KEY: Dict[str, FieldSpec] = {spec.key: spec for spec in VIDEO_SCHEMA}

# Used when a fetched batch carries no author nickname
DEFAULT_TABLE_NAME = "未命名视频集"
