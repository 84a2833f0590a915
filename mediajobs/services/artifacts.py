"""Derivation of output artifacts for a completed job.

Nothing here touches the store or the clock: given the requested options and
the original size, ``generate_artifacts`` returns the metadata a real
transcoder would have produced. The only source of variation is the injected
share-link factory.
"""

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePath
from typing import Protocol
from urllib.parse import quote

from mediajobs.models.job import (
    JobRecord,
    ProcessingOptions,
    VideoFormat,
    VideoResolution,
    slugify_title,
)

DEFAULT_THUMBNAIL_COUNT = 3
DEFAULT_COMPRESSION_RATIO = 0.7


class ShareLinkFactory(Protocol):
    def __call__(self, job_id: str, file_name: str) -> str: ...


@dataclass(frozen=True)
class ArtifactSet:
    size_bytes: int
    share_link: str
    processed_file_name: str
    thumbnail_set: list[str] | None = None
    subtitle_ref: str | None = None
    applied_features: list[str] = field(default_factory=list)

    def apply_to(self, record: JobRecord, completed_at: datetime) -> None:
        # Flags switched off clear the artifact from the previous completion
        record.size_bytes = self.size_bytes
        record.share_link = self.share_link
        record.processed_file_name = self.processed_file_name
        record.thumbnail_set = list(self.thumbnail_set) if self.thumbnail_set else None
        record.subtitle_ref = self.subtitle_ref
        record.completed_at = completed_at
        record.error_message = None


def placeholder_color(job_id: str) -> str:
    return hashlib.md5(job_id.encode()).hexdigest()[:6]


def build_cover(job_id: str, file_name: str, base_url: str) -> str:
    """Placeholder cover image captioned with the upload's filename stem."""
    caption = quote(re.sub(r"[_-]", "+", PurePath(file_name).name.split(".")[0]), safe="+")
    return f"{base_url}/{placeholder_color(job_id)}/ffffff?text={caption}"


def build_thumbnails(job_id: str, base_url: str, count: int = DEFAULT_THUMBNAIL_COUNT) -> list[str]:
    color = placeholder_color(job_id)
    return [f"{base_url}/{color}/ffffff?text=Thumbnail+{n}" for n in range(1, count + 1)]


def compressed_size(original_size_bytes: int, ratio: float = DEFAULT_COMPRESSION_RATIO) -> int:
    return round(original_size_bytes * ratio)


def processed_file_name(title: str, format: VideoFormat, resolution: VideoResolution) -> str:
    return f"{slugify_title(title)}_{VideoResolution(resolution).value}.{VideoFormat(format).value}"


def generate_artifacts(
    *,
    job_id: str,
    title: str,
    format: VideoFormat,
    resolution: VideoResolution,
    options: ProcessingOptions | None,
    original_size_bytes: int,
    link_factory: ShareLinkFactory,
    thumbnail_base_url: str,
    subtitle_base_url: str,
    thumbnail_count: int = DEFAULT_THUMBNAIL_COUNT,
    compression_ratio: float = DEFAULT_COMPRESSION_RATIO,
) -> ArtifactSet:
    """Compute the artifacts of a successful processing run.

    Size is always derived from ``original_size_bytes`` so that repeated
    compression does not compound. Noise reduction has no structural output
    and only shows up in ``applied_features``.
    """
    options = ProcessingOptions.coerce(options)
    file_name = processed_file_name(title, format, resolution)

    size_bytes = original_size_bytes
    if options.compression:
        size_bytes = compressed_size(original_size_bytes, compression_ratio)

    thumbnails = None
    if options.thumbnails:
        thumbnails = build_thumbnails(job_id, thumbnail_base_url, thumbnail_count)

    subtitle_ref = None
    if options.subtitles:
        subtitle_ref = f"{subtitle_base_url}/{job_id}.vtt"

    return ArtifactSet(
        size_bytes=size_bytes,
        share_link=link_factory(job_id, file_name),
        processed_file_name=file_name,
        thumbnail_set=thumbnails,
        subtitle_ref=subtitle_ref,
        applied_features=options.enabled_features(),
    )
