import secrets
import string

import boto3
import structlog
from botocore.client import Config

from mediajobs.core.config import Settings

logger = structlog.get_logger()

_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


class TokenShareLinkFactory:
    """Drive-style share links backed by a random opaque token."""

    def __init__(self, base_url: str, token_length: int = 26) -> None:
        self.base_url = base_url.rstrip("/")
        self.token_length = token_length

    def __call__(self, job_id: str, file_name: str) -> str:
        token = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(self.token_length))
        return f"{self.base_url}/{token}/view"


class PresignedShareLinkFactory:
    """Share links as presigned GET URLs on S3-compatible storage.

    Presigning is computed locally by botocore; no object is transferred.
    """

    def __init__(self, settings: Settings, client=None) -> None:
        endpoint = settings.minio_endpoint
        if not endpoint.startswith(("http://", "https://")):
            endpoint = f"http://{endpoint}"

        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=settings.minio_access_key,
            aws_secret_access_key=settings.minio_secret_key,
            config=Config(signature_version="s3v4"),
        )
        self.bucket = settings.minio_bucket
        self.expires_in = settings.presigned_url_expiry_seconds

    def object_key(self, job_id: str, file_name: str) -> str:
        return f"outputs/{job_id}/{file_name}"

    def __call__(self, job_id: str, file_name: str) -> str:
        key = self.object_key(job_id, file_name)
        # Nonce keeps consecutive links for the same output distinct
        params = {
            "Bucket": self.bucket,
            "Key": key,
            "ResponseContentDisposition": f'attachment; filename="{file_name}"',
            "ResponseCacheControl": f"no-cache, nonce={secrets.token_hex(4)}",
        }
        url = self.client.generate_presigned_url("get_object", Params=params, ExpiresIn=self.expires_in)
        logger.info("share_link_presigned", job_id=job_id, key=key)
        return url


def build_link_factory(settings: Settings):
    if settings.share_link_backend == "s3":
        return PresignedShareLinkFactory(settings)
    return TokenShareLinkFactory(settings.share_link_base_url)
