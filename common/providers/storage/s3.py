import asyncio
from typing import Optional, BinaryIO
import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from common.core.config import settings
from .interface import StorageInterface
from common.core.otel_axiom_exporter import trace_span, get_logger

logger = get_logger(__name__)


class S3Storage(StorageInterface):
    """S3-compatible object storage. boto3 is blocking, so calls run in a thread."""

    def __init__(self, bucket_name: Optional[str] = None, client=None):
        self.bucket_name = bucket_name or settings.s3_bucket_name

        if client is not None:
            self.client = client
            return

        client_config = {
            "service_name": "s3",
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
            "region_name": settings.aws_region,
        }

        if settings.s3_endpoint_url:
            client_config["endpoint_url"] = settings.s3_endpoint_url
            client_config["config"] = Config(s3={"addressing_style": "path"})

        self.client = boto3.client(**client_config)

    @trace_span
    async def upload(
        self, key: str, data: BinaryIO, metadata: Optional[dict] = None
    ) -> bool:
        try:
            extra_args = {"ContentType": "application/pdf"}
            if metadata:
                # S3 user metadata values must be strings
                extra_args["Metadata"] = {k: str(v) for k, v in metadata.items()}

            await asyncio.to_thread(
                self.client.upload_fileobj,
                data,
                self.bucket_name,
                key,
                ExtraArgs=extra_args,
            )
            logger.info(f"Successfully uploaded {key} to {self.bucket_name}")
            return True
        except Exception as e:
            logger.error(f"Failed to upload {key}: {e}")
            return False

    @trace_span
    async def download(self, key: str) -> Optional[bytes]:
        def _read() -> bytes:
            response = self.client.get_object(Bucket=self.bucket_name, Key=key)
            return response["Body"].read()

        try:
            return await asyncio.to_thread(_read)
        except ClientError as e:
            if e.response["Error"]["Code"] in ("NoSuchKey", "404"):
                logger.warning(f"Object {key} not found")
            else:
                logger.error(f"Failed to download {key}: {e}")
            return None

    @trace_span
    async def delete(self, key: str) -> bool:
        try:
            await asyncio.to_thread(
                self.client.delete_object, Bucket=self.bucket_name, Key=key
            )
            logger.info(f"Successfully deleted {key}")
            return True
        except Exception as e:
            logger.error(f"Failed to delete {key}: {e}")
            return False

    @trace_span
    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(
                self.client.head_object, Bucket=self.bucket_name, Key=key
            )
            return True
        except ClientError:
            return False
