"""ReceiptImageStorage provides S3-backed storage for receipt images."""

import io
import uuid

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, UnidentifiedImageError

from receipt_insights.core.errors import InvalidImageError, StorageError
from receipt_insights.core.settings import Settings, get_settings
from receipt_insights.core.utils import get_logger

logger = get_logger("receipt-insights.storage")

JPEG_CONTENT_TYPE = "image/jpeg"


def to_jpeg(data: bytes, quality: int = 90) -> bytes:
    """Re-encode any image Pillow can read as a JPEG."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            buffer = io.BytesIO()
            image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    except (UnidentifiedImageError, OSError) as exc:
        msg = f"Failed to convert image to JPEG data: {exc}"
        raise InvalidImageError(msg) from exc
    return buffer.getvalue()


class ReceiptImageStorage:
    """Service for receipt image operations: upload, presigned URL, ensure bucket."""

    def __init__(self, settings: Settings | None = None, client: object | None = None) -> None:
        """Initialize the storage with an S3 client and ensure the bucket exists."""
        settings = settings or get_settings()
        self.s3 = client or boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
        )
        self.bucket = settings.s3_bucket
        self.url_expiry = settings.s3_url_expiry
        self.jpeg_quality = settings.jpeg_quality
        self.ensure_bucket()

    def ensure_bucket(self) -> None:
        """Ensure the S3 bucket exists, create if not present."""
        try:
            self.s3.head_bucket(Bucket=self.bucket)
        except ClientError:
            logger.info(f"Creating bucket {self.bucket}")
            self.s3.create_bucket(Bucket=self.bucket)

    def upload_image(self, data: bytes) -> tuple[str, str]:
        """Store an image as ``<uuid>.jpg`` and return its key and a readable URL."""
        jpeg = to_jpeg(data, self.jpeg_quality)
        key = f"{uuid.uuid4()}.jpg"
        try:
            self.s3.put_object(Bucket=self.bucket, Key=key, Body=jpeg, ContentType=JPEG_CONTENT_TYPE)
        except (BotoCoreError, ClientError) as exc:
            msg = f"Failed to upload receipt image {key}: {exc}"
            logger.exception(msg)
            raise StorageError(msg) from exc
        logger.info(f"Uploaded receipt image {key} ({len(jpeg)} bytes)")
        return key, self.public_url(key)

    def public_url(self, key: str) -> str:
        """Return a presigned GET URL for a stored image."""
        return self.s3.generate_presigned_url(
            "get_object", Params={"Bucket": self.bucket, "Key": key}, ExpiresIn=self.url_expiry
        )
