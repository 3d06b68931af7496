import logging
import uuid
from typing import Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import storage

logger = logging.getLogger('uvicorn.error')

MAX_IMAGE_SIZE_KB = 600
MAX_IMAGE_SIZE_BYTES = MAX_IMAGE_SIZE_KB * 1024
ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml"}


def blob_name_for(filename: str, username: str) -> str:
    safe_filename = f"{uuid.uuid4()}_{filename.replace(' ', '_').replace('/', '_')}"
    return f"site_images/{username}/{safe_filename}"


def upload_to_gcs(
    gcs_client: storage.Client,
    bucket_name: str,
    image_bytes: bytes,
    filename: str,
    content_type: str,
    username: str,
) -> Optional[str]:
    """Upload an image and return its public URL, or None when the upload failed."""
    if not image_bytes or not filename:
        return None
    try:
        bucket = gcs_client.bucket(bucket_name)
        blob_name = blob_name_for(filename, username)
        blob = bucket.blob(blob_name)
        blob.upload_from_string(image_bytes, content_type=content_type)
        logger.info(f"File {filename} uploaded to gs://{bucket_name}/{blob_name}")
        return blob.public_url
    except google_exceptions.GoogleAPIError as e:
        logger.exception(f"Failed to upload {filename} to GCS for user {username}: {e}")
        return None
