"""
Supabase Storage access
Downloads report files and issues short-lived signed URLs using the service-role key
"""

import logging
from urllib.parse import quote

import httpx

from ..config import SUPABASE_SERVICE_ROLE_KEY, SUPABASE_URL

logger = logging.getLogger(__name__)

SIGNED_URL_EXPIRATION = 60  # seconds
STORAGE_TIMEOUT = 30.0


class StorageError(Exception):
    """Storage object could not be located or fetched"""


def storage_path_from_url(file_url: str, bucket: str) -> str:
    """
    Extract the object path from a public/stored file URL.
    e.g. https://x.supabase.co/storage/v1/object/public/job-reports/a/b.png -> a/b.png
    """
    parts = (file_url or "").split(f"/{bucket}/")
    if len(parts) != 2 or not parts[1]:
        raise StorageError(f"Invalid file URL: {file_url}")
    return parts[1]


def _headers() -> dict:
    if not SUPABASE_URL or not SUPABASE_SERVICE_ROLE_KEY:
        raise StorageError("Storage not configured")
    return {
        "Authorization": f"Bearer {SUPABASE_SERVICE_ROLE_KEY}",
        "apikey": SUPABASE_SERVICE_ROLE_KEY,
    }


async def download_object(bucket: str, path: str) -> bytes:
    """Download an object directly with service-role credentials"""
    url = f"{SUPABASE_URL}/storage/v1/object/{bucket}/{quote(path)}"
    async with httpx.AsyncClient(timeout=STORAGE_TIMEOUT) as client:
        response = await client.get(url, headers=_headers())

    if response.status_code != 200:
        logger.error(f"❌ Failed to download {bucket}/{path}: HTTP {response.status_code}")
        raise StorageError("Failed to access file")

    logger.info(f"✅ Downloaded {bucket}/{path} ({len(response.content)} bytes)")
    return response.content


async def create_signed_url(bucket: str, path: str, expires_in: int = SIGNED_URL_EXPIRATION) -> str:
    """Create a signed URL valid for expires_in seconds"""
    url = f"{SUPABASE_URL}/storage/v1/object/sign/{bucket}/{quote(path)}"
    async with httpx.AsyncClient(timeout=STORAGE_TIMEOUT) as client:
        response = await client.post(url, headers=_headers(), json={"expiresIn": expires_in})

    if response.status_code != 200:
        logger.error(f"❌ Failed to sign {bucket}/{path}: HTTP {response.status_code}")
        raise StorageError("Failed to access file")

    signed_path = response.json().get("signedURL")
    if not signed_path:
        raise StorageError("Failed to access file")
    return f"{SUPABASE_URL}/storage/v1{signed_path}"


async def fetch_signed_object(bucket: str, path: str) -> bytes:
    """Fetch an object through a freshly signed URL"""
    signed_url = await create_signed_url(bucket, path)
    async with httpx.AsyncClient(timeout=STORAGE_TIMEOUT) as client:
        response = await client.get(signed_url)

    if response.status_code != 200:
        logger.error(f"❌ Failed to fetch signed object {bucket}/{path}: HTTP {response.status_code}")
        raise StorageError("Failed to fetch file")
    return response.content
