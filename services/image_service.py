"""
Image Service
HTTP client for prompt-to-image generation with the Gemini API
"""

import base64
import binascii
import logging
from typing import Optional

import httpx

logger = logging.getLogger("kakuli-bot")

GEMINI_IMAGE_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "gemini-2.0-flash-preview-image-generation:generateContent"
)


class ImageService:
    """Pure communication layer around the image generation endpoint"""

    def __init__(self, api_key: Optional[str], http_client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the image service.

        Args:
            api_key: Gemini API key; generation is disabled without one
            http_client: Shared client, created on demand when omitted
        """
        self.api_key = api_key
        self.http_client = http_client or httpx.AsyncClient(timeout=120.0)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def generate(self, prompt: str) -> Optional[bytes]:
        """
        Generate an image for prompt.

        Returns:
            PNG bytes, or None when the API returned no image or failed
        """
        if not self.enabled:
            logger.warning("Image generation requested but GEMINI_API_KEY is not set")
            return None

        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }

        try:
            response = await self.http_client.post(
                GEMINI_IMAGE_URL,
                params={"key": self.api_key},
                json=payload,
            )
        except httpx.RequestError as e:
            logger.error(f"Image request error: {e}")
            return None

        if response.status_code != 200:
            logger.error(f"Image request failed with status {response.status_code}: {response.text[:200]}")
            return None

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Image response was not JSON: {e}")
            return None
        if not isinstance(data, dict):
            logger.error("Image response was not a JSON object")
            return None

        candidates = data.get("candidates") or [{}]
        parts = (candidates[0].get("content") or {}).get("parts") or []
        for part in parts:
            inline = part.get("inlineData") or {}
            if inline.get("data"):
                try:
                    return base64.b64decode(inline["data"])
                except (binascii.Error, ValueError) as e:
                    logger.error(f"Image payload was not valid base64: {e}")
                    return None
        return None

    async def close(self):
        """Close the HTTP client"""
        await self.http_client.aclose()
