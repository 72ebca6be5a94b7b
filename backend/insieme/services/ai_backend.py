"""
Gemini clients: text/vision completion and PDF file ingestion.
"""

import asyncio
import logging
import os
import tempfile
from typing import Optional

import google.generativeai as genai

from ..config.settings import settings
from ..errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class GeminiBackend:
    """Generative AI backend: prompt (+ optional uploaded file) in, text out."""

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None):
        self.model_name = model_name or settings.LLM_MODEL
        genai.configure(api_key=api_key or settings.GEMINI_API_KEY)

    async def generate(
        self,
        prompt: str,
        file_ref: Optional[str] = None,
        temperature: float = settings.LLM_TEMPERATURE,
        max_output_tokens: int = 2000,
    ) -> str:
        """
        Run one completion.

        Args:
            prompt: Full prompt text
            file_ref: Reference returned by GeminiFileIngestion.upload_pdf
            temperature: Sampling temperature
            max_output_tokens: Response size limit

        Returns:
            Raw response text (not guaranteed to be JSON)

        Raises:
            UpstreamUnavailable: call failed or timed out
        """
        model = genai.GenerativeModel(self.model_name)

        def _call() -> str:
            content = [prompt]
            if file_ref:
                content.append(genai.get_file(file_ref))
            response = model.generate_content(
                content,
                generation_config=genai.types.GenerationConfig(
                    temperature=temperature,
                    max_output_tokens=max_output_tokens,
                ),
            )
            return response.text

        try:
            text = await asyncio.wait_for(asyncio.to_thread(_call), timeout=settings.LLM_TIMEOUT)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable(
                f"Gemini call timed out after {settings.LLM_TIMEOUT}s",
                reason="backend_timeout",
            ) from e
        except Exception as e:
            raise UpstreamUnavailable(
                "Gemini call failed", details={"error": str(e)}
            ) from e

        return text.strip()


class GeminiFileIngestion:
    """Uploads PDFs to Gemini and hands back the file name as reference."""

    def __init__(self, api_key: Optional[str] = None):
        genai.configure(api_key=api_key or settings.GEMINI_API_KEY)

    async def upload_pdf(self, pdf_bytes: bytes, display_name: str = "upload.pdf") -> str:
        """
        Upload a PDF blob.

        Raises:
            UpstreamUnavailable: upload failed
        """

        def _upload() -> str:
            tmp = tempfile.NamedTemporaryFile(suffix=".pdf", delete=False)
            try:
                tmp.write(pdf_bytes)
                tmp.close()
                uploaded = genai.upload_file(
                    path=tmp.name,
                    mime_type="application/pdf",
                    display_name=display_name,
                )
                return uploaded.name
            finally:
                os.unlink(tmp.name)

        try:
            file_ref = await asyncio.wait_for(
                asyncio.to_thread(_upload), timeout=settings.LLM_TIMEOUT
            )
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailable("PDF upload timed out", reason="upload_failed") from e
        except Exception as e:
            raise UpstreamUnavailable(
                "PDF upload failed", details={"error": str(e)}, reason="upload_failed"
            ) from e

        logger.info(f"📄 Uploaded {display_name} as {file_ref}")
        return file_ref

    async def delete(self, file_ref: str) -> None:
        """Remove an uploaded file. Best effort: failures are only logged."""
        try:
            await asyncio.to_thread(genai.delete_file, file_ref)
        except Exception as e:
            logger.warning(f"Could not delete uploaded file {file_ref}: {e}")
