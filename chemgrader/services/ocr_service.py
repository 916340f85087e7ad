"""
Document extraction for answer sheets and mark schemes using the Mathpix API.

``OCRService`` is the adapter the pipeline talks to. It validates the input,
chooses between synchronous recognition (small images) and asynchronous
submit/poll (PDFs and large images), and turns every provider failure into
one of ProviderUnavailable, ProviderTimeout or ProviderRejected. It never
retries on its own; retries belong to the caller.
"""

import base64
import json
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from chemgrader.config.unified_config import config
from chemgrader.exceptions.application_errors import (
    ConfigurationError,
    ProviderRejected,
    ProviderTimeout,
    ProviderUnavailable,
)
from chemgrader.grading.chemistry_utils import find_formulas
from chemgrader.models.documents import Document, ExtractionResult, JobState, ProviderJobStatus
from utils.logger import logger
from utils.retry import PollingExhausted, poll_until

DISPLAY_MATH = re.compile(r"\$\$(.+?)\$\$", re.DOTALL)
INLINE_MATH = re.compile(r"(?<!\$)\$(?!\$)(.+?)(?<!\$)\$(?!\$)")
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg")


class ExtractionProvider(ABC):
    """Provider boundary: submit a document, then poll the job."""

    name = "extraction"

    @abstractmethod
    def submit(self, document: Document) -> str:
        """Start an asynchronous job and return its id."""

    @abstractmethod
    def poll(self, job_id: str) -> ProviderJobStatus:
        """Report the job state; ``text`` is set once it is done."""

    def recognize(self, document: Document) -> Optional[ProviderJobStatus]:
        """Synchronous recognition for small inputs, if the provider has it."""
        return None


class MathpixProvider(ExtractionProvider):
    """Mathpix v3 API: /text for small images, /pdf for everything else."""

    name = "mathpix"

    def __init__(self, app_id: Optional[str] = None, app_key: Optional[str] = None,
                 base_url: Optional[str] = None, request_timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.app_id = app_id or config.api.mathpix_app_id
        self.app_key = app_key or config.api.mathpix_app_key
        if not (self.app_id and self.app_key):
            raise ConfigurationError(
                "Mathpix credentials not configured. Set MATHPIX_APP_ID and MATHPIX_APP_KEY",
                config_key="MATHPIX_APP_KEY",
            )
        self.base_url = (base_url or config.api.mathpix_api_url).rstrip("/")
        self.request_timeout = request_timeout or config.api.ocr_request_timeout
        self.session = session or requests.Session()
        self.headers = {"app_id": self.app_id, "app_key": self.app_key}

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        started = time.time()
        try:
            response = self.session.request(
                method, url, headers=self.headers, timeout=self.request_timeout, **kwargs
            )
        except requests.Timeout as e:
            raise ProviderUnavailable(
                f"Mathpix request to {path} got no reply in {self.request_timeout}s",
                provider=self.name, original_error=e,
            ) from e
        except requests.RequestException as e:
            raise ProviderUnavailable(
                f"Mathpix OCR service unreachable: {e}", provider=self.name, original_error=e
            ) from e

        logger.log_api_call(path, method, response.status_code, time.time() - started)
        if response.status_code >= 500 or response.status_code == 429:
            raise ProviderUnavailable(
                f"Mathpix OCR service error {response.status_code}", provider=self.name
            )
        if response.status_code >= 400:
            raise ProviderRejected(
                f"Mathpix OCR rejected the document ({response.status_code}): {response.text[:200]}",
                provider=self.name,
            )
        return response

    def _json(self, response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderUnavailable(
                "Mathpix OCR returned a non-JSON reply", provider=self.name
            ) from e
        if data.get("error"):
            raise ProviderRejected(
                f"Mathpix OCR error: {data.get('error')}", provider=self.name
            )
        return data

    def submit(self, document: Document) -> str:
        options = {
            "conversion_formats": {"md": True},
            "math_inline_delimiters": ["$", "$"],
            "rm_spaces": True,
        }
        response = self._request(
            "POST", "/pdf",
            files={"file": (document.filename, document.content, document.mime_type)},
            data={"options_json": json.dumps(options)},
        )
        pdf_id = self._json(response).get("pdf_id")
        if not pdf_id:
            raise ProviderRejected("Mathpix OCR did not return a job id", provider=self.name)
        logger.info(f"Submitted {document.filename} to Mathpix as job {pdf_id}")
        return pdf_id

    def poll(self, job_id: str) -> ProviderJobStatus:
        data = self._json(self._request("GET", f"/pdf/{job_id}"))
        status = data.get("status")
        if status == "completed":
            return ProviderJobStatus(JobState.DONE, text=self._download(job_id), confidence=1.0)
        if status == "error":
            return ProviderJobStatus(JobState.ERROR, error=str(data.get("error_info") or "unknown error"))
        return ProviderJobStatus(JobState.PENDING)

    def _download(self, job_id: str) -> str:
        try:
            return self._request("GET", f"/pdf/{job_id}.md").text
        except ProviderRejected:
            logger.warning(f"Markdown output missing for job {job_id}, trying .mmd")
            return self._request("GET", f"/pdf/{job_id}.mmd").text

    def recognize(self, document: Document) -> ProviderJobStatus:
        encoded = base64.b64encode(document.content).decode("ascii")
        payload = {
            "src": f"data:{document.mime_type};base64,{encoded}",
            "formats": ["text"],
            "math_inline_delimiters": ["$", "$"],
            "rm_spaces": True,
        }
        data = self._json(self._request("POST", "/text", json=payload))
        return ProviderJobStatus(
            JobState.DONE, text=data.get("text", ""), confidence=data.get("confidence")
        )


class OCRService:
    """Extraction adapter used by the pipeline and the mark-scheme service."""

    def __init__(self, provider: ExtractionProvider, max_attempts: Optional[int] = None,
                 poll_delay: Optional[float] = None, sync_limit_bytes: Optional[int] = None,
                 max_file_size_mb: Optional[int] = None, sleep=None):
        """
        Args:
            provider: Extraction provider implementation
            max_attempts: Poll attempt budget before ProviderTimeout
            poll_delay: Fixed delay between poll attempts in seconds
            sync_limit_bytes: Images up to this size use synchronous recognition
            max_file_size_mb: Inputs above this are rejected before submission
            sleep: Sleep function, replaceable in tests
        """
        self.provider = provider
        self.max_attempts = max_attempts or config.api.ocr_poll_attempts
        self.poll_delay = config.api.ocr_poll_delay if poll_delay is None else poll_delay
        self.sync_limit_bytes = (
            config.api.ocr_sync_limit_bytes if sync_limit_bytes is None else sync_limit_bytes
        )
        self.max_file_size_mb = max_file_size_mb or config.files.max_file_size_mb
        self.sleep = sleep

    def _validate(self, document: Document) -> None:
        if not document.content:
            raise ProviderRejected("Document is empty", provider=self.provider.name)
        if document.size > self.max_file_size_mb * 1024 * 1024:
            raise ProviderRejected(
                f"Document too large for extraction ({document.size} bytes)",
                provider=self.provider.name,
            )

    def extract(self, document: Document) -> ExtractionResult:
        """
        Extract text and formulas from a document.

        Raises:
            ProviderUnavailable: provider unreachable or failing
            ProviderTimeout: job still pending after the attempt budget
            ProviderRejected: input refused, or the job ended in error
        """
        self._validate(document)
        started = time.time()

        status = None
        if document.extension in IMAGE_EXTENSIONS and document.size <= self.sync_limit_bytes:
            status = self.provider.recognize(document)
        if status is None:
            status = self._run_async(document)

        if status.state is not JobState.DONE:
            logger.log_ocr_operation(document.filename, success=False)
            raise ProviderRejected(
                f"OCR extraction failed: {status.error or 'provider reported an error'}",
                provider=self.provider.name,
            )

        text = status.text or ""
        confidence = status.confidence if status.confidence is not None else 0.0
        logger.log_ocr_operation(document.filename, success=True, confidence=confidence)
        logger.info(
            f"Extracted {len(text)} characters from {document.filename} "
            f"in {time.time() - started:.2f}s"
        )
        return ExtractionResult(
            text=text,
            confidence=confidence,
            discovered_formulas=extract_math(text),
        )

    def _run_async(self, document: Document) -> ProviderJobStatus:
        job_id = self.provider.submit(document)
        try:
            return poll_until(
                lambda: self.provider.poll(job_id),
                lambda status: status.state is not JobState.PENDING,
                max_attempts=self.max_attempts,
                delay=self.poll_delay,
                sleep=self.sleep,
            )
        except PollingExhausted as e:
            raise ProviderTimeout(
                f"OCR extraction job {job_id} still pending after {e.attempts} polling attempts",
                timeout_duration=e.attempts * self.poll_delay,
                provider=self.provider.name,
            ) from e


def extract_math(text: str) -> List[str]:
    """Math spans from provider markdown, plus formulas found in plain text."""
    found: List[str] = []
    for pattern in (DISPLAY_MATH, INLINE_MATH):
        for match in pattern.finditer(text or ""):
            value = match.group(1).strip()
            if value and value not in found:
                found.append(value)
    stripped = DISPLAY_MATH.sub(" ", text or "")
    for formula in find_formulas(INLINE_MATH.sub(" ", stripped)):
        if formula not in found:
            found.append(formula)
    return found
