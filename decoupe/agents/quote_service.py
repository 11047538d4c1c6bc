"""
quote_service.py - Remote quote generation client
Version: 1.0.0

Posts a validated QuoteDocument to the workshop's generation webhook,
which renders the PDF, uploads it and answers with its URL:

  Request:  {"quote_data": {...}, "template_id": "...", "org_id": "default"}
  Response: {"success": true, "quote": {"pdf_url": ..., "file_name": ..., "pages": ...}}
            {"success": false, "error": ..., "error_type": ..., "stage": ...,
             "troubleshooting": {...}}

Retry policy: each attempt bounded by the timeout, up to N attempts, waiting
2**attempt seconds in between. Network errors, timeouts and non-2xx answers
are retried; a success=false answer is the service's final word and is not.

Dependencies: requests
Env vars: DECOUPE_WEBHOOK_URL, DECOUPE_WEBHOOK_TOKEN, DECOUPE_ORG_ID,
          DECOUPE_REMOTE_TIMEOUT, DECOUPE_REMOTE_ATTEMPTS
"""

import logging
import time
from datetime import date
from typing import Callable, Optional

import requests

from decoupe.core.settings import get_int, get_setting
from decoupe.forms.errors import RemoteRejected, RemoteServiceError, RemoteTimeout
from decoupe.forms.models import QuoteDocument

log = logging.getLogger("decoupe.remote")

HEALTH_TIMEOUT = 5
MAX_ERROR_BODY = 500


# ─── Retry Policy ────────────────────────────────────────────────────────────

def exponential_backoff(attempt: int) -> float:
    return float(2 ** attempt)


def retry_remote_errors(exc: Exception) -> bool:
    return isinstance(exc, RemoteServiceError) and not isinstance(exc, RemoteRejected)


class RetryPolicy:
    """Run a callable up to max_attempts times, sleeping backoff(attempt) between tries."""

    def __init__(self, max_attempts: int = 3,
                 backoff: Callable[[int], float] = exponential_backoff,
                 is_retryable: Callable[[Exception], bool] = retry_remote_errors,
                 sleep: Callable[[float], None] = time.sleep):
        self.max_attempts = max(1, int(max_attempts))
        self.backoff = backoff
        self.is_retryable = is_retryable
        self.sleep = sleep

    def run(self, fn: Callable[[int], object]):
        """Call fn(attempt) with attempt starting at 1. Re-raises the last error."""
        attempt = 1
        while True:
            try:
                return fn(attempt)
            except Exception as e:
                if attempt >= self.max_attempts or not self.is_retryable(e):
                    raise
                wait = self.backoff(attempt)
                log.warning("Attempt %d/%d failed (%s), retrying in %.0fs",
                            attempt, self.max_attempts, e, wait,
                            extra={"attempt": attempt,
                                   "error_type": getattr(e, "category", type(e).__name__)})
                self.sleep(wait)
                attempt += 1


# ─── Client ──────────────────────────────────────────────────────────────────

class RemoteQuoteService:
    def __init__(self, url: Optional[str] = None, org_id: Optional[str] = None,
                 timeout: Optional[float] = None, policy: Optional[RetryPolicy] = None,
                 session=None, token: Optional[str] = None):
        self.url = get_setting("webhook_url") if url is None else url
        self.org_id = org_id or get_setting("org_id")
        self.timeout = timeout if timeout is not None else get_int("remote_timeout")
        self.policy = policy or RetryPolicy(get_int("remote_attempts"))
        self.session = session or requests.Session()
        self.token = get_setting("webhook_token") if token is None else token

    @property
    def configured(self) -> bool:
        return bool(self.url)

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def build_request(self, document: QuoteDocument, template_id: Optional[str] = None) -> dict:
        payload = {"quote_data": document, "org_id": self.org_id}
        if template_id:
            payload["template_id"] = template_id
        return payload

    def _post(self, payload: dict, timeout: float):
        try:
            return self.session.post(self.url, json=payload, headers=self._headers(),
                                     timeout=timeout)
        except requests.Timeout as e:
            raise RemoteTimeout("Timeout - generation service not responding",
                                stage="network_request") from e
        except requests.RequestException as e:
            raise RemoteServiceError(str(e) or "Connection error",
                                     stage="network_request") from e

    @staticmethod
    def _http_error(resp) -> RemoteServiceError:
        """Non-2xx answer. A JSON error body is passed through as-is."""
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            return RemoteServiceError(str(body["error"]),
                                      category=body.get("error_type") or None,
                                      stage=body.get("stage") or "network_request",
                                      troubleshooting=body.get("troubleshooting"))
        text = (resp.text or "")[:MAX_ERROR_BODY]
        return RemoteServiceError(f"HTTP {resp.status_code}: {text}", stage="network_request")

    def generate(self, document: QuoteDocument, template_id: Optional[str] = None) -> dict:
        """POST the document; returns the parsed success response.

        Raises RemoteTimeout / RemoteServiceError after the policy gives up,
        RemoteRejected straight away when the service reports success=false.
        """
        if not self.configured:
            raise RemoteServiceError("Remote generation service not configured",
                                     stage="configuration")
        payload = self.build_request(document, template_id)
        log.info("Remote generation for %s (%d items, template=%s)",
                 document.get("number"), len(document.get("items") or []),
                 template_id or "-", extra={"quote_number": document.get("number")})

        def attempt(n: int) -> dict:
            resp = self._post(payload, self.timeout)
            if not 200 <= resp.status_code < 300:
                raise self._http_error(resp)
            try:
                body = resp.json()
            except ValueError as e:
                raise RemoteServiceError("Generation service returned invalid JSON",
                                         stage="response_parse") from e
            if not isinstance(body, dict):
                raise RemoteServiceError("Generation service returned an unexpected payload",
                                         stage="response_parse")
            if not body.get("success"):
                raise RemoteRejected(str(body.get("error") or "Generation failed"),
                                     category=body.get("error_type") or None,
                                     stage=body.get("stage") or "",
                                     troubleshooting=body.get("troubleshooting"))
            log.info("Remote generation succeeded on attempt %d", n, extra={"attempt": n})
            return body

        return self.policy.run(attempt)

    def download(self, pdf_url: str) -> bytes:
        """Fetch the rendered PDF the service uploaded."""
        try:
            resp = self.session.get(pdf_url, timeout=self.timeout)
        except requests.Timeout as e:
            raise RemoteTimeout("Timeout downloading generated PDF", stage="download") from e
        except requests.RequestException as e:
            raise RemoteServiceError(f"PDF download failed: {e}", stage="download") from e
        if not 200 <= resp.status_code < 300:
            raise RemoteServiceError(f"PDF download failed: HTTP {resp.status_code}",
                                     stage="download")
        data = resp.content or b""
        if not data.startswith(b"%PDF-"):
            raise RemoteServiceError("Downloaded document is not a PDF", stage="download")
        return data

    def test_connection(self) -> bool:
        """Single short request with a throwaway quote. Never raises."""
        if not self.configured:
            return False
        probe = {
            "id": "test-connection",
            "number": "TEST-001",
            "date": date.today().isoformat(),
            "currency": "MAD",
            "customer_id": "test",
            "customer": {"name": "Test Client"},
            "company": {"name": "DECOUPE EXPRESS"},
            "items": [{"label": "Test Item", "qty": 1, "unit_price": 100}],
            "tax_rate": 20,
        }
        try:
            resp = self.session.post(self.url, json=self.build_request(probe),
                                     headers=self._headers(), timeout=HEALTH_TIMEOUT)
        except requests.RequestException as e:
            log.warning("Generation service unreachable: %s", e)
            return False
        return 200 <= resp.status_code < 300
