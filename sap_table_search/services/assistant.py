"""
AI assistant collaborator.
- Local HuggingFace text-generation pipeline, lazy-loaded on first use
- Two best-effort operations: keyword extraction and result explanation
- Every call is bounded by a timeout; failures surface as AssistantError
  so callers can switch to their deterministic fallback
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Optional

try:
    from transformers import pipeline
except ImportError as e:
    raise RuntimeError("transformers library is required.") from e

logger = logging.getLogger("assistant")


class AssistantError(RuntimeError):
    """Raised when the assistant is disabled, fails, or times out."""


class AssistantClient:
    """
    Thin wrapper around a transformers text-generation pipeline.

    The pipeline is loaded once under a lock; if loading fails the client marks
    itself unavailable for the lifetime of the process instead of retrying.
    """

    DEFAULT_MODEL = "gpt2"
    KEYWORD_MAX_NEW_TOKENS = 40
    EXPLAIN_MAX_NEW_TOKENS = 160

    def __init__(
        self,
        enabled: bool = False,
        model_name: Optional[str] = None,
        timeout_seconds: float = 5.0,
    ) -> None:
        """
        Initialize AssistantClient.

        Args:
            enabled: Feature flag; when False every call raises AssistantError immediately
            model_name: HuggingFace model id for the text-generation pipeline
            timeout_seconds: Upper bound for a single generation call
        """
        self.enabled = enabled
        self.model_name = model_name or self.DEFAULT_MODEL
        self.timeout_seconds = timeout_seconds

        self._llm_lock = threading.Lock()
        self._llm_pipeline: Optional[Any] = None

    # ---------------------- Pipeline Loading ----------------------
    def _load_pipeline(self) -> Optional[Any]:
        if self._llm_pipeline is not None:
            return self._llm_pipeline or None

        with self._llm_lock:
            if self._llm_pipeline is not None:
                return self._llm_pipeline or None
            try:
                logger.info("Loading LLM pipeline: %s", self.model_name)
                self._llm_pipeline = pipeline(
                    "text-generation",
                    model=self.model_name,
                    device=-1,  # CPU
                )
                logger.info("LLM pipeline loaded: %s", self.model_name)
            except Exception as e:
                logger.warning("Failed to load LLM pipeline: %s. Assistant disabled.", e)
                self._llm_pipeline = False  # Mark as failed to avoid retries
        return self._llm_pipeline or None

    # ---------------------- Generation ----------------------
    def _generate(self, prompt: str, max_new_tokens: int) -> str:
        if not self.enabled:
            raise AssistantError("Assistant disabled")

        llm = self._load_pipeline()
        if llm is None:
            raise AssistantError("Assistant unavailable")

        def run() -> str:
            response = llm(
                prompt,
                max_new_tokens=max_new_tokens,
                do_sample=False,
                return_full_text=False,
            )
            if not response:
                return ""
            return str(response[0].get("generated_text", "")).strip()

        # Fresh worker per call; an abandoned generation never holds up the next one
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="assistant")
        future = executor.submit(run)
        try:
            text = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError as e:
            future.cancel()
            raise AssistantError(f"Assistant timed out after {self.timeout_seconds}s") from e
        except Exception as e:
            raise AssistantError(f"Assistant call failed: {e}") from e
        finally:
            executor.shutdown(wait=False)

        if not text:
            raise AssistantError("Assistant returned empty text")
        return text

    def extract_keywords(self, prompt: str) -> str:
        """Return raw completion text expected to contain a JSON array of keywords."""
        return self._generate(prompt, self.KEYWORD_MAX_NEW_TOKENS)

    def explain(self, prompt: str) -> str:
        """Return a free-form explanation for the supplied prompt."""
        return self._generate(prompt, self.EXPLAIN_MAX_NEW_TOKENS)
