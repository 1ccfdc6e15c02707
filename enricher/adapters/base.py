"""Common plumbing for external service adapters."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TypeVar

from enricher.models import ExtractedContent
from enricher.retry import RetryPolicy, Throttle

T = TypeVar("T")


class ExternalAdapter:
    """Throttles and retries every request an adapter issues."""

    service_name = "external"

    def __init__(self, retry: RetryPolicy | None = None, throttle: Throttle | None = None):
        self.retry = retry or RetryPolicy()
        self.throttle = throttle or Throttle()

    def _call(self, request: Callable[[], T]) -> T:
        def _throttled() -> T:
            self.throttle.wait()
            return request()

        return self.retry.call(_throttled, label=self.service_name)


class ResearchAdapter(ABC):
    @abstractmethod
    def ask(self, prompt: str) -> str:
        """Return the research answer text."""


class ContentAdapter(ABC):
    @abstractmethod
    def fetch(self, url: str) -> ExtractedContent:
        """Return the page's main content as markdown plus page metadata."""


class ClassificationAdapter(ABC):
    @abstractmethod
    def classify(self, system_prompt: str, user_prompt: str) -> str:
        """Return the classifier's raw response text."""
