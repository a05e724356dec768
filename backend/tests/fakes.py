"""
Fake collaborators and canned engine answers shared by the test modules
"""

from typing import Dict, List, Optional

from brandlens.adapters.llm import LLMProviderType, LLMResponse


# ============================================================================
# Sample Answers
# ============================================================================

RANKED_ANSWER = (
    "For project management, the best options are:\n"
    "1. Asana - excellent and reliable for large teams.\n"
    "2. Acme - a great choice with an intuitive design.\n"
    "3. Trello - simple boards for small projects.\n"
    "Reviews: https://www.g2.com/products/acme/reviews"
)

ABSENT_ANSWER = "Asana is an excellent tool for teams and is widely used."


# ============================================================================
# Fakes
# ============================================================================

class FakeAnswerer:
    """Answering collaborator returning canned content"""

    def __init__(
        self,
        content: str = RANKED_ANSWER,
        citations: Optional[List[str]] = None,
        errors: Optional[List[Exception]] = None,
        by_engine: Optional[Dict[str, str]] = None,
    ):
        self.content = content
        self.citations = citations or []
        self.errors = list(errors or [])
        self.by_engine = by_engine or {}
        self.calls = []

    async def answer(self, prompt_text, engine, persona="general", context=None):
        self.calls.append({"prompt": prompt_text, "engine": engine, "persona": persona, "context": context})
        if self.errors:
            raise self.errors.pop(0)
        return LLMResponse(
            content=self.by_engine.get(engine, self.content),
            raw_response={},
            provider=LLMProviderType.OPENAI,
            model="fake-model",
            citations=list(self.citations),
        )


class FakeSearch:
    """Search-results collaborator returning a fixed snapshot or raising"""

    def __init__(self, snapshot=None, error: Optional[Exception] = None):
        self.snapshot = snapshot
        self.error = error
        self.calls = 0

    async def get_serp_snapshot(self, query, brand_name, brand_domain=None, competitors=None, country=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.snapshot


class RecordingNotifier:
    """Notification collaborator that keeps what it was sent"""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send(self, owner_id, event):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((owner_id, event))



class UnavailableBus:
    """Event bus whose broker is down"""

    def __init__(self):
        self.attempts = 0

    async def publish(self, event):
        self.attempts += 1
        raise ConnectionError("redis unavailable")

    async def close(self):
        pass
