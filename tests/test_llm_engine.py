from __future__ import annotations

import asyncio
from types import SimpleNamespace

from rag_pipeline.llm_engine import AnswerGenerator, build_context, build_prompt
from rag_pipeline.models import ScoredPassage

PASSAGES = [
    ScoredPassage(title="Climate deal", content="Leaders agree.", url="https://example.com/climate-summit", score=0.9),
    ScoredPassage(title="AI safety", content="New standards.", url="https://example.com/ai-safety", score=0.1),
]


class _FakeCompletions:
    def __init__(self, content="The summit ended in agreement.", error=None, delay=0.0):
        self.content = content
        self.error = error
        self.delay = delay
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(completions: _FakeCompletions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def test_context_lists_every_passage():
    context = build_context(PASSAGES)
    assert context.split("\n\n")[0] == (
        "Title: Climate deal\nContent: Leaders agree.\nURL: https://example.com/climate-summit"
    )
    assert "URL: https://example.com/ai-safety" in context


def test_prompt_contains_question_and_context():
    prompt = build_prompt("What happened?", PASSAGES)
    assert "Question: What happened?" in prompt
    assert "Title: AI safety" in prompt


async def test_without_key_returns_retrieval_summary():
    text = await AnswerGenerator(api_key="").generate("q", PASSAGES)
    assert text.startswith("No LLM key configured. Here's what I found based on retrieval:")
    assert "https://example.com/climate-summit" in text


async def test_successful_completion_is_returned():
    completions = _FakeCompletions()
    generator = AnswerGenerator(model="gemini-1.5-flash", client=_client(completions))

    assert await generator.generate("What happened?", PASSAGES) == "The summit ended in agreement."
    assert completions.kwargs["model"] == "gemini-1.5-flash"
    assert "Question: What happened?" in completions.kwargs["messages"][0]["content"]


async def test_client_error_returns_context_with_details_outside_production():
    generator = AnswerGenerator(client=_client(_FakeCompletions(error=RuntimeError("quota exceeded"))))

    text = await generator.generate("q", PASSAGES)

    assert text.startswith("LLM unavailable. Here's retrieved context instead:")
    assert text.endswith("(details: quota exceeded)")


async def test_client_error_hides_details_in_production():
    generator = AnswerGenerator(
        client=_client(_FakeCompletions(error=RuntimeError("quota exceeded"))),
        expose_errors=False,
    )

    text = await generator.generate("q", PASSAGES)

    assert "details" not in text
    assert "Title: Climate deal" in text


async def test_empty_completion_is_treated_as_failure():
    generator = AnswerGenerator(client=_client(_FakeCompletions(content="   ")))
    text = await generator.generate("q", PASSAGES)
    assert text.startswith("LLM unavailable.")


async def test_slow_completion_times_out_to_context():
    generator = AnswerGenerator(client=_client(_FakeCompletions(delay=2)), timeout_ms=30)

    text = await generator.generate("q", PASSAGES)

    assert text.startswith("Timed out generating answer. Here's retrieved context instead:")
