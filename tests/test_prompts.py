from enricher.models import Record
from enricher.prompts import build_classifier_prompt, build_research_prompt


def test_prompts_carry_record_context_and_truncate_content():
    record = Record(url="https://x.io", title="X")
    assert "https://x.io" in build_research_prompt(record)

    prompt = build_classifier_prompt(record, "research notes", "p" * 50, content_limit=10)
    assert "Title: X" in prompt
    assert "research notes" in prompt
    assert "p" * 10 in prompt
    assert "p" * 11 not in prompt
