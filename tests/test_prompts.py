"""Tests for the memory-capture prompt templates."""
import pytest

from agent_memory.prompts import PROMPTS, list_prompts, placeholders, render

EXPECTED = {
    "documentation_session": ["goal", "context_notes", "tool_calls_json"],
    "capture_fact": ["source_type", "source_ref", "text"],
    "capture_procedure": ["narrative"],
    "capture_troubleshooting_case": ["case_log"],
    "generate_analogy_memory": ["current_case", "related_memories_json"],
}


def test_all_templates_present():
    assert set(PROMPTS) == set(EXPECTED)


@pytest.mark.parametrize("name,expected", sorted(EXPECTED.items()))
def test_placeholders(name, expected):
    assert placeholders(name) == expected


def test_list_prompts_shape():
    listed = {p["name"]: p for p in list_prompts()}
    assert listed["capture_procedure"]["arguments"] == ["narrative"]
    assert all(p["description"] for p in listed.values())


def test_render_fills_supplied_values():
    out = render("capture_fact", {"source_type": "doc", "source_ref": "README", "text": "SQLite is embedded."})
    assert "SOURCE TYPE: doc" in out["user"]
    assert "SQLite is embedded." in out["user"]
    assert "{{" not in out["user"]
    assert out["system"] == PROMPTS["capture_fact"]["system"]


def test_render_leaves_missing_placeholders():
    out = render("documentation_session", {"goal": "ship it"})
    assert "ship it" in out["user"]
    assert "{{context_notes}}" in out["user"]
    assert "{{tool_calls_json}}" in out["user"]


def test_render_values_verbatim():
    # Values containing braces are not re-expanded
    out = render("capture_procedure", {"narrative": "{{case_log}} $1 \\n"})
    assert "{{case_log}} $1 \\n" in out["user"]


def test_render_unknown():
    with pytest.raises(KeyError):
        render("no_such_prompt")
