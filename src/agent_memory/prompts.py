"""
Memory-capture prompt templates served over MCP prompts/list and prompts/get.

Each template is an opaque pair of texts: an instruction (``system``) and a
request body (``user``) containing ``{{placeholder}}`` markers. Placeholder
names are exposed as prompt arguments; supplied values are substituted
verbatim and unsupplied placeholders are left in place.
"""

import logging
import re
from typing import Dict, List, Optional

logger = logging.getLogger("agent_memory.prompts")

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")

# ---------------------------------------------------------------------------
# Templates -- name -> {description, system, user}
# ---------------------------------------------------------------------------

PROMPTS: Dict[str, Dict[str, str]] = {
    "documentation_session": {
        "description": (
            "Produce a WHAT / WHY / HOW session summary plus key steps & outcomes from a "
            "sequence of tool calls for later reuse and analogy building."
        ),
        "system": "You convert a development or reasoning session into structured documentation for durable memory storage.",
        "user": (
            "GOAL:\n{{goal}}\n\n"
            "CONTEXT NOTES:\n{{context_notes}}\n\n"
            "TOOL CALLS (chronological JSON array)\n{{tool_calls_json}}\n\n"
            'Extract and return JSON with fields: {"summary":"concise 2-4 sentence overview",'
            '"what":"primary accomplishment(s)","why":"purpose / motivation",'
            '"how":"techniques, sequence rationale","steps":[{"order":1,"action":"...","result":"..."}],'
            '"key_decisions":["..."],"issues":[{"issue":"...","resolution":"..."}],'
            '"outcome":"final result","recommended_next_actions":["..."],'
            '"tags":["short","keywords"],"confidence":0.0-1.0}. Do not include extraneous text.'
        ),
    },
    "capture_fact": {
        "description": "Distill atomic fact(s) with source & optional confidence from provided content for future retrieval.",
        "system": "Identify stable atomic facts suitable for long-term memory.",
        "user": (
            "SOURCE TYPE: {{source_type}}\nSOURCE REF: {{source_ref}}\nTEXT:\n{{text}}\n\n"
            'Return JSON: {"facts":[{"statement":"...","source":"<source_ref>",'
            '"evidence_snippet":"...","confidence":0.0-1.0,"tags":["..."]}],'
            '"summary":"optional short aggregate"}.'
        ),
    },
    "capture_procedure": {
        "description": "Extract a reusable step-by-step procedure (case-based reasoning) from narrative content.",
        "system": "Produce actionable, minimal, ordered steps that can generalize.",
        "user": (
            "NARRATIVE:\n{{narrative}}\n\n"
            'Return JSON: {"title":"short procedure name","use_case":"when to apply",'
            '"prerequisites":["..."],"steps":[{"order":1,"instruction":"...","rationale":"(optional)"}],'
            '"verification":"how to confirm success","failure_modes":["..."],"tags":["..."]}.'
        ),
    },
    "capture_troubleshooting_case": {
        "description": "Summarize a problem-resolution case for later analogy (symptoms, root cause, fix).",
        "system": "Extract structured troubleshooting case information.",
        "user": (
            "CASE LOG:\n{{case_log}}\n\n"
            'Return JSON: {"problem":"concise statement","environment":"key context",'
            '"symptoms":["..."],"diagnostics":[{"action":"...","observation":"..."}],'
            '"root_cause":"...","resolution_steps":["..."],"verification":"evidence issue resolved",'
            '"preventive_actions":["..."],"tags":["..."]}.'
        ),
    },
    "generate_analogy_memory": {
        "description": "Create high-level analogies mapping current case to prior memory summaries to aid future reasoning.",
        "system": "You build analogies linking a current situation to prior cases to support transfer learning.",
        "user": (
            "CURRENT CASE SUMMARY:\n{{current_case}}\n\n"
            "RELATED MEMORY SUMMARIES (array)\n{{related_memories_json}}\n\n"
            'Return JSON: {"core_pattern":"abstract shared pattern",'
            '"analogies":[{"memory_ref":"file_path or id","similarity_basis":"...",'
            '"difference":"...","transferable_principle":"..."}],'
            '"recommended_reuse_guidelines":["..."],"tags":["..."]}.'
        ),
    },
}


def placeholders(name: str) -> List[str]:
    """Placeholder names in a template's user text, in first-appearance order."""
    seen: List[str] = []
    for match in _PLACEHOLDER_RE.finditer(PROMPTS[name]["user"]):
        if match.group(1) not in seen:
            seen.append(match.group(1))
    return seen


def list_prompts() -> List[Dict[str, object]]:
    return [
        {"name": name, "description": p["description"], "arguments": placeholders(name)}
        for name, p in PROMPTS.items()
    ]


def render(name: str, arguments: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Return {description, system, user} with supplied placeholders filled in.

    Raises KeyError for an unknown prompt name.
    """
    if name not in PROMPTS:
        raise KeyError(name)
    template = PROMPTS[name]
    values = {k: str(v) for k, v in (arguments or {}).items() if v is not None}

    def _sub(match: "re.Match[str]") -> str:
        return values.get(match.group(1), match.group(0))

    return {
        "description": template["description"],
        "system": template["system"],
        "user": _PLACEHOLDER_RE.sub(_sub, template["user"]),
    }
