"""
LLM prompt templates for the canonicalization pipeline.
"""
from typing import Dict, List

from elicit.services.retrieval import TaxonomyHit

# ============================================================================
# Extraction
# ============================================================================

EXTRACTION_PROMPT = """Pull every distinct work task out of this conversation between a worker and an interviewer.

CONVERSATION:
{transcript}

Rules:
1. Tasks come from the USER. Read the ASSISTANT lines only to resolve what the user refers to
   (if the assistant lists two tasks and the user says "both", extract both).
2. Keep the user's own wording as far as possible.
3. Split compound statements: "I write reports and present them" is two tasks.
4. Skip meta-conversation such as "that's all", "let me think", or "yes that's right".
5. Describe WHAT the person does, not how often or how they feel about it.
6. Be specific: "Review pull requests" rather than "coding stuff".

Good extractions:
- "I spend mornings answering client emails and then draft proposals" -> "Answer client emails", "Draft proposals"
- ASSISTANT: "Do you also track budgets or approve invoices?" USER: "both" -> "Track budgets", "Approve invoices"

Bad extractions:
- "Communication" (a category, not a task)
- "I'm done now" (meta-conversation)

Return extracted_tasks as a list of strings."""

# ============================================================================
# Normalization
# ============================================================================

NORMALIZATION_PROMPT = """Rewrite each work task below as a standardized occupational task statement.

TASKS:
{tasks}

Rules:
- Start with an action verb in the present tense
- Be specific about the object of the work
- No first person (no I, my, we, our)
- Professional register, 5 to 20 words
- Say WHAT is done, not WHY

Examples:
- "write up quarterly summaries for leadership" -> "Prepare quarterly summary reports for senior leadership"
- "I handle most of the vendor calls" -> "Communicate with vendors by phone to resolve orders and issues"
- "looking over contracts before they go out" -> "Review contracts for accuracy and completeness before distribution"
- "we do sprint planning every other week" -> "Plan development sprints and prioritize work items with the team"
- "keeping the shared drive organized" -> "Organize and maintain shared file storage for the team"

Return normalized_tasks with one entry per input task, in order, each with the original text and the normalized statement."""

# ============================================================================
# Deduplication
# ============================================================================

DEDUPLICATION_PROMPT = """Group task statements that describe the same underlying activity.

TASKS:
{tasks}

Merge when two statements are the same work said differently:
- "Write quarterly reports" + "Prepare quarterly summaries for management" -> "Prepare quarterly summary reports for management"
- "Schedule meetings" + "Organize team meetings" -> "Schedule and organize team meetings"
- "Review financial data" + "Analyze financial statements" -> "Review and analyze financial data and statements"

Do NOT merge when the purpose or audience differs, even if the verb is the same:
- "Write technical documentation" vs "Write marketing copy"
- "Meet with clients" vs "Meet with team members"
- "Review code" vs "Write code"

Every input task must appear in exactly one group. Use the most complete wording as the final statement.
Return deduplicated_tasks, each with final_statement, merged_from (the 1-based task numbers in the group)
and a short reasoning when more than one task was merged."""

# ============================================================================
# Taxonomy matching
# ============================================================================

MATCH_SYSTEM_PROMPT = """You match a worker's task description to standardized occupational task statements.

Pick the candidate that most closely describes the same core activity. Exact wording and domain do not
need to match: a "policy analysis" task matches "evaluate policies" even in a different field.
Only answer -1 when every candidate is clearly unrelated (the user describes cooking and every candidate
is about software engineering).

confidence: "high" for a very close match, "medium" for a related activity, "low" for a loose relation."""

MATCH_PROMPT = """User's task: "{task}"

Candidates:
{candidates}

Pick the best match."""


def _numbered(items: List[str]) -> str:
    return "\n".join(f"{i + 1}. {item}" for i, item in enumerate(items))


def build_extraction_prompt(transcript: List[Dict[str, str]]) -> str:
    lines = "\n\n".join(f"{m['role'].upper()}: {m['content']}" for m in transcript)
    return EXTRACTION_PROMPT.format(transcript=lines)


def build_normalization_prompt(tasks: List[str]) -> str:
    return NORMALIZATION_PROMPT.format(tasks=_numbered(tasks))


def build_deduplication_prompt(statements: List[str]) -> str:
    return DEDUPLICATION_PROMPT.format(tasks=_numbered(statements))


def build_match_prompt(task: str, candidates: List[TaxonomyHit]) -> str:
    listing = "\n".join(
        f'{i}. "{hit.text}" ({hit.fields.get("occupation_title", "")})' for i, hit in enumerate(candidates)
    )
    return MATCH_PROMPT.format(task=task, candidates=listing)
