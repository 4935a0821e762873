"""
LLM prompt templates for the task elicitation conversation.

All prompts used by the analyzer, the policy, the suggestion generator and
the response composer live here so prompt wording can be tuned without
touching control flow.
"""
from typing import Dict, List, Optional

from elicit.conversation.state import (
    CATEGORY_LABELS,
    Category,
    ConversationState,
    CoverageLevel,
    Engagement,
)

# ============================================================================
# Shared formatting helpers
# ============================================================================


def format_numbered(items: List[str], empty: str = "(none yet)") -> str:
    if not items:
        return empty
    return "\n".join(f"{i + 1}. {item}" for i, item in enumerate(items))


def format_history(transcript: List[Dict[str, str]], limit: int = 6, empty: str = "(conversation just started)") -> str:
    recent = transcript[-limit:] if limit else transcript
    if not recent:
        return empty
    return "\n\n".join(f"{m['role'].upper()}: {m['content']}" for m in recent)


def format_coverage(state: ConversationState, mark_priority: bool = False) -> str:
    lines = []
    for category in Category:
        level = state.coverage[category]
        priority = " <- PRIORITIZE" if mark_priority and level.rank < CoverageLevel.MEDIUM.rank else ""
        lines.append(f"- {CATEGORY_LABELS[category]}: {level.value}{priority}")
    return "\n".join(lines)


ENGAGEMENT_DESCRIPTIONS = {
    Engagement.HIGH: "detailed responses",
    Engagement.MEDIUM: "moderate responses",
    Engagement.LOW: "short or vague responses",
}

# ============================================================================
# System prompt
# ============================================================================

AGENT_SYSTEM_PROMPT = """You are a friendly assistant helping someone describe the tasks they do at work.

What you are trying to do:
1. Learn what the person actually does day to day, not just their formal responsibilities
2. Get specific task descriptions that someone else could recognize
3. Touch on the different sides of the job: gathering information, analysis and decisions, producing outputs, and working with people
4. Stay warm and encouraging; this is a conversation, not an interrogation

Style:
- 2-3 sentences at most
- One question at a time
- Refer back to what they told you so they know you are listening
- Plain language, nothing corporate"""

# ============================================================================
# Message analysis
# ============================================================================

MESSAGE_ANALYSIS_PROMPT = """You are analyzing one message from a "{job_title}" who is describing their work.

## Their message
{message}

## Activities already captured
{activities}

## Current coverage by work category
{coverage}

## What to extract
- new_task_count: how many NEW, distinct tasks this message describes (0 if none)
- new_activities: short phrases for each new task, in the user's own terms
- underexplored_activities: tasks they mentioned in passing that deserve a follow-up
- coverage_updates: for each category, the coverage level THIS message supports, or null if the message says nothing about it
  - information_input: reading, researching, monitoring, gathering data
  - mental_processes: analyzing, deciding, planning, problem solving
  - work_output: writing, creating, building, producing deliverables
  - interacting_with_others: meetings, communicating, coordinating, presenting
- engagement: "high" for detailed answers, "medium" for moderate ones, "low" only for vague or evasive ones.
  A short answer that clearly answers the question is "medium", not "low".
- wants_to_stop: true only if they clearly signal they have nothing more to add

Do not count tasks that repeat the activities already captured."""

# ============================================================================
# Tool selection
# ============================================================================

REFERENCE_TASKS_SECTION = """
## Reference tasks for a SIMILAR occupation
{task_list}

The occupation behind these tasks was matched to "{job_title}" automatically and the match is often imprecise.
- A "policy analyst" may be matched to a climate policy role: ignore the climate-specific tasks
- A "software engineer" may be matched to a mining software role: ignore the mining-specific tasks
- Only consider work a GENERAL "{job_title}" would realistically do
- Judge coverage over broad areas of work (communication, analysis, planning, documentation), never niche specialties

## Taxonomy coverage assessment
Compare what the user has described with the GENERAL areas of work in the reference list:
- "high": 70% or more of the general areas are covered
- "medium": 40-70% are covered
- "low": less than 40% are covered
Specialized reference tasks must not count against coverage.
If coverage is "high" and 8 or more tasks are captured, strongly prefer offer-to-finish.
"""

TOOL_SELECTION_PROMPT = """You're helping capture the work tasks of a "{job_title}". The goal is a COMPLETE picture of their job.

## Current state
- Turn: {turn_count}
- Tasks captured: ~{task_count}
- Engagement: {engagement} ({engagement_description})

## Recent conversation
{history}

## Activities mentioned so far
{activities}

## Coverage by work category
{coverage}
{reference_section}
## Actions you can choose
1. "ask-gap-question": ask about an area of the job that looks underexplored (PREFERRED while the user is engaged).
   Provide the question and the gap_area.
2. "show-suggestions": show task suggestions the user can select.
   Only when the user seems STUCK (vague answers, very little said after several turns).
   A short but clear answer is NOT a reason to show suggestions.
3. "encourage-more": a general "anything else?" prompt when coverage already looks good.
4. "offer-to-finish": offer to wrap up when 10+ tasks are captured, coverage is good and the user seems done.

## Rules
- Read the recent conversation and NEVER repeat a question already asked
- 15+ tasks captured: you MUST choose offer-to-finish
- 10+ tasks and turn 6 or later: you MUST choose offer-to-finish
- Engaged user with fewer than 15 tasks: prefer ask-gap-question
- Build on what the user just said

Fill question and gap_area only for ask-gap-question. Fill taxonomy_coverage only when reference tasks are listed above, otherwise null."""

# ============================================================================
# Response prompts (one per action)
# ============================================================================

OPENING_PROMPT = """The user's job title is: {job_title}

Write a warm opening that:
1. Acknowledges their job title naturally
2. Asks them to tell you everything they do
3. Encourages detail and specifics

2-3 sentences. No greeting like "Hi!" or "Hello!"; start with the substance."""

CUSTOM_QUESTION_PROMPT = """Rephrase this follow-up question so it sounds natural in conversation:
"{question}"

Job title: {job_title}
Turn: {turn_count}

## Recent conversation
{history}

{last_message}

First acknowledge briefly what they just shared, then ask the question.
1-2 sentences. Never repeat something already asked above."""

ENCOURAGE_MORE_GAP_PROMPT = """You're helping a "{job_title}" describe their work tasks. They just selected some suggested tasks.

## Tasks captured so far
{activities}

## Recent conversation
{history}

Look at what has been captured and find a gap:
- Which major parts of a {job_title}'s work seem to be missing?
- Which common activities for this role have not come up?
- What do they probably do but have not mentioned (admin, meetings, reporting)?

Write a follow-up that briefly acknowledges what they shared and then asks broadly
whether they do any tasks related to that gap area or anything similar.

Example: "You've covered a lot of the research and analysis side. Do you do any work around presenting findings or communicating with stakeholders, or anything along those lines?"

2 sentences, conversational."""

ENCOURAGE_MORE_PROMPT = """You're helping someone describe their work tasks.

Job title: {job_title}
Tasks captured so far: {task_count}

## Recent conversation
{history}

{last_message}

Write an encouraging message that acknowledges specifically what they JUST shared
and asks whether there is anything else they do regularly.

1-2 sentences, warm. Never repeat a question already asked above."""

SHOW_SUGGESTIONS_PROMPT = """You're about to show someone a few suggested tasks they can select.

Job title: {job_title}

Write a short lead-in for the suggestions. Do NOT list or preview any task; the cards speak for themselves.
Something like "Here are some common tasks that might fit your work, select any that apply."

1-2 sentences."""

OFFER_TO_FINISH_PROMPT = """You're helping someone describe their work tasks and they have shared a good amount.

Job title: {job_title}
Tasks captured so far: {task_count}
Turn: {turn_count}

Write a message that recognizes the detail they gave, invites them to add anything else,
and lets them know they can move on to the next step.

2-3 sentences. Sound satisfied, not pushy."""

FINISH_PROMPT = """You're closing a conversation about someone's work tasks.

Job title: {job_title}
Tasks captured: {task_count}

Thank them and let them know they can now review their tasks.

1-2 sentences, warm."""

# ============================================================================
# Initial task dump
# ============================================================================

GAP_LABELS = {
    Category.INFORMATION_INPUT: "gathering information or researching",
    Category.MENTAL_PROCESSES: "analyzing data or making decisions",
    Category.WORK_OUTPUT: "creating deliverables or outputs",
    Category.INTERACTING_WITH_OTHERS: "working or coordinating with others",
}

POTENTIAL_GAP_AREAS = [
    "occasional or periodic tasks (monthly reports, quarterly reviews, annual planning)",
    "problem-solving or troubleshooting",
    "administrative work (scheduling, expense reports, documentation)",
    "learning or keeping current in the field",
]

INITIAL_DUMP_RESPONSE_PROMPT = """You're helping a "{job_title}" describe their work tasks.

They started by writing out their work activities:
---
{initial_tasks}
---

## Activities extracted
{activities}

## Coverage by work category
{coverage}

{gap_summary}

You MUST ask a clarifying question, even if what they wrote was thorough.

Write a response that:
1. Acknowledges what they shared in one sentence, mentioning something specific
2. Asks about {probe}
3. Sounds curious, not like a checklist

2-3 sentences in total. Do not read their list back to them.

Good: "Sounds like sprint planning and stakeholder updates take up a lot of your week. What about the analytical side, do you dig into data or metrics?"
Bad: "Thank you for sharing! You mentioned meetings, specs, and feedback. Now let me ask about information gathering." """

GAP_ANALYSIS_PROMPT = """You're helping a "{job_title}" describe their work tasks.

{context}

## Reference tasks for a SIMILAR occupation
{task_list}

The reference occupation was matched automatically and may be more specialized than "{job_title}".
Only ask about work a GENERAL "{job_title}" would realistically do.

Steps:
1. Note everything the user has already mentioned
2. Scan the reference tasks for GENERAL areas of work
3. Pick one area that is underexplored and relevant to a typical "{job_title}"
4. Ask a BROAD question about it{acknowledge}

Rules:
- Ask about areas, never about a specific reference task ("Do you do any data analysis or reporting?", not "Do you prepare regulatory compliance reports?")
- Do not ask about anything they already mentioned, even in other words
- Do not repeat a question from the conversation"""

COMPLETENESS_PROMPT = """Decide whether this opening description of a job is complete enough to skip follow-up questions.

Job title: {job_title}

## What the user wrote
{user_input}

## Activities extracted
{activities}

## Typical tasks for a SIMILAR occupation
{task_list}

The reference occupation may be more specialized than "{job_title}". Only weigh the general areas of work.
- "high": 70% or more of the general areas are covered
- "medium": 40-70%
- "low": below 40%

Set is_comprehensive to true ONLY when coverage is "high" and no critical area is missing."""

# ============================================================================
# Suggestion generation
# ============================================================================

SUGGESTION_GENERATION_PROMPT = """You are suggesting work tasks for a "{job_title}".

Suggest tasks this person PROBABLY does but has NOT mentioned yet, covering a range of activity types.

## Task format
Every suggestion is "verb + object + purpose", for example:
- "Analyze market trends and competitor data to inform product strategy"
- "Coordinate with engineering teams to prioritize feature development"
- "Prepare presentation materials and reports for stakeholder meetings"

## Conversation
{history}

## Already mentioned (do NOT suggest anything semantically similar)
{activities}

Near-duplicates to avoid: "analyze financial reports" already said, so not "Review financial data for trends";
"coordinate with teams" already said, so not "Collaborate with cross-functional groups".

## Coverage by work category
{coverage}

## Already shown (do NOT repeat)
{exclusions}

## Requirements
1. Exactly {count} suggestions
2. Each one a different kind of activity, spread across the categories, favoring the prioritized ones
3. Typical for a {job_title}, complete and actionable
4. Varied verbs"""


EXAMPLE_TASKS_SYSTEM_PROMPT = """You write example work tasks for job roles. Respond with exactly 3 tasks."""

EXAMPLE_TASKS_PROMPT = """Write 3 example work tasks a "{job_title}" might type when asked about their job.

- First person: "I [verb] [what]...", e.g. "I conduct market research to identify customer needs"
- 8 to 15 words each, natural and conversational
- Specific to the role but not overly technical"""


# ============================================================================
# Builders
# ============================================================================


def _last_message_line(state: ConversationState) -> str:
    last = state.last_user_message()
    return f'They just said: "{last}"' if last else ""


def build_analysis_prompt(message: str, state: ConversationState) -> str:
    return MESSAGE_ANALYSIS_PROMPT.format(
        job_title=state.job_title,
        message=message,
        activities=format_numbered(state.mentioned_activities),
        coverage=format_coverage(state),
    )


def build_tool_selection_prompt(state: ConversationState, reference_tasks: List[str], limit: int = 15) -> str:
    reference_section = ""
    if reference_tasks:
        reference_section = REFERENCE_TASKS_SECTION.format(
            task_list=format_numbered(reference_tasks[:limit]),
            job_title=state.job_title,
        )
    return TOOL_SELECTION_PROMPT.format(
        job_title=state.job_title,
        turn_count=state.turn_count,
        task_count=state.estimated_task_count,
        engagement=state.engagement.value,
        engagement_description=ENGAGEMENT_DESCRIPTIONS[state.engagement],
        history=format_history(state.transcript, 6),
        activities=format_numbered(state.mentioned_activities, "(no tasks mentioned yet)"),
        coverage=format_coverage(state),
        reference_section=reference_section,
    )


def build_opening_prompt(state: ConversationState) -> str:
    return OPENING_PROMPT.format(job_title=state.job_title)


def build_custom_question_prompt(question: str, state: ConversationState) -> str:
    return CUSTOM_QUESTION_PROMPT.format(
        question=question,
        job_title=state.job_title,
        turn_count=state.turn_count,
        history=format_history(state.transcript, 4, "(none yet)"),
        last_message=_last_message_line(state),
    )


def build_encourage_more_prompt(state: ConversationState) -> str:
    if state.selected_suggestion_ids:
        return ENCOURAGE_MORE_GAP_PROMPT.format(
            job_title=state.job_title,
            activities=format_numbered(state.mentioned_activities, "(no tasks yet)"),
            history=format_history(state.transcript, 4, "(none yet)"),
        )
    return ENCOURAGE_MORE_PROMPT.format(
        job_title=state.job_title,
        task_count=state.estimated_task_count,
        history=format_history(state.transcript, 4, "(none yet)"),
        last_message=_last_message_line(state),
    )


def build_show_suggestions_prompt(state: ConversationState) -> str:
    return SHOW_SUGGESTIONS_PROMPT.format(job_title=state.job_title)


def build_offer_to_finish_prompt(state: ConversationState) -> str:
    return OFFER_TO_FINISH_PROMPT.format(
        job_title=state.job_title,
        task_count=state.estimated_task_count,
        turn_count=state.turn_count,
    )


def build_finish_prompt(state: ConversationState) -> str:
    return FINISH_PROMPT.format(job_title=state.job_title, task_count=state.estimated_task_count)


def gap_areas(state: ConversationState) -> List[str]:
    """Readable labels for categories still at none or low coverage."""
    return [
        GAP_LABELS[category]
        for category in Category
        if state.coverage[category].rank < CoverageLevel.MEDIUM.rank
    ]


def build_initial_dump_prompt(initial_tasks: str, state: ConversationState) -> str:
    gaps = gap_areas(state)
    if gaps:
        gap_summary = f"Areas not well covered yet: {', '.join(gaps)}"
        probe = f"{gaps[0]} (preferred, it was not well covered), or tasks they may have missed"
    else:
        gap_summary = "Coverage looks good across the main categories."
        rotating = POTENTIAL_GAP_AREAS[state.turn_count % len(POTENTIAL_GAP_AREAS)]
        probe = f"tasks they may have missed, such as {rotating}, or details of their core tasks"

    return INITIAL_DUMP_RESPONSE_PROMPT.format(
        job_title=state.job_title,
        initial_tasks=initial_tasks,
        activities=format_numbered(state.mentioned_activities, "(parsing in progress)"),
        coverage=format_coverage(state),
        gap_summary=gap_summary,
        probe=probe,
    )


def build_gap_analysis_prompt(
    state: ConversationState,
    reference_tasks: List[str],
    initial_input: Optional[str] = None,
    limit: int = 15,
) -> str:
    if initial_input:
        context = f"## What the user just shared\n---\n{initial_input}\n---\n\nRead it carefully and note everything they mentioned."
        acknowledge = " (1-2 sentences, acknowledge what they shared first)"
    else:
        context = (
            f"## Conversation so far\n{format_history(state.transcript, 8)}\n\n"
            f"## Activities already mentioned\n{format_numbered(state.mentioned_activities)}"
        )
        acknowledge = " (1-2 sentences)"
    return GAP_ANALYSIS_PROMPT.format(
        job_title=state.job_title,
        context=context,
        task_list=format_numbered(reference_tasks[:limit]),
        acknowledge=acknowledge,
    )


def build_completeness_prompt(
    job_title: str,
    user_input: str,
    mentioned_activities: List[str],
    reference_tasks: List[str],
    limit: int = 15,
) -> str:
    return COMPLETENESS_PROMPT.format(
        job_title=job_title,
        user_input=user_input,
        activities=format_numbered(mentioned_activities, "(none extracted)"),
        task_list=format_numbered(reference_tasks[:limit]),
    )


def build_suggestion_prompt(state: ConversationState, exclude: List[str], count: int) -> str:
    return SUGGESTION_GENERATION_PROMPT.format(
        job_title=state.job_title,
        history=format_history(state.transcript, 6),
        activities=", ".join(state.mentioned_activities) if state.mentioned_activities else "(none mentioned yet)",
        coverage=format_coverage(state, mark_priority=True),
        exclusions="\n".join(f"- {s}" for s in exclude) if exclude else "(none)",
        count=count,
    )


def build_example_tasks_prompt(job_title: str) -> str:
    return EXAMPLE_TASKS_PROMPT.format(job_title=job_title)
