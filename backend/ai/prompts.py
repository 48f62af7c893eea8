"""Prompt builders for the task parsing endpoints."""

from datetime import date
from typing import List


def _team(users: List[str]) -> str:
    return ", ".join(users) if users else "no team members registered"


def smart_parse_prompt(text: str, users: List[str], today: date) -> str:
    return f"""You turn a teammate's rough note into one clean, actionable task for a small business team, with subtasks when the note holds several steps.

Input:
\"\"\"
{text}
\"\"\"

Today is {today.isoformat()} ({today.strftime("%A")}).
Team members: {_team(users)}

Reply with a single JSON object and nothing else:
{{
  "mainTask": {{
    "text": "task title under 100 characters, starting with a verb",
    "priority": "low | medium | high | urgent",
    "dueDate": "YYYY-MM-DD or empty string",
    "assignedTo": "a team member named in the input, or empty string"
  }},
  "subtasks": [
    {{"text": "one concrete step under 80 characters", "priority": "low | medium | high | urgent", "estimatedMinutes": 5-480}}
  ],
  "summary": "one sentence describing the outcome",
  "wasComplex": true or false
}}

Main task:
- Keep the primary objective, fix spelling and grammar.
- Resolve relative dates such as "tomorrow", "by Friday" or "end of month" against today.
- ASAP, urgent and immediately mean urgent priority.
- Assign only when a listed team member is explicitly named.

Subtasks:
- Give 2 to 6 subtasks only for multi-step input (lists, several requests, detailed instructions).
- Give an empty list for a single simple task.
- Order them so prerequisites come first."""


def file_parse_prompt(is_pdf: bool, users: List[str]) -> str:
    kind = "document" if is_pdf else "image"
    return f"""Read this {kind} and extract the work it asks for.
Team members available for assignment: {_team(users)}

Reply with a single JSON object and nothing else:
{{
  "documentSummary": "one or two sentences on what the {kind} is",
  "extractedText": "the key text, at most 500 characters",
  "mainTask": {{
    "text": "actionable task title under 100 characters",
    "priority": "low | medium | high | urgent",
    "dueDate": "YYYY-MM-DD or empty string",
    "assignedTo": "team member name or empty string"
  }},
  "subtasks": [
    {{"text": "specific step", "priority": "low | medium | high | urgent", "estimatedMinutes": number or null}}
  ]
}}

- Give 2 to 6 subtasks, each starting with a verb.
- For letters and emails, focus on what the recipient must do.
- Infer priority from words like ASAP, urgent, deadline or important.
- Convert any dates to YYYY-MM-DD."""


def enhance_prompt(text: str, users: List[str], today: date) -> str:
    return f"""Rewrite this task so it is clear and actionable without changing what it asks for.

Task: "{text}"
Today is {today.isoformat()} ({today.strftime("%A")}).
Team members: {_team(users)}

Reply with a single JSON object and nothing else:
{{
  "text": "improved title under 100 characters, starting with a verb",
  "priority": "low | medium | high | urgent",
  "dueDate": "YYYY-MM-DD if the task mentions a date, otherwise empty string",
  "assignedTo": "a team member named in the task, otherwise empty string",
  "wasEnhanced": true if you changed the wording, otherwise false
}}"""
