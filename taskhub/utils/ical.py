"""
iCalendar (RFC 5545) export of formatted tasks.

Each task with a deadline becomes an all-day VEVENT. Recurring tasks start on
their recurrence date and repeat until the deadline.
"""
from datetime import date, timedelta
from typing import Iterable, List, Optional

from .timezone import SGT, parse_iso_datetime, utcnow

PRODID = "-//Taskhub//NONSGML Taskhub Tasks 1.0//EN"
MAX_LINE_OCTETS = 75

STATUS_MAP = {
    "Completed": "CONFIRMED",
    "In Progress": "CONFIRMED",
    "Blocked": "CANCELLED",
}


def escape_text(text: str) -> str:
    return (
        str(text)
        .replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _to_date(value) -> Optional[date]:
    parsed = parse_iso_datetime(value)
    if parsed is None:
        return None
    # All-day events are placed on the Singapore calendar day
    return parsed.astimezone(SGT).date()


def _format_date(value: date) -> str:
    return value.strftime("%Y%m%d")


def recurrence_rule(interval_days: int, until: date) -> str:
    """Build an RRULE line for a recurrence interval given in days."""
    if interval_days == 1:
        freq, interval = "DAILY", 1
    elif interval_days == 7:
        freq, interval = "WEEKLY", 1
    elif interval_days == 14:
        freq, interval = "WEEKLY", 2
    elif interval_days == 30:
        freq, interval = "MONTHLY", 1
    elif interval_days % 7 == 0:
        freq, interval = "WEEKLY", interval_days // 7
    elif interval_days % 30 == 0:
        freq, interval = "MONTHLY", interval_days // 30
    else:
        freq, interval = "DAILY", interval_days

    rule = f"RRULE:FREQ={freq}"
    if interval > 1:
        rule += f";INTERVAL={interval}"
    return rule + f";UNTIL={_format_date(until)}"


def fold_line(line: str) -> str:
    """Fold a content line so no physical line exceeds 75 octets."""
    if len(line.encode("utf-8")) <= MAX_LINE_OCTETS:
        return line

    parts: List[str] = []
    current = ""
    current_octets = 0
    limit = MAX_LINE_OCTETS
    for char in line:
        size = len(char.encode("utf-8"))
        if current_octets + size > limit:
            parts.append(current)
            # Continuation lines start with a space, which counts toward the limit
            current, current_octets, limit = char, size, MAX_LINE_OCTETS - 1
        else:
            current += char
            current_octets += size
    parts.append(current)
    return "\r\n ".join(parts)


def _description(task: dict) -> str:
    parts = []
    if task.get("description"):
        parts.append(escape_text(task["description"]))
    parts.append(f"Status: {escape_text(task.get('status', ''))}")
    parts.append(f"Priority: {task.get('priority')}")
    project = task.get("project") or {}
    if project.get("name"):
        parts.append(f"Project: {escape_text(project['name'])}")
    names = []
    for assignee in task.get("assignees") or []:
        info = assignee.get("user_info") or {}
        names.append(f"{info.get('first_name', '')} {info.get('last_name', '')}".strip())
    if names:
        parts.append("Assignees: " + "\\, ".join(escape_text(n) for n in names))
    if task.get("tags"):
        parts.append("Tags: " + "\\, ".join(escape_text(t) for t in task["tags"]))
    return "\\n".join(parts)


def _event_lines(task: dict, stamp: str) -> List[str]:
    deadline = _to_date(task.get("deadline"))
    if deadline is None:
        return []

    interval = task.get("recurrence_interval") or 0
    start = deadline
    if interval > 0 and task.get("recurrence_date"):
        start = _to_date(task["recurrence_date"]) or deadline

    priority = task.get("priority") or 5
    lines = [
        "BEGIN:VEVENT",
        f"UID:task-{task['id']}@taskhub",
        f"DTSTAMP:{stamp}",
        "SEQUENCE:0",
        f"DTSTART;VALUE=DATE:{_format_date(start)}",
        f"DTEND;VALUE=DATE:{_format_date(start + timedelta(days=1))}",
        f"SUMMARY:{escape_text(task.get('title', ''))}",
        f"DESCRIPTION:{_description(task)}",
        f"STATUS:{STATUS_MAP.get(task.get('status'), 'TENTATIVE')}",
        f"PRIORITY:{min(9, max(1, 10 - int(priority)))}",
    ]
    if interval > 0:
        lines.append(recurrence_rule(interval, deadline))
    if task.get("tags"):
        lines.append("CATEGORIES:" + ",".join(escape_text(t) for t in task["tags"]))
    lines.append("END:VEVENT")
    return lines


def generate_ical(tasks: Iterable[dict], calendar_name: str = "Taskhub Tasks") -> str:
    """Render formatted tasks as a VCALENDAR document with CRLF line endings."""
    stamp = utcnow().strftime("%Y%m%dT%H%M%SZ")
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        f"X-WR-CALNAME:{escape_text(calendar_name)}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]
    for task in tasks:
        lines.extend(_event_lines(task, stamp))
    lines.append("END:VCALENDAR")
    return "\r\n".join(fold_line(line) for line in lines) + "\r\n"
