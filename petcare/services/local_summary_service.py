"""
Local Summary Service
Rule-based summaries computed straight from the pet's records. Used whenever
the OpenAI call is unavailable or returns something unusable, so every
builder tolerates missing and malformed fields.
"""

import math
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from petcare.schemas.reminder import ReminderType, RepeatType, reminder_type_label
from petcare.schemas.summary import AssistantSummary, PetContext, SummarySection, SummaryTask
from petcare.utils.dates import format_date, format_datetime, get_timezone, to_datetime, utc_now

HEALTH_WINDOW_DAYS = 14
WEIGHT_WINDOW_DAYS = 90
EXPENSE_WINDOW_DAYS = 30
VET_LOG_SCAN_LIMIT = 50

TAG_LABELS = {
    'appetite': 'Appetite',
    'vomiting': 'Vomiting',
    'lethargy': 'Lethargy',
    'behavior': 'Behavior',
}

SEVERITY_RANK = {'low': 0, 'medium': 1, 'high': 2}
SEVERITY_LABELS = {'low': 'Low', 'medium': 'Medium', 'high': 'High'}

DISCLAIMER = 'Note: this analysis is informational and does not replace a veterinary assessment.'

TIME_PATTERN = re.compile(r'(\d{1,2})[:.](\d{2})')


@dataclass
class RiskFinding:
    code: str
    severity: str
    short: str
    description: str
    recommendations: List[str] = field(default_factory=list)


def _number(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ''


def _tags(row: Dict[str, Any]) -> List[str]:
    tags = row.get('tags')
    return [str(tag) for tag in tags] if isinstance(tags, list) else []


def _logged_at(row: Dict[str, Any]) -> Optional[datetime]:
    return to_datetime(row.get('loggedAt')) or to_datetime(row.get('createdAt'))


def _on_or_after(moment: Optional[datetime], bound: datetime) -> bool:
    return moment is not None and moment >= bound


def _clock(now: datetime, tz_name: Optional[str]) -> str:
    return now.astimezone(get_timezone(tz_name)).strftime('%H:%M')


# ==================== HEALTH SUMMARY ====================

def build_health_summary(context: PetContext, now: datetime, tz_name: Optional[str] = None) -> AssistantSummary:
    cutoff = now - timedelta(days=HEALTH_WINDOW_DAYS)
    recent_logs = [row for row in context.logs if _on_or_after(_logged_at(row), cutoff)]

    tag_counts = Counter(tag for row in recent_logs for tag in _tags(row))
    top_tags = [f"{TAG_LABELS.get(tag, tag)}: {count}" for tag, count in tag_counts.most_common(3)]

    latest = context.logs[0] if context.logs else None
    latest_label = format_datetime(_logged_at(latest), tz_name) if latest else 'No records'
    notes = [row for row in recent_logs if _text(row.get('note'))][:3]

    return AssistantSummary(
        title=f"Health summary for {context.pet_name}",
        meta=f"Local summary • {_clock(now, tz_name)}",
        highlights=top_tags or [f"Few records in the last {HEALTH_WINDOW_DAYS} days"],
        sections=[
            SummarySection(title='Overview', items=[
                f"{len(recent_logs)} health log(s) in the last {HEALTH_WINDOW_DAYS} days.",
                f"Latest health note: {latest_label}",
                'Recurring symptom tags are being tracked.' if top_tags else 'No recurring symptom tags yet.',
            ]),
            SummarySection(title='Recent notes', items=[
                f"{format_date(_logged_at(row), tz_name)} • {_text(row.get('note'))}" for row in notes
            ] or [f"No written notes in the last {HEALTH_WINDOW_DAYS} days."]),
        ],
    )


# ==================== VET VISIT SUMMARY ====================

def _weight_value(row: Dict[str, Any]) -> Optional[float]:
    value = _number(row.get('valueKg'))
    return value if value is not None else _number(row.get('weight'))


def build_vet_summary(context: PetContext, now: datetime, tz_name: Optional[str] = None) -> AssistantSummary:
    last_weight = context.weights[0] if context.weights else None
    last_weight_kg = _weight_value(last_weight) if last_weight else None
    active = [row for row in context.reminders if row.get('active') is True]
    upcoming = [row for row in active if _on_or_after(to_datetime(row.get('dueDate')), now)]
    upcoming.sort(key=lambda row: to_datetime(row.get('dueDate')))
    recent_logs = context.logs[:5]

    pet_line = f"Pet: {context.pet_name}"
    species = _text(context.pet.get('species'))
    if species:
        pet_line += f" ({species})"

    if last_weight_kg is not None:
        measured = to_datetime(last_weight.get('measuredAt')) or to_datetime(last_weight.get('createdAt'))
        weight_line = f"Last weight: {last_weight_kg:g} kg ({format_date(measured, tz_name)})"
    else:
        weight_line = 'No weight measurement recorded.'

    log_lines = []
    for row in recent_logs:
        line = format_date(_logged_at(row), tz_name)
        tags = _tags(row)
        if tags:
            line += f" [{', '.join(TAG_LABELS.get(tag, tag) for tag in tags)}]"
        note = _text(row.get('note'))
        if note:
            line += f" • {note}"
        log_lines.append(line)

    return AssistantSummary(
        title=f"Vet visit summary for {context.pet_name}",
        meta=f"Local summary • {format_datetime(now, tz_name)}",
        highlights=[
            f"Last weight: {last_weight_kg:g} kg" if last_weight_kg is not None else 'No weight records',
            f"{len(active)} active reminder(s)",
            f"{len(recent_logs)} recent health note(s)",
        ],
        sections=[
            SummarySection(title='Before the visit', items=[
                pet_line,
                weight_line,
                'Recent health notes are listed below.' if recent_logs else 'No health notes recorded.',
            ]),
            SummarySection(title='Upcoming reminders', items=[
                f"{reminder_type_label(_text(row.get('type')))} • {_text(row.get('title')) or '-'} • "
                f"{format_datetime(row.get('dueDate'), tz_name)}"
                for row in upcoming[:3]
            ] or ['No upcoming active reminders.']),
            SummarySection(title='Recent health notes', items=log_lines or ['No health notes yet.']),
        ],
    )


# ==================== REMINDER HELPER ====================

def _parse_reminder_type(text: str) -> ReminderType:
    if 'vet' in text:
        return ReminderType.VET_VISIT
    if 'medic' in text or 'pill' in text or 'tablet' in text:
        return ReminderType.MEDICATION
    return ReminderType.VACCINE


def _parse_repeat(text: str):
    if 'every day' in text or 'daily' in text or 'each day' in text:
        return RepeatType.CUSTOM_DAYS, 'Custom (every 1 day)'
    if 'week' in text:
        return RepeatType.WEEKLY, 'Weekly'
    if 'month' in text:
        return RepeatType.MONTHLY, 'Monthly'
    if 'year' in text or 'annual' in text:
        return RepeatType.YEARLY, 'Yearly'
    return RepeatType.NONE, 'One time'


def build_reminder_suggestion(context: PetContext, prompt: str, now: datetime,
                              tz_name: Optional[str] = None) -> AssistantSummary:
    """Keyword parse of a free-text reminder request into suggested fields"""
    text = _text(prompt).lower()
    if not text:
        return AssistantSummary(
            title='Reminder helper',
            meta='Local suggestion',
            highlights=['Text required'],
            sections=[SummarySection(title='What you can do', items=[
                'Write a short request: "weekly medication reminder"',
                'Add a time: "20:30"',
                'Name a type: vaccine / medication / vet',
            ])],
        )

    reminder_type = _parse_reminder_type(text)
    repeat_type, repeat_label = _parse_repeat(text)
    type_label = reminder_type_label(reminder_type.value)

    local_now = now.astimezone(get_timezone(tz_name))
    match = TIME_PATTERN.search(text)
    if match:
        hour = min(23, int(match.group(1)))
        minute = min(59, int(match.group(2)))
        suggested = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if suggested < local_now:
            suggested += timedelta(days=1)
    else:
        suggested = local_now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)

    return AssistantSummary(
        title='Reminder helper suggestion',
        meta=f"Local suggestion • {_clock(now, tz_name)}",
        highlights=[type_label, repeat_label, 'Time detected' if match else 'Default time used'],
        sections=[
            SummarySection(title='Suggested fields', items=[
                f"Title: {context.pet_name} • {type_label}",
                f"Type: {type_label}",
                f"Repeat: {repeat_label}",
                f"Suggested time: {suggested.strftime('%d.%m.%Y %H:%M')}",
            ]),
            SummarySection(title='Note', items=[
                'This suggestion was generated automatically. Check the date, time and repeat type before saving.',
                'Choose "custom days" with an interval of 1 in the reminder form.'
                if repeat_type == RepeatType.CUSTOM_DAYS else 'It can be edited directly in the reminder form.',
            ]),
        ],
    )


# ==================== RISK ANALYSIS ====================

def analyze_weight_change(weights: List[Dict[str, Any]], now: datetime) -> Optional[RiskFinding]:
    cutoff = now - timedelta(days=WEIGHT_WINDOW_DAYS)
    points = []
    for row in weights:
        measured = to_datetime(row.get('measuredAt')) or to_datetime(row.get('createdAt'))
        value = _weight_value(row)
        if measured is not None and value is not None and measured >= cutoff:
            points.append((measured, value))
    if len(points) < 2:
        return None

    points.sort(key=lambda point: point[0])
    first, last = points[0][1], points[-1][1]
    if not first:
        return None
    change_pct = (last - first) / first * 100

    if change_pct <= -10:
        return RiskFinding(
            code='weight_loss_90d_high', severity='high', short='Weight loss in 90 days',
            description=f"Weight dropped about {abs(change_pct):.1f}% in the last {WEIGHT_WINDOW_DAYS} days "
                        f"({first:g} kg → {last:g} kg).",
            recommendations=['Confirm the measurements and plan a vet assessment.',
                             'Create a new weight check reminder.'],
        )
    if change_pct <= -5:
        return RiskFinding(
            code='weight_loss_90d_medium', severity='medium', short='Weight loss trend',
            description=f"Weight dropped about {abs(change_pct):.1f}% in the last {WEIGHT_WINDOW_DAYS} days.",
            recommendations=['Weigh more often and watch for accompanying symptoms.'],
        )
    return None


def analyze_vet_gap(context: PetContext, now: datetime) -> Optional[RiskFinding]:
    candidates = []
    for row in context.reminders:
        if row.get('type') == ReminderType.VET_VISIT.value:
            candidates.append(to_datetime(row.get('dueDate')))
    for row in context.expenses:
        if row.get('category') == 'vet':
            candidates.append(to_datetime(row.get('expenseDate')))
    for row in context.logs[:VET_LOG_SCAN_LIMIT]:
        if 'vet' in _text(row.get('note')).lower():
            candidates.append(_logged_at(row))
    candidates = [moment for moment in candidates if moment is not None]

    if not candidates:
        return RiskFinding(
            code='vet_gap_no_record', severity='medium', short='No vet records',
            description='No vet visit or vet expense appears in the records.',
            recommendations=['Plan routine vet checkups according to the pet\'s age.'],
        )

    gap_days = (now - max(candidates)).days
    if gap_days >= 365:
        return RiskFinding(
            code='vet_gap_12m', severity='high', short='No vet record for a long time',
            description=f"The last vet related record was about {gap_days} days ago.",
            recommendations=['Consider booking a routine checkup.'],
        )
    if gap_days >= 180:
        return RiskFinding(
            code='vet_gap_6m', severity='medium', short='No vet record for 6+ months',
            description=f"The last vet related record was about {gap_days} days ago.",
            recommendations=['A checkup may be due soon; review the calendar.'],
        )
    return None


def analyze_vaccine_delay(reminders: List[Dict[str, Any]], now: datetime) -> Optional[RiskFinding]:
    overdue = []
    for row in reminders:
        if row.get('type') != ReminderType.VACCINE.value or row.get('active') is not True:
            continue
        due = to_datetime(row.get('dueDate'))
        if due is not None and due < now:
            overdue.append(due)
    if not overdue:
        return None

    late_days = max(1, (now - min(overdue)).days)
    return RiskFinding(
        code='vaccine_overdue',
        severity='high' if late_days >= 30 else 'medium',
        short='Vaccine overdue',
        description=f"{len(overdue)} active vaccine reminder(s) are past due. "
                    f"The oldest is about {late_days} days late.",
        recommendations=['Update the vaccine records or confirm the dates with your vet.'],
    )


def analyze_expense_spike(expenses: List[Dict[str, Any]], now: datetime) -> Optional[RiskFinding]:
    current_start = now - timedelta(days=EXPENSE_WINDOW_DAYS)
    previous_start = now - timedelta(days=EXPENSE_WINDOW_DAYS * 2)

    current = previous = 0.0
    for row in expenses:
        spent_at = to_datetime(row.get('expenseDate'))
        amount = _number(row.get('amount') or 0)
        if spent_at is None or amount is None:
            continue
        if current_start <= spent_at <= now:
            current += amount
        elif previous_start <= spent_at < current_start:
            previous += amount

    if current <= 0 or previous <= 0:
        return None
    ratio = current / previous
    if ratio >= 2:
        return RiskFinding(
            code='expense_spike_high', severity='medium', short='Expense increase',
            description=f"Spending in the last {EXPENSE_WINDOW_DAYS} days is about {ratio:.1f}x the previous period.",
            recommendations=['Check which category grew and review the details in the timeline.'],
        )
    if ratio >= 1.5:
        return RiskFinding(
            code='expense_spike_medium', severity='low', short='Expenses trending up',
            description=f"Spending in the last {EXPENSE_WINDOW_DAYS} days rose compared to the previous period "
                        f"({ratio:.1f}x).",
            recommendations=['Review the monthly spending breakdown by category.'],
        )
    return None


def highest_severity(severities: List[str]) -> str:
    return max(severities, key=lambda severity: SEVERITY_RANK.get(severity, 0), default='low')


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(item for item in items if item))


def build_risk_share_text(pet_name: str, severity: str, findings: List[RiskFinding], generated_at: str) -> str:
    lines = [
        f"PetCare risk analysis ({generated_at})",
        f"Pet: {pet_name}",
        f"Risk level: {SEVERITY_LABELS[severity]}",
        '',
    ]
    if findings:
        lines.append('Findings:')
        lines.extend(f"- {SEVERITY_LABELS[f.severity]}: {f.description}" for f in findings)
        lines.append('')
        lines.append('Recommendations:')
        lines.extend(f"- {rec}" for rec in _dedupe([rec for f in findings for rec in f.recommendations]))
    else:
        lines.append('No notable risk signals found.')
        lines.append('Regular follow-up is recommended.')
    lines.append('')
    lines.append(DISCLAIMER)
    return '\n'.join(lines)


def build_risk_analysis(context: PetContext, now: datetime, tz_name: Optional[str] = None) -> AssistantSummary:
    findings = [
        finding for finding in (
            analyze_weight_change(context.weights, now),
            analyze_vet_gap(context, now),
            analyze_vaccine_delay(context.reminders, now),
            analyze_expense_spike(context.expenses, now),
        )
        if finding is not None
    ]
    severity = highest_severity([f.severity for f in findings])

    if findings:
        highlights = [f"{SEVERITY_LABELS[f.severity]} • {f.short}" for f in findings]
        sections = [
            SummarySection(title='Detected signals',
                           items=[f"{SEVERITY_LABELS[f.severity]}: {f.description}" for f in findings]),
            SummarySection(title='Recommendations',
                           items=_dedupe([rec for f in findings for rec in f.recommendations])),
        ]
    else:
        highlights = ['No notable risk signals', 'Records are tracked regularly']
        sections = [SummarySection(title='Summary', items=[
            'No high priority risk signal was found in the current records.',
            'Keep logging weight, health notes and vet visits regularly.',
        ])]

    generated_at = format_datetime(now, tz_name)
    return AssistantSummary(
        title=f"Health risk analysis for {context.pet_name}",
        meta=f"Rule-based analysis • {generated_at}",
        severity=severity,
        highlights=highlights,
        sections=sections,
        share_text=build_risk_share_text(context.pet_name, severity, findings, generated_at),
    )


# ==================== DISPATCH ====================

def build_local_summary(task: SummaryTask, context: PetContext, prompt: str = '',
                        now: Optional[datetime] = None, tz_name: Optional[str] = None) -> AssistantSummary:
    now = now or utc_now()
    if task == SummaryTask.HEALTH_SUMMARY:
        return build_health_summary(context, now, tz_name)
    if task == SummaryTask.VET_SUMMARY:
        return build_vet_summary(context, now, tz_name)
    if task == SummaryTask.RISK_ANALYSIS:
        return build_risk_analysis(context, now, tz_name)
    return build_reminder_suggestion(context, prompt, now, tz_name)
