"""
Growth Coach — Action plan parser.
Turns a model reply into {goal, steps}.

Two tiers:
  1. try_structured() — the reply is a JSON object with a non-empty "steps"
     list (bare, or inside a ```json fence). Used verbatim.
  2. parse_text_plan() — line scanner for the markdown layout requested by
     PLAN_SYSTEM_PROMPT. If it finds no steps at all, the whole reply becomes
     one high-priority "Immediate" step so callers always get something to act on.
"""
import enum
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

logger = logging.getLogger("coach.plan_parser")

DEFAULT_PRIORITY = "medium"
DEFAULT_TIMEFRAME = "TBD"


@dataclass
class PlanDraft:
    """Parser output: what gets shown and optionally saved as an ActionPlan."""
    goal: str
    steps: List[dict]

    def to_dict(self) -> dict:
        return {"goal": self.goal, "steps": self.steps}


# ============================================================
# Tier 1: structured JSON
# ============================================================

@dataclass
class Structured:
    goal: str
    steps: List[dict]


@dataclass
class NeedsTextFallback:
    raw_text: str


StructuredAttempt = Union[Structured, NeedsTextFallback]

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def _load_json_object(raw: str) -> Optional[dict]:
    candidates = [raw.strip()]
    fenced = _FENCED_JSON.search(raw)
    if fenced:
        candidates.append(fenced.group(1))
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def _is_step_record(step) -> bool:
    action = step.get("action") if isinstance(step, dict) else None
    return isinstance(action, str) and bool(action.strip())


def try_structured(raw: str, default_goal: str) -> StructuredAttempt:
    """
    JSON object whose steps are all records with an action → Structured.
    Anything else (no steps, bare strings, records without an action) needs the text scanner.
    """
    parsed = _load_json_object(raw or "")
    if parsed is None:
        return NeedsTextFallback(raw_text=raw or "")
    steps = parsed.get("steps")
    if not isinstance(steps, list) or not steps:
        return NeedsTextFallback(raw_text=raw)
    if not all(_is_step_record(s) for s in steps):
        logger.info("Plan JSON has steps that aren't step records — scanning text layout instead")
        return NeedsTextFallback(raw_text=raw)
    return Structured(goal=parsed.get("goal") or default_goal, steps=steps)


# ============================================================
# Tier 2: text scanner
# ============================================================

class State(enum.Enum):
    SCANNING_FOR_STEP = "scanning_for_step"
    IN_GOAL = "in_goal"
    IN_DESCRIPTION = "in_description"
    IN_EXECUTION = "in_execution"
    IN_RESOURCES = "in_resources"
    IN_SUCCESS_CRITERIA = "in_success_criteria"


class Marker(enum.Enum):
    GOAL = "goal"
    PRIORITY = "priority"
    STEP = "step"                # any "N." line
    STEP_HEADER = "step_header"  # "N. **Title**" with nothing after the bold title
    DESCRIPTION = "description"
    EXECUTION = "execution"
    TIMELINE = "timeline"
    RESOURCES = "resources"
    SUCCESS_CRITERIA = "success_criteria"


def _section(label: str) -> re.Pattern:
    # "**📝 Description:**", "**Description**:", "**⏰ Timeline:** 2 weeks"
    return re.compile(r"\*\*[^\w*]*" + label + r"\s*:?\s*\*\*\s*:?\s*(?P<rest>.*)$", re.IGNORECASE)


_SECTION_MARKERS = [
    (Marker.DESCRIPTION, _section("Description")),
    (Marker.EXECUTION, _section("How to Execute")),
    (Marker.TIMELINE, _section("Timeline")),
    (Marker.RESOURCES, _section(r"Resources(?:\s*&\s*Links)?")),
    (Marker.SUCCESS_CRITERIA, _section("Success Criteria")),
]
_GOAL_LABEL = re.compile(r"STAGE GOAL:(?P<rest>.*)$", re.IGNORECASE)
_GOAL_EMOJI = re.compile(r"🎯(?P<rest>.*)$")
_PRIORITY = re.compile(r"\b(HIGH|MEDIUM|LOW) PRIORITY\b")
_STEP = re.compile(r"^\d+\.\s*(?P<rest>.*)$")
_STEP_HEADER = re.compile(r"^\d+\.\s*\*\*.+\*\*\s*$")
_STEP_TITLE = re.compile(r"^\d+\.\s*\*\*(?P<title>.+?)\*\*")
_BULLET = re.compile(r"^(?:[•\-–]|\*(?!\*))\s*(?P<text>.+)$")
_URL = re.compile(r"https?://[^\s]+")
_URL_TRAILING = ".,;:!?)]}>\"'"

# Which markers end each capture state. The line that ends a state is then
# handled as if the scanner were in SCANNING_FOR_STEP.
_ANY_MARKER = frozenset(Marker)
_EXITS: Dict[State, FrozenSet[Marker]] = {
    State.IN_GOAL: _ANY_MARKER,
    State.IN_DESCRIPTION: frozenset({
        Marker.GOAL, Marker.PRIORITY, Marker.STEP_HEADER, Marker.EXECUTION,
        Marker.TIMELINE, Marker.RESOURCES, Marker.SUCCESS_CRITERIA,
    }),
    State.IN_EXECUTION: frozenset({
        Marker.GOAL, Marker.PRIORITY, Marker.STEP_HEADER, Marker.DESCRIPTION,
        Marker.TIMELINE, Marker.RESOURCES, Marker.SUCCESS_CRITERIA,
    }),
    State.IN_RESOURCES: frozenset({
        Marker.GOAL, Marker.PRIORITY, Marker.STEP, Marker.STEP_HEADER,
        Marker.DESCRIPTION, Marker.EXECUTION, Marker.TIMELINE, Marker.SUCCESS_CRITERIA,
    }),
    State.IN_SUCCESS_CRITERIA: frozenset({
        Marker.GOAL, Marker.PRIORITY, Marker.STEP, Marker.STEP_HEADER,
        Marker.DESCRIPTION, Marker.EXECUTION, Marker.TIMELINE, Marker.RESOURCES,
    }),
}

_SECTION_STATES = {
    Marker.DESCRIPTION: State.IN_DESCRIPTION,
    Marker.EXECUTION: State.IN_EXECUTION,
    Marker.RESOURCES: State.IN_RESOURCES,
    Marker.SUCCESS_CRITERIA: State.IN_SUCCESS_CRITERIA,
}


def classify_line(line: str) -> Tuple[Optional[Marker], str]:
    """Marker for a stripped line plus any text that follows the marker on the same line."""
    goal = _GOAL_LABEL.search(line) or _GOAL_EMOJI.search(line)
    if goal:
        return Marker.GOAL, goal.group("rest").strip().strip("*").strip()
    priority = _PRIORITY.search(line)
    if priority:
        return Marker.PRIORITY, priority.group(1).lower()
    for marker, pattern in _SECTION_MARKERS:
        match = pattern.search(line)
        if match:
            return marker, match.group("rest").strip()
    step = _STEP.match(line)
    if step:
        marker = Marker.STEP_HEADER if _STEP_HEADER.match(line) else Marker.STEP
        return marker, step.group("rest").strip()
    return None, line


def extract_urls(text: str) -> List[str]:
    return [url.rstrip(_URL_TRAILING) for url in _URL.findall(text)]


@dataclass
class _StepInProgress:
    priority: str
    title: Optional[str] = None
    description: List[str] = field(default_factory=list)
    execution: List[str] = field(default_factory=list)
    timeline: Optional[str] = None
    resources: List[str] = field(default_factory=list)
    links: List[str] = field(default_factory=list)

    def has_content(self) -> bool:
        return bool(self.title or self.description or self.execution
                    or self.timeline or self.resources or self.links)

    def add_resource(self, text: str):
        self.resources.append(text)
        self.links.extend(extract_urls(text))

    def to_step(self) -> dict:
        description = " ".join(self.description)
        execution = " ".join(self.execution)
        resources = "; ".join(self.resources)
        links = ", ".join(self.links)

        sections = []
        if self.title:
            sections.append(f"**{self.title}**")
        if description:
            sections.append(f"Description: {description}")
        if execution:
            sections.append(f"How to Execute: {execution}")
        if self.timeline:
            sections.append(f"Timeline: {self.timeline}")
        if resources:
            sections.append(f"Resources: {resources}")
        if links:
            sections.append(f"Links: {links}")

        step = {
            "action": "\n\n".join(sections) or "Action details",
            "priority": self.priority,
            "timeframe": self.timeline or DEFAULT_TIMEFRAME,
        }
        if resources or links:
            step["resources"] = resources or links
        return step


class _PlanScanner:
    """One pass over the reply's non-blank lines."""

    def __init__(self, default_goal: str):
        self.goal = default_goal
        self.state = State.SCANNING_FOR_STEP
        self.priority = DEFAULT_PRIORITY
        self.steps: List[dict] = []
        self._step: Optional[_StepInProgress] = None

    def feed(self, line: str):
        marker, rest = classify_line(line)
        if self.state in _EXITS and marker in _EXITS[self.state]:
            self.state = State.SCANNING_FOR_STEP

        if self.state is State.SCANNING_FOR_STEP:
            self._on_marker(marker, rest)
        else:
            self._capture(line)

    def finish(self) -> List[dict]:
        self._flush()
        return self.steps

    def _flush(self):
        if self._step is not None and self._step.has_content():
            self.steps.append(self._step.to_step())
        self._step = None

    def _on_marker(self, marker: Optional[Marker], rest: str):
        if marker is None:
            return
        if marker is Marker.GOAL:
            if rest:
                self.goal = rest
            else:
                self.state = State.IN_GOAL
        elif marker is Marker.PRIORITY:
            self.priority = rest
        elif marker in (Marker.STEP, Marker.STEP_HEADER):
            self._flush()
            self._step = _StepInProgress(priority=self.priority)
            title = _STEP_TITLE.match(f"0. {rest}")
            self._step.title = (title.group("title") if title else rest).strip() or None
        elif marker is Marker.TIMELINE:
            if self._step is not None and rest:
                self._step.timeline = rest
        else:
            self.state = _SECTION_STATES[marker]
            if rest:
                self._capture(rest)

    def _capture(self, line: str):
        if self.state is State.IN_GOAL:
            self.goal = line.strip("*").strip() or self.goal
            self.state = State.SCANNING_FOR_STEP
            return
        if self._step is None or self.state is State.IN_SUCCESS_CRITERIA:
            return
        if self.state is State.IN_DESCRIPTION:
            self._step.description.append(line)
        elif self.state is State.IN_EXECUTION:
            self._step.execution.append(line)
        elif self.state is State.IN_RESOURCES:
            bullet = _BULLET.match(line)
            if bullet:
                self._step.add_resource(bullet.group("text").strip())


def fallback_step(raw: str) -> dict:
    return {"action": raw, "priority": "high", "timeframe": "Immediate"}


def parse_text_plan(raw: str, default_goal: str) -> PlanDraft:
    """Scan the markdown layout line by line; never returns an empty step list."""
    scanner = _PlanScanner(default_goal)
    for line in (raw or "").splitlines():
        line = line.strip()
        if line:
            scanner.feed(line)
    steps = scanner.finish()

    if not steps:
        logger.info("Plan reply had no recognizable steps — using the whole reply as one step")
        steps = [fallback_step(raw)]
    return PlanDraft(goal=scanner.goal, steps=steps)


def parse_plan(raw: str, default_goal: str) -> PlanDraft:
    """JSON first, text scanner second. Parse failures never surface to the caller."""
    attempt = try_structured(raw, default_goal)
    if isinstance(attempt, Structured):
        return PlanDraft(goal=attempt.goal, steps=attempt.steps)
    logger.debug("Plan reply is not structured JSON — scanning text layout")
    return parse_text_plan(attempt.raw_text, default_goal)
