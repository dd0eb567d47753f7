"""
Growth Coach — Business-area checklists.
Static per-area constraints and checklist items, the Core Four marketing
method checklists, and the combined task list the dashboard tracks.
"""
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List, Optional

from growth.stages import SalesActionPoint

FREQUENCIES = ("once", "ongoing", "weekly", "daily")
MARKETING = "MARKETING"
DAILY_OUTREACH_MINUTES = 100


@dataclass(frozen=True)
class ChecklistItem:
    text: str
    frequency: str = "once"


@dataclass(frozen=True)
class BusinessArea:
    name: str
    constraint: str
    graduation: str
    checklist: tuple

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "constraint": self.constraint,
            "graduation": self.graduation,
            "checklist": [asdict(item) for item in self.checklist],
        }


BUSINESS_AREAS: List[BusinessArea] = [
    BusinessArea(
        "PRODUCT",
        "Customers have nothing else to buy from you & churn.",
        "Focus on making it good. Make it valuable first then scalable.",
        (
            ChecklistItem("Make product valuable before focusing on scalability", "once"),
            ChecklistItem("Improve core product quality and user experience", "ongoing"),
            ChecklistItem("Gather customer feedback and iterate based on needs", "weekly"),
        ),
    ),
    BusinessArea(
        MARKETING,
        "Lead flow is inconsistent",
        "Implement Rule of 100 daily and use Core Four consistently",
        (
            ChecklistItem("Choose your Core Four method (see selection above)", "once"),
        ),
    ),
    BusinessArea(
        "SALES",
        "Customers get sold with unrealistic expectations and refunds/bad reviews become an issue.",
        "Create and implement CLOSER framework script",
        (
            ChecklistItem("Create sales script using CLOSER framework", "once"),
            ChecklistItem("Script elements: Where are you now?", "once"),
            ChecklistItem("Script elements: Where do you want to go?", "once"),
            ChecklistItem("Script elements: What have you tried?", "once"),
            ChecklistItem("Script elements: What did you like/not like?", "once"),
            ChecklistItem("Script elements: I will solve the obstacles this way", "once"),
            ChecklistItem("Practice and refine script based on results", "daily"),
        ),
    ),
    BusinessArea(
        "CUSTOMER SERVICE",
        "Paid customers have higher standards and complain more",
        "Create customer service scripts for upset customers and testimonial collection",
        (
            ChecklistItem("Create script to deal with upset customers", "once"),
            ChecklistItem("Create process to get testimonials from happy customers", "once"),
            ChecklistItem("Train team on consistent customer service approach", "once"),
            ChecklistItem("Document common issues and responses", "weekly"),
        ),
    ),
    BusinessArea(
        "INFORMATION TECH (IT)",
        "No system to track leads and customers",
        "Set up customer contact and tracking systems",
        (
            ChecklistItem("Set up a place for customers to submit contact info", "once"),
            ChecklistItem("Implement a way to keep track of prospects", "once"),
            ChecklistItem("Implement a way to keep track of customers", "once"),
            ChecklistItem("Ensure data is organized and accessible", "weekly"),
        ),
    ),
    BusinessArea(
        "RECRUITING",
        "Too much work for freelancers and part-timers",
        "Transition to full-time workers",
        (
            ChecklistItem("Identify roles that need full-time commitment", "once"),
            ChecklistItem("Create job descriptions for full-time positions", "once"),
            ChecklistItem("Begin recruiting full-time workers", "weekly"),
            ChecklistItem("Transition key freelancers to full-time if possible", "once"),
        ),
    ),
    BusinessArea(
        "HUMAN RESOURCES (HR)",
        "You're firing people incorrectly and exposed.",
        "Create termination policies and process.",
        (
            ChecklistItem("Create written termination policies", "once"),
            ChecklistItem("Document termination process and procedures", "once"),
            ChecklistItem("Ensure legal compliance for terminations", "once"),
            ChecklistItem("Train managers on proper termination protocols", "once"),
        ),
    ),
    BusinessArea(
        "FINANCE",
        "You don't know how much money you can reinvest into growth.",
        "Implement daily financial monitoring",
        (
            ChecklistItem("Check your bank account daily", "daily"),
            ChecklistItem("Track daily cash flow", "daily"),
            ChecklistItem("Monitor key financial metrics", "weekly"),
            ChecklistItem("Set up basic budgeting system", "once"),
        ),
    ),
]

AREA_NAMES = [area.name for area in BUSINESS_AREAS]


# ============================================================
# Core Four (marketing method)
# ============================================================

CORE_FOUR_METHODS = ("warm-outreach", "cold-outreach", "content", "paid-ads")

_RULE_OF_100 = ChecklistItem("Contact 100 people today (Rule of 100)", "daily")

_CORE_FOUR_ITEMS: Dict[str, List[ChecklistItem]] = {
    "warm-outreach": [
        ChecklistItem(f"Spend {DAILY_OUTREACH_MINUTES} minutes reaching out to warm contacts", "daily"),
        ChecklistItem("Send follow-up messages to 5 past clients", "daily"),
        ChecklistItem("Ask 3 satisfied customers for referrals", "weekly"),
        ChecklistItem("Comment on 10 warm contacts' social media posts", "daily"),
        ChecklistItem("Update your warm contact list with new connections", "weekly"),
    ],
    "cold-outreach": [
        ChecklistItem(f"Spend {DAILY_OUTREACH_MINUTES} minutes on cold outreach", "daily"),
        ChecklistItem("Research and add 50 new prospects to your list", "weekly"),
        ChecklistItem("Create 2 new outreach message templates", "weekly"),
        ChecklistItem("Track and record response rates from this week", "weekly"),
        ChecklistItem("Send 20 cold messages to new prospects", "daily"),
    ],
    "content": [
        ChecklistItem("Create and post 1 piece of content", "daily"),
        ChecklistItem("Leave 100+ valuable comments on target audience posts", "daily"),
        ChecklistItem("Write the most helpful comment on 5 posts", "daily"),
        ChecklistItem("Plan next week's content calendar (7 posts)", "weekly"),
        ChecklistItem("Review last week's content performance and note insights", "weekly"),
        ChecklistItem("Engage with everyone who commented on your content", "daily"),
    ],
    "paid-ads": [
        ChecklistItem(f"Spend {DAILY_OUTREACH_MINUTES} minutes managing ad campaigns", "daily"),
        ChecklistItem("Research 5 new hooks or angles for ads", "daily"),
        ChecklistItem("Create 2 new ad creatives (images/videos)", "daily"),
        ChecklistItem("Check ad performance and adjust budgets", "daily"),
        ChecklistItem("Launch A/B test with 2 ad variations", "weekly"),
        ChecklistItem("Calculate ROI and pause underperforming ads", "weekly"),
    ],
}

_BASE_TIPS = [
    "Don't stop even if you have enough leads - consistency is key",
    "Track your numbers daily to see what's working",
]

_CORE_FOUR_TIPS: Dict[str, List[str]] = {
    "warm-outreach": [
        "Warm contacts convert 10x better than cold ones",
        "Always provide value before asking for anything",
        "Personal relationships are your biggest asset",
    ],
    "cold-outreach": [],
    "content": [
        "Engagement is more valuable than followers",
        "Be genuinely helpful in every comment",
        "Consistency beats perfection",
    ],
    "paid-ads": [
        "Test everything - hooks, creatives, audiences",
        "Start small and scale what works",
        "Creative fatigue happens - refresh regularly",
    ],
}


def core_four_checklist(method: Optional[str]) -> List[ChecklistItem]:
    """Daily/weekly items for the chosen marketing method; a prompt to choose one otherwise."""
    if method not in _CORE_FOUR_ITEMS:
        return [ChecklistItem("Choose your Core Four method above to see specific action items", "once")]
    return [_RULE_OF_100] + _CORE_FOUR_ITEMS[method]


def core_four_tips(method: Optional[str]) -> List[str]:
    return _BASE_TIPS + _CORE_FOUR_TIPS.get(method, [])


# ============================================================
# Task list
# ============================================================

@dataclass
class Task:
    id: str
    text: str
    frequency: str
    area: str
    priority: str = "medium"
    completed: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def build_tasks(core_four: Optional[str], completed_ids: Iterable[str] = (),
                sales_points: Iterable[SalesActionPoint] = ()) -> List[Task]:
    """
    Every area's checklist (MARKETING swapped for the Core Four list) followed
    by the sales action points. Task ids are stable across calls so the client
    can keep its own record of what's ticked.
    """
    done = set(completed_ids)
    tasks = []
    for area in BUSINESS_AREAS:
        items = core_four_checklist(core_four) if area.name == MARKETING else area.checklist
        for index, item in enumerate(items):
            if area.name == MARKETING:
                task_id = f"{area.name}-{core_four}-{item.text[:20]}"
            else:
                task_id = f"{area.name}-{index}"
            tasks.append(Task(task_id, item.text, item.frequency, area.name,
                              completed=task_id in done))

    for index, point in enumerate(sales_points):
        task_id = f"SALES-ACTION-{index}-{point.text[:20]}"
        tasks.append(Task(task_id, point.text, point.frequency, point.area,
                          priority=point.priority, completed=task_id in done))
    return tasks


def filter_tasks(tasks: Iterable[Task], frequency: str = "all", area: str = "all") -> List[Task]:
    return [
        t for t in tasks
        if (frequency == "all" or t.frequency == frequency)
        and (area == "all" or t.area == area)
    ]


def completion_progress(tasks: Iterable[Task]) -> dict:
    tasks = list(tasks)
    completed = sum(1 for t in tasks if t.completed)
    return {
        "total": len(tasks),
        "completed": completed,
        "percentage": (completed / len(tasks) * 100) if tasks else 0,
    }
