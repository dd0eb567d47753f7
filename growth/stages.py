"""
Growth Coach — Scaling stages.
The ten company stages (headcount + revenue bands) and the sales targets
needed to reach the next one.
"""
import math
from dataclasses import dataclass, asdict
from typing import List, Optional

# Annual plan, spread evenly
TIMELINE_MONTHS = 12
WEEKS_PER_MONTH = 4.33
BUSINESS_DAYS_PER_WEEK = 5
PROJECTS_PER_PERSON_PER_WEEK = 1
LEADS_PER_SALE = 10
FOLLOW_UPS_PER_SALE = 3
CAPACITY_WARNING_PERCENT = 80
SLOW_DELIVERY_WEEKS = 8


@dataclass(frozen=True)
class Stage:
    id: int
    name: str
    headcount_min: int
    headcount_max: int
    revenue_min: int
    revenue_max: Optional[int]

    @property
    def label(self) -> str:
        """Label used by the action planner, e.g. 'Stage 2 - Advertise'."""
        return f"Stage {self.id} - {self.name}"

    def to_dict(self) -> dict:
        return {**asdict(self), "label": self.label}


STAGES: List[Stage] = [
    Stage(0, "Improvise", 0, 1, 0, 50_000),
    Stage(1, "Monetize", 0, 1, 50_000, 100_000),
    Stage(2, "Advertise", 0, 1, 100_000, 250_000),
    Stage(3, "Stabilize", 1, 4, 250_000, 1_000_000),
    Stage(4, "Prioritize", 5, 9, 1_000_000, 2_000_000),
    Stage(5, "Productize", 10, 19, 2_000_000, 5_000_000),
    Stage(6, "Optimize", 20, 49, 5_000_000, 12_000_000),
    Stage(7, "Categorize", 50, 99, 12_000_000, 25_000_000),
    Stage(8, "Specialize", 100, 249, 25_000_000, 50_000_000),
    Stage(9, "Capitalize", 250, 500, 100_000_000, None),
]

LAST_STAGE_ID = STAGES[-1].id


def current_stage(headcount: int, revenue: float) -> Optional[Stage]:
    """
    Headcount decides first. Stages 0-2 share a headcount band, so revenue
    breaks the tie; with no revenue match the first headcount match wins.
    None when the headcount is outside every band.
    """
    matches = [s for s in STAGES if s.headcount_min <= headcount <= s.headcount_max]
    if len(matches) == 1:
        return matches[0]
    for stage in matches:
        if revenue >= stage.revenue_min and (stage.revenue_max is None or revenue <= stage.revenue_max):
            return stage
    return matches[0] if matches else None


def next_stage(headcount: int, revenue: float) -> Optional[Stage]:
    stage = current_stage(headcount, revenue)
    if stage is None or stage.id >= LAST_STAGE_ID:
        return None
    return STAGES[stage.id + 1]


def format_revenue(amount: float) -> str:
    """$1.5M / $250k / $500"""
    if amount >= 1_000_000:
        return f"${amount / 1_000_000:.1f}M"
    if amount >= 1_000:
        return f"${amount / 1_000:.0f}k"
    if float(amount).is_integer():
        amount = int(amount)
    return f"${amount:,}"


@dataclass
class SalesMetrics:
    revenue_gap: float
    sales_needed: int
    sales_per_month: int
    monthly_revenue_target: float
    sales_per_week: int
    sales_per_day: int
    max_clients_per_year: int
    max_clients_per_month: int
    max_concurrent_projects: int
    # None when there is nobody to deliver (headcount 0)
    capacity_utilization: Optional[float]
    timeline_months: int = TIMELINE_MONTHS

    def to_dict(self) -> dict:
        return asdict(self)


def sales_metrics(headcount: int, revenue: float, service_price: float,
                  delivery_time_weeks: int) -> Optional[SalesMetrics]:
    """
    Sales volume needed to reach the next stage's revenue floor within a year,
    and whether the current team can deliver it.
    None at the last stage, without a service price, or when already past the floor.
    """
    target = next_stage(headcount, revenue)
    if target is None or not service_price:
        return None

    revenue_gap = max(0, target.revenue_min - revenue)
    if revenue_gap <= 0:
        return None

    sales_needed = math.ceil(revenue_gap / service_price)
    sales_per_month = math.ceil(sales_needed / TIMELINE_MONTHS)
    sales_per_week = math.ceil(sales_per_month / WEEKS_PER_MONTH)
    sales_per_day = math.ceil(sales_per_week / BUSINESS_DAYS_PER_WEEK)

    projects_per_week = PROJECTS_PER_PERSON_PER_WEEK * headcount
    max_clients_per_year = projects_per_week * 52
    capacity = None
    if max_clients_per_year > 0:
        capacity = sales_needed / max_clients_per_year * 100

    return SalesMetrics(
        revenue_gap=revenue_gap,
        sales_needed=sales_needed,
        sales_per_month=sales_per_month,
        monthly_revenue_target=sales_per_month * service_price,
        sales_per_week=sales_per_week,
        sales_per_day=sales_per_day,
        max_clients_per_year=max_clients_per_year,
        max_clients_per_month=math.floor(projects_per_week * WEEKS_PER_MONTH),
        max_concurrent_projects=delivery_time_weeks * headcount,
        capacity_utilization=capacity,
    )


@dataclass
class SalesActionPoint:
    text: str
    frequency: str
    area: str
    priority: str


def sales_action_points(headcount: int, revenue: float, service_price: float,
                        delivery_time_weeks: int) -> List[SalesActionPoint]:
    """Concrete lead/sales/hiring targets derived from sales_metrics()."""
    metrics = sales_metrics(headcount, revenue, service_price, delivery_time_weeks)
    if metrics is None:
        return []

    points = []
    if metrics.sales_per_day >= 2:
        points.append(SalesActionPoint(
            f"Generate {metrics.sales_per_day * LEADS_PER_SALE} leads daily "
            f"({LEADS_PER_SALE}:1 lead-to-sale ratio target)",
            "daily", "MARKETING", "high",
        ))
    else:
        points.append(SalesActionPoint(
            f"Generate {metrics.sales_per_week * LEADS_PER_SALE} leads weekly "
            f"({LEADS_PER_SALE}:1 lead-to-sale ratio target)",
            "weekly", "MARKETING", "high",
        ))

    points.append(SalesActionPoint(
        f"Close {metrics.sales_per_month} sales this month "
        f"({format_revenue(metrics.monthly_revenue_target)} monthly target)",
        "weekly", "SALES", "high",
    ))
    points.append(SalesActionPoint(
        f"Close {metrics.sales_per_week} sales this week "
        f"({format_revenue(metrics.sales_per_week * service_price)} revenue)",
        "weekly", "SALES", "medium",
    ))
    points.append(SalesActionPoint(
        f"Follow up with {metrics.sales_per_day * FOLLOW_UPS_PER_SALE} prospects daily",
        "daily", "SALES", "medium",
    ))

    if metrics.capacity_utilization is None:
        points.append(SalesActionPoint(
            "Plan to hire team members - nobody is available to deliver projects",
            "once", "RECRUITING", "high",
        ))
    elif metrics.capacity_utilization > CAPACITY_WARNING_PERCENT:
        points.append(SalesActionPoint(
            f"Plan to hire additional team members - you'll be at "
            f"{metrics.capacity_utilization:.0f}% capacity",
            "once", "RECRUITING", "high",
        ))

    if delivery_time_weeks > SLOW_DELIVERY_WEEKS:
        points.append(SalesActionPoint(
            f"Optimize service delivery to reduce {delivery_time_weeks}-week timeline",
            "once", "PRODUCT", "medium",
        ))

    points.append(SalesActionPoint(
        f"Maintain pipeline of {metrics.sales_needed * 2} qualified prospects",
        "weekly", "SALES", "medium",
    ))
    return points
