"""
Growth Coach — Action planner.
One model call per request: build the prompt for (stage, business area),
send it through CompletionClient, parse the reply into {goal, steps}.
"""
import logging
from typing import List, Optional

from crm.models import Contact
from orchestrator.llm_client import CompletionClient
from orchestrator.plan_parser import PlanDraft, parse_plan
from orchestrator.plan_prompt import (
    CONTACT_ANALYSIS_SYSTEM_PROMPT,
    PLAN_SYSTEM_PROMPT,
    build_contact_analysis_prompt,
    build_user_prompt,
    default_goal,
)

logger = logging.getLogger("coach.action_planner")

CONTACT_ANALYSIS_MAX_TOKENS = 2000
NO_CONTACTS_MESSAGE = "No contacts found to analyze."


async def get_actionable_steps(stage: str, business_area: str, current_situation: str,
                               context: Optional[str] = None,
                               client: CompletionClient = None) -> PlanDraft:
    """
    Ask the model for a plan and parse it.
    Completion errors propagate; parse problems never do (see parse_plan).
    """
    client = client or CompletionClient()
    goal = default_goal(stage, business_area)
    messages = [
        {"role": "system", "content": PLAN_SYSTEM_PROMPT},
        {"role": "user", "content": build_user_prompt(
            stage, business_area, current_situation, goal, context,
        )},
    ]

    logger.info(f"Generating action plan: {business_area} @ {stage}")
    result = await client.complete(messages)
    draft = parse_plan(result.content, goal)
    logger.info(f"Action plan parsed: {len(draft.steps)} steps for {business_area}")
    return draft


def contact_summary(contacts: List[Contact]) -> List[dict]:
    """Fields the analysis prompt needs; keeps the prompt small."""
    return [
        {
            "id": c.id,
            "name": c.full_name,
            "email": c.get("email"),
            "company": c.get("company"),
            "lifecycleStage": c.lifecycle_stage,
            "createdDate": c.get("createdate") or c.created_at,
            "lastModified": c.get("lastmodifieddate") or c.updated_at,
        }
        for c in contacts
    ]


async def analyze_contacts(contacts: List[Contact], client: CompletionClient = None) -> str:
    """Narrative CRM insights for a contact list."""
    if not contacts:
        return NO_CONTACTS_MESSAGE

    client = client or CompletionClient()
    messages = [
        {"role": "system", "content": CONTACT_ANALYSIS_SYSTEM_PROMPT},
        {"role": "user", "content": build_contact_analysis_prompt(contact_summary(contacts))},
    ]
    logger.info(f"Analyzing {len(contacts)} HubSpot contacts")
    result = await client.complete(messages, max_tokens=CONTACT_ANALYSIS_MAX_TOKENS)
    return result.content
