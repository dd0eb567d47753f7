"""
Growth Coach — Action plan prompts.
The system prompt asks for a fixed pseudo-markdown layout that
orchestrator/plan_parser.py knows how to read back.
"""
import json
from typing import List, Optional

DEFAULT_STAGE = "Stage 2 - Advertise"
FALLBACK_GOAL = "Improve this business area"

# Stage → business area → goal. Used when the model doesn't state one.
STAGE_GOALS = {
    "Stage 0 - Improvise": {
        "PRODUCT": "Create a minimum viable product that solves a real problem",
        "MARKETING": "Find your first customers through personal networks",
        "SALES": "Learn to sell your solution through direct conversations",
        "CUSTOMER SERVICE": "Handle early customer feedback personally",
        "IT": "Set up basic systems for customer communication",
        "RECRUITING": "Identify what help you need most",
        "HR": "Establish basic company structure",
        "FINANCE": "Track every dollar in and out",
    },
    "Stage 1 - Monetize": {
        "PRODUCT": "Make your product valuable enough that customers pay",
        "MARKETING": "Develop consistent lead generation methods",
        "SALES": "Create a repeatable sales process",
        "CUSTOMER SERVICE": "Build systems to handle customer inquiries",
        "IT": "Implement basic CRM and communication tools",
        "RECRUITING": "Hire your first part-time helper",
        "HR": "Create basic employment documentation",
        "FINANCE": "Establish proper bookkeeping and cash flow tracking",
    },
    "Stage 2 - Advertise": {
        "PRODUCT": "Focus on making it good before making it scalable",
        "MARKETING": "Implement Rule of 100 daily and use Core Four consistently",
        "SALES": "Create and implement CLOSER framework script",
        "CUSTOMER SERVICE": "Develop customer service scripts and testimonial processes",
        "IT": "Set up lead capture and customer tracking systems",
        "RECRUITING": "Transition from freelancers to full-time workers",
        "HR": "Establish proper hiring processes",
        "FINANCE": "Check bank account daily and track key metrics",
    },
    "Stage 3 - Stabilize": {
        "PRODUCT": "Build scalable systems and processes",
        "MARKETING": "Scale marketing efforts across multiple channels",
        "SALES": "Build a sales team and systematize the process",
        "CUSTOMER SERVICE": "Create comprehensive customer success processes",
        "IT": "Implement robust systems and security measures",
        "RECRUITING": "Build a systematic hiring process",
        "HR": "Develop comprehensive HR policies and procedures",
        "FINANCE": "Implement financial controls and reporting",
    },
}

# Dashboard area names that differ from the goal table keys
_AREA_ALIASES = {
    "INFORMATION TECH (IT)": "IT",
    "HUMAN RESOURCES (HR)": "HR",
}


def default_goal(stage: str, business_area: str) -> str:
    """Static goal for (stage, area); the first stage key containing `stage` wins."""
    stage_key = DEFAULT_STAGE
    if stage:
        stage_key = next((key for key in STAGE_GOALS if stage in key), DEFAULT_STAGE)
    area = _AREA_ALIASES.get(business_area, business_area)
    return STAGE_GOALS[stage_key].get(area, FALLBACK_GOAL)


PLAN_SYSTEM_PROMPT = """\
You are a scaling expert helping companies grow through 10 stages. For each business area and stage, provide specific, actionable steps that lead to the stage goal.

**Response Format:**
Return a nicely formatted text response that includes:

🎯 **STAGE GOAL:**
[Clear, specific goal statement for this business area and stage]

📋 **ACTION PLAN:**

**HIGH PRIORITY - Critical First Steps:**

1. **🏆 [Clear, Action-Oriented Title]**

   **📝 Description:**
   [Detailed explanation of what this action entails and why it's important]

   **⚡ How to Execute:**
   [Step-by-step instructions on how to implement this action]

   **⏰ Timeline:** [Specific timeframe like "Complete within 1 week"]
   **🛠️ Resources & Links:**
   • [Tool/Service Name] - [Direct link if available, e.g., https://forms.google.com]
   • [Additional resources or people needed]
   • [Cost considerations if any]

   **✅ Success Criteria:**
   [Measurable outcomes that prove this action is complete]

**MEDIUM PRIORITY - Build Sustainable Growth:**

2. **🚀 [Clear, Action-Oriented Title]**

   **📝 Description:**
   [Detailed explanation of this growth-building action]

   **⚡ How to Execute:**
   [Specific implementation steps]

   **⏰ Timeline:** [Realistic timeframe for completion]
   **🛠️ Resources & Links:**
   • [Primary tool or service with link]
   • [Supporting resources]
   • [Budget considerations]

   **✅ Success Criteria:**
   [Clear metrics for measuring success]

**LOW PRIORITY - Future Enhancements:**

3. **💡 [Clear, Action-Oriented Title]**

   **📝 Description:**
   [Explanation of this enhancement and its benefits]

   **⚡ How to Execute:**
   [Implementation guidance]

   **⏰ Timeline:** [When to consider this action]
   **🛠️ Resources & Links:**
   • [Tools and services needed]
   • [Learning resources or documentation]

   **✅ Success Criteria:**
   [Success indicators for this enhancement]

**Guidelines:**
- Focus on 5-8 practical, executable steps
- Include direct links to tools and resources whenever possible
- Make timeframes realistic for a business in this stage
- Each step should have measurable success criteria
- Start with immediate actions that create quick wins
- Consider budget constraints and available resources
- Provide specific tool recommendations with links

Make it conversational and encouraging - like advice from an experienced scaling mentor!
"""


def build_user_prompt(stage: str, business_area: str, current_situation: str,
                      goal: str, context: Optional[str] = None) -> str:
    extra = f"\nAdditional context: {context}\n" if context else ""
    return (
        f"I'm in {stage} working on {business_area}.\n\n"
        f"Current situation: {current_situation}\n"
        f"{extra}\n"
        f"The goal for {business_area} in {stage} is: {goal}\n\n"
        "Please provide 5-8 detailed, practical action steps that will help me achieve this goal. "
        "Each step should:\n"
        "- Be something I can realistically start working on this week\n"
        "- Include specific tools, processes, or methods to use\n"
        "- Have clear success criteria\n"
        "- Consider my current business stage and resources\n\n"
        "Make the steps progressive - start with the most immediate actions and build toward "
        "longer-term improvements. Focus on actions that will create the most impact for a "
        f"business in {stage}."
    )


# ============================================================
# CRM contact analysis
# ============================================================

CONTACT_ANALYSIS_SYSTEM_PROMPT = (
    "You are a CRM expert and growth strategist. Analyze HubSpot contact data "
    "and provide actionable business insights and recommendations."
)


def build_contact_analysis_prompt(contact_summary: List[dict]) -> str:
    return f"""\
Analyze this list of {len(contact_summary)} HubSpot contacts and provide actionable insights for business growth:

CONTACTS SUMMARY:
{json.dumps(contact_summary, indent=2)}

Please analyze:
1. **Contact Distribution**: What percentage are in different lifecycle stages?
2. **Growth Trends**: How many new contacts in the last 30/90 days?
3. **Company Insights**: Which companies have multiple contacts?
4. **Engagement Patterns**: Based on lifecycle stages and modification dates
5. **Lead Quality**: Assessment of contact completeness and potential

Provide specific, actionable recommendations for:
- Lead generation strategies
- Customer nurturing campaigns
- Sales follow-up processes
- Marketing automation opportunities
- Data quality improvements

Focus on practical, implementable actions that will drive revenue growth.
"""
