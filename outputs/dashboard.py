"""
Growth Coach — Dashboard API Server
FastAPI app serving REST endpoints for the Growth Coach dashboard:
HubSpot contacts + analytics, Claude completions, AI action plans
(generate / save / track), and the growth-stage checklist.
"""
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urlencode

import anthropic
import httpx
from fastapi import Cookie, Depends, FastAPI, Header, HTTPException, Path, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from config.settings import config
from config.errors import ConfigurationError
from crm.analytics import lifecycle_label, query_contacts, summarize_contacts
from crm.hubspot_client import HubSpotClient, HubSpotFetchError
from crm.models import Contact
from crm.oauth import build_authorize_url, exchange_code
from growth.checklist import (
    BUSINESS_AREAS, build_tasks, completion_progress, core_four_tips, filter_tasks,
)
from growth.stages import (
    STAGES, current_stage, next_stage, sales_action_points, sales_metrics,
)
from models.action_plans import ActionPlan, ActionPlanStore, ActionStep
from orchestrator.action_planner import analyze_contacts, get_actionable_steps
from orchestrator.llm_client import CompletionClient
from orchestrator.rate_limiter import RateLimiter, client_identity

logger = logging.getLogger("coach.dashboard")

HUBSPOT_TOKEN_COOKIE = "hubspot_access_token"
ANALYSIS_PREVIEW_SIZE = 10
UPSTREAM_RETRY_AFTER = "60"

# ============================================================
# Authentication
# ============================================================

_COACH_API_KEY = config.app.api_key


async def verify_api_key(x_coach_key: str = Header(None, alias="X-Coach-Key")):
    """Validate API key from X-Coach-Key header."""
    if not _COACH_API_KEY:
        logger.error("COACH_API_KEY not configured — API disabled")
        raise HTTPException(
            status_code=503,
            detail="API key not configured — service disabled",
        )
    if x_coach_key != _COACH_API_KEY:
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "X-Coach-Key"},
        )


async def require_user(x_user_id: str = Header(None, alias="X-User-Id")) -> str:
    """Owner of the action plans being read or written."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="User not authenticated")
    return x_user_id.strip()


# ============================================================
# Logging — must be module-level so uvicorn outputs.dashboard:app picks it up
# ============================================================
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)

# ============================================================
# App setup
# ============================================================

app = FastAPI(
    title="Growth Coach Dashboard",
    description="REST API for the Growth Coach business dashboard",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.app.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "X-Coach-Key", "X-User-Id"],
)

# One quota map per process, shared by every model-backed route
app.state.rate_limiter = RateLimiter(
    max_requests=config.rate_limit.max_requests,
    window_seconds=config.rate_limit.window_seconds,
)

# ============================================================
# Singletons (initialized lazily)
# ============================================================

_hubspot = None
_completion_client = None
_plan_store = None


def _get_hubspot():
    global _hubspot
    if _hubspot is None:
        _hubspot = HubSpotClient._get_global_instance()
    return _hubspot


def _get_completion_client():
    global _completion_client
    if _completion_client is None:
        _completion_client = CompletionClient()
    return _completion_client


def _get_plan_store():
    global _plan_store
    if _plan_store is None:
        _plan_store = ActionPlanStore._get_global_instance()
    return _plan_store


# ============================================================
# Request models
# ============================================================

class ChatMessage(BaseModel):
    role: str = Field(..., pattern="^(system|user|assistant)$")
    content: str


class CompletionRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    model: Optional[str] = None
    max_tokens: Optional[int] = Field(None, ge=1, le=64000)
    temperature: Optional[float] = Field(None, ge=0, le=1)


class AnalyzeContactsRequest(BaseModel):
    action: str
    contacts: List[dict] = Field(default_factory=list)


class StepModel(BaseModel):
    action: str = Field(..., min_length=1)
    priority: str = Field("medium", pattern="^(high|medium|low)$")
    timeframe: str = "TBD"
    resources: Optional[str] = None
    completed: bool = False
    completed_at: Optional[str] = None


class GeneratePlanRequest(BaseModel):
    stage: str = Field(..., min_length=1)
    business_area: str = Field(..., min_length=1)
    current_situation: str = Field(..., min_length=1, max_length=8000)
    context: Optional[str] = Field(None, max_length=8000)
    save: bool = False


class SavePlanRequest(BaseModel):
    stage: str = Field(..., min_length=1)
    business_area: str = Field(..., min_length=1)
    goal: str = Field(..., min_length=1)
    steps: List[StepModel] = Field(..., min_length=1)
    current_situation: Optional[str] = None
    context: Optional[str] = None
    is_completed: bool = False


class UpdatePlanRequest(BaseModel):
    stage: Optional[str] = None
    business_area: Optional[str] = None
    goal: Optional[str] = None
    current_situation: Optional[str] = None
    context: Optional[str] = None
    steps: Optional[List[StepModel]] = None
    is_completed: Optional[bool] = None


class TasksRequest(BaseModel):
    core_four: Optional[str] = "warm-outreach"
    completed_ids: List[str] = Field(default_factory=list)
    frequency: str = "all"
    area: str = "all"
    headcount: int = Field(4, ge=0)
    revenue: float = Field(0, ge=0)
    service_price: float = Field(5000, ge=0)
    delivery_time_weeks: int = Field(4, ge=0)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================
# Error mapping
# ============================================================

def _completion_error(e: Exception) -> HTTPException:
    """Translate a model-call failure into the HTTP error the client sees."""
    if isinstance(e, anthropic.RateLimitError):
        logger.warning(f"Claude rate limit persisted after retries: {e}")
        return HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Please try again in a few minutes.",
            headers={"Retry-After": UPSTREAM_RETRY_AFTER},
        )
    if isinstance(e, anthropic.AuthenticationError):
        logger.error(f"Claude rejected the API key: {e}")
        return HTTPException(
            status_code=401,
            detail="Invalid API key. Please check your Anthropic API key configuration.",
        )
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    logger.error(f"Completion failed: {e}")
    return HTTPException(status_code=500, detail=str(e))


def _hubspot_error(e: Exception) -> HTTPException:
    if isinstance(e, ConfigurationError):
        logger.error(f"HubSpot not configured: {e}")
        return HTTPException(status_code=500, detail=str(e))
    if isinstance(e, httpx.HTTPStatusError):
        logger.error(f"HubSpot API error: {e.response.status_code}")
        return HTTPException(
            status_code=502,
            detail=f"HubSpot API error: {e.response.status_code} - {e.response.text[:200]}",
        )
    logger.error(f"HubSpot contacts fetch failed: {e}")
    return HTTPException(status_code=502, detail=str(e))


def _enforce_rate_limit(request: Request):
    peer = request.client.host if request.client else None
    identity = client_identity(request.headers, peer)
    decision = request.app.state.rate_limiter.check(identity)
    if not decision.allowed:
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Please wait before making another request.",
            headers={"Retry-After": str(decision.retry_after)},
        )


async def _fetch_contacts(access_token: Optional[str]) -> List[Contact]:
    try:
        return await _get_hubspot().fetch_all_contacts(access_token=access_token)
    except (ConfigurationError, HubSpotFetchError, httpx.HTTPError) as e:
        raise _hubspot_error(e)


# ============================================================
# Startup
# ============================================================

@app.on_event("startup")
async def startup():
    """Verify the action_plans table on server start."""
    logger.info("Growth Coach Dashboard starting...")
    try:
        _get_plan_store().ensure_table()
    except Exception as e:
        logger.warning(f"action_plans table check failed on startup (will retry): {e}")


# ============================================================
# HubSpot OAuth (browser redirects, no API key)
# ============================================================

def _home_redirect(**params) -> RedirectResponse:
    return RedirectResponse(f"{config.app.base_url}?{urlencode(params)}")


@app.get("/api/auth/hubspot", tags=["auth"])
async def hubspot_login(action: Optional[str] = Query(None)):
    """Send the browser to HubSpot's consent screen."""
    if action != "login":
        raise HTTPException(status_code=400, detail="Invalid action")
    try:
        return RedirectResponse(build_authorize_url())
    except ConfigurationError as e:
        logger.error(f"HubSpot login unavailable: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/auth/hubspot/callback", tags=["auth"])
async def hubspot_callback(code: Optional[str] = Query(None), error: Optional[str] = Query(None)):
    """Exchange the authorization code and keep the token in an HTTP-only cookie."""
    if error:
        logger.error(f"HubSpot OAuth error: {error}")
        return _home_redirect(hubspot_error=error)
    if not code:
        return _home_redirect(hubspot_error="no_code")

    try:
        grant = await exchange_code(code)
    except httpx.HTTPStatusError:
        return _home_redirect(hubspot_error="token_exchange_failed")
    except Exception as e:
        logger.error(f"HubSpot OAuth callback error: {e}")
        return _home_redirect(hubspot_error="callback_failed")

    response = _home_redirect(hubspot_success="true")
    response.set_cookie(
        HUBSPOT_TOKEN_COOKIE,
        grant.access_token,
        max_age=grant.expires_in,
        httponly=True,
        secure=config.app.secure_cookies,
        path="/",
    )
    return response


# ============================================================
# HubSpot contacts
# ============================================================

@app.get("/api/hubspot/contacts", tags=["hubspot"], dependencies=[Depends(verify_api_key)])
async def get_hubspot_contacts(
    analyze: bool = Query(False),
    search: str = Query(""),
    status: str = Query("all"),
    sort: Optional[str] = Query(None),
    direction: str = Query("asc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1, le=500),
    hubspot_access_token: Optional[str] = Cookie(None),
):
    """
    Every contact from HubSpot, in HubSpot's order.
    search/status/sort/per_page switch to the table view (filtered, sorted, paged).
    analyze=true adds an AI analysis of the full list and returns a preview only.
    """
    contacts = await _fetch_contacts(hubspot_access_token)
    body = {"success": True, "contacts_count": len(contacts), "timestamp": _now_iso()}

    if analyze:
        body["contacts"] = [c.to_dict() for c in contacts[:ANALYSIS_PREVIEW_SIZE]]
        body["analysis"] = await _analysis_text(contacts)
        return body

    table_view = per_page is not None or search or status != "all" or sort is not None
    if not table_view:
        body["contacts"] = [c.to_dict() for c in contacts]
        return body

    try:
        table = query_contacts(
            contacts, search=search, status=status, sort_field=sort or "name",
            direction=direction, page=page, per_page=per_page or max(1, len(contacts)),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    body["contacts"] = [c.to_dict() for c in table.items]
    body["pagination"] = {
        "page": table.page,
        "per_page": table.per_page,
        "total_items": table.total_items,
        "total_pages": table.total_pages,
    }
    return body


async def _analysis_text(contacts: List[Contact]) -> str:
    """Analysis failures are reported inline; the contact list is still useful."""
    try:
        return await analyze_contacts(contacts, client=_get_completion_client())
    except (anthropic.APIError, ConfigurationError) as e:
        logger.error(f"Error analyzing contacts with AI: {e}")
        return f"Error analyzing contacts: {e}"


@app.post("/api/hubspot/contacts", tags=["hubspot"], dependencies=[Depends(verify_api_key)])
async def analyze_hubspot_contacts(req: AnalyzeContactsRequest):
    """Analyze a contact list the client already holds."""
    if req.action != "analyze":
        raise HTTPException(status_code=400, detail="Invalid action specified")
    contacts = [Contact.from_api(record) for record in req.contacts]
    analysis = await _analysis_text(contacts)
    return {"success": True, "analysis": analysis, "timestamp": _now_iso()}


@app.get("/api/hubspot/analytics", tags=["hubspot"], dependencies=[Depends(verify_api_key)])
async def get_hubspot_analytics(hubspot_access_token: Optional[str] = Cookie(None)):
    """Headline CRM numbers for the analytics cards and charts."""
    contacts = await _fetch_contacts(hubspot_access_token)
    summary = summarize_contacts(contacts)
    return {
        "success": True,
        **asdict(summary),
        "lifecycle_labels": {stage: lifecycle_label(stage) for stage in summary.lifecycle_distribution},
        "timestamp": _now_iso(),
    }


# ============================================================
# Completion
# ============================================================

@app.get("/api/completion", tags=["completion"], dependencies=[Depends(verify_api_key)])
async def completion_status():
    client = _get_completion_client()
    return {
        "message": "Completion endpoint is ready",
        "configured": client.configured,
        "models": [config.claude.model],
    }


@app.post("/api/completion", tags=["completion"], dependencies=[Depends(verify_api_key)])
async def create_completion(req: CompletionRequest, request: Request):
    """Proxy a chat completion, subject to the per-client quota."""
    client = _get_completion_client()
    if not client.configured:
        raise HTTPException(status_code=500, detail="Anthropic API key not configured")
    _enforce_rate_limit(request)

    try:
        result = await client.complete(
            [m.model_dump() for m in req.messages],
            model=req.model,
            max_tokens=req.max_tokens,
            temperature=req.temperature,
        )
    except (anthropic.APIError, ConfigurationError, ValueError) as e:
        raise _completion_error(e)
    return asdict(result)


# ============================================================
# Action plans
# ============================================================

@app.post("/api/action-plans/generate", tags=["action-plans"], dependencies=[Depends(verify_api_key)])
async def generate_action_plan(req: GeneratePlanRequest, request: Request,
                               x_user_id: Optional[str] = Header(None, alias="X-User-Id")):
    """Ask Claude for a plan; optionally save it for the calling user."""
    if req.save and not (x_user_id or "").strip():
        raise HTTPException(status_code=401, detail="User not authenticated")
    client = _get_completion_client()
    if not client.configured:
        raise HTTPException(status_code=500, detail="Anthropic API key not configured")
    _enforce_rate_limit(request)

    try:
        draft = await get_actionable_steps(
            req.stage, req.business_area, req.current_situation, req.context, client=client,
        )
    except (anthropic.APIError, ConfigurationError, ValueError) as e:
        raise _completion_error(e)

    body = {"goal": draft.goal, "steps": draft.steps, "plan": None}
    if req.save:
        plan = ActionPlan(
            stage=req.stage,
            business_area=req.business_area,
            goal=draft.goal,
            steps=[ActionStep.from_dict(s) for s in draft.steps],
            current_situation=req.current_situation,
            context=req.context,
        )
        saved = _get_plan_store().save(x_user_id.strip(), plan)
        if saved is None:
            raise HTTPException(status_code=500, detail="Action plan could not be saved")
        body["plan"] = saved.to_dict()
    return body


@app.post("/api/action-plans", tags=["action-plans"], dependencies=[Depends(verify_api_key)])
async def save_action_plan(req: SavePlanRequest, user_id: str = Depends(require_user)):
    plan = ActionPlan(
        stage=req.stage,
        business_area=req.business_area,
        goal=req.goal,
        steps=[ActionStep.from_dict(s.model_dump()) for s in req.steps],
        current_situation=req.current_situation,
        context=req.context,
        is_completed=req.is_completed,
    )
    saved = _get_plan_store().save(user_id, plan)
    if saved is None:
        raise HTTPException(status_code=500, detail="Action plan could not be saved")
    return {"plan": saved.to_dict()}


@app.get("/api/action-plans", tags=["action-plans"], dependencies=[Depends(verify_api_key)])
async def list_action_plans(user_id: str = Depends(require_user)):
    """Saved plans for the calling user, newest first."""
    plans = [p.to_dict() for p in _get_plan_store().list_for_user(user_id)]
    return {"plans": plans, "count": len(plans)}


def _plan_or_404(plan: Optional[ActionPlan], plan_id: str) -> dict:
    if plan is None:
        raise HTTPException(status_code=404, detail=f"Action plan {plan_id} not found")
    return {"plan": plan.to_dict()}


@app.get("/api/action-plans/{plan_id}", tags=["action-plans"], dependencies=[Depends(verify_api_key)])
async def get_action_plan(plan_id: str, user_id: str = Depends(require_user)):
    return _plan_or_404(_get_plan_store().get(user_id, plan_id), plan_id)


@app.patch("/api/action-plans/{plan_id}", tags=["action-plans"], dependencies=[Depends(verify_api_key)])
async def update_action_plan(plan_id: str, req: UpdatePlanRequest, user_id: str = Depends(require_user)):
    """Partial update; only the fields present in the body change."""
    fields = req.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")
    if fields.get("is_completed") is True:
        fields["completed_at"] = datetime.now(timezone.utc)
    elif fields.get("is_completed") is False:
        fields["completed_at"] = None
    return _plan_or_404(_get_plan_store().update(user_id, plan_id, **fields), plan_id)


@app.delete("/api/action-plans/{plan_id}", tags=["action-plans"], dependencies=[Depends(verify_api_key)])
async def delete_action_plan(plan_id: str, user_id: str = Depends(require_user)):
    if not _get_plan_store().delete(user_id, plan_id):
        raise HTTPException(status_code=404, detail=f"Action plan {plan_id} not found")
    return {"status": "deleted", "id": plan_id}


@app.post("/api/action-plans/{plan_id}/steps/{step_index}/complete", tags=["action-plans"],
          dependencies=[Depends(verify_api_key)])
async def complete_action_step(plan_id: str, step_index: int = Path(..., ge=0),
                               user_id: str = Depends(require_user)):
    """Mark one step done; the other steps and the plan flag are untouched."""
    store = _get_plan_store()
    plan = store.get(user_id, plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail=f"Action plan {plan_id} not found")
    if step_index >= len(plan.steps):
        raise HTTPException(
            status_code=400,
            detail=f"Step {step_index} out of range (plan has {len(plan.steps)} steps)",
        )
    return _plan_or_404(store.mark_step_completed(user_id, plan_id, step_index), plan_id)


@app.post("/api/action-plans/{plan_id}/complete", tags=["action-plans"], dependencies=[Depends(verify_api_key)])
async def complete_action_plan(plan_id: str, user_id: str = Depends(require_user)):
    return _plan_or_404(_get_plan_store().mark_plan_completed(user_id, plan_id), plan_id)


# ============================================================
# Growth stage + checklist
# ============================================================

@app.get("/api/growth/stage", tags=["growth"], dependencies=[Depends(verify_api_key)])
async def get_growth_stage(
    headcount: int = Query(4, ge=0),
    revenue: float = Query(0, ge=0),
    service_price: float = Query(5000, ge=0),
    delivery_time_weeks: int = Query(4, ge=0),
):
    """Where the company sits on the ten-stage ladder and what it takes to climb."""
    stage = current_stage(headcount, revenue)
    upcoming = next_stage(headcount, revenue)
    metrics = sales_metrics(headcount, revenue, service_price, delivery_time_weeks)
    points = sales_action_points(headcount, revenue, service_price, delivery_time_weeks)
    return {
        "current_stage": stage.to_dict() if stage else None,
        "next_stage": upcoming.to_dict() if upcoming else None,
        "sales_metrics": metrics.to_dict() if metrics else None,
        "sales_action_points": [asdict(p) for p in points],
        "stages": [s.to_dict() for s in STAGES],
    }


@app.post("/api/growth/tasks", tags=["growth"], dependencies=[Depends(verify_api_key)])
async def get_growth_tasks(req: TasksRequest):
    """Checklist tasks across every business area, with the caller's ticks applied."""
    points = sales_action_points(req.headcount, req.revenue, req.service_price, req.delivery_time_weeks)
    tasks = build_tasks(req.core_four, req.completed_ids, points)
    return {
        "tasks": [t.to_dict() for t in filter_tasks(tasks, req.frequency, req.area)],
        "progress": completion_progress(tasks),
        "core_four_tips": core_four_tips(req.core_four),
        "business_areas": [a.to_dict() for a in BUSINESS_AREAS],
    }


# ============================================================
# CLI runner
# ============================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "outputs.dashboard:app",
        host="0.0.0.0",
        port=3002,
        reload=config.debug,
        log_level="info",
    )
