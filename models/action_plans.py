"""
Action plan persistence.

Table:
  - action_plans: one row per saved AI recommendation set, steps kept as JSONB
    in their original order (step index is the addressing key).

Every read and write is scoped by user_id: a plan is only visible to the
user who saved it. Uses raw psycopg2 with SimpleConnectionPool, same
failure convention as the rest of the storage layer: errors are logged and
surface as None / [] / False.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

import psycopg2
import psycopg2.pool
import psycopg2.extras

from config.settings import config

logger = logging.getLogger("coach.models.action_plans")

PRIORITIES = ("high", "medium", "low")

_COLUMNS = (
    "id, user_id, stage, business_area, goal, current_situation, context, "
    "steps, is_completed, completed_at, created_at, updated_at"
)

# Columns a partial update may touch
UPDATABLE_FIELDS = {
    "stage", "business_area", "goal", "current_situation", "context",
    "steps", "is_completed", "completed_at",
}


def _iso(value) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@dataclass
class ActionStep:
    action: str
    priority: str = "medium"
    timeframe: str = "TBD"
    resources: Optional[str] = None
    completed: bool = False
    completed_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ActionStep":
        priority = str(data.get("priority") or "medium").lower()
        if priority not in PRIORITIES:
            priority = "medium"
        return cls(
            action=str(data.get("action") or ""),
            priority=priority,
            timeframe=str(data.get("timeframe") or "TBD"),
            resources=data.get("resources") or None,
            completed=bool(data.get("completed", False)),
            completed_at=_iso(data.get("completed_at")),
        )

    def to_dict(self) -> dict:
        step = {
            "action": self.action,
            "priority": self.priority,
            "timeframe": self.timeframe,
            "completed": self.completed,
        }
        if self.resources:
            step["resources"] = self.resources
        if self.completed_at:
            step["completed_at"] = self.completed_at
        return step


@dataclass
class ActionPlan:
    stage: str
    business_area: str
    goal: str
    steps: List[ActionStep] = field(default_factory=list)
    current_situation: Optional[str] = None
    context: Optional[str] = None
    is_completed: bool = False
    id: Optional[str] = None
    user_id: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ActionPlan":
        """Build from an API payload or a database row."""
        return cls(
            stage=data.get("stage") or "",
            business_area=data.get("business_area") or "",
            goal=data.get("goal") or "",
            steps=[ActionStep.from_dict(s) for s in (data.get("steps") or [])],
            current_situation=data.get("current_situation"),
            context=data.get("context"),
            is_completed=bool(data.get("is_completed", False)),
            id=str(data["id"]) if data.get("id") is not None else None,
            user_id=data.get("user_id"),
            completed_at=_iso(data.get("completed_at")),
            created_at=_iso(data.get("created_at")),
            updated_at=_iso(data.get("updated_at")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "stage": self.stage,
            "business_area": self.business_area,
            "goal": self.goal,
            "current_situation": self.current_situation,
            "context": self.context,
            "steps": [s.to_dict() for s in self.steps],
            "is_completed": self.is_completed,
            "completed_at": self.completed_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @property
    def all_steps_completed(self) -> bool:
        return bool(self.steps) and all(s.completed for s in self.steps)


def mark_step(steps: List[dict], index: int, now: datetime) -> List[dict]:
    """
    Copy of `steps` with step `index` marked completed at `now`.
    Every other step is left as it was; an out-of-range index changes nothing.
    """
    updated = [dict(s) for s in steps]
    if 0 <= index < len(updated):
        updated[index] = {**updated[index], "completed": True, "completed_at": now.isoformat()}
    return updated


class ActionPlanStore:
    """CRUD over the action_plans table, always filtered by owner."""

    _instance = None

    @classmethod
    def _get_global_instance(cls):
        """Return the module-level singleton. Lazy-init if needed."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def __init__(self, pool=None):
        self._pool = pool
        if self._pool is None:
            self._init_pool()

    # -------------------------------------------------------
    # Connection pool management
    # -------------------------------------------------------

    def _init_pool(self):
        try:
            self._pool = psycopg2.pool.SimpleConnectionPool(
                minconn=1,
                maxconn=5,
                **config.postgres.dsn_params,
            )
            logger.info("PostgreSQL connection pool initialized")
        except Exception as e:
            logger.warning(f"PostgreSQL pool init failed (non-fatal): {e}")
            self._pool = None

    def _get_conn(self):
        """Get a connection from pool. Returns None if pool unavailable."""
        if self._pool is None:
            self._init_pool()
        if self._pool is None:
            return None
        try:
            return self._pool.getconn()
        except Exception as e:
            logger.warning(f"Failed to get PostgreSQL connection: {e}")
            return None

    def _put_conn(self, conn):
        if self._pool and conn:
            try:
                self._pool.putconn(conn)
            except Exception as e:
                logger.debug(f"putconn failed: {e}")

    # -------------------------------------------------------
    # Schema
    # -------------------------------------------------------

    def ensure_table(self) -> bool:
        """Create action_plans if it doesn't exist."""
        conn = self._get_conn()
        if not conn:
            logger.warning("action_plans: no DB connection — table not verified")
            return False
        try:
            cur = conn.cursor()
            cur.execute("""
                CREATE TABLE IF NOT EXISTS action_plans (
                    id UUID PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    stage TEXT NOT NULL,
                    business_area TEXT NOT NULL,
                    goal TEXT NOT NULL,
                    current_situation TEXT,
                    context TEXT,
                    steps JSONB NOT NULL DEFAULT '[]'::jsonb,
                    is_completed BOOLEAN NOT NULL DEFAULT FALSE,
                    completed_at TIMESTAMP WITH TIME ZONE,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
                    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                )
            """)
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_action_plans_user "
                "ON action_plans (user_id, created_at DESC)"
            )
            conn.commit()
            cur.close()
            logger.info("action_plans: table verified")
            return True
        except Exception as e:
            conn.rollback()
            logger.error(f"action_plans: table creation failed: {e}")
            return False
        finally:
            self._put_conn(conn)

    # -------------------------------------------------------
    # CRUD
    # -------------------------------------------------------

    def save(self, user_id: str, plan: ActionPlan) -> Optional[ActionPlan]:
        """Insert a new plan owned by user_id. The id is generated here."""
        conn = self._get_conn()
        if not conn:
            logger.warning("No DB connection — skipping save")
            return None
        try:
            cur = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            cur.execute(f"""
                INSERT INTO action_plans
                    (id, user_id, stage, business_area, goal, current_situation,
                     context, steps, is_completed)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING {_COLUMNS}
            """, (
                str(uuid.uuid4()), user_id, plan.stage, plan.business_area, plan.goal,
                plan.current_situation, plan.context,
                psycopg2.extras.Json([s.to_dict() for s in plan.steps]),
                plan.is_completed,
            ))
            row = cur.fetchone()
            conn.commit()
            cur.close()
            saved = ActionPlan.from_dict(row) if row else None
            if saved:
                logger.info(f"Saved action plan {saved.id} ({len(saved.steps)} steps) for {user_id}")
            return saved
        except Exception as e:
            conn.rollback()
            logger.error(f"save action plan failed for {user_id}: {e}")
            return None
        finally:
            self._put_conn(conn)

    def list_for_user(self, user_id: str) -> List[ActionPlan]:
        """All plans for user_id, newest first."""
        conn = self._get_conn()
        if not conn:
            return []
        try:
            cur = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            cur.execute(f"""
                SELECT {_COLUMNS} FROM action_plans
                WHERE user_id = %s
                ORDER BY created_at DESC
            """, (user_id,))
            rows = cur.fetchall()
            cur.close()
            return [ActionPlan.from_dict(r) for r in rows]
        except Exception as e:
            logger.error(f"list_for_user failed for {user_id}: {e}")
            return []
        finally:
            self._put_conn(conn)

    def get(self, user_id: str, plan_id: str) -> Optional[ActionPlan]:
        conn = self._get_conn()
        if not conn:
            return None
        try:
            cur = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            cur.execute(
                f"SELECT {_COLUMNS} FROM action_plans WHERE id = %s AND user_id = %s",
                (plan_id, user_id),
            )
            row = cur.fetchone()
            cur.close()
            return ActionPlan.from_dict(row) if row else None
        except Exception as e:
            conn.rollback()
            logger.error(f"get action plan {plan_id} failed: {e}")
            return None
        finally:
            self._put_conn(conn)

    def update(self, user_id: str, plan_id: str, **fields) -> Optional[ActionPlan]:
        """
        Partial update of a plan the user owns. Unknown keys are ignored.
        Returns the updated plan, or None if nothing matched.
        """
        fields = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        if not fields:
            logger.warning(f"update action plan {plan_id}: no updatable fields given")
            return None
        if "steps" in fields:
            steps = [ActionStep.from_dict(s).to_dict() if isinstance(s, dict) else s.to_dict()
                     for s in fields["steps"]]
            fields["steps"] = psycopg2.extras.Json(steps)

        conn = self._get_conn()
        if not conn:
            return None
        try:
            set_clause = ", ".join(f"{k} = %s" for k in fields)
            values = list(fields.values()) + [plan_id, user_id]
            cur = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            cur.execute(f"""
                UPDATE action_plans SET {set_clause}, updated_at = NOW()
                WHERE id = %s AND user_id = %s
                RETURNING {_COLUMNS}
            """, values)
            row = cur.fetchone()
            conn.commit()
            cur.close()
            return ActionPlan.from_dict(row) if row else None
        except Exception as e:
            conn.rollback()
            logger.error(f"update action plan {plan_id} failed: {e}")
            return None
        finally:
            self._put_conn(conn)

    def mark_step_completed(self, user_id: str, plan_id: str, step_index: int,
                            now: datetime = None) -> Optional[ActionPlan]:
        """
        Mark one step done. Only that step's completed/completed_at change.
        Does not touch the plan's own is_completed flag.
        One UPDATE edits the step inside the JSONB array, so concurrent
        completions of different steps can't overwrite each other.
        Returns None if the plan isn't the user's or the index is out of range.
        """
        if step_index < 0:
            return None
        completed_at = (now or datetime.now(timezone.utc)).isoformat()
        path = str(step_index)

        conn = self._get_conn()
        if not conn:
            return None
        try:
            cur = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            cur.execute(f"""
                UPDATE action_plans
                SET steps = jsonb_set(
                        jsonb_set(steps, ARRAY[%s, 'completed'], 'true'::jsonb),
                        ARRAY[%s, 'completed_at'], to_jsonb(%s::text)
                    ),
                    updated_at = NOW()
                WHERE id = %s AND user_id = %s AND jsonb_array_length(steps) > %s
                RETURNING {_COLUMNS}
            """, (path, path, completed_at, plan_id, user_id, step_index))
            row = cur.fetchone()
            conn.commit()
            cur.close()
            if row:
                logger.info(f"Step {step_index} of plan {plan_id} completed")
            return ActionPlan.from_dict(row) if row else None
        except Exception as e:
            conn.rollback()
            logger.error(f"mark_step_completed {plan_id}[{step_index}] failed: {e}")
            return None
        finally:
            self._put_conn(conn)

    def mark_plan_completed(self, user_id: str, plan_id: str,
                            now: datetime = None) -> Optional[ActionPlan]:
        """Set the plan's completed flag; step flags are left as they are."""
        return self.update(
            user_id, plan_id,
            is_completed=True,
            completed_at=now or datetime.now(timezone.utc),
        )

    def delete(self, user_id: str, plan_id: str) -> bool:
        """True if a plan owned by user_id was removed."""
        conn = self._get_conn()
        if not conn:
            return False
        try:
            cur = conn.cursor()
            cur.execute(
                "DELETE FROM action_plans WHERE id = %s AND user_id = %s",
                (plan_id, user_id),
            )
            deleted = cur.rowcount
            conn.commit()
            cur.close()
            if deleted:
                logger.info(f"Deleted action plan {plan_id} for {user_id}")
            return deleted > 0
        except Exception as e:
            conn.rollback()
            logger.error(f"delete action plan {plan_id} failed: {e}")
            return False
        finally:
            self._put_conn(conn)
