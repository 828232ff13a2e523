"""Call policy configuration.

Defaults: 24h cooldown after any call on a project, at most 3 calls per
subject per UTC day and 10 per rolling 7 days. Override per process with
environment variables (loaded from .env):

    CALL_COOLDOWN_HOURS, MAX_CALLS_PER_DAY, MAX_CALLS_PER_WEEK,
    ELIGIBLE_CALLS_DEFAULT_LIMIT

Usage:
    from services.config import CallPolicy
    policy = CallPolicy.from_env()
"""
import os
from datetime import timedelta

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class CallPolicy(BaseModel):
    cooldown_hours: float = Field(default=24.0, ge=0)
    max_calls_per_day: int = Field(default=3, ge=1)
    max_calls_per_week: int = Field(default=10, ge=1)
    default_candidate_limit: int = Field(default=100, ge=1)

    @property
    def cooldown(self) -> timedelta:
        return timedelta(hours=self.cooldown_hours)

    @classmethod
    def from_env(cls) -> "CallPolicy":
        """Build a policy from the environment, falling back to the defaults."""
        env = {
            "cooldown_hours": os.environ.get("CALL_COOLDOWN_HOURS"),
            "max_calls_per_day": os.environ.get("MAX_CALLS_PER_DAY"),
            "max_calls_per_week": os.environ.get("MAX_CALLS_PER_WEEK"),
            "default_candidate_limit": os.environ.get("ELIGIBLE_CALLS_DEFAULT_LIMIT"),
        }
        return cls(**{k: v for k, v in env.items() if v not in (None, "")})
