"""Build settings and their environment overrides."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import cast

from bob.errors import ConfigurationError
from bob.executor import default_jobs
from bob.models import PROFILES, Profile

ENV_PROFILE = "BOB_PROFILE"
ENV_JOBS = "BOB_JOBS"
ENV_TARGET_DIR = "BOB_TARGET_DIR"


@dataclass(frozen=True, slots=True)
class Settings:
    profile: Profile = "debug"
    jobs: int = field(default_factory=default_jobs)
    target_dir: Path | None = None

    def __post_init__(self) -> None:
        ensure_profile(self.profile)
        if self.jobs < 1:
            raise ConfigurationError(
                "Worker count must be at least 1.",
                context={"operation": "settings", "jobs": str(self.jobs)},
            )

    def with_overrides(
        self,
        *,
        profile: str | None = None,
        jobs: int | None = None,
        target_dir: Path | None = None,
    ) -> Settings:
        """Return a copy with every non-``None`` argument applied."""
        changes: dict[str, object] = {}
        if profile is not None:
            changes["profile"] = ensure_profile(profile)
        if jobs is not None:
            changes["jobs"] = jobs
        if target_dir is not None:
            changes["target_dir"] = target_dir
        return replace(self, **changes)


def ensure_profile(value: str) -> Profile:
    if value not in PROFILES:
        raise ConfigurationError(
            f"Unknown build profile `{value}`.",
            hint=f"Use one of: {', '.join(PROFILES)}.",
            context={"operation": "settings", "profile": value},
        )
    return cast(Profile, value)


def settings_from_env(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ
    settings = Settings()
    jobs: int | None = None
    raw_jobs = env.get(ENV_JOBS)
    if raw_jobs:
        try:
            jobs = int(raw_jobs)
        except ValueError as exc:
            raise ConfigurationError(
                f"`{ENV_JOBS}` must be an integer.",
                context={"operation": "settings", ENV_JOBS: raw_jobs},
            ) from exc
    raw_target = env.get(ENV_TARGET_DIR)
    return settings.with_overrides(
        profile=env.get(ENV_PROFILE) or None,
        jobs=jobs,
        target_dir=Path(raw_target) if raw_target else None,
    )


__all__ = ["Settings", "ensure_profile", "settings_from_env"]
