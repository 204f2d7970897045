"""
Build tasks.

A BuildTask is one queued request to build a simulation release branch and
deploy it to the dev and/or production servers. It travels as camelCase JSON
(HTTP request bodies and the persistent queue file).
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Union

BRANCH_FROM_VERSION = re.compile(r"^(\d+\.\d+)")


@dataclass
class BuildTask:
    """A build/deploy request for one simulation."""

    sim_name: str
    version: str
    repos: dict[str, Any] = field(default_factory=dict)
    api: str = "2.0"
    branch: Optional[str] = None
    locales: Union[str, list[str]] = "*"
    brands: list[str] = field(default_factory=lambda: ["phet"])
    servers: list[str] = field(default_factory=lambda: ["dev"])
    email: Optional[str] = None
    user_id: Optional[str] = None
    deploy_images: bool = False
    task_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def resolved_branch(self) -> Optional[str]:
        """Explicit branch, else ``MAJOR.MINOR`` from the version, else None."""
        if self.branch:
            return self.branch
        match = BRANCH_FROM_VERSION.match(self.version or "")
        return match.group(1) if match else None

    @property
    def locale_list(self) -> list[str]:
        if isinstance(self.locales, str):
            return [locale.strip() for locale in self.locales.split(",") if locale.strip()]
        return list(self.locales)

    @property
    def is_translation_request(self) -> bool:
        """A single-locale rebuild submitted by a translator."""
        locales = self.locale_list
        return bool(self.user_id) and len(locales) == 1 and locales[0] != "*"

    def describe(self) -> str:
        if self.deploy_images:
            return f"deploy images {self.sim_name or '(all sims)'}"
        return f"{self.sim_name} {self.version} {','.join(self.brands)} -> {','.join(self.servers)}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "api": self.api,
            "repos": self.repos,
            "simName": self.sim_name,
            "version": self.version,
            "branch": self.branch,
            "locales": self.locales,
            "brands": self.brands,
            "servers": self.servers,
            "email": self.email,
            "userId": self.user_id,
            "deployImages": self.deploy_images,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BuildTask":
        kwargs: dict[str, Any] = {}
        if data.get("taskId"):
            kwargs["task_id"] = data["taskId"]
        return cls(
            sim_name=data.get("simName") or "",
            version=data.get("version") or "",
            repos=data.get("repos") or {},
            api=data.get("api") or "2.0",
            branch=data.get("branch"),
            locales=data.get("locales") or "*",
            brands=list(data.get("brands") or ["phet"]),
            servers=list(data.get("servers") or ["dev"]),
            email=data.get("email"),
            user_id=data.get("userId"),
            deploy_images=bool(data.get("deployImages")),
            **kwargs,
        )
