#!/usr/bin/env python3
"""
Mission Control Configuration Reader

Reads project-specific configuration from the consuming repository's
.mission/ directory:
- .mission/roster.yaml  — operator, agents, skills and proposal templates
- .mission/config.yaml  — database path, work-cycle tuning, delivery settings

Both files are optional; the engine ships a default roster (the Vulture /
Scribe / Horizon squad plus the operator Finn) and defaults for every
setting. Environment variables override the daemon endpoints and the
database path:
- MISSION_CONTROL_URL          — base URL of the HTTP API (daemon)
- MISSION_CONTROL_GATEWAY_URL  — agent session gateway (daemon)
- MISSION_CONTROL_DB           — database path
"""

import os
from pathlib import Path
from typing import Any

import yaml

from .models import (
    AgentDefinition,
    MissionConfig,
    TaskPriority,
    TaskTemplate,
)


# ---------------------------------------------------------------------------
# Default roster.yaml (used when no .mission/roster.yaml exists)
# ---------------------------------------------------------------------------

DEFAULT_ROSTER_YAML = """
operator:
  name: "Finn"
  role: "Command Center / Human Operator"
  session_key: "human:command:main"
  personality: "The orchestrator. Creates missions, reviews deliverables, makes strategic decisions."
  specialty: ["Strategic oversight", "Task assignment", "Final approval", "Mission planning"]
  skills: ["orchestration", "strategy", "review", "management"]
  can_propose_tasks: false

agents:
  - name: "Vulture"
    role: "Code Review Agent"
    session_key: "agent:vulture:main"
    personality: "Ruthless but fair security reviewer"
    specialty: ["Security audits", "PR reviews", "Style checks"]
    skills: ["security", "audit", "code-review", "owasp"]
    can_propose_tasks: true
    templates:
      - title: "Review: JWT Token Expiry Handling"
        description: >-
          Audit JWT implementation for proper expiry checking and refresh token
          rotation. Check for race conditions in token refresh.
        priority: "high"
        required_skills: ["security", "jwt", "auth"]
        tags: ["security", "jwt", "audit"]
      - title: "Audit: Input Validation on Payment Endpoints"
        description: >-
          Review all payment-related API endpoints for proper input validation,
          SQL injection prevention, and XSS protection.
        priority: "urgent"
        required_skills: ["security", "api", "validation"]
        tags: ["security", "api", "payments"]
      - title: "Compliance Check: PCI DSS Requirements"
        description: >-
          Verify current implementation against PCI DSS v4.0.1 requirements.
          Document gaps and remediation plan.
        priority: "high"
        required_skills: ["security", "compliance", "pci-dss"]
        tags: ["security", "compliance", "pci-dss"]

  - name: "Scribe"
    role: "Documentation Agent"
    session_key: "agent:scribe:main"
    personality: "Obsessively organized knowledge keeper"
    specialty: ["SOP maintenance", "Learnings extraction", "Wiki sync"]
    skills: ["documentation", "writing", "organization", "wiki"]
    can_propose_tasks: true
    templates:
      - title: "Document: API Error Response Format"
        description: >-
          Standardize and document error response format across all APIs.
          Include error codes, messages, and remediation steps.
        priority: "medium"
        required_skills: ["documentation", "api", "technical-writing"]
        tags: ["docs", "api", "errors"]
      - title: "Update: Onboarding Guide for New Developers"
        description: >-
          Refresh getting-started documentation with latest tooling,
          environment setup, and common pitfalls.
        priority: "medium"
        required_skills: ["documentation", "onboarding", "technical-writing"]
        tags: ["docs", "onboarding"]

  - name: "Horizon"
    role: "Research Agent"
    session_key: "agent:horizon:main"
    personality: "Always scanning the horizon for threats and opportunities"
    specialty: ["Fintech news", "Regulations", "Competitor monitoring"]
    skills: ["research", "analysis", "news", "competitive-intel"]
    can_propose_tasks: true
    templates:
      - title: "Competitor Analysis: Klarna Checkout Flow"
        description: >-
          Analyze Klarna's checkout UX, payment options, and conversion
          optimizations. Create comparison matrix with our implementation.
        priority: "medium"
        required_skills: ["research", "analysis", "competitive-intel"]
        tags: ["research", "competitors", "ux"]
      - title: "Research: Open Banking APIs in EU"
        description: >-
          Investigate PSD2/Open Banking integration opportunities. Identify
          banks with best APIs, compliance requirements.
        priority: "medium"
        required_skills: ["research", "fintech", "api"]
        tags: ["research", "open-banking", "psd2"]
"""

_SCAN_ORDERS = ("oldest_first", "newest_first")
_PROPOSAL_POLICIES = ("cooldown", "random")


# ---------------------------------------------------------------------------
# roster.yaml loader
# ---------------------------------------------------------------------------


def _parse_template(template_dict: dict[str, Any]) -> TaskTemplate:
    priority = template_dict.get("priority", TaskPriority.MEDIUM)
    if priority not in TaskPriority.ALL:
        raise ValueError(
            f"Template '{template_dict.get('title')}' has invalid priority '{priority}'"
        )
    return TaskTemplate(
        title=template_dict["title"],
        description=(template_dict.get("description") or "").strip(),
        priority=priority,
        required_skills=list(template_dict.get("required_skills") or []),
        tags=list(template_dict.get("tags") or []),
    )


def _parse_agent(agent_dict: dict[str, Any]) -> AgentDefinition:
    return AgentDefinition(
        name=agent_dict["name"],
        session_key=agent_dict["session_key"],
        role=agent_dict.get("role", ""),
        personality=agent_dict.get("personality", ""),
        specialty=list(agent_dict.get("specialty") or []),
        skills=list(agent_dict.get("skills") or []),
        can_propose_tasks=bool(agent_dict.get("can_propose_tasks", False)),
        templates=[_parse_template(t) for t in agent_dict.get("templates") or []],
    )


def load_roster(
    roster_yaml: dict[str, Any],
) -> tuple[AgentDefinition | None, list[AgentDefinition]]:
    """
    Parse a roster.yaml document into (operator, agents).

    Agent names must be unique across the operator and the agents.
    """
    operator_dict = roster_yaml.get("operator")
    operator = _parse_agent(operator_dict) if operator_dict else None
    agents = [_parse_agent(a) for a in roster_yaml.get("agents", [])]

    names = [a.name for a in agents] + ([operator.name] if operator else [])
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"Duplicate agent names in roster: {duplicates}")
    return operator, agents


def default_mission_config() -> MissionConfig:
    """MissionConfig with the built-in roster and default settings."""
    operator, agents = load_roster(yaml.safe_load(DEFAULT_ROSTER_YAML) or {})
    return MissionConfig(operator=operator, agents=agents)


# ---------------------------------------------------------------------------
# config.yaml loader
# ---------------------------------------------------------------------------


def load_mission_config(
    project_root: str | Path,
    roster_yaml_path: str | Path | None = None,
    config_yaml_path: str | Path | None = None,
) -> MissionConfig:
    """
    Load MissionConfig from .mission/config.yaml and .mission/roster.yaml.

    Args:
        project_root: Root of the consuming repository.
        roster_yaml_path: Override path for roster.yaml (default: .mission/roster.yaml).
        config_yaml_path: Override path for config.yaml (default: .mission/config.yaml).

    Returns:
        MissionConfig with all settings resolved (defaults applied where missing).
    """
    project_root = Path(project_root)
    roster_path = Path(roster_yaml_path) if roster_yaml_path else project_root / ".mission" / "roster.yaml"
    config_path = Path(config_yaml_path) if config_yaml_path else project_root / ".mission" / "config.yaml"

    if roster_path.exists():
        roster_doc = yaml.safe_load(roster_path.read_text(encoding="utf-8")) or {}
    else:
        roster_doc = yaml.safe_load(DEFAULT_ROSTER_YAML) or {}
    operator, agents = load_roster(roster_doc)

    config_doc: dict[str, Any] = {}
    if config_path.exists():
        config_doc = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}

    defaults = MissionConfig()

    # Database
    db_section = config_doc.get("database", {})
    db_path = os.getenv("MISSION_CONTROL_DB") or db_section.get("path", defaults.db_path)
    if not Path(db_path).is_absolute():
        db_path = str(project_root / db_path)

    # Work cycle
    cycle_section = config_doc.get("work_cycle", {})
    inbox_scan_order = cycle_section.get("inbox_scan_order", defaults.inbox_scan_order)
    if inbox_scan_order not in _SCAN_ORDERS:
        raise ValueError(
            f"work_cycle.inbox_scan_order must be one of {list(_SCAN_ORDERS)}, "
            f"got '{inbox_scan_order}'"
        )
    proposal_policy = cycle_section.get("proposal_policy", defaults.proposal_policy)
    if proposal_policy not in _PROPOSAL_POLICIES:
        raise ValueError(
            f"work_cycle.proposal_policy must be one of {list(_PROPOSAL_POLICIES)}, "
            f"got '{proposal_policy}'"
        )

    # Operator / orchestrator
    operator_section = config_doc.get("operator", {})
    orchestrator_name = operator_section.get(
        "orchestrator", operator.name if operator else defaults.orchestrator_name
    )

    # Notifications and delivery daemon
    notifications_section = config_doc.get("notifications", {})
    daemon_section = config_doc.get("daemon", {})
    store_url = os.getenv("MISSION_CONTROL_URL") or daemon_section.get("store_url")
    gateway_url = (
        os.getenv("MISSION_CONTROL_GATEWAY_URL")
        or daemon_section.get("gateway_url", defaults.gateway_url)
    )

    return MissionConfig(
        db_path=db_path,
        operator=operator,
        agents=agents,
        orchestrator_name=orchestrator_name,
        inbox_scan_limit=int(cycle_section.get("inbox_scan_limit", defaults.inbox_scan_limit)),
        inbox_scan_order=inbox_scan_order,
        proposal_policy=proposal_policy,
        proposal_cooldown_seconds=int(
            cycle_section.get("proposal_cooldown_seconds", defaults.proposal_cooldown_seconds)
        ),
        proposal_probability=float(
            cycle_section.get("proposal_probability", defaults.proposal_probability)
        ),
        max_delivery_attempts=int(
            notifications_section.get("max_delivery_attempts", defaults.max_delivery_attempts)
        ),
        poll_interval_seconds=float(
            daemon_section.get("poll_interval_seconds", defaults.poll_interval_seconds)
        ),
        store_url=store_url,
        gateway_url=gateway_url,
        request_timeout_seconds=float(
            daemon_section.get("request_timeout_seconds", defaults.request_timeout_seconds)
        ),
        session_overrides=dict(daemon_section.get("sessions") or {}),
    )
