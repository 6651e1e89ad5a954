"""Shared phase enumerations and execution ordering."""

from __future__ import annotations

from enum import Enum


class AlignmentPhase(str, Enum):
    """Phases of the repository alignment pipeline."""

    SETUP_REFERENCE = "setup_reference"
    RESOLVE_CONFLICTS = "resolve_conflicts"
    MIGRATE_LOCAL_RULES = "migrate_local_rules"
    CREATE_MISSING_FILES = "create_missing_files"
    GENERATE_DOCS = "generate_docs"
    SUMMARIZE = "summarize"


class PlanningStage(str, Enum):
    """Stages of the research and feature-planning pipelines."""

    CLASSIFY_QUESTION = "classify_question"
    EXECUTE_RESEARCH = "execute_research"
    PRESENT_FINDINGS = "present_findings"
    UNDERSTAND_REQUEST = "understand_request"
    RESEARCH_CODEBASE = "research_codebase"
    RESEARCH_DOCS = "research_docs"
    VALIDATE_APPROACH = "validate_approach"
    GENERATE_FEATURE_SPEC = "generate_feature_spec"
    GENERATE_DESIGN_RECORD = "generate_design_record"
    DECOMPOSE_TASKS = "decompose_tasks"
    PRIORITIZE_TASKS = "prioritize_tasks"
    EXECUTE_SELECTED_TASKS = "execute_selected_tasks"


ALIGNMENT_SEQUENCE = [
    AlignmentPhase.SETUP_REFERENCE,
    AlignmentPhase.RESOLVE_CONFLICTS,
    AlignmentPhase.MIGRATE_LOCAL_RULES,
    AlignmentPhase.CREATE_MISSING_FILES,
    AlignmentPhase.GENERATE_DOCS,
    AlignmentPhase.SUMMARIZE,
]

RESEARCH_SEQUENCE = [
    PlanningStage.CLASSIFY_QUESTION,
    PlanningStage.EXECUTE_RESEARCH,
    PlanningStage.PRESENT_FINDINGS,
]

FEATURE_SEQUENCE = [
    PlanningStage.UNDERSTAND_REQUEST,
    PlanningStage.RESEARCH_CODEBASE,
    PlanningStage.RESEARCH_DOCS,
    PlanningStage.VALIDATE_APPROACH,
    PlanningStage.GENERATE_FEATURE_SPEC,
    PlanningStage.GENERATE_DESIGN_RECORD,
    PlanningStage.DECOMPOSE_TASKS,
    PlanningStage.PRIORITIZE_TASKS,
    PlanningStage.EXECUTE_SELECTED_TASKS,
]

# Stages whose work is delegated to the agent, with the file each must produce.
AGENT_STAGE_OUTPUTS = {
    PlanningStage.EXECUTE_RESEARCH: "FINDINGS.md",
    PlanningStage.UNDERSTAND_REQUEST: "UNDERSTANDING.md",
    PlanningStage.RESEARCH_CODEBASE: "RESEARCH_CODEBASE.md",
    PlanningStage.RESEARCH_DOCS: "RESEARCH_DOCS.md",
    PlanningStage.VALIDATE_APPROACH: "validation.md",
    PlanningStage.GENERATE_FEATURE_SPEC: "FEATURE.md",
    PlanningStage.GENERATE_DESIGN_RECORD: "PDR.md",
    PlanningStage.DECOMPOSE_TASKS: "tasks.json",
}


__all__ = [
    "AGENT_STAGE_OUTPUTS",
    "ALIGNMENT_SEQUENCE",
    "AlignmentPhase",
    "FEATURE_SEQUENCE",
    "PlanningStage",
    "RESEARCH_SEQUENCE",
]
