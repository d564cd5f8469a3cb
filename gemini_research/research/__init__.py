"""Research jobs — orchestration, registry, input building and document loading.

Architecture:
    ResearchOrchestrator — submits jobs, answers status / cancel / delete
    ResearchRun          — per-job state machine running as an asyncio task
    JobRegistry          — in-memory job id → (job, run) map owned by the orchestrator
    prompts              — fixed instruction tables + remote input builder
    documents            — files and folders → DocumentInput

Surfaces (wired in gemini_research.main and gemini_research.api):
    gemini-research research "<query>" [--depth deep] [--think]
    POST /api/research, GET /api/research/{id}, POST /api/research/{id}/cancel
"""

from .orchestrator import ResearchOrchestrator, ResearchRun, create_orchestrator
from .registry import JobRegistry

__all__ = ["ResearchOrchestrator", "ResearchRun", "JobRegistry", "create_orchestrator"]
