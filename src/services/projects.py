"""Client projects tracked through ``/project`` and ``/projects``."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal

from src.services.store import DocumentStore, utc_now_iso
from src.services.time_service import format_date_short, parse_iso
from src.utils.format import jid_number


logger = logging.getLogger("jarvis.projects")

PROJECTS = "projects"

ProjectStatus = Literal["planning", "active", "on_hold", "completed", "cancelled"]

STATUS_LABELS = {
    "planning": "📋 Planification",
    "active": "🚀 En cours",
    "on_hold": "⏸️ En pause",
    "completed": "✅ Terminé",
    "cancelled": "❌ Annulé",
}


def progress_bar(progress: int) -> str:
    """``████░░░░░░`` for 40%."""

    filled = max(0, min(10, round(progress / 10)))
    return "█" * filled + "░" * (10 - filled)


class ProjectService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def create_project(self, phone: str, name: str, description: str) -> Dict[str, Any]:
        project = await self.store.create_document(
            PROJECTS,
            {
                "name": name,
                "description": description,
                "client_phone": jid_number(phone),
                "status": "planning",
                "progress": 0,
                "start_date": utc_now_iso(),
            },
        )
        logger.info("Project %s created for %s", project["id"], phone)
        return project

    async def get_user_projects(self, phone: str) -> List[Dict[str, Any]]:
        rows = await self.store.list_documents(
            PROJECTS,
            filters={"client_phone": jid_number(phone)},
            order_by="created_at",
            descending=True,
        )
        return [row for row in rows if row.get("status") != "cancelled"]

    async def update_status(self, project_id: str, status: ProjectStatus) -> Dict[str, Any]:
        return await self.store.update_document(PROJECTS, project_id, {"status": status})


def format_project(project: Dict[str, Any]) -> str:
    progress = int(project.get("progress") or 0)
    status = project.get("status", "planning")
    started = project.get("start_date") or project.get("created_at")
    lines = [
        f"📊 *Projet: {project.get('name', '')}*",
        "━━━━━━━━━━━━━━",
        f"📈 Progression: {progress_bar(progress)} {progress}%",
        f"🚦 Statut: {STATUS_LABELS.get(status, status)}",
    ]
    if started:
        lines.append(f"📅 Démarré: {format_date_short(parse_iso(started))}")
    lines.append("")
    lines.append(f"📝 *Description:*\n{project.get('description', '')}")
    return "\n".join(lines)
