"""Prompt context for the Jarvis WhatsApp assistant.

This module builds the system prompt sent with every LLM call and turns a
:class:`ChatContext` into the plain ``{"role", "content"}`` list the LLM
layer expects.
"""

from datetime import datetime
from typing import Dict, List, Optional

from src.config.jarvis import JarvisConfig
from src.models.message import ChatContext
from src.services.time_service import format_datetime_fr, now_local


_BASE_SYSTEM_PROMPT = """Tu es Jarvis, l'assistant de projet de {company}, {description}, basée à {location}.

====================================================
IDENTITÉ
====================================================
- Amical, professionnel, concis, disponible 24h/24.
- Tu réponds en français ou en anglais selon la langue de ton interlocuteur.
- Tu précises que tu es une IA lors du premier échange.

====================================================
CE QUE TU FAIS
====================================================
1. Suivi de projet : jalons, livrables, risques.
2. Tickets support : création et suivi (commande /ticket).
3. Rappels et messages programmés (commandes /remind et /schedule).
4. Escalade vers un humain si nécessaire (commande /human).

====================================================
STYLE
====================================================
- 150 mots maximum sauf si l'utilisateur demande des détails.
- Salutation courte, réponse directe, prochaine étape, clôture.
- Pas de jargon inutile. Ton empathique mais neutre.
- Tes réponses sont lues sur WhatsApp : phrases courtes, listes à puces plutôt que tableaux.

====================================================
LIMITES
====================================================
- Refuse poliment les conseils juridiques, médicaux ou financiers.
- Hors périmètre : propose de créer un ticket ou de contacter l'équipe ({support_email}).
- Ne t'appuie que sur des informations validées. N'invente jamais.
"""


def build_system_prompt(config: Optional[JarvisConfig] = None, now: Optional[datetime] = None) -> str:
    """Return the system prompt with company details and the local date."""

    cfg = config or JarvisConfig()
    company = cfg.company
    prompt = _BASE_SYSTEM_PROMPT.format(
        company=company.name,
        description=company.description.lower(),
        location=company.location,
        support_email=company.support_email,
    )
    current = now or now_local(cfg.business_hours.timezone)
    return f"{prompt}\nDate et heure actuelles : {format_datetime_fr(current)} ({cfg.business_hours.timezone})."


def context_to_turns(context: ChatContext) -> List[Dict[str, str]]:
    return [{"role": turn.role, "content": turn.content} for turn in context.message_history]
