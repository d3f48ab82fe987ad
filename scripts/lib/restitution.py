"""
Restitution webhooks for RP Conseil Hub.
Shapes the client-profile payloads sent to the generation and render
webhooks, and unwraps their answers into markdown or HTML.

Usage:
    from scripts.lib.restitution import request_simulation, request_render

    markdown = request_simulation(template, client, password)
    html = request_render(markdown, password)
"""
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from models.dossier_models import Client, SimulationType
from scripts.lib.errors import ConfigError, WebhookError
from scripts.lib.logger import setup_logger
from scripts.lib.utils import safe_request

logger = setup_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(PROJECT_ROOT / ".env")

PASSWORD_HEADER = "X-RP-Password"

_HTML_RE = re.compile(
    r"</?(html|body|div|span|h[1-6]|p|a|ul|li|table|tr|td|th|strong|em|br|hr)[^>]*>",
    re.IGNORECASE,
)
_FENCE_OPEN_NL_RE = re.compile(r"^```[a-z]*\s*\n", re.IGNORECASE)
_FENCE_CLOSE_NL_RE = re.compile(r"\n```\s*$", re.MULTILINE)
_FENCE_OPEN_RE = re.compile(r"^```[a-z]*\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"```\s*$", re.MULTILINE)

ANALYSIS_FIELDS = (
    "nom", "identite", "situation_matrimoniale_fiscale", "capacite_epargne",
    "capacite_emprunt", "patrimoine_brut", "objectifs", "immobilier",
    "autres_charges", "epargne", "autres_observations", "analyse_profil",
)


def _webhook_url(env_var: str) -> str:
    url = os.getenv(env_var, "")
    if not url:
        raise ConfigError(f"{env_var} must be set in .env", setting=env_var)
    return url


# ─── Payloads ───────────────────────────────────────────────

def build_simulation_payload(template: SimulationType, client: Client) -> Dict[str, Any]:
    """Body of the simulation-generation webhook."""
    return {
        "template": {
            "nom": template.nom,
            "description": template.description,
            "type": template.type,
        },
        "client": {
            "id": client.id,
            "nom": client.nom,
            "identite": client.identite,
            "situation": client.situation_matrimoniale_fiscale,
            "patrimoine": client.patrimoine_brut,
            "objectifs": client.objectifs,
            "immobilier": client.immobilier,
            "epargne": client.epargne,
            "charges": client.autres_charges,
            "observations": client.autres_observations,
            "analyse": client.analyse_profil,
            "capa_epargne": client.capacite_epargne,
            "capa_emprunt": client.capacite_emprunt,
            "infos_complementaires": client.infos_complementaires,
        },
    }


def build_analysis_payload(client: Client) -> Dict[str, Any]:
    """Body of the render webhook for a profile analysis."""
    return {"message": {field: getattr(client, field) for field in ANALYSIS_FIELDS}}


# ─── Response unwrapping ────────────────────────────────────

def _strip_fences(text: str) -> str:
    text = _FENCE_OPEN_NL_RE.sub("", text, count=1)
    text = _FENCE_CLOSE_NL_RE.sub("", text, count=1)
    text = _FENCE_OPEN_RE.sub("", text, count=1)
    return _FENCE_CLOSE_RE.sub("", text, count=1)


def extract_markdown(raw: Optional[str]) -> Optional[str]:
    """
    Markdown carried by a generation webhook answer.

    The answer may be plain text, a JSON object or a one-element JSON list
    wrapping the text under text/markdown/output/message, with literal
    "\\n" sequences and code fences around it.
    """
    if not raw:
        return None

    trimmed = raw.strip()
    if not trimmed.startswith(("[", "{")):
        return raw.replace("\\n", "\n")

    try:
        data = json.loads(raw)
    except ValueError:
        return _strip_fences(raw.replace("\\n", "\n"))

    extracted: Any = raw
    if isinstance(data, list) and data and isinstance(data[0], dict):
        first = data[0]
        extracted = first.get("text") or first.get("markdown") or first.get("output") or first.get("message") or raw
    elif isinstance(data, dict):
        extracted = data.get("markdown") or data.get("output") or data.get("message") or data.get("text") or raw

    text = extracted.replace("\\n", "\n") if isinstance(extracted, str) else str(extracted)
    return _strip_fences(text)


def extract_html(raw: str) -> str:
    """HTML carried by a render webhook answer (JSON-wrapped or raw).

    Raises:
        WebhookError: the answer is empty.
    """
    content: Any = raw
    try:
        data = json.loads(raw)
    except ValueError:
        data = None

    if isinstance(data, list) and data and isinstance(data[0], dict):
        first = data[0]
        content = first.get("html") or first.get("content") or first.get("text") or raw
    elif isinstance(data, dict):
        content = data.get("content") or data.get("message") or data.get("html") or raw

    content = str(content or "")
    if not content.strip():
        raise WebhookError("Render webhook returned no content")
    return content


def looks_like_html(text: Optional[str]) -> bool:
    if not text:
        return False
    return bool(_HTML_RE.search(text))


# ─── Webhook calls ──────────────────────────────────────────

def _post(url: str, payload: Dict[str, Any], password: Optional[str]) -> str:
    response = safe_request(
        url,
        method="POST",
        json=payload,
        headers={"Content-Type": "application/json", PASSWORD_HEADER: password or ""},
    )
    if response is None:
        raise WebhookError("Webhook unreachable or failing", url=url)
    return response.text


def request_simulation(
    template: SimulationType, client: Client, password: Optional[str] = None
) -> str:
    """Generate a simulation for ``client`` and return it as markdown.

    Raises:
        ConfigError: SIMULATION_WEBHOOK_URL is not set.
        WebhookError: the webhook failed or answered nothing.
    """
    url = _webhook_url("SIMULATION_WEBHOOK_URL")
    logger.info("Requesting '%s' simulation for client %s", template.nom, client.id)
    text = _post(url, build_simulation_payload(template, client), password)
    markdown = extract_markdown(text)
    if not markdown:
        raise WebhookError("Simulation webhook returned no content", url=url)
    return markdown


def request_render(message: Any, password: Optional[str] = None) -> str:
    """Render a markdown text (or an analysis field dict) to HTML.

    Raises:
        ConfigError: RENDER_WEBHOOK_URL is not set.
        WebhookError: the webhook failed or answered nothing.
    """
    url = _webhook_url("RENDER_WEBHOOK_URL")
    payload = message if isinstance(message, dict) and "message" in message else {"message": message}
    return extract_html(_post(url, payload, password))
