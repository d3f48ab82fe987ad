"""Tests for the simulation and render webhook helpers."""

import json
from unittest.mock import MagicMock, patch

import pytest

from models.dossier_models import Client, SimulationType
from scripts.lib.errors import ConfigError, WebhookError
from scripts.lib.restitution import (
    PASSWORD_HEADER,
    build_analysis_payload,
    build_simulation_payload,
    extract_html,
    extract_markdown,
    looks_like_html,
    request_render,
    request_simulation,
)


@pytest.fixture
def client():
    return Client(
        id="c1", nom="Jean Dupont", patrimoine_brut="250 000,00 €",
        objectifs="Préparer la retraite", analyse_profil="Profil prudent",
    )


@pytest.fixture
def template():
    return SimulationType(id=2, nom="PER", description="Plan épargne retraite", type="retraite")


def _response(text):
    response = MagicMock()
    response.text = text
    return response


class TestPayloads:
    def test_simulation_payload(self, template, client):
        payload = build_simulation_payload(template, client)
        assert payload["template"] == {"nom": "PER", "description": "Plan épargne retraite", "type": "retraite"}
        assert payload["client"]["id"] == "c1"
        assert payload["client"]["patrimoine"] == 250000.0
        assert payload["client"]["objectifs"] == "Préparer la retraite"

    def test_analysis_payload_wraps_profile_fields(self, client):
        payload = build_analysis_payload(client)
        assert set(payload) == {"message"}
        assert payload["message"]["nom"] == "Jean Dupont"
        assert payload["message"]["analyse_profil"] == "Profil prudent"
        assert payload["message"]["epargne"] is None


class TestExtractMarkdown:
    def test_plain_text_unescapes_newlines(self):
        assert extract_markdown("# Titre\\nCorps") == "# Titre\nCorps"

    def test_json_list_text_field(self):
        raw = json.dumps([{"text": "```markdown\n# Bilan\n```"}])
        assert extract_markdown(raw) == "# Bilan"

    def test_json_object_prefers_markdown(self):
        raw = json.dumps({"output": "ignored", "markdown": "**ok**"})
        assert extract_markdown(raw) == "**ok**"

    def test_unparseable_json_is_stripped(self):
        assert extract_markdown("{not json```") == "{not json"

    def test_empty(self):
        assert extract_markdown("") is None
        assert extract_markdown(None) is None


class TestExtractHtml:
    def test_raw_html(self):
        assert extract_html("<p>Bonjour</p>") == "<p>Bonjour</p>"

    def test_json_wrapped(self):
        assert extract_html(json.dumps({"content": "<h1>A</h1>"})) == "<h1>A</h1>"
        assert extract_html(json.dumps([{"html": "<div>B</div>"}])) == "<div>B</div>"

    def test_empty_answer_raises(self):
        with pytest.raises(WebhookError):
            extract_html("   ")

    def test_looks_like_html(self):
        assert looks_like_html("<table><tr><td>1</td></tr></table>")
        assert not looks_like_html("# markdown only")
        assert not looks_like_html(None)


class TestWebhookCalls:
    def test_request_simulation_posts_payload_with_password(self, template, client):
        with patch.dict("os.environ", {"SIMULATION_WEBHOOK_URL": "https://hooks.test/sim"}, clear=False), \
                patch("scripts.lib.restitution.safe_request",
                      return_value=_response(json.dumps({"markdown": "# Simulation"}))) as mock_request:
            markdown = request_simulation(template, client, password="secret")

        assert markdown == "# Simulation"
        args, kwargs = mock_request.call_args
        assert args[0] == "https://hooks.test/sim"
        assert kwargs["headers"][PASSWORD_HEADER] == "secret"
        assert kwargs["json"]["client"]["nom"] == "Jean Dupont"

    def test_missing_url_raises_config_error(self, template, client):
        with patch.dict("os.environ", {"SIMULATION_WEBHOOK_URL": ""}, clear=False):
            with pytest.raises(ConfigError):
                request_simulation(template, client)

    def test_failed_request_raises_webhook_error(self, template, client):
        with patch.dict("os.environ", {"SIMULATION_WEBHOOK_URL": "https://hooks.test/sim"}, clear=False), \
                patch("scripts.lib.restitution.safe_request", return_value=None):
            with pytest.raises(WebhookError):
                request_simulation(template, client)

    def test_empty_simulation_raises_webhook_error(self, template, client):
        with patch.dict("os.environ", {"SIMULATION_WEBHOOK_URL": "https://hooks.test/sim"}, clear=False), \
                patch("scripts.lib.restitution.safe_request", return_value=_response("")):
            with pytest.raises(WebhookError):
                request_simulation(template, client)

    def test_render_wraps_plain_message(self):
        with patch.dict("os.environ", {"RENDER_WEBHOOK_URL": "https://hooks.test/render"}, clear=False), \
                patch("scripts.lib.restitution.safe_request",
                      return_value=_response("<p>ok</p>")) as mock_request:
            html = request_render("# Bilan")

        assert html == "<p>ok</p>"
        assert mock_request.call_args.kwargs["json"] == {"message": "# Bilan"}

    def test_render_keeps_wrapped_message(self, client):
        payload = build_analysis_payload(client)
        with patch.dict("os.environ", {"RENDER_WEBHOOK_URL": "https://hooks.test/render"}, clear=False), \
                patch("scripts.lib.restitution.safe_request",
                      return_value=_response("<p>ok</p>")) as mock_request:
            request_render(payload)
        assert mock_request.call_args.kwargs["json"] is payload
