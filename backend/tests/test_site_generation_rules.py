import asyncio
import json
from types import SimpleNamespace
from uuid import uuid4

import httpx
import pytest

from paygsite.application.jobs.errors import PermanentJobError
from paygsite.application.jobs.handlers import handle_send_email, handle_verify_dns
from paygsite.application.services import ai_provider
from paygsite.application.services.ai_provider import (
    AIProviderError,
    AIProviderValidationError,
    OpenAISpecGenerator,
    parse_json_document,
    validate_build_spec,
    validate_cms_seed,
)
from paygsite.application.services.email_templates import render_email
from paygsite.application.services.mock_site_content import build_mock_seed, build_mock_spec
from paygsite.application.services.seed_importer import (
    normalize_slug,
    resolve_slug_conflict,
    validate_seed_for_import,
)
from paygsite.application.services.template_renderer import render_template
from paygsite.core.config import settings
from paygsite.domain.models.tenant import Tenant


def _tenant() -> Tenant:
    return Tenant(id=uuid4(), business_name="Smith & Sons", business_slug="smith-and-sons", plan_pages=5)


def test_normalize_slug() -> None:
    assert normalize_slug("About/") == "/about"
    assert normalize_slug("//services//boilers/") == "/services/boilers"
    assert normalize_slug("/") == "/"
    assert normalize_slug("") == "/"


def test_resolve_slug_conflict_skips_taken_suffixes() -> None:
    assert resolve_slug_conflict("/about", {"/about"}) == "/about-2"
    assert resolve_slug_conflict("/about", {"/about", "/about-2", "/about-3"}) == "/about-4"


def test_validate_seed_for_import_reports_missing_parts() -> None:
    assert validate_seed_for_import({"settings": {}, "pages": []}) == [
        "Missing settings.siteName",
        "Missing or empty pages array",
    ]
    assert validate_seed_for_import("nope") == ["Seed must be a JSON object"]
    assert validate_seed_for_import(build_mock_seed(_tenant(), 1)) == []


def test_parse_json_document_strips_code_fences() -> None:
    assert parse_json_document('```json\n{"a": 1}\n```') == {"a": 1}
    with pytest.raises(AIProviderValidationError):
        parse_json_document("[1, 2]")
    with pytest.raises(AIProviderValidationError):
        parse_json_document("not json")


@pytest.mark.parametrize("plan_pages", [1, 5, 10])
def test_mock_documents_pass_validation(plan_pages: int) -> None:
    tenant = _tenant()
    validate_build_spec(build_mock_spec(tenant, plan_pages), plan_pages)
    validate_cms_seed(build_mock_seed(tenant, plan_pages), plan_pages)


def test_validate_build_spec_rejects_wrong_page_count() -> None:
    with pytest.raises(AIProviderValidationError, match="Expected 5 pages"):
        validate_build_spec(build_mock_spec(_tenant(), 1), 5)


def test_validate_cms_seed_rejects_unknown_block_and_duplicate_slug() -> None:
    seed = build_mock_seed(_tenant(), 5)
    seed["pages"][1]["slug"] = seed["pages"][0]["slug"]
    with pytest.raises(AIProviderValidationError, match="duplicate slug"):
        validate_cms_seed(seed, 5)

    seed = build_mock_seed(_tenant(), 1)
    seed["pages"][0]["blocks"][0]["blockType"] = "carousel"
    with pytest.raises(AIProviderValidationError):
        validate_cms_seed(seed)


def test_spec_generator_retries_with_correction_prompt(monkeypatch) -> None:
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    generator = OpenAISpecGenerator()
    spec = build_mock_spec(_tenant(), 1)
    responses = iter(["not json", json.dumps(spec)])
    prompts: list[str] = []

    async def fake_call(messages):
        prompts.append(messages[-1]["content"])
        return next(responses), {"prompt_tokens": 10, "completion_tokens": 5}

    monkeypatch.setattr(generator, "_call_openai", fake_call)
    result = asyncio.run(generator.generate_spec({"businessName": "Smith & Sons"}, 1, max_retries=3))

    assert result.document == spec
    assert result.input_tokens == 20
    assert result.output_tokens == 10
    assert "previous response had issues" in prompts[1]


def test_spec_generator_gives_up_after_max_retries(monkeypatch) -> None:
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    generator = OpenAISpecGenerator()

    async def fake_call(messages):
        return "{}", {}

    monkeypatch.setattr(generator, "_call_openai", fake_call)
    with pytest.raises(AIProviderError, match="after 2 attempts"):
        asyncio.run(generator.generate_spec({}, 1, max_retries=2))


def test_non_json_provider_body_is_a_provider_error(monkeypatch) -> None:
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    real_client = httpx.AsyncClient
    gateway_page = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>502 Bad Gateway</html>"))

    def client_with_gateway_page(**kwargs):
        return real_client(transport=gateway_page, **kwargs)

    monkeypatch.setattr(ai_provider.httpx, "AsyncClient", client_with_gateway_page)
    with pytest.raises(AIProviderError, match="non-JSON body"):
        asyncio.run(OpenAISpecGenerator().generate_spec({}, 1, max_retries=1))


def test_provider_body_must_be_an_object() -> None:
    with pytest.raises(AIProviderError, match="unexpected response body"):
        ai_provider._response_document(httpx.Response(200, json=["choices"]), "Anthropic")


def test_render_email_fills_and_escapes_variables() -> None:
    rendered = render_email(
        "site_ready",
        {"businessName": "Smith & Sons", "siteUrl": "https://smith.example", "dashboardUrl": "https://app/portal"},
    )
    assert rendered is not None
    assert rendered.subject == "Your website is ready! - Smith & Sons"
    assert "Smith &amp; Sons" in rendered.html
    assert "https://smith.example" in rendered.text
    assert render_email("magic_link", {}) is None


def test_render_template_resolves_dotted_paths() -> None:
    assert render_template("Hi {{ user.name }}{{ missing }}", {"user": {"name": "Ann"}}) == "Hi Ann"


def test_send_email_skips_when_resend_not_configured(monkeypatch) -> None:
    monkeypatch.setattr(settings, "resend_api_key", None)
    job = SimpleNamespace(id=uuid4(), tenant_id=None, payload={"tenantId": str(uuid4()), "template": "welcome"})
    result = asyncio.run(handle_send_email(job, None))
    assert result == {"status": "email_skipped", "reason": "resend_not_configured"}


def test_domain_handlers_require_domain_id() -> None:
    job = SimpleNamespace(id=uuid4(), tenant_id=None, payload={"tenantId": str(uuid4()), "domainId": "dom_1"})
    assert asyncio.run(handle_verify_dns(job, None)) == {"status": "dns_checked", "domainId": "dom_1"}

    job.payload = {"tenantId": str(uuid4())}
    with pytest.raises(PermanentJobError):
        asyncio.run(handle_verify_dns(job, None))
