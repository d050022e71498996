import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from jsonschema import ValidationError as JsonSchemaValidationError
from jsonschema import validate

from paygsite.core.config import settings

logger = logging.getLogger(__name__)

ALLOWED_BLOCK_TYPES: tuple[str, ...] = (
    "hero",
    "services_grid",
    "about_split",
    "testimonial_list",
    "accreditations_row",
    "gallery_grid",
    "faq_accordion",
    "service_area",
    "contact_form",
    "cta_banner",
    "rich_text",
)
PLAN_PAGE_COUNTS: dict[int, int] = {1: 1, 5: 5, 10: 10}
SEO_TITLE_MAX_LENGTH = 60
SEO_DESCRIPTION_MAX_LENGTH = 155

WEBSITE_BUILD_SPEC_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["spec_version", "tenant", "branding", "contact", "navigation", "pages"],
    "properties": {
        "spec_version": {"type": "string", "minLength": 1},
        "tenant": {
            "type": "object",
            "required": ["business_name", "industry"],
            "properties": {
                "business_name": {"type": "string", "minLength": 1},
                "industry": {"type": "string", "minLength": 1},
            },
        },
        "branding": {"type": "object"},
        "contact": {
            "type": "object",
            "anyOf": [
                {"required": ["email"], "properties": {"email": {"type": "string", "minLength": 1}}},
                {"required": ["phone"], "properties": {"phone": {"type": "string", "minLength": 1}}},
            ],
        },
        "navigation": {"type": "object"},
        "pages": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "title", "slug", "seo", "sections"],
                "properties": {
                    "seo": {
                        "type": "object",
                        "required": ["title", "meta_description"],
                        "properties": {
                            "title": {"type": "string", "minLength": 1, "maxLength": SEO_TITLE_MAX_LENGTH},
                            "meta_description": {
                                "type": "string",
                                "minLength": 1,
                                "maxLength": SEO_DESCRIPTION_MAX_LENGTH,
                            },
                        },
                    },
                    "sections": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["type"],
                            "properties": {"type": {"enum": list(ALLOWED_BLOCK_TYPES)}},
                        },
                    },
                },
            },
        },
    },
}

CMS_SEED_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["settings", "navigation", "pages"],
    "properties": {
        "settings": {
            "type": "object",
            "required": ["siteName", "contact"],
            "properties": {
                "siteName": {"type": "string", "minLength": 1},
                "contact": {"type": "object"},
            },
        },
        "navigation": {"type": "object"},
        "pages": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["title", "slug", "seoTitle", "seoDescription", "blocks"],
                "properties": {
                    "seoTitle": {"type": "string", "minLength": 1, "maxLength": SEO_TITLE_MAX_LENGTH},
                    "seoDescription": {"type": "string", "minLength": 1, "maxLength": SEO_DESCRIPTION_MAX_LENGTH},
                    "blocks": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["blockType", "data"],
                            "properties": {
                                "blockType": {"enum": list(ALLOWED_BLOCK_TYPES)},
                                "data": {"type": "object"},
                            },
                        },
                    },
                },
            },
        },
    },
}


class AIProviderError(Exception):
    pass


class AIProviderValidationError(AIProviderError):
    pass


@dataclass(frozen=True)
class GenerationResult:
    document: dict[str, Any]
    model: str
    input_tokens: int
    output_tokens: int


def parse_json_document(text: str) -> dict[str, Any]:
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    try:
        parsed = json.loads(cleaned.strip())
    except json.JSONDecodeError as exc:
        raise AIProviderValidationError(f"Invalid JSON returned: {exc}") from exc
    if not isinstance(parsed, dict):
        raise AIProviderValidationError("Output must be JSON object")
    return parsed


def _validate_pages(pages: list[dict[str, Any]], plan_pages: int) -> None:
    expected = PLAN_PAGE_COUNTS.get(plan_pages, plan_pages)
    if len(pages) != expected:
        raise AIProviderValidationError(f"Expected {expected} pages for {plan_pages}-page plan, got {len(pages)}")
    seen: set[str] = set()
    for index, page in enumerate(pages):
        slug = str(page.get("slug", ""))
        if slug in seen:
            raise AIProviderValidationError(f'Page {index}: duplicate slug "{slug}"')
        seen.add(slug)


def validate_build_spec(spec: dict[str, Any], plan_pages: int) -> None:
    try:
        validate(instance=spec, schema=WEBSITE_BUILD_SPEC_SCHEMA)
    except JsonSchemaValidationError as exc:
        raise AIProviderValidationError(f"Spec schema validation failed: {exc.message}") from exc
    _validate_pages(spec["pages"], plan_pages)


def validate_cms_seed(seed: dict[str, Any], plan_pages: int | None = None) -> None:
    try:
        validate(instance=seed, schema=CMS_SEED_SCHEMA)
    except JsonSchemaValidationError as exc:
        raise AIProviderValidationError(f"Seed schema validation failed: {exc.message}") from exc
    if plan_pages is not None:
        _validate_pages(seed["pages"], plan_pages)


def _build_spec_prompt(onboarding_data: dict[str, Any], plan_pages: int) -> str:
    return (
        "You are a website content strategist for UK small businesses.\n"
        "Generate a single JSON object called a Website Build Spec (spec_version 1.0) with keys "
        "tenant, branding, contact, service_area, seo_defaults, navigation, pages, global_blocks, assets.\n"
        f"Generate EXACTLY {plan_pages} page(s). Locale en-GB, British spelling, no unverifiable claims.\n"
        f"Allowed section types: {', '.join(ALLOWED_BLOCK_TYPES)}.\n"
        f"Every page needs seo.title (<= {SEO_TITLE_MAX_LENGTH} chars) and "
        f"seo.meta_description (<= {SEO_DESCRIPTION_MAX_LENGTH} chars).\n"
        "Output ONLY valid JSON.\n\n"
        f"Input data (from onboarding):\n{json.dumps(onboarding_data, ensure_ascii=False, indent=2)}"
    )


def _build_seed_prompt(spec: dict[str, Any]) -> str:
    return (
        "Convert the Website Build Spec below into a CMS seed JSON object with keys settings "
        "(siteName, tagline, contact, colours, footer), navigation (headerLinks, footerLinks) and pages "
        "(title, slug, seoTitle, seoDescription, blocks[blockType, data]).\n"
        f"Allowed blockType values: {', '.join(ALLOWED_BLOCK_TYPES)}.\n"
        "Write final British English copy for every block. Output ONLY valid JSON.\n\n"
        f"Website Build Spec:\n{json.dumps(spec, ensure_ascii=False, indent=2)}"
    )


class OpenAISpecGenerator:
    def __init__(self) -> None:
        self.api_key = settings.openai_api_key
        self.model = settings.openai_model
        self.base_url = settings.openai_base_url.rstrip("/")
        self.timeout_seconds = settings.openai_timeout_seconds
        self.temperature = settings.openai_temperature
        self.max_tokens = settings.openai_max_tokens

    async def generate_spec(
        self,
        onboarding_data: dict[str, Any],
        plan_pages: int,
        max_retries: int | None = None,
    ) -> GenerationResult:
        if not self.api_key:
            raise AIProviderError("OPENAI_API_KEY is not configured")

        prompt = _build_spec_prompt(onboarding_data, plan_pages)
        attempts = max_retries if max_retries is not None else settings.ai_generation_max_retries
        input_tokens = 0
        output_tokens = 0
        last_error: Exception | None = None
        correction_prompt = ""
        for attempt in range(max(1, attempts)):
            messages = [
                {"role": "system", "content": "Return ONLY strict JSON and never include markdown."},
                {"role": "user", "content": f"{prompt}\n{correction_prompt}"},
            ]
            try:
                content, usage = await self._call_openai(messages)
                input_tokens += int(usage.get("prompt_tokens") or 0)
                output_tokens += int(usage.get("completion_tokens") or 0)
                spec = parse_json_document(content)
                validate_build_spec(spec, plan_pages)
                return GenerationResult(spec, self.model, input_tokens, output_tokens)
            except AIProviderError as exc:
                last_error = exc
                logger.info("ai_spec_generation_retry attempt=%s error=%s", attempt + 1, exc)
                correction_prompt = (
                    f"\nYour previous response had issues: {exc}. "
                    "Please fix and output ONLY valid JSON."
                )

        raise AIProviderError(f"Spec generation failed after {attempts} attempts: {last_error}")

    async def _call_openai(self, messages: list[dict[str, str]]) -> tuple[str, dict[str, Any]]:
        request_body = {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
            "messages": messages,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(f"{self.base_url}/chat/completions", headers=headers, json=request_body)
        except httpx.HTTPError as exc:
            raise AIProviderError(f"OpenAI request failed: {exc}") from exc
        if response.status_code >= 400:
            raise AIProviderError(f"OpenAI API error {response.status_code}: {response.text[:500]}")

        data = _response_document(response, "OpenAI")
        choices = data.get("choices") or []
        if not choices:
            raise AIProviderError("OpenAI API returned no choices")
        content = choices[0].get("message", {}).get("content")
        if not isinstance(content, str) or not content.strip():
            raise AIProviderError("OpenAI response content is empty")
        return content, data.get("usage") or {}


def _response_document(response: httpx.Response, provider: str) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        raise AIProviderError(f"{provider} returned a non-JSON body: {response.text[:200]}") from exc
    if not isinstance(data, dict):
        raise AIProviderError(f"{provider} returned an unexpected response body")
    return data


class AnthropicSeedGenerator:
    def __init__(self) -> None:
        self.api_key = settings.anthropic_api_key
        self.model = settings.anthropic_model
        self.base_url = settings.anthropic_base_url.rstrip("/")
        self.api_version = settings.anthropic_version
        self.timeout_seconds = settings.anthropic_timeout_seconds
        self.max_tokens = settings.anthropic_max_tokens

    async def generate_seed(
        self,
        spec: dict[str, Any],
        plan_pages: int,
        max_retries: int | None = None,
    ) -> GenerationResult:
        if not self.api_key:
            raise AIProviderError("ANTHROPIC_API_KEY is not configured")

        prompt = _build_seed_prompt(spec)
        attempts = max_retries if max_retries is not None else settings.ai_generation_max_retries
        input_tokens = 0
        output_tokens = 0
        last_error: Exception | None = None
        correction_prompt = ""
        for attempt in range(max(1, attempts)):
            try:
                content, usage = await self._call_anthropic(f"{prompt}{correction_prompt}")
                input_tokens += int(usage.get("input_tokens") or 0)
                output_tokens += int(usage.get("output_tokens") or 0)
                seed = parse_json_document(content)
                validate_cms_seed(seed, plan_pages)
                return GenerationResult(seed, self.model, input_tokens, output_tokens)
            except AIProviderError as exc:
                last_error = exc
                logger.info("ai_seed_generation_retry attempt=%s error=%s", attempt + 1, exc)
                correction_prompt = (
                    f"\n\nYour previous response had issues: {exc}\n"
                    "Please fix and output ONLY valid JSON."
                )

        raise AIProviderError(f"Seed generation failed after {attempts} attempts: {last_error}")

    async def _call_anthropic(self, prompt: str) -> tuple[str, dict[str, Any]]:
        request_body = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "x-api-key": str(self.api_key),
            "anthropic-version": self.api_version,
            "content-type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(f"{self.base_url}/messages", headers=headers, json=request_body)
        except httpx.HTTPError as exc:
            raise AIProviderError(f"Anthropic request failed: {exc}") from exc
        if response.status_code >= 400:
            raise AIProviderError(f"Anthropic API error {response.status_code}: {response.text[:500]}")

        data = _response_document(response, "Anthropic")
        blocks = data.get("content") or []
        text = next((block.get("text") for block in blocks if block.get("type") == "text"), None)
        if not isinstance(text, str) or not text.strip():
            raise AIProviderError("Empty response from Anthropic")
        return text, data.get("usage") or {}


def get_spec_generator() -> OpenAISpecGenerator:
    return OpenAISpecGenerator()


def get_seed_generator() -> AnthropicSeedGenerator:
    return AnthropicSeedGenerator()
