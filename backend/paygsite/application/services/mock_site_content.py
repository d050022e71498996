"""Deterministic stand-ins for the AI generators, used when no provider key is configured."""

from datetime import UTC, datetime
from typing import Any

from paygsite.domain.models.tenant import Tenant

DEFAULT_BUSINESS_NAME = "Test Business"
MOCK_PAGES: tuple[tuple[str, str, tuple[str, ...]], ...] = (
    ("Home", "/", ("hero", "services_grid", "contact_form")),
    ("Services", "/services", ("services_grid", "cta_banner")),
    ("About", "/about", ("about_split", "accreditations_row")),
    ("Reviews", "/reviews", ("testimonial_list",)),
    ("Contact", "/contact", ("contact_form", "service_area")),
    ("FAQ", "/faq", ("faq_accordion",)),
    ("Gallery", "/gallery", ("gallery_grid",)),
    ("Areas Covered", "/areas-covered", ("service_area",)),
    ("Accreditations", "/accreditations", ("accreditations_row",)),
    ("Privacy", "/privacy", ("rich_text",)),
)

MOCK_CONTACT = {
    "phone": "01234 567890",
    "email": "info@example.com",
    "address": "123 Main Street, London",
    "openingHours": "Mon-Fri 9am-5pm",
}


def _business_name(tenant: Tenant | None) -> str:
    return tenant.business_name if tenant is not None else DEFAULT_BUSINESS_NAME


def _mock_pages(plan_pages: int) -> tuple[tuple[str, str, tuple[str, ...]], ...]:
    return MOCK_PAGES[: max(1, min(plan_pages, len(MOCK_PAGES)))]


def _copyright(name: str) -> str:
    return f"© {datetime.now(UTC).year} {name}"


def build_mock_spec(tenant: Tenant | None, plan_pages: int) -> dict[str, Any]:
    name = _business_name(tenant)
    links = [{"label": title, "href": slug} for title, slug, _ in _mock_pages(plan_pages)]
    return {
        "spec_version": "1.0",
        "tenant": {
            "business_name": name,
            "legal_name": f"{name} Ltd",
            "industry": "General Services",
            "tagline": "Quality service you can trust",
            "tone_of_voice": "Professional and friendly",
            "usp_bullets": ["Quality work", "Reliable service", "Fair prices"],
            "avoid_claims_or_words": [],
        },
        "branding": {
            "logo_url": "",
            "primary_colour_hex": "#2563eb",
            "secondary_colour_hex": "#1e40af",
            "design_vibe": "modern professional",
        },
        "contact": {
            "phone": MOCK_CONTACT["phone"],
            "email": MOCK_CONTACT["email"],
            "address": MOCK_CONTACT["address"],
            "opening_hours": MOCK_CONTACT["openingHours"],
            "cta_primary": "Get a Quote",
            "cta_secondary": "Call Now",
        },
        "service_area": {
            "mode": "list",
            "radius_miles": 0,
            "areas": ["London", "Surrey", "Kent"],
            "primary_location": "London",
        },
        "seo_defaults": {"locale": "en-GB", "brand_name": name, "primary_location": "London"},
        "navigation": {"header_links": links, "footer_links": links},
        "pages": [
            {
                "id": slug.strip("/") or "home",
                "title": title,
                "slug": slug,
                "purpose": f"{title} page",
                "seo": {
                    "title": f"{title} | {name}"[:60],
                    "meta_description": "Professional services in London. Get in touch today for a free quote.",
                },
                "sections": [{"type": section, "props": {}} for section in sections],
            }
            for title, slug, sections in _mock_pages(plan_pages)
        ],
        "global_blocks": {"footer": {"disclaimer": "", "copyright_text": _copyright(name)}},
        "assets": {"image_style_notes": "Professional, modern", "image_requests": []},
    }


def _mock_block_data(block_type: str, name: str) -> dict[str, Any]:
    if block_type == "hero":
        return {
            "headline": f"Welcome to {name}",
            "subheadline": "Quality service you can trust",
            "ctaText": "Get a Quote",
            "ctaLink": "#contact",
            "imageUrl": "",
        }
    if block_type == "services_grid":
        return {
            "title": "Our Services",
            "services": [
                {"name": f"Service {index}", "description": f"Description of service {index}", "icon": icon}
                for index, icon in enumerate(("wrench", "star", "shield"), start=1)
            ],
        }
    if block_type == "contact_form":
        return {
            "title": "Get in Touch",
            "description": "Fill out the form below and we'll get back to you.",
            "fields": ["name", "email", "phone", "message"],
            "submitText": "Send Message",
        }
    return {"title": block_type.replace("_", " ").title()}


def build_mock_seed(tenant: Tenant | None, plan_pages: int = 1) -> dict[str, Any]:
    name = _business_name(tenant)
    pages = _mock_pages(plan_pages)
    links = [{"label": title, "href": slug} for title, slug, _ in pages]
    return {
        "settings": {
            "siteName": name,
            "tagline": "Quality service you can trust",
            "contact": dict(MOCK_CONTACT),
            "colours": {"primary": "#2563eb", "secondary": "#1e40af"},
            "footer": {"disclaimer": "", "copyrightText": _copyright(name)},
        },
        "navigation": {"headerLinks": links, "footerLinks": links},
        "pages": [
            {
                "title": title,
                "slug": slug,
                "seoTitle": f"{title} | {name}"[:60],
                "seoDescription": "Professional services in London. Get in touch today for a free quote.",
                "blocks": [{"blockType": block, "data": _mock_block_data(block, name)} for block in blocks],
            }
            for title, slug, blocks in pages
        ],
    }
