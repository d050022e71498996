import logging
import re
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from paygsite.domain.models.site_content import Navigation, Page, PageBlock, TenantSiteSettings

logger = logging.getLogger(__name__)

_MULTIPLE_SLASHES = re.compile(r"/+")


class SeedImportError(ValueError):
    pass


def normalize_slug(slug: str) -> str:
    value = str(slug or "").strip().lower()
    if not value.startswith("/"):
        value = "/" + value
    value = _MULTIPLE_SLASHES.sub("/", value)
    if value != "/" and value.endswith("/"):
        value = value[:-1]
    return value


def resolve_slug_conflict(slug: str, existing_slugs: Iterable[str]) -> str:
    taken = set(existing_slugs)
    counter = 2
    candidate = f"{slug}-{counter}"
    while candidate in taken:
        counter += 1
        candidate = f"{slug}-{counter}"
    logger.warning("seed_slug_conflict_resolved slug=%s resolved=%s", slug, candidate)
    return candidate


def validate_seed_for_import(seed: object) -> list[str]:
    errors: list[str] = []
    if not isinstance(seed, dict):
        return ["Seed must be a JSON object"]

    site_settings = seed.get("settings")
    if not isinstance(site_settings, dict):
        errors.append("Missing settings object")
    elif not site_settings.get("siteName"):
        errors.append("Missing settings.siteName")

    pages = seed.get("pages")
    if not isinstance(pages, list) or not pages:
        errors.append("Missing or empty pages array")
    return errors


def _upsert_site_settings(db: Session, tenant_id: UUID, site_settings: dict[str, Any]) -> None:
    contact = site_settings.get("contact") or {}
    colours = site_settings.get("colours") or {}
    footer = site_settings.get("footer") or {}
    values = {
        "tagline": site_settings.get("tagline") or None,
        "phone": contact.get("phone") or None,
        "email": contact.get("email") or None,
        "address": contact.get("address") or None,
        "opening_hours": contact.get("openingHours") or None,
        "primary_colour_hex": colours.get("primary") or None,
        "secondary_colour_hex": colours.get("secondary") or None,
        "footer_disclaimer": footer.get("disclaimer") or None,
    }

    row = db.execute(select(TenantSiteSettings).where(TenantSiteSettings.tenant_id == tenant_id)).scalar_one_or_none()
    if row is None:
        db.add(TenantSiteSettings(tenant_id=tenant_id, **values))
    else:
        for key, value in values.items():
            setattr(row, key, value)


def _upsert_navigation(db: Session, tenant_id: UUID, location: str, items: list[Any]) -> None:
    row = db.execute(
        select(Navigation).where(Navigation.tenant_id == tenant_id, Navigation.location == location)
    ).scalar_one_or_none()
    if row is None:
        db.add(Navigation(tenant_id=tenant_id, location=location, items=list(items)))
    else:
        row.items = list(items)


def import_seed(db: Session, tenant_id: UUID, seed: dict[str, Any]) -> dict[str, int]:
    """Replace the tenant's site content with the seed.

    Settings and navigation are upserted; pages and blocks are deleted and recreated. Runs inside
    the caller's transaction, so a failure part way leaves the previous content untouched.
    """
    errors = validate_seed_for_import(seed)
    if errors:
        raise SeedImportError("; ".join(errors))

    logger.info("seed_import_started tenant_id=%s", tenant_id)
    _upsert_site_settings(db, tenant_id, seed["settings"])

    navigation = seed.get("navigation") or {}
    if navigation.get("headerLinks") is not None:
        _upsert_navigation(db, tenant_id, "header", navigation["headerLinks"])
    if navigation.get("footerLinks") is not None:
        _upsert_navigation(db, tenant_id, "footer", navigation["footerLinks"])

    page_ids = select(Page.id).where(Page.tenant_id == tenant_id)
    db.execute(delete(PageBlock).where(PageBlock.page_id.in_(page_ids)))
    db.execute(delete(Page).where(Page.tenant_id == tenant_id))

    existing_slugs: set[str] = set()
    block_count = 0
    for page_index, page_data in enumerate(seed["pages"]):
        slug = normalize_slug(page_data.get("slug", ""))
        if slug in existing_slugs:
            slug = resolve_slug_conflict(slug, existing_slugs)
        existing_slugs.add(slug)

        title = str(page_data.get("title") or slug)
        page = Page(
            tenant_id=tenant_id,
            title=title,
            slug=slug,
            seo_title=page_data.get("seoTitle") or title,
            seo_description=page_data.get("seoDescription") or "",
            sort_order=page_index,
            status="published",
        )
        db.add(page)
        db.flush()

        for block_index, block in enumerate(page_data.get("blocks") or []):
            db.add(
                PageBlock(
                    page_id=page.id,
                    block_type=str(block.get("blockType")),
                    data=dict(block.get("data") or {}),
                    sort_order=block_index,
                )
            )
            block_count += 1

    db.flush()
    summary = {"pages": len(existing_slugs), "blocks": block_count}
    logger.info("seed_import_completed tenant_id=%s pages=%s blocks=%s", tenant_id, summary["pages"], block_count)
    return summary
