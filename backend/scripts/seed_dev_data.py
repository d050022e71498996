from sqlalchemy import select

from paygsite.application.services.provisioning_service import queue_email, start_site_build
from paygsite.domain.models.onboarding_submission import OnboardingSubmission
from paygsite.domain.models.tenant import Tenant
from paygsite.infrastructure.db.session import SessionLocal


DEFAULT_BUSINESS_NAME = "Smith & Sons Plumbing"
DEFAULT_BUSINESS_SLUG = "smith-and-sons-plumbing"
DEFAULT_CONTACT_EMAIL = "owner@smithandsons.local"
DEFAULT_PLAN_PAGES = 5


def seed_dev_data() -> None:
    with SessionLocal() as db:
        existing_tenant = db.execute(
            select(Tenant).where(Tenant.business_slug == DEFAULT_BUSINESS_SLUG)
        ).scalar_one_or_none()
        if existing_tenant is not None:
            print(f"Seed exists: tenant_id={existing_tenant.id}")
            return

        tenant = Tenant(
            business_name=DEFAULT_BUSINESS_NAME,
            business_slug=DEFAULT_BUSINESS_SLUG,
            plan_pages=DEFAULT_PLAN_PAGES,
            contact_email=DEFAULT_CONTACT_EMAIL,
        )
        db.add(tenant)
        db.flush()

        submission = OnboardingSubmission(
            tenant_id=tenant.id,
            raw_answers={
                "businessName": DEFAULT_BUSINESS_NAME,
                "industry": "Plumbing",
                "location": "Leeds",
                "services": ["Boiler repair", "Bathroom fitting", "Emergency callouts"],
                "phone": "0113 496 0000",
                "email": DEFAULT_CONTACT_EMAIL,
            },
        )
        db.add(submission)

        build_job = start_site_build(db, tenant.id, DEFAULT_PLAN_PAGES)
        email_job = queue_email(db, tenant.id, "welcome")
        db.commit()

        print("Created dev seed data:")
        print(f"- tenant_id: {tenant.id}")
        print(f"- onboarding_submission_id: {submission.id}")
        print(f"- build_job_id: {build_job.id}")
        print(f"- welcome_email_job_id: {email_job.id}")


if __name__ == "__main__":
    seed_dev_data()
