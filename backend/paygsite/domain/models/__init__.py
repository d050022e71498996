from paygsite.domain.models.ai_generation import AIBuildSpec, AIGeneration
from paygsite.domain.models.email_log import EmailLog
from paygsite.domain.models.job import Job
from paygsite.domain.models.onboarding_submission import OnboardingSubmission
from paygsite.domain.models.site_content import Navigation, Page, PageBlock, TenantSiteSettings
from paygsite.domain.models.tenant import Tenant

__all__ = [
    "Tenant",
    "OnboardingSubmission",
    "AIBuildSpec",
    "AIGeneration",
    "TenantSiteSettings",
    "Navigation",
    "Page",
    "PageBlock",
    "EmailLog",
    "Job",
]
