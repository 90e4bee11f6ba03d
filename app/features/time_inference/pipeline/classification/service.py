"""
Project / client / category assignment for activities.

Keyword rules are checked in declaration order and the first match wins;
the order of PROJECT_RULES and CLIENT_RULES is part of the contract.
"""

from app.features.time_inference.domain.models import (
    Activity,
    Category,
    Classification,
    extract_domain,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ActivityClassifier:
    PROJECT_RULES: tuple[tuple[str, str], ...] = (
        ("project alpha", "Project Alpha"),
        ("beta", "Project Beta"),
        ("website", "Website Development"),
        ("mobile", "Mobile App"),
        ("api", "API Development"),
        ("design", "Design Work"),
        ("meeting", "Client Meetings"),
        ("planning", "Project Planning"),
    )

    CLIENT_RULES: tuple[tuple[str, str], ...] = (
        ("acme", "Acme Corp"),
        ("tech", "TechCorp"),
        ("global", "Global Industries"),
        ("startup", "Startup Inc"),
        ("enterprise", "Enterprise Solutions"),
    )

    # Participant domain -> client
    KNOWN_DOMAINS: dict[str, str] = {
        "acmecorp.com": "Acme Corp",
        "techstart.io": "TechStart",
        "zendesk.com": "Zendesk",
        "globalindustries.com": "Global Industries",
    }

    def __init__(
        self,
        tenant_domain: str,
        default_project: str = "General Work",
        default_client: str = "Unassigned Client",
        internal_client: str = "Internal",
        known_domains: dict[str, str] | None = None,
    ):
        self.tenant_domain = tenant_domain.lower()
        self.default_project = default_project
        self.default_client = default_client
        self.internal_client = internal_client
        self.known_domains = dict(self.KNOWN_DOMAINS if known_domains is None else known_domains)

    def category_for(self, activity: Activity) -> Category:
        """Internal only when every party is on the tenant's own domain."""
        for address in activity.parties():
            if extract_domain(address) != self.tenant_domain:
                return Category.EXTERNAL
        return Category.INTERNAL

    def classify(self, activity: Activity) -> Classification:
        category = self.category_for(activity)
        text = f"{activity.title} {activity.description}".lower()

        project = self._first_match(self.PROJECT_RULES, text)
        client = self._first_match(self.CLIENT_RULES, text)
        if client is None:
            client = self._client_from_domains(activity)

        if client is None:
            client = self.internal_client if category == Category.INTERNAL else self.default_client

        classification = Classification(
            project=project or self.default_project,
            client=client,
            category=category,
        )
        logger.debug(
            "Activity classified",
            activity_id=activity.source_id,
            project=classification.project,
            client=classification.client,
            category=classification.category.value,
        )
        return classification

    @staticmethod
    def _first_match(rules: tuple[tuple[str, str], ...], text: str) -> str | None:
        for keyword, label in rules:
            if keyword in text:
                return label
        return None

    def _client_from_domains(self, activity: Activity) -> str | None:
        for domain in activity.party_domains():
            if domain == self.tenant_domain:
                continue
            client = self.known_domains.get(domain)
            if client:
                return client
        return None
