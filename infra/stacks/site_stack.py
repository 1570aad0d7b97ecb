"""Stack that deploys one server-rendered site, optionally behind a shared router."""

from __future__ import annotations

from aws_cdk import Stack
from constructs import Construct

from edgeworks.aws import (
    Astro,
    DomainOptions,
    Nextjs,
    Nuxt,
    ReactRouter,
    Remix,
    Router,
    RouterAttachment,
    RouterProps,
    SsrSiteProps,
)
from edgeworks.context import AppContext
from edgeworks.errors import ConfigurationError

SITE_CLASSES = {
    "nextjs": Nextjs,
    "astro": Astro,
    "remix": Remix,
    "react-router": ReactRouter,
    "nuxt": Nuxt,
}


class SiteStack(Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        context: AppContext,
        framework: str,
        site_path: str,
        regions: list[str] | None = None,
        domain: str | None = None,
        hosted_zone: str | None = None,
        use_router: bool = False,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        site_class = SITE_CLASSES.get(framework)
        if site_class is None:
            raise ConfigurationError(
                f"Unknown framework {framework!r}. Expected one of: {', '.join(sorted(SITE_CLASSES))}"
            )

        domain_options = DomainOptions(name=domain, hosted_zone=hosted_zone) if domain else None
        if use_router:
            self.router = Router(self, "Router", context=context, props=RouterProps(domain=domain_options))
            props = SsrSiteProps(path=site_path, regions=regions, router=RouterAttachment(self.router))
        else:
            self.router = None
            props = SsrSiteProps(path=site_path, regions=regions, domain=domain_options)

        # Props subclasses only add optional fields, so the base props work for every framework.
        self.site = site_class(self, "Site", context=context, props=props)
