"""CDK constructs for sites and supporting components."""

from .astro import Astro
from .auth import Auth, AuthIssuer, AuthProps
from .cdn import DomainOptions, EdgeOptions
from .cluster import Cluster, ClusterProps
from .https_redirect import HttpsRedirect, HttpsRedirectProps
from .nextjs import Nextjs, NextjsProps
from .nuxt import Nuxt
from .opensearch import OpenSearch, OpenSearchProps
from .react_router import ReactRouter
from .remix import Remix, RemixProps
from .router import Router, RouterAttachment, RouterProps
from .ssr_site import ServerOptions, SsrSite, SsrSiteProps

__all__ = [
    "Astro",
    "Auth",
    "AuthIssuer",
    "AuthProps",
    "Cluster",
    "ClusterProps",
    "DomainOptions",
    "EdgeOptions",
    "HttpsRedirect",
    "HttpsRedirectProps",
    "Nextjs",
    "NextjsProps",
    "Nuxt",
    "OpenSearch",
    "OpenSearchProps",
    "ReactRouter",
    "Remix",
    "RemixProps",
    "Router",
    "RouterAttachment",
    "RouterProps",
    "ServerOptions",
    "SsrSite",
    "SsrSiteProps",
]
