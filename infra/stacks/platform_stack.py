"""Stack for the shared platform pieces: cluster, auth issuer, search and redirects."""

from __future__ import annotations

from aws_cdk import Stack
from constructs import Construct

from edgeworks.aws import (
    Auth,
    AuthIssuer,
    AuthProps,
    Cluster,
    ClusterProps,
    HttpsRedirect,
    HttpsRedirectProps,
    OpenSearch,
)
from edgeworks.component_args import ClusterVpcArgs
from edgeworks.context import AppContext


class PlatformStack(Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        context: AppContext,
        cluster_vpc: ClusterVpcArgs | None = None,
        auth_issuer_path: str | None = None,
        create_search: bool = False,
        redirect: HttpsRedirectProps | None = None,
        force_upgrade: dict[str, str] | None = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        force_upgrade = force_upgrade or {}

        self.cluster = None
        if cluster_vpc is not None:
            self.cluster = Cluster(
                self,
                "Cluster",
                context=context,
                props=ClusterProps(vpc=cluster_vpc, force_upgrade=force_upgrade.get("Cluster")),
            )

        self.auth = None
        if auth_issuer_path:
            self.auth = Auth(
                self,
                "Auth",
                context=context,
                props=AuthProps(
                    issuer=AuthIssuer(bundle=auth_issuer_path),
                    force_upgrade=force_upgrade.get("Auth"),
                ),
            )

        self.search = OpenSearch(self, "Search", context=context) if create_search else None
        self.redirect = HttpsRedirect(self, "Redirect", props=redirect) if redirect is not None else None
