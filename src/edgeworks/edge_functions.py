"""CloudFront Function (cloudfront-js-2.0) sources for sites, routers and redirects.

The snippets run inside ``async function handler(event)`` and rely on the
``cf`` module import at the top of the generated code.
"""

from __future__ import annotations

import json

BLOCK_CLOUDFRONT_URL_INJECTION = """
if (event.request.headers.host.value.includes("cloudfront.net")) {
  return {
    statusCode: 403,
    statusDescription: "Forbidden",
    body: {
      encoding: "text",
      data: "<html><head><title>403 Forbidden</title></head><body><center><h1>403 Forbidden</h1></center></body></html>"
    }
  };
}"""

SITE_ROUTER_INJECTION = """
async function routeSite(kvNamespace, metadata) {
  const baselessUri = metadata.base
    ? event.request.uri.replace(metadata.base, "")
    : event.request.uri;

  // Exact S3 file, or the file with an .html or /index.html suffix
  try {
    const u = decodeURIComponent(baselessUri);
    const suffixes = u.endsWith("/") ? ["index.html"] : ["", ".html", "/index.html"];
    const suffix = await Promise.any(
      suffixes.map((s) => cf.kvs().get(kvNamespace + ":" + u + s).then(() => s))
    );
    event.request.uri = metadata.s3.dir + event.request.uri + suffix;
    setS3Origin(metadata.s3.domain);
    return;
  } catch (e) {}

  // Directory routed to S3 as a whole
  const s3Routes = (metadata.s3 && metadata.s3.routes) || [];
  for (let i = 0; i < s3Routes.length; i++) {
    if (!baselessUri.startsWith(s3Routes[i])) continue;
    event.request.uri = metadata.s3.dir + event.request.uri;
    if (event.request.uri.endsWith("/")) {
      event.request.uri += "index.html";
    } else if (!event.request.uri.split("/").pop().includes(".")) {
      event.request.uri += "/index.html";
    }
    setS3Origin(metadata.s3.domain);
    return;
  }

  // Static site without a server
  if (metadata.custom404) {
    event.request.uri = metadata.s3.dir + (metadata.base || "") + metadata.custom404;
    setS3Origin(metadata.s3.domain);
    return;
  }

  if (metadata.image && baselessUri.startsWith(metadata.image.route)) {
    setUrlOrigin(
      metadata.image.host,
      metadata.image.originAccessControlConfig
        ? { originAccessControlConfig: metadata.image.originAccessControlConfig }
        : undefined
    );
    return;
  }

  if (metadata.servers) {
    event.request.headers["x-forwarded-host"] = event.request.headers.host;
    // CloudFront rejects "/" in query string keys, ie. "?/action"
    for (const key in event.request.querystring) {
      if (key.includes("/")) {
        event.request.querystring[encodeURIComponent(key)] = event.request.querystring[key];
        delete event.request.querystring[key];
      }
    }
    setGeoHeaders();
    setCacheKey();
    setUrlOrigin(findNearestServer(metadata.servers), metadata.origin);
  }

  function setGeoHeaders() {
    const geo = ["city", "country", "region", "latitude", "longitude"];
    for (let i = 0; i < geo.length; i++) {
      const header = event.request.headers["cloudfront-viewer-" + geo[i]];
      if (header) event.request.headers["x-open-next-" + geo[i]] = header;
    }
  }

  function setCacheKey() {
    let cacheKey = "";
    if (event.request.uri.startsWith("/_next/image")) {
      cacheKey = getHeader("accept");
    } else {
      cacheKey =
        getHeader("rsc") +
        getHeader("next-router-prefetch") +
        getHeader("next-router-state-tree") +
        getHeader("next-url") +
        getHeader("x-prerender-revalidate");
    }
    const bypass = event.request.cookies["__prerender_bypass"];
    if (bypass) cacheKey += bypass.value;
    const crypto = require("crypto");
    event.request.headers["x-open-next-cache-key"] = {
      value: crypto.createHash("md5").update(cacheKey).digest("hex")
    };
  }

  function getHeader(key) {
    const header = event.request.headers[key];
    if (!header) return "";
    if (header.multiValue) return header.multiValue.map((h) => h.value).join(",");
    return header.value || "";
  }

  function findNearestServer(servers) {
    if (servers.length === 1) return servers[0][0];
    const h = event.request.headers;
    const lat = h["cloudfront-viewer-latitude"] && h["cloudfront-viewer-latitude"].value;
    const lon = h["cloudfront-viewer-longitude"] && h["cloudfront-viewer-longitude"].value;
    if (!lat || !lon) return servers[0][0];
    return servers
      .map((s) => ({ distance: haversine(lat, lon, s[1], s[2]), host: s[0] }))
      .sort((a, b) => a.distance - b.distance)[0].host;
  }

  function haversine(lat1, lon1, lat2, lon2) {
    const rad = (angle) => (angle * Math.PI) / 180;
    const dLat = rad(lat2 - lat1);
    const dLon = rad(lon2 - lon1);
    const a =
      Math.sin(dLat / 2) ** 2 +
      Math.cos(rad(lat1)) * Math.cos(rad(lat2)) * Math.sin(dLon / 2) ** 2;
    return 2 * Math.atan2(Math.sqrt(a), Math.sqrt(1 - a));
  }
}

function setUrlOrigin(urlHost, override) {
  event.request.headers["x-forwarded-host"] = event.request.headers.host;
  const origin = {
    domainName: urlHost,
    customOriginConfig: { port: 443, protocol: "https", sslProtocols: ["TLSv1.2"] },
    originAccessControlConfig: { enabled: false }
  };
  override = override || {};
  if (override.protocol === "http") delete origin.customOriginConfig;
  if (override.connectionAttempts) origin.connectionAttempts = override.connectionAttempts;
  if (override.timeouts) origin.timeouts = override.timeouts;
  if (override.originAccessControlConfig) {
    origin.originAccessControlConfig = override.originAccessControlConfig;
  }
  cf.updateRequestOrigin(origin);
}

function setS3Origin(s3Domain, override) {
  delete event.request.headers["Cookies"];
  delete event.request.headers["cookies"];
  delete event.request.cookies;
  const origin = {
    domainName: s3Domain,
    originAccessControlConfig: {
      enabled: true,
      signingBehavior: "always",
      signingProtocol: "sigv4",
      originType: "s3"
    }
  };
  override = override || {};
  if (override.connectionAttempts) origin.connectionAttempts = override.connectionAttempts;
  if (override.timeouts) origin.timeouts = override.timeouts;
  cf.updateRequestOrigin(origin);
}"""

_ROUTE_LOOKUP = """
  async function getRoutes() {
    try {
      return JSON.parse(await cf.kvs().get(__ROUTER_NS__ + ":routes"));
    } catch (e) {
      return [];
    }
  }

  // Entries are "type,namespace,hostRegex,pathPrefix"; the longest host wins,
  // then the longest path.
  async function matchRoute(routes) {
    const requestHost = event.request.headers.host.value;
    const escapedHost = requestHost.replace(/\\./g, "\\\\.");
    let match;
    routes.forEach((r) => {
      const parts = r.split(",");
      const host = parts[2];
      const path = parts[3];
      if (match && (host.length < match.host.length ||
          (host.length === match.host.length && path.length < match.path.length))) return;
      const hostMatches = host === "" || host === escapedHost ||
        (host.includes("*") && new RegExp("^" + host + "$").test(requestHost));
      if (!hostMatches) return;
      const uri = event.request.uri;
      const pathMatches = uri.startsWith(path) &&
        (uri === path || path.endsWith("/") || uri[path.length] === "/");
      if (!pathMatches) return;
      match = { type: parts[0], routeNs: parts[1], host, path };
    });
    if (!match) return;
    try {
      const metadata = JSON.parse(await cf.kvs().get(match.routeNs + ":metadata"));
      return { type: match.type, routeNs: match.routeNs, metadata };
    } catch (e) {}
  }

  const route = await matchRoute(await getRoutes());
  if (!route) return event.request;
  if (route.metadata.rewrite) {
    const rw = route.metadata.rewrite;
    event.request.uri = event.request.uri.replace(new RegExp(rw.regex), rw.to);
  }
  if (route.type === "url") setUrlOrigin(route.metadata.host, route.metadata.origin);
  if (route.type === "bucket") setS3Origin(route.metadata.domain, route.metadata.origin);
  if (route.type === "site") await routeSite(route.routeNs, route.metadata);
  return event.request;"""


def _handler(body: str) -> str:
    return 'import cf from "cloudfront";\nasync function handler(event) {\n' + body + "\n}\n"


def site_request_function(
    kv_namespace: str,
    *,
    user_injection: str = "",
    block_cloudfront_url: bool = False,
) -> str:
    """Viewer-request function for a site with its own distribution."""
    body = "\n".join(
        (
            user_injection,
            BLOCK_CLOUDFRONT_URL_INJECTION if block_cloudfront_url else "",
            SITE_ROUTER_INJECTION,
            f"  const kvNamespace = {json.dumps(kv_namespace)};",
            "  let metadata;",
            "  try {",
            '    metadata = JSON.parse(await cf.kvs().get(kvNamespace + ":metadata"));',
            "  } catch (e) {}",
            "  await routeSite(kvNamespace, metadata);",
            "  return event.request;",
        )
    )
    return _handler(body)


def router_request_function(
    kv_namespace: str,
    *,
    user_injection: str = "",
    block_cloudfront_url: bool = False,
) -> str:
    """Viewer-request function for a shared router distribution."""
    body = "\n".join(
        (
            user_injection,
            BLOCK_CLOUDFRONT_URL_INJECTION if block_cloudfront_url else "",
            SITE_ROUTER_INJECTION,
            _ROUTE_LOOKUP.replace("__ROUTER_NS__", json.dumps(kv_namespace)),
        )
    )
    return _handler(body)


def viewer_response_function(user_injection: str) -> str:
    return _handler(user_injection + "\n  return event.response;")


def redirect_request_function() -> str:
    return _handler(BLOCK_CLOUDFRONT_URL_INJECTION + "\n  return event.request;")
