"""Lambda function URL entry point written next to a Remix or React Router server build."""

from __future__ import annotations

from pathlib import Path

STREAMING_SERVER_TEMPLATE = """// Generated by edgeworks. Wraps the framework server build in a streaming
// Lambda function URL handler.
import * as serverBuild from "__BUILD_IMPORT__";
import { createRequestHandler } from "__HANDLER_PACKAGE__";

function toRequest(event) {
  if (event.headers["x-forwarded-host"]) {
    event.headers.host = event.headers["x-forwarded-host"];
  }
  const search = event.rawQueryString.length ? "?" + event.rawQueryString : "";
  const url = new URL(event.rawPath + search, "https://" + event.headers.host);
  const isFormData = (event.headers["content-type"] || "").includes("multipart/form-data");
  const headers = new Headers();
  for (const [name, value] of Object.entries(event.headers)) {
    if (value) headers.append(name, value);
  }
  let body = event.body;
  if (body && event.isBase64Encoded) {
    body = isFormData ? Buffer.from(body, "base64") : Buffer.from(body, "base64").toString();
  }
  return new Request(url.href, { method: event.requestContext.http.method, headers, body });
}

const requestHandler = createRequestHandler(serverBuild, "production");

export const handler = awslambda.streamifyResponse(async (event, responseStream, context) => {
  context.callbackWaitsForEmptyEventLoop = false;
  const response = await requestHandler(toRequest(event));
  const writer = awslambda.HttpResponseStream.from(responseStream, {
    statusCode: response.status,
    headers: { ...Object.fromEntries(response.headers.entries()), "Transfer-Encoding": "chunked" },
    cookies: response.headers.getSetCookie(),
  });
  if (response.body) {
    const reader = response.body.getReader();
    for (let chunk = await reader.read(); !chunk.done; chunk = await reader.read()) {
      writer.write(chunk.value);
    }
  } else {
    writer.write(" ");
  }
  writer.end();
});
"""


def write_streaming_server(build_dir: Path, *, build_import: str, handler_package: str) -> Path:
    """Write ``server.mjs`` into ``build_dir``; its handler is ``server.handler``."""
    build_dir.mkdir(parents=True, exist_ok=True)
    target = build_dir / "server.mjs"
    target.write_text(
        STREAMING_SERVER_TEMPLATE.replace("__BUILD_IMPORT__", build_import).replace(
            "__HANDLER_PACKAGE__", handler_package
        ),
        encoding="utf-8",
    )
    return target
