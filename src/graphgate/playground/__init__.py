"""
GraphQL Playground - in-browser IDE for the gateway.

Served on GET of the GraphQL path to browsers when the playground is
enabled.

Usage:
    from graphgate.playground import get_playground_html

    html = get_playground_html(endpoint="/graphql")
"""

from __future__ import annotations

import html
import json
from typing import Optional

from starlette.requests import Request

PLAYGROUND_VERSION = "1.7.42"
CDN_URL = f"https://cdn.jsdelivr.net/npm/graphql-playground-react@{PLAYGROUND_VERSION}/build"


def get_playground_html(
    *,
    endpoint: str = "/graphql",
    subscription_endpoint: Optional[str] = None,
    title: str = "GraphQL Playground",
) -> str:
    """
    Get Playground HTML with injected configuration.

    Args:
        endpoint: URL for HTTP operations
        subscription_endpoint: URL for WebSocket subscriptions (default: endpoint)
        title: Page title

    Returns:
        HTML string
    """
    settings = {
        "endpoint": endpoint,
        "subscriptionEndpoint": subscription_endpoint or endpoint,
        "settings": {"request.credentials": "same-origin"},
    }

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="user-scalable=no, initial-scale=1.0, minimum-scale=1.0, maximum-scale=1.0, minimal-ui" />
  <title>{html.escape(title)}</title>
  <link rel="stylesheet" href="{CDN_URL}/static/css/index.css" />
  <link rel="shortcut icon" href="{CDN_URL}/favicon.png" />
  <script src="{CDN_URL}/static/js/middleware.js"></script>
</head>
<body>
  <div id="root"></div>
  <script>
    window.addEventListener('load', function () {{
      GraphQLPlayground.init(document.getElementById('root'), {json.dumps(settings)});
    }});
  </script>
</body>
</html>
"""


def wants_playground(request: Request) -> bool:
    """Browser navigation: GET without a query, accepting HTML."""
    if "query" in request.query_params:
        return False
    return "text/html" in request.headers.get("accept", "")


__all__ = [
    "get_playground_html",
    "wants_playground",
]
