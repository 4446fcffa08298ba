"""
Gateway with a custom schema - minimal configuration example.

Usage:
    GRAPHGATE_PORT=4000 python example/gateway/main.py

    curl -X POST localhost:4000/graphql \\
        -H 'content-type: application/json' \\
        -d '{"query": "{ hello(name: \\"gateway\\") }"}'
"""

import asyncio
import sys

from graphgate import GatewayServer, load_config, make_executable_schema
from graphgate.server import configure_logging

TYPE_DEFS = """
type Query {
  hello(name: String): String!
  pushStatus: String!
}

type Subscription {
  tick(count: Int!): Int!
}
"""


async def tick(root, info, count):
    for i in range(count):
        yield {"tick": i}
        await asyncio.sleep(1)


schema = make_executable_schema(
    TYPE_DEFS,
    {
        "Query": {
            "hello": lambda root, info, name="world": f"Hello {name}",
            "pushStatus": lambda root, info: info.context.push_client.status.value,
        },
        "Subscription": {"tick": tick},
    },
)

if __name__ == "__main__":
    config = load_config()
    configure_logging(config.log_level)
    sys.exit(asyncio.run(GatewayServer(config, schema=schema).serve()))
