"""Protean Engine runner for the dispatch domain.

Starts the Engine workers that process events asynchronously when
PROTEAN_ENV=production selects async event processing:
- OutboxProcessor: polls the outbox table, publishes events to Redis Streams
- StreamSubscriptions: reads Redis Streams, invokes projectors and event handlers

Usage:
    python src/server.py
"""

import asyncio

from protean.server.engine import Engine


def main():
    from dispatch.domain import dispatch

    dispatch.init()
    asyncio.run(Engine(dispatch).run())


if __name__ == "__main__":
    main()
