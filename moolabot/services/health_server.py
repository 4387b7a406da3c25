"""
HTTP health endpoint for container liveness probes
"""

import logging
import math
from typing import Optional

from aiohttp import web


class HealthServer:
    def __init__(self, bot, host: str = "0.0.0.0", port: int = 3003):
        self.bot = bot
        self.host = host
        self.port = port
        self.logger = logging.getLogger(__name__)
        self._runner: Optional[web.AppRunner] = None

    def status(self) -> dict:
        closed = self.bot.is_closed()
        ready = self.bot.is_ready() and not closed
        # latency is inf or nan until the first heartbeat
        latency = self.bot.latency
        return {
            'status': 'closed' if closed else 'ok' if ready else 'starting',
            'ready': ready,
            'latency_ms': round(latency * 1000, 1) if ready and math.isfinite(latency) else None,
            'guilds': len(self.bot.guilds) if ready else 0,
        }

    async def health_handler(self, request: web.Request) -> web.Response:
        status = self.status()
        return web.json_response(status, status=200 if status['ready'] else 503)

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/health', self.health_handler)
        app.router.add_get('/', self.health_handler)
        return app

    async def start(self):
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        self.logger.info(f"Health server listening on {self.host}:{self.port}")

    async def stop(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self.logger.info("Health server stopped")
