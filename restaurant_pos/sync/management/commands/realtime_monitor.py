from __future__ import annotations

import asyncio
import dataclasses

from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand
from django.core.management.base import CommandError
from django.core.management.base import CommandParser

from restaurant_pos.realtime.rooms import KDS
from restaurant_pos.realtime.rooms import ORDERS
from restaurant_pos.realtime.rooms import TABLES
from restaurant_pos.sync.client import RealtimeClient
from restaurant_pos.sync.conf import ClientSettings
from restaurant_pos.sync.status import ConnectionStatus

DEFAULT_ROOMS = [ORDERS, TABLES, KDS]


class Command(BaseCommand):
    help = "Connect to the realtime server and log status and cache changes"

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--token",
            dest="token",
            required=True,
            help="JWT access token used for the Socket.IO handshake",
        )
        parser.add_argument(
            "--url",
            dest="url",
            help="Realtime server URL (defaults to REALTIME_SERVER_URL)",
        )
        parser.add_argument(
            "--room",
            dest="rooms",
            action="append",
            help=(
                "Room to subscribe to; repeatable. "
                "One of orders, tables, kds or table:<id>. "
                "Defaults to orders, tables and kds."
            ),
        )
        parser.add_argument(
            "--duration",
            dest="duration",
            type=float,
            default=0.0,
            help="Seconds to stay connected (0 runs until interrupted)",
        )

    def handle(self, *args, **options) -> str | None:
        settings = ClientSettings.from_django()
        if options.get("url"):
            settings = dataclasses.replace(settings, server_url=options["url"])

        client = self.build_client(settings)
        rooms = options.get("rooms") or DEFAULT_ROOMS
        for room in rooms:
            if not client.subscribe(room):
                client.close()
                msg = f"Invalid room: {room}"
                raise CommandError(msg)

        try:
            async_to_sync(self._monitor)(client, options["token"], options["duration"])
        except KeyboardInterrupt:
            self.stdout.write("Interrupted.")
        finally:
            client.close()
        return None

    def build_client(self, settings: ClientSettings) -> RealtimeClient:
        return RealtimeClient(settings)

    async def _monitor(self, client: RealtimeClient, token: str, duration: float):
        client.on_status_change(self._report_status)
        client.on_payment_completed(
            lambda payment: self.stdout.write(f"payment {payment['id']} completed"),
        )
        for cache in (client.orders, client.kitchen, client.tables, client.menu):
            cache.observe(self._cache_reporter(cache))

        await client.connect(token)
        if duration > 0:
            await asyncio.sleep(duration)
        else:
            await asyncio.Event().wait()

    def _report_status(self, status: ConnectionStatus) -> None:
        if status is ConnectionStatus.ERROR:
            self.stderr.write(self.style.ERROR(f"status: {status.value}"))
        else:
            self.stdout.write(f"status: {status.value}")

    def _cache_reporter(self, cache):
        def report(change, entity_id):
            self.stdout.write(
                f"{cache.domain}: {change} {entity_id} ({len(cache)} cached)",
            )

        return report
