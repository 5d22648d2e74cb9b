import time

import click
from flask import Flask, current_app


def register_cli(app: Flask) -> None:

    @app.cli.command("sync-once")
    def sync_once():
        """Corre un solo sweep de sincronización y muestra el resultado."""
        sync = current_app.extensions["order_sync"]
        result = sync.sweep()
        if result is None:
            click.echo("Sync omitido (otro sweep activo o sin conexión).")
            return
        click.echo(
            f"Procesadas={result['processed']} ok={result['succeeded']} fallidas={result['failed']}"
        )

    @app.cli.command("sync-worker")
    @click.option("--interval-ms", type=int, default=None, help="Intervalo entre sweeps (ms).")
    def sync_worker(interval_ms):
        """Worker en primer plano: timer + reconexión de red. Ctrl+C para salir."""
        sync = current_app.extensions["order_sync"]
        interval_ms = interval_ms or current_app.config["SYNC_INTERVAL_MS"]
        click.echo(f"[sync] worker iniciado, intervalo={interval_ms}ms")
        sync.start(interval_ms)
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            click.echo("[sync] saliendo por Ctrl+C")
        finally:
            sync.stop()

    @app.cli.command("sync-status")
    def sync_status():
        """Conteo de órdenes por estado de sincronización."""
        counts = current_app.extensions["order_sync"].status_counts()
        for status, n in counts.items():
            click.echo(f"{status:<15} {n}")
