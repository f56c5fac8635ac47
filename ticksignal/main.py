"""TickSignal — application entry point.

Boots the FastAPI health server and provides the CLI entry point for paper
and live modes.
"""

import logging
from typing import Optional

from fastapi import FastAPI

app = FastAPI(title="TickSignal Internal API", version="0.1.0")

logger = logging.getLogger("ticksignal")

_engine = None


def configure_app(engine) -> None:
    """Attach the running engine so ``/health`` can report its state."""
    global _engine
    _engine = engine


@app.get("/health")
async def health():
    """Liveness probe plus the engine's carried state."""
    body: dict = {"status": "ok"}
    if _engine is not None:
        body["strategy"] = _engine.strategy_name
        body["state"] = _engine.context.as_dict()
    return body


def warn_if_live(mode: str) -> bool:
    """Log a prominent warning when running in live mode.

    Returns ``True`` if *mode* is ``"live"``.
    """
    if mode == "live":
        logger.warning(
            "LIVE TRADING MODE: real money at risk! Starting in 5 seconds..."
        )
        return True
    return False


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli(argv: Optional[list[str]] = None) -> None:
    """Parse CLI arguments, build the engine and run it."""
    import argparse
    import asyncio
    import dataclasses
    import signal
    import time

    from ticksignal.broker.oanda_client import OandaClient
    from ticksignal.config import load_config
    from ticksignal.engine import TradingEngine
    from ticksignal.strategy.registry import STRATEGY_REGISTRY, get_strategy

    parser = argparse.ArgumentParser(description="TickSignal trading bot")
    parser.add_argument(
        "--mode",
        choices=["paper", "live"],
        default="paper",
        help="Trading mode (default: paper)",
    )
    parser.add_argument(
        "--strategy",
        choices=sorted(STRATEGY_REGISTRY),
        help="Override the STRATEGY environment variable",
    )
    parser.add_argument("--env-file", help="Path to a .env file")
    args = parser.parse_args(argv)

    config = load_config(args.env_file)
    if args.strategy:
        config = dataclasses.replace(config, strategy=args.strategy)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if warn_if_live(args.mode):
        time.sleep(5)

    broker = OandaClient(config)
    engine = TradingEngine(config, broker, strategy=get_strategy(config.strategy))
    configure_app(engine)

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping gracefully.")
        engine.stop()

    signal.signal(signal.SIGINT, handle_shutdown)

    asyncio.run(_run_engine(engine, args.mode, config.health_port))


async def _run_engine(engine, mode: str, port: int = 8080) -> None:
    """Start the health server and the trading engine concurrently."""
    import asyncio
    import uvicorn

    logger.info("Starting TickSignal in %s mode on %s.", mode, engine.instrument)

    server = uvicorn.Server(
        uvicorn.Config(app, host="0.0.0.0", port=port, log_level="warning")
    )

    async def _run_trading():
        await engine.initialize()
        try:
            await engine.run()
        finally:
            server.should_exit = True

    results = await asyncio.gather(
        server.serve(),
        _run_trading(),
        return_exceptions=True,
    )
    logger.info("TickSignal stopped. Results: %s", results)


if __name__ == "__main__":
    _run_cli()
