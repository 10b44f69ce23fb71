import argparse
import asyncio
import logging
import platform
import signal
import sys

from pump_sniper.config import load_settings
from pump_sniper.core.bot import SniperBot
from pump_sniper.core.endpoint_pool import EndpointPool
from pump_sniper.core.rpc_client import SolanaRpcClient
from pump_sniper.core.wallet import WalletManager
from pump_sniper.exceptions import ConfigurationException, WalletException
from pump_sniper.logger import setup_logging
from pump_sniper.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

BANNER = """
╔══════════════════════════════════════════════════════════════╗
║              🚀 PUMP.FUN SNIPER BOT 🚀                       ║
╠══════════════════════════════════════════════════════════════╣
║  Dashboard: pump-sniper dashboard                            ║
╚══════════════════════════════════════════════════════════════╝
"""


async def run_bot(settings):
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def handle_shutdown(sig):
        """Handle shutdown signals."""
        print(f"\n🛑 [SHUTDOWN] Received signal {sig}...")
        shutdown_event.set()

    # add_signal_handler is not supported on Windows
    if platform.system() != "Windows":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: handle_shutdown(s))
    else:
        signal.signal(signal.SIGINT, lambda s, frame: loop.call_soon_threadsafe(handle_shutdown, s))
        signal.signal(signal.SIGTERM, lambda s, frame: loop.call_soon_threadsafe(handle_shutdown, s))

    bot = SniperBot(settings, stop_event=shutdown_event)
    await bot.start()


async def show_wallet(settings):
    pool = EndpointPool(settings.http_endpoints(), settings.stream_endpoints())
    retry = RetryPolicy(pool, settings.retry.default.to_options("RPC call"))
    rpc = SolanaRpcClient(pool, retry, timeout=settings.endpoints.request_timeout_sec)
    try:
        wallet = WalletManager.from_settings(settings, rpc)
        balance = await wallet.get_sol_balance()
        print(f"Address: {wallet.address}")
        if balance is None:
            print("Balance: unavailable")
        else:
            print(f"Balance: {balance:.4f} SOL")
    finally:
        await rpc.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pump-sniper", description="pump.fun token sniper")
    parser.add_argument("--config", help="Path to a YAML or JSON config file")
    parser.add_argument("--simulate", action="store_true", help="Run against the simulated market")
    parser.add_argument("--log-level", help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("start", help="Run the sniper (default)")
    subparsers.add_parser("wallet", help="Show wallet address and SOL balance")
    dashboard = subparsers.add_parser("dashboard", help="Live view of the positions snapshot")
    dashboard.add_argument("--snapshot", help="Snapshot file (default: monitor.snapshot_path)")
    return parser


def cli(argv=None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "start"

    try:
        settings = load_settings(args.config)
    except ConfigurationException as e:
        print(f"🔥 Configuration error: {e}")
        return 1

    if args.simulate:
        settings.simulation_mode = True
    if args.log_level:
        settings.log_level = args.log_level

    if command == "dashboard":
        from pump_sniper.dashboard import run_dashboard
        run_dashboard(args.snapshot or settings.monitor.snapshot_path)
        return 0

    setup_logging(settings.log_level, settings.log_dir, enable_file=(command == "start"))

    if command == "wallet":
        try:
            asyncio.run(show_wallet(settings))
        except WalletException as e:
            logger.error(f"🔥 {e}")
            return 1
        return 0

    print(BANNER)
    try:
        asyncio.run(run_bot(settings))
    except (ConfigurationException, WalletException) as e:
        logger.error(f"🔥 Fatal error: {e}")
        return 1
    except KeyboardInterrupt:
        print("👋 Bot stopped by user.")
    return 0


def main():
    sys.exit(cli())


if __name__ == "__main__":
    main()
