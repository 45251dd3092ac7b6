"""
Entry point for the arbitrage service.

Usage:
    python -m crossarb
    crossarb  # if installed via pip
"""

import sys


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success).
    """
    import uvicorn

    from crossarb import __version__
    from crossarb.api.server import create_app
    from crossarb.config.settings import get_settings
    from crossarb.telemetry.logger import setup_logging

    print(
        f"""
╔═══════════════════════════════════════════════════════════════╗
║     CROSS-EXCHANGE ARBITRAGE v{__version__:<26}      ║
║                                                               ║
║     Binance / OKX spread detection and execution              ║
╚═══════════════════════════════════════════════════════════════╝
    """
    )

    try:
        settings = get_settings()
    except Exception as e:
        print(f"Configuration error: {e}")
        print("\nCredentials are optional; for real mode set in .env:")
        print("  BINANCE_API_KEY / BINANCE_API_SECRET")
        print("  OKX_API_KEY / OKX_API_SECRET / OKX_PASSPHRASE")
        return 1

    uvloop_enabled = False
    if settings.use_uvloop:
        try:
            import uvloop

            uvloop.install()
            uvloop_enabled = True
        except ImportError:
            uvloop_enabled = False

    print("Configuration:")
    print(f"  Mode:           {'REAL TRADING' if settings.is_real else 'SIMULATION'}")
    print(f"  Binance keys:   {'yes' if settings.has_binance_credentials else 'no'}")
    print(f"  OKX keys:       {'yes' if settings.has_okx_credentials else 'no'}")
    print(f"  Fee rate:       {settings.fee_rate * 100:.3f}%")
    print(f"  Max slippage:   {settings.max_slippage:.2f}%")
    print(f"  Scan interval:  {settings.scan_interval_seconds:.0f}s")
    print(f"  Lock policy:    {settings.lock_policy}")
    auto = f"every {settings.auto_interval_seconds:.0f}s" if settings.auto_execute else "off"
    print(f"  Auto-execute:   {auto}")
    print(f"  Ledger:         {settings.ledger_path or 'in-memory'}")
    print(f"  uvloop:         {'Enabled' if uvloop_enabled else 'Disabled'}")
    print()

    if settings.is_real:
        print("⚠️  WARNING: Real mode enabled!")
        print("    Orders and withdrawals will be sent to the exchanges.")
        print()

    queue_logging = setup_logging(settings.log_level, settings.log_file)
    try:
        uvicorn.run(
            create_app(settings),
            host=settings.api_host,
            port=settings.api_port,
            log_config=None,
            loop="uvloop" if uvloop_enabled else "asyncio",
        )
    except KeyboardInterrupt:
        print("\nInterrupted by user")
    finally:
        queue_logging.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
