"""
Entry point for running token_aggregator as a module.

Usage:
    python -m token_aggregator [command] [options]

Commands:
    run         Start the aggregator service (default)
    snapshot    Aggregate once and print a table of tokens
    doctor      Run preflight checks

Options:
    --env ENV               Environment (development/production)
    --limit N               Page size for snapshot
    --sort-by KEY           volume, price_change, market_cap or liquidity
    --sort-order ORDER      asc or desc
    --min-volume AMOUNT     Minimum 24h volume (SOL)
    --min-liquidity AMOUNT  Minimum liquidity (SOL)
"""

from __future__ import annotations

import argparse
import asyncio
import sys


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Solana Token Aggregator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=["run", "snapshot", "doctor"],
        help="Command to execute (default: run)",
    )
    parser.add_argument(
        "--env",
        default="development",
        help="Environment (development/production)",
    )
    parser.add_argument("--limit", type=int, default=20, help="Page size for snapshot")
    parser.add_argument(
        "--sort-by",
        default="volume",
        choices=["volume", "price_change", "market_cap", "liquidity"],
        help="Sort key for snapshot",
    )
    parser.add_argument("--sort-order", default="desc", choices=["asc", "desc"])
    parser.add_argument("--min-volume", default=None, help="Minimum 24h volume (SOL)")
    parser.add_argument("--min-liquidity", default=None, help="Minimum liquidity (SOL)")

    args = parser.parse_args()

    # Import here to avoid slow startup for --help
    from token_aggregator.app.run import run_doctor, run_service, run_snapshot
    from token_aggregator.domain.models import FilterSpec

    try:
        if args.command == "run":
            return asyncio.run(run_service(env=args.env))
        elif args.command == "snapshot":
            spec = FilterSpec.from_query({
                "limit": args.limit,
                "sortBy": args.sort_by,
                "sortOrder": args.sort_order,
                "minVolume": args.min_volume,
                "minLiquidity": args.min_liquidity,
            })
            return asyncio.run(run_snapshot(env=args.env, spec=spec))
        elif args.command == "doctor":
            return asyncio.run(run_doctor(env=args.env))
        else:
            parser.print_help()
            return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
