#!/usr/bin/env python3
"""
Force a buyback on every OPEN position, ignoring thresholds.
"""
import argparse
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.core.bootstrap import build_components

def close_all(strategy=None, assume_yes=False):
    components = build_components()
    open_positions = components.repository.get_open_positions(strategy)
    
    print(f"⚠️  {len(open_positions)} open position(s) will be bought back "
          f"({'dry run' if components.swap_executor.dry_run else 'paper fills'})")
    if not open_positions:
        return 0
    if not assume_yes and input("Continue? [y/N] ").strip().lower() != "y":
        print("Aborted")
        return 1
    
    summary = components.monitor.close_all_positions(strategy)
    print(f"\n✓ Closed {summary.buybacks_executed}, failed {summary.buybacks_failed}")
    for result in summary.results:
        if result.error:
            print(f"    ✗ position {result.position_id}: {result.error}")
    return 0 if summary.success else 1

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Close all open positions")
    parser.add_argument("--strategy", help="Only close positions of this strategy")
    parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    args = parser.parse_args()
    sys.exit(close_all(args.strategy, args.yes))
