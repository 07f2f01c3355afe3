#!/usr/bin/env python3
"""
Run one monitoring cycle outside Celery.
Useful for testing and immediate execution.
"""
import argparse
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.core.bootstrap import build_components

def run_monitor(strategy=None):
    """Check every OPEN position once and print the summary."""
    print("🪙 Running Position Monitor")
    print("=" * 60)
    
    components = build_components()
    summary = components.monitor.monitor_open_positions(strategy)
    
    if not summary.success:
        print(f"\n✗ Monitoring failed: {summary.error}")
        return 1
    
    print(f"\n✓ Cycle completed in {summary.duration_seconds:.2f}s")
    print(f"  - Positions checked: {summary.positions_checked}")
    print(f"  - Buybacks executed: {summary.buybacks_executed}")
    print(f"  - Buybacks failed:   {summary.buybacks_failed}")
    
    for result in summary.results:
        status = "✓" if result.success else "✗"
        detail = result.error or result.decision
        print(f"    {status} position {result.position_id}: {detail}")
    
    return 0

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run one buyback monitoring cycle")
    parser.add_argument("--strategy", help="Only check positions of this strategy")
    args = parser.parse_args()
    sys.exit(run_monitor(args.strategy))
