#!/usr/bin/env python3
"""
Headless RTP audit simulation.

Runs seeded spins through the real spin pipeline with null presentation
capabilities and instant timers, and reports RTP, hit frequency and
feature rates.

Usage:
    python -m scripts.audit_sim --rounds 100000 --seed AUDIT_2025 --out out/audit_base.csv
    python -m scripts.audit_sim --rounds 50000 --seed AUDIT_2025 --cascade --out out/audit_cascade.csv
"""
import argparse
import asyncio
import csv
import hashlib
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from greedy_squirrel.capabilities import InstantTimers
from greedy_squirrel.config import Settings, settings
from greedy_squirrel.config_hash import get_config_hash
from greedy_squirrel.context import build_context
from greedy_squirrel.logic.rng import SeededRNG
from greedy_squirrel.orchestrator import SpinOrchestrator
from greedy_squirrel.telemetry import TelemetryService


# Bankroll large enough that the simulation never hits the zero-credit reset
SIM_BANKROLL = 10**12


@dataclass
class SimulationStats:
    """Statistics accumulated during simulation."""

    bet: int = 0
    total_wagered: float = 0.0
    total_won: float = 0.0
    rounds: int = 0
    wins: int = 0
    free_spins_played: int = 0
    free_spins_triggers: int = 0
    free_spins_retriggers: int = 0
    bonus_entries: int = 0
    cascade_capped: int = 0
    failed_spins: int = 0
    win_x_values: list[float] = field(default_factory=list)
    max_win_x_observed: float = 0.0

    @property
    def rtp(self) -> float:
        return (self.total_won / self.total_wagered * 100) if self.total_wagered > 0 else 0

    @property
    def hit_freq(self) -> float:
        return (self.wins / self.rounds * 100) if self.rounds > 0 else 0


class AuditSink:
    """Telemetry sink that folds spin events into SimulationStats."""

    def __init__(self, stats: SimulationStats):
        self.stats = stats
        self.round_win = 0.0

    def begin_round(self) -> None:
        self.round_win = 0.0

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        stats = self.stats
        if event_name == "spin_completed":
            stats.total_wagered += data["bet"]
            stats.total_won += data["win"]
            self.round_win += data["win"]
            if data["is_free_spin"]:
                stats.free_spins_played += 1
        elif event_name == "feature_triggered":
            if data["feature"] == "free_spins":
                stats.free_spins_triggers += 1
            elif data["feature"] == "free_spins_retrigger":
                stats.free_spins_retriggers += 1
            elif data["feature"] == "bonus":
                stats.bonus_entries += 1
        elif event_name == "cascade_capped":
            stats.cascade_capped += 1
        elif event_name == "spin_failed":
            stats.failed_spins += 1


def seed_to_int(seed_str: str) -> int:
    """Convert string seed to integer deterministically."""
    return int(hashlib.sha256(seed_str.encode()).hexdigest(), 16) % (2**31)


def get_timestamp_iso() -> str:
    """Get ISO 8601 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def simulation_config(cascade: bool) -> Settings:
    return settings.model_copy(
        update={
            "initial_credits": SIM_BANKROLL,
            "cascade": settings.cascade.model_copy(update={"enabled": cascade}),
        }
    )


async def simulate(
    rounds: int,
    seed_str: str,
    bet: int | None = None,
    cascade: bool = False,
    verbose: bool = False,
) -> SimulationStats:
    config = simulation_config(cascade)
    bet = bet or config.bet_options[0]
    stats = SimulationStats(bet=bet)
    sink = AuditSink(stats)

    context = build_context(
        config,
        rng=SeededRNG(seed_to_int(seed_str)),
        anticipation_rng=SeededRNG(seed_to_int(seed_str) ^ 1),
        timers=InstantTimers(),
        telemetry=TelemetryService(sink),
        with_levels=False,
    )
    context.state.set_current_bet(bet)
    orchestrator = SpinOrchestrator(context)

    progress_interval = max(1, rounds // 100)
    for round_index in range(rounds):
        if context.state.credits < bet:
            context.state.set_credits(SIM_BANKROLL)

        sink.begin_round()
        await orchestrator.spin()

        stats.rounds += 1
        if sink.round_win > 0:
            stats.wins += 1
            win_x = sink.round_win / bet
            stats.win_x_values.append(win_x)
            stats.max_win_x_observed = max(stats.max_win_x_observed, win_x)

        if verbose and round_index % progress_interval == 0:
            print(f"\rProgress: {round_index / rounds * 100:.1f}%", end="", flush=True)

    if verbose:
        print("\rProgress: 100.0%")

    return stats


def run_simulation(
    rounds: int,
    seed_str: str,
    bet: int | None = None,
    cascade: bool = False,
    verbose: bool = False,
) -> SimulationStats:
    return asyncio.run(simulate(rounds, seed_str, bet=bet, cascade=cascade, verbose=verbose))


def calculate_percentile(values: list[float], percentile: float) -> float:
    """Calculate percentile from sorted list."""
    if not values:
        return 0.0
    sorted_vals = sorted(values)
    idx = int(len(sorted_vals) * percentile / 100)
    idx = min(idx, len(sorted_vals) - 1)
    return sorted_vals[idx]


def build_row(seed_str: str, cascade: bool, stats: SimulationStats) -> dict[str, Any]:
    rounds = stats.rounds
    return {
        "timestamp": get_timestamp_iso(),
        "config_hash": get_config_hash(simulation_config(cascade)),
        "rounds": rounds,
        "seed": seed_str,
        "bet": stats.bet,
        "cascade": cascade,
        "rtp": f"{stats.rtp:.4f}",
        "hit_freq": f"{stats.hit_freq:.4f}",
        "free_spins_rate": f"{(stats.free_spins_triggers / rounds * 100) if rounds else 0:.4f}",
        "bonus_entry_rate": f"{(stats.bonus_entries / rounds * 100) if rounds else 0:.4f}",
        "cascade_capped": stats.cascade_capped,
        "failed_spins": stats.failed_spins,
        "p95_win_x": f"{calculate_percentile(stats.win_x_values, 95):.2f}",
        "p99_win_x": f"{calculate_percentile(stats.win_x_values, 99):.2f}",
        "max_win_x": f"{stats.max_win_x_observed:.2f}",
    }


def generate_csv(seed_str: str, cascade: bool, stats: SimulationStats, output_path: str) -> None:
    row = build_row(seed_str, cascade, stats)

    # Ensure output directory exists
    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    with open(output_file, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=row.keys())
        writer.writeheader()
        writer.writerow(row)

    print(f"CSV written to: {output_path}")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Headless RTP audit simulation")
    parser.add_argument(
        "--rounds",
        type=int,
        required=True,
        help="Number of paid rounds to simulate",
    )
    parser.add_argument(
        "--seed",
        type=str,
        required=True,
        help="Seed string for reproducibility",
    )
    parser.add_argument(
        "--bet",
        type=int,
        choices=settings.bet_options,
        default=settings.bet_options[0],
        help="Bet per paid round",
    )
    parser.add_argument(
        "--cascade",
        action="store_true",
        help="Enable cascades",
    )
    parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="Optional output CSV path",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show progress",
    )

    args = parser.parse_args()

    print(f"Running simulation: rounds={args.rounds}, seed={args.seed}, bet={args.bet}")
    print(f"Config hash: {get_config_hash(simulation_config(args.cascade))}")

    stats = run_simulation(
        rounds=args.rounds,
        seed_str=args.seed,
        bet=args.bet,
        cascade=args.cascade,
        verbose=args.verbose,
    )

    if args.out:
        generate_csv(args.seed, args.cascade, stats, args.out)

    print("\nSummary:")
    print(f"  Rounds: {stats.rounds}")
    print(f"  Total wagered: {stats.total_wagered:.2f}")
    print(f"  Total won: {stats.total_won:.2f}")
    print(f"  RTP: {stats.rtp:.4f}%")
    print(f"  Hit frequency: {stats.hit_freq:.4f}%")
    print(f"  Free spins triggers: {stats.free_spins_triggers} ({stats.free_spins_played} spins played)")
    print(f"  Bonus entries: {stats.bonus_entries}")
    print(f"  Cascade cap hits: {stats.cascade_capped}")
    print(f"  Max win_x observed: {stats.max_win_x_observed:.2f}x")

    if stats.failed_spins:
        print(f"FAILED SPINS: {stats.failed_spins}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
