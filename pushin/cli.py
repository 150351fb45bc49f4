"""
PUSHIN Daemon - Command Line Interface
Main entry point for the daemon and the workout commands.

Usage:
    pushin start                   # Start the daemon (tick loop)
    pushin status                  # Show current state
    pushin workout push-ups        # Earn screen time
    pushin emergency instagram     # Spend an emergency unlock
    pushin lock                    # Lock now
    pushin history                 # Last 7 days
    pushin config                  # Open config file
"""

import argparse
import sys
import signal
import time
import json
from datetime import datetime
from typing import Optional

from .audit import AuditLogger
from .bridge import get_bridge
from .config import (
    PushinConfig,
    load_config,
    get_config_path,
    get_state_path,
    create_default_config,
    reset_config,
    print_config,
    show_license_status,
)
from .controller import PushinController
from .emergency import EmergencyUnlockTracker
from .history import WorkoutHistory
from .local_db import LocalDatabase, get_db_path
from .rep_counter import RepCounter
from .rewards import WorkoutMode, WorkoutRewardCalculator, normalize_workout_type
from .state_machine import PushinState, TIME_BASED_WORKOUTS
from .usage import DailyUsageLedger


# Global daemon instance for signal handling
_daemon: Optional['PushinDaemon'] = None


STATE_COLORS = {
    'locked': '\033[91m',     # Red
    'earning': '\033[93m',    # Yellow
    'unlocked': '\033[92m',   # Green
    'expired': '\033[95m',    # Magenta
}
RESET = '\033[0m'


def _mmss(seconds: int) -> str:
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def build_controller(config: Optional[PushinConfig] = None) -> PushinController:
    """Assemble a controller from config and the files under ~/.pushin/."""
    config = config or load_config()
    tier = config.effective_plan_tier

    db = LocalDatabase()
    ledger = DailyUsageLedger(db, tier)
    tracker = EmergencyUnlockTracker.load(tier)
    tracker.set_max_per_day(config.max_emergency_unlocks_per_day)
    tracker.set_minutes_per_use(config.emergency_unlock_minutes)
    if tracker.has_access:
        tracker.set_enabled(config.emergency_unlock_enabled)

    return PushinController(
        config,
        ledger,
        tracker,
        bridge=get_bridge(config),
        audit=AuditLogger(webhook_url=config.webhook_url),
        history=WorkoutHistory(db),
        state_path=get_state_path(),
    )


class PushinDaemon:
    """
    Main daemon: ticks the controller once per second.
    """

    def __init__(self):
        self.config = load_config()
        self.controller = build_controller(self.config)
        self.controller.subscribe(self._on_change)
        self._running = False

    def _on_change(self, old, new) -> None:
        """Handle state transitions."""
        if old.state != new.state and new.state == PushinState.EXPIRED:
            print("\n⏰ Unlock window over. Time for another workout!")

    def _print_status(self, now: datetime) -> None:
        """Print current status."""
        status = self.controller.status(now)
        state = status['state']
        color = STATE_COLORS.get(state, '')
        usage = status['usage']
        cap = usage['daily_cap_seconds']
        emergency = status['emergency']

        line = f"\r{color}[{state.upper():^10}]{RESET} "
        if state == 'unlocked':
            line += f"Left: {_mmss(status['unlock_remaining_seconds'])} | "
        elif status['workout']:
            workout = status['workout']
            line += f"{workout['type']}: {workout['completed_reps']}/{workout['target_reps']} | "
        if emergency['active']:
            line += f"🚨 {_mmss(emergency['remaining_seconds'])} | "
        line += f"Used: {usage['consumed_seconds'] // 60}"
        line += f"/{cap // 60} min" if cap is not None else " min"
        print(line, end='', flush=True)

    def start(self) -> None:
        """Start the daemon."""
        print("🚀 Starting PUSHIN daemon...")
        print(f"📁 Database: {get_db_path()}")
        print(f"⚙️ Config: {get_config_path()}")
        print(f"💳 Plan: {self.config.effective_plan_tier.value.upper()}")
        print(f"🧱 Bridge: {self.controller.bridge.name}")
        print("")
        print("Press Ctrl+C to stop")
        print("-" * 60)

        self._running = True

        try:
            while self._running:
                now = datetime.now()
                self.controller.reload_state(now)
                self.controller.tick(now)
                self._print_status(now)
                time.sleep(self.config.tick_interval)
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop the daemon."""
        if not self._running:
            return
        self._running = False
        self.controller.scheduler.cancel_all()
        print("\n👋 PUSHIN daemon stopped")


def cmd_start(args):
    """Start the daemon."""
    global _daemon

    def handle_signal(signum, frame):
        if _daemon:
            _daemon.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    _daemon = PushinDaemon()
    _daemon.start()


def cmd_status(args):
    """Show current status."""
    controller = build_controller()
    status = controller.status()

    state = status['state']
    color = STATE_COLORS.get(state, '')
    usage = status['usage']
    emergency = status['emergency']

    print("📊 PUSHIN Status")
    print("-" * 40)
    print(f"State: {color}{state.upper()}{RESET}")
    if state == 'unlocked':
        print(f"Unlocked for: {_mmss(status['unlock_remaining_seconds'])}")
    if status['grace_remaining_seconds']:
        print(f"Blocking in: {status['grace_remaining_seconds']}s")
    if status['workout']:
        workout = status['workout']
        print(f"Workout: {workout['type']} {workout['completed_reps']}/{workout['target_reps']}"
              f" ({workout['progress']:.0%})")
    print(f"Blocked: {len(status['blocked_targets'])} app(s)")
    print(f"Enforced: {'Yes' if status['enforced'] else 'No (overlay only)'}")

    print(f"\nPlan: {status['plan_tier'].upper()}")
    cap = usage['daily_cap_seconds']
    print(f"Today: earned {usage['earned_seconds'] // 60} min, used {usage['consumed_seconds'] // 60}"
          f"{'/' + str(cap // 60) if cap is not None else ''} min")
    if emergency['has_access']:
        print(f"Emergency unlocks: {emergency['remaining_today']}/{emergency['max_per_day']} left"
              f"{' (ACTIVE ' + _mmss(emergency['remaining_seconds']) + ')' if emergency['active'] else ''}")
    streak = status['streak']
    print(f"Streak: {streak['current']} day(s), best {streak['best']}"
          f"{', done today' if streak['today_completed'] else ''}")


def cmd_export(args):
    """Export current state as JSON."""
    controller = build_controller()
    print(json.dumps(controller.status(), indent=2))


def cmd_workout(args):
    """Run a workout and unlock on completion."""
    config = load_config()
    controller = build_controller(config)
    calculator = WorkoutRewardCalculator()

    workout_type = normalize_workout_type(args.type)
    minutes = args.minutes if args.minutes is not None else config.default_unlock_minutes
    if minutes <= 0:
        print("❌ --minutes must be positive")
        return
    try:
        mode = WorkoutMode(args.mode or config.workout_mode)
    except ValueError:
        print(f"❌ Unknown mode '{args.mode or config.workout_mode}' (cozy, normal, tuff)")
        return
    target = args.reps or calculator.calculate_workout_target(workout_type, mode, minutes)
    if target <= 0:
        print("❌ Nothing to do: target must be positive")
        return

    if not controller.start_workout(workout_type, target, desired_seconds=minutes * 60):
        print("Run `pushin cancel` to drop the active workout first.")
        return

    unit = "seconds" if workout_type in TIME_BASED_WORKOUTS else "reps"
    print(f"💪 {workout_type}: {target} {unit} for {minutes} min of screen time")

    try:
        if workout_type in TIME_BASED_WORKOUTS:
            for remaining in range(target, 0, -1):
                print(f"\r⏱️  Hold... {remaining:3d}s", end='', flush=True)
                time.sleep(1)
            print()
            done = controller.complete_workout(mode=mode.value)
        elif args.manual:
            reps = int(input("Reps completed: ").strip() or 0)
            done = controller.complete_workout(actual_reps=reps, mode=mode.value)
        else:
            # The listener thread only prints; the count is applied here
            counter = RepCounter(
                on_rep=lambda n: print(f"\r  {n}/{target}", end='', flush=True),
                target=target,
            )
            counter.start()
            reps = counter.wait()
            print()
            done = controller.complete_workout(actual_reps=reps, mode=mode.value)
    except (KeyboardInterrupt, EOFError, ValueError):
        print("\n🛑 Workout cancelled")
        controller.cancel_workout()
        return

    if done:
        print(f"✅ Unlocked for {_mmss(controller.machine.get_unlock_time_remaining(datetime.now()))}")
        streak = controller.history.get_current_streak()
        print(f"🔥 Streak: {streak} day{'s' if streak != 1 else ''}")
    else:
        print("🛑 Not enough reps, workout cancelled")
        controller.cancel_workout()


def cmd_cancel(args):
    """Cancel the active workout."""
    controller = build_controller()
    if controller.cancel_workout():
        print("🛑 Workout cancelled")
    else:
        print("No active workout.")


def cmd_lock(args):
    """Lock immediately."""
    controller = build_controller()
    controller.lock()
    print("🔒 Locked")


def cmd_emergency(args):
    """Use an emergency unlock."""
    controller = build_controller()
    if controller.use_emergency_unlock(args.target):
        minutes = controller.tracker.state.minutes_per_use
        print(f"🔓 Everything unblocked for {minutes} min")


def cmd_history(args):
    """Show the last 7 days of usage, recent workouts and streaks."""
    controller = build_controller()
    summary = controller.ledger.get_weekly_summary()
    history = controller.history

    print("📅 Last 7 days")
    print("-" * 40)
    for usage in summary:
        day = datetime.fromisoformat(usage.date).strftime('%a %d')
        earned = usage.earned_seconds // 60
        used = usage.consumed_seconds // 60
        bar = '█' * min(30, used // 5)
        print(f"{day}  earned {earned:4d} min  used {used:4d} min  {bar}")

    print(f"\n🔥 Streak: {history.get_current_streak()} (best {history.get_best_streak()}), "
          f"{history.get_total_workouts()} workouts total")

    recent = history.get_recent_workouts(limit=args.limit)
    if not recent:
        print("No workouts yet. Try `pushin workout push-ups`.")
        return

    print("\n💪 Recent workouts")
    print("-" * 40)
    for record in recent:
        when = record.completed_at.strftime('%a %d %H:%M')
        print(f"{when}  {record.display_name:<14} {record.reps_completed:4d}  "
              f"+{record.earned_seconds // 60} min ({record.workout_mode})")


def cmd_config(args):
    """Open or create config file."""
    if args.show:
        print_config()
        return
    if args.reset:
        reset_config()
        return

    config_path = get_config_path()

    if not config_path.exists():
        create_default_config()

    print(f"📁 Config file: {config_path}")
    print("\nTo edit, run:")
    print(f"  nano {config_path}")
    print(f"  # or")
    print(f"  code {config_path}")


def cmd_license(args):
    """Show subscription license status."""
    show_license_status()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='PUSHIN - work out to unlock screen time',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pushin start                      Start the daemon
  pushin workout push-ups           Earn the default unlock time
  pushin workout squats --minutes 20
  pushin workout plank --mode cozy
  pushin emergency com.instagram.android
  pushin export                     Export state as JSON

All data stays local in ~/.pushin/
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    start_parser = subparsers.add_parser('start', help='Start the daemon')
    start_parser.set_defaults(func=cmd_start)

    status_parser = subparsers.add_parser('status', help='Show current status')
    status_parser.set_defaults(func=cmd_status)

    export_parser = subparsers.add_parser('export', help='Export state as JSON')
    export_parser.set_defaults(func=cmd_export)

    workout_parser = subparsers.add_parser('workout', help='Do a workout to unlock')
    workout_parser.add_argument('type', help='push-ups, squats, plank, jumping-jacks, burpees')
    workout_parser.add_argument('--reps', type=int, help='Override the target reps (seconds for plank)')
    workout_parser.add_argument('--minutes', type=int, help='Screen time to earn')
    workout_parser.add_argument('--mode', help='cozy, normal or tuff')
    workout_parser.add_argument('--manual', action='store_true', help='Type the rep count instead of tapping')
    workout_parser.set_defaults(func=cmd_workout)

    cancel_parser = subparsers.add_parser('cancel', help='Cancel the active workout')
    cancel_parser.set_defaults(func=cmd_cancel)

    lock_parser = subparsers.add_parser('lock', help='Lock now')
    lock_parser.set_defaults(func=cmd_lock)

    emergency_parser = subparsers.add_parser('emergency', help='Use an emergency unlock')
    emergency_parser.add_argument('target', nargs='?', help='App the unlock is for')
    emergency_parser.set_defaults(func=cmd_emergency)

    history_parser = subparsers.add_parser('history', help='Show the last 7 days and recent workouts')
    history_parser.add_argument('--limit', type=int, default=5, help='Recent workouts to list')
    history_parser.set_defaults(func=cmd_history)

    config_parser = subparsers.add_parser('config', help='Open config file')
    config_parser.add_argument('--show', action='store_true', help='Print the effective configuration')
    config_parser.add_argument('--reset', action='store_true', help='Overwrite config.yaml with the defaults')
    config_parser.set_defaults(func=cmd_config)

    license_parser = subparsers.add_parser('license', help='Show license status')
    license_parser.set_defaults(func=cmd_license)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    args.func(args)


if __name__ == '__main__':
    main()
